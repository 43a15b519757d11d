from __future__ import annotations

import logging
import math
import re
import unicodedata
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update as sa_update

from app.menfem import store
from app.menfem.errors import NotFound, ValidationError
from app.menfem.modules.content.models import Article, ArticleTag, Category, Comment, SavedArticle, Tag
from app.menfem.utils import clean, parse_bool, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.menfem.models import User

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
MAX_SLUG_LENGTH = 191
WORDS_PER_MINUTE = 200
MAX_COMMENT_LENGTH = 5000
EXCERPT_LENGTH = 200


# ---------- Slugs ----------
def slugify(text: str) -> str:
    """ASCII-fold, lowercase and hyphenate: "Hello, World!" -> "hello-world"."""
    folded = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", folded.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def validate_slug(slug: str | None) -> str:
    if not slug or len(slug) > MAX_SLUG_LENGTH or not SLUG_RE.match(slug):
        raise ValidationError(f"Malformed slug: {slug!r}", field="slug")
    return slug


def _int_field(payload: dict, key: str, entity: str, default: int = 0) -> int:
    raw = payload.get(key)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{key} must be an integer.", entity=entity, field=key) from e


def _bool_field(payload: dict, key: str, entity: str, default: bool = False) -> bool:
    raw = payload.get(key)
    if raw is None:
        return default
    try:
        return parse_bool(raw)
    except ValueError as e:
        raise ValidationError(f"{key} must be true or false.", entity=entity, field=key) from e


def _slug_from(payload: dict, source_key: str) -> str:
    raw = clean(payload.get("slug"))
    if raw is None:
        raw = slugify(payload.get(source_key) or "")
    return validate_slug(raw)


def estimate_reading_time(content: str) -> int:
    words = len((content or "").split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def make_excerpt(content: str, length: int = EXCERPT_LENGTH) -> str:
    text = " ".join((content or "").split())
    if len(text) <= length:
        return text
    return text[:length].rsplit(" ", 1)[0] + "…"


# ---------- Categories ----------
def create_category(s: "Session", payload: dict) -> Category:
    name = clean(payload.get("name"))
    if not name:
        raise ValidationError("Name is required.", entity="Category", field="name")
    return store.create(
        s,
        Category,
        name=name,
        slug=_slug_from(payload, "name"),
        description=clean(payload.get("description")),
        color=clean(payload.get("color")),
        order=_int_field(payload, "order", "Category"),
    )


def update_category(s: "Session", category: Category, payload: dict) -> Category:
    changes: dict[str, object] = {}
    if "name" in payload:
        name = clean(payload.get("name"))
        if not name:
            raise ValidationError("Name is required.", entity="Category", field="name")
        changes["name"] = name
    if "slug" in payload:
        changes["slug"] = validate_slug(clean(payload.get("slug")))
    for key in ("description", "color"):
        if key in payload:
            changes[key] = clean(payload.get(key))
    if "order" in payload:
        changes["order"] = _int_field(payload, "order", "Category")
    return store.update(s, category, **changes)


def delete_category(s: "Session", category: Category) -> None:
    """Raises ForeignKeyViolation while any article still references the category."""
    store.delete(s, category)


def list_categories(s: "Session") -> list[Category]:
    return list(s.scalars(select(Category).order_by(Category.order.asc(), Category.name.asc())))


# ---------- Tags ----------
def create_tag(s: "Session", name: str, slug: str | None = None) -> Tag:
    name = clean(name) or ""
    if not name:
        raise ValidationError("Tag name is required.", entity="Tag", field="name")
    return store.create(s, Tag, name=name, slug=_slug_from({"name": name, "slug": slug}, "name"))


def get_or_create_tag(s: "Session", name: str) -> Tag:
    existing = store.find_by(s, Tag, slug=slugify(name))
    if existing is not None:
        return existing
    return create_tag(s, name)


def set_article_tags(s: "Session", article: Article, tag_names: list[str]) -> Article:
    """Replace the article's tag set; unknown tags are created."""
    wanted: dict[str, Tag] = {}
    for name in tag_names:
        if clean(name):
            tag = get_or_create_tag(s, name)
            wanted[tag.id] = tag
    article.tag_links = [link for link in article.tag_links if link.tag_id in wanted]
    present = {link.tag_id for link in article.tag_links}
    for tag_id, tag in wanted.items():
        if tag_id not in present:
            article.tag_links.append(ArticleTag(article_id=article.id, tag=tag))
    return store.update(s, article)


# ---------- Articles ----------
def create_article(s: "Session", payload: dict, author: "User") -> Article:
    title = clean(payload.get("title"))
    content = payload.get("content") or ""
    if not title:
        raise ValidationError("Title is required.", entity="Article", field="title")
    if not content.strip():
        raise ValidationError("Content is required.", entity="Article", field="content")

    category_id = clean(payload.get("category_id"))
    if category_id is None and clean(payload.get("category_slug")):
        category_id = store.get_by(s, Category, slug=clean(payload.get("category_slug"))).id
    if category_id is None:
        raise ValidationError("Category is required.", entity="Article", field="category_id")

    is_published = _bool_field(payload, "is_published", "Article")
    article = store.create(
        s,
        Article,
        slug=_slug_from(payload, "title"),
        title=title,
        content=content,
        excerpt=clean(payload.get("excerpt")) or make_excerpt(content),
        cover_image=clean(payload.get("cover_image")),
        reading_time=_int_field(payload, "reading_time", "Article") or estimate_reading_time(content),
        is_premium=_bool_field(payload, "is_premium", "Article"),
        is_published=is_published,
        published_at=utcnow() if is_published else None,
        meta_title=clean(payload.get("meta_title")),
        meta_description=clean(payload.get("meta_description")),
        author_id=author.id,
        category_id=category_id,
    )
    if payload.get("tags"):
        set_article_tags(s, article, list(payload["tags"]))
    logger.info("Article created id=%s slug=%s published=%s", article.id, article.slug, is_published)
    return article


_ARTICLE_TEXT_FIELDS = ("title", "excerpt", "cover_image", "meta_title", "meta_description")


def update_article(s: "Session", article: Article, payload: dict) -> Article:
    changes: dict[str, object] = {}
    if "slug" in payload:
        new_slug = validate_slug(clean(payload.get("slug")))
        if new_slug != article.slug:
            # Published slugs are part of public URLs.
            if article.is_published or article.published_at is not None:
                raise ValidationError("Slug cannot change once published.", entity="Article", field="slug")
            changes["slug"] = new_slug
    for key in _ARTICLE_TEXT_FIELDS:
        if key in payload:
            changes[key] = clean(payload.get(key))
    if changes.get("title", article.title) is None:
        raise ValidationError("Title is required.", entity="Article", field="title")
    if "excerpt" in changes and changes["excerpt"] is None:
        changes["excerpt"] = make_excerpt(payload.get("content") or article.content)
    if "content" in payload:
        content = payload.get("content") or ""
        if not content.strip():
            raise ValidationError("Content is required.", entity="Article", field="content")
        changes["content"] = content
        if not payload.get("reading_time"):
            changes["reading_time"] = estimate_reading_time(content)
    if payload.get("reading_time"):
        changes["reading_time"] = _int_field(payload, "reading_time", "Article")
    if "is_premium" in payload:
        changes["is_premium"] = _bool_field(payload, "is_premium", "Article")
    if "category_id" in payload:
        changes["category_id"] = clean(payload.get("category_id"))
    if "is_published" in payload:
        is_published = _bool_field(payload, "is_published", "Article")
        changes["is_published"] = is_published
        if is_published and article.published_at is None:
            changes["published_at"] = utcnow()

    was_published = article.is_published
    store.update(s, article, **changes)
    if "tags" in payload:
        set_article_tags(s, article, list(payload.get("tags") or []))
    if article.is_published and not was_published:
        logger.info("Article published id=%s slug=%s", article.id, article.slug)
    return article


def publish_article(s: "Session", article: Article) -> Article:
    return update_article(s, article, {"is_published": True})


def unpublish_article(s: "Session", article: Article) -> Article:
    return update_article(s, article, {"is_published": False})


def delete_article(s: "Session", article: Article) -> None:
    """Tag links, bookmarks and comments cascade; author and category are untouched."""
    store.delete(s, article)


def get_article(s: "Session", slug: str, *, published_only: bool = True) -> Article:
    article = store.get_by(s, Article, slug=slug)
    if published_only and not article.is_published:
        raise NotFound("Article not found.", entity="Article")
    return article


def record_view(s: "Session", article: Article) -> None:
    # Single UPDATE so concurrent readers never lose increments.
    s.execute(
        sa_update(Article)
        .where(Article.id == article.id)
        .values(view_count=Article.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    s.refresh(article, attribute_names=["view_count"])


def published_articles_stmt(
    *,
    category_slug: str | None = None,
    tag_slug: str | None = None,
    premium: bool | None = None,
):
    stmt = select(Article).where(Article.is_published.is_(True))
    if category_slug:
        stmt = stmt.join(Category, Article.category_id == Category.id).where(Category.slug == category_slug)
    if tag_slug:
        stmt = (
            stmt.join(ArticleTag, ArticleTag.article_id == Article.id)
            .join(Tag, ArticleTag.tag_id == Tag.id)
            .where(Tag.slug == tag_slug)
        )
    if premium is not None:
        stmt = stmt.where(Article.is_premium.is_(premium))
    return stmt


def list_published_articles(
    s: "Session",
    *,
    page: int | None = None,
    per_page: int | None = None,
    cursor: str | None = None,
    category_slug: str | None = None,
    tag_slug: str | None = None,
    premium: bool | None = None,
) -> store.Page:
    """Newest first (published_at desc, id desc). Offset when page is given, else cursor."""
    stmt = published_articles_stmt(category_slug=category_slug, tag_slug=tag_slug, premium=premium)
    if page is not None:
        stmt = stmt.order_by(Article.published_at.desc(), Article.id.desc())
        return store.paginate(s, stmt, page=page, per_page=per_page)
    return store.keyset_page(
        s,
        stmt,
        order_column=Article.published_at,
        id_column=Article.id,
        descending=True,
        cursor=cursor,
        per_page=per_page,
    )


def list_all_articles(s: "Session", *, page: int = 1, per_page: int | None = None) -> store.Page:
    stmt = select(Article).order_by(Article.updated_at.desc(), Article.id.desc())
    return store.paginate(s, stmt, page=page, per_page=per_page)


# ---------- Bookmarks ----------
def save_article(s: "Session", user: "User", article: Article, now: datetime | None = None) -> SavedArticle:
    existing = s.get(SavedArticle, (user.id, article.id))
    if existing is not None:
        return existing
    return store.create(s, SavedArticle, user_id=user.id, article_id=article.id, saved_at=now or utcnow())


def unsave_article(s: "Session", user: "User", article: Article) -> bool:
    existing = s.get(SavedArticle, (user.id, article.id))
    if existing is None:
        return False
    store.delete(s, existing)
    return True


def list_saved_articles(s: "Session", user: "User") -> list[Article]:
    stmt = (
        select(Article)
        .join(SavedArticle, SavedArticle.article_id == Article.id)
        .where(SavedArticle.user_id == user.id)
        .order_by(SavedArticle.saved_at.desc())
    )
    return list(s.scalars(stmt))


# ---------- Comments ----------
def _clean_comment(content: str | None) -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment cannot be empty.", entity="Comment", field="content")
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            f"Comment exceeds {MAX_COMMENT_LENGTH} characters.", entity="Comment", field="content"
        )
    return text


def add_comment(s: "Session", user: "User", article: Article, content: str) -> Comment:
    return store.create(s, Comment, user_id=user.id, article_id=article.id, content=_clean_comment(content))


def update_comment(s: "Session", comment: Comment, content: str) -> Comment:
    return store.update(s, comment, content=_clean_comment(content))


def delete_comment(s: "Session", comment: Comment) -> None:
    store.delete(s, comment)


def list_comments(s: "Session", article: Article) -> list[Comment]:
    stmt = select(Comment).where(Comment.article_id == article.id).order_by(Comment.created_at.asc(), Comment.id.asc())
    return list(s.scalars(stmt))


def count_comments(s: "Session", article: Article) -> int:
    return s.scalar(select(func.count()).select_from(Comment).where(Comment.article_id == article.id)) or 0
