"""Constraint and delete-rule behaviour of the relational store."""
from datetime import timedelta

import pytest
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from app.menfem import store as crud
from app.menfem.errors import ForeignKeyViolation, NotFound, UniqueConstraintViolation, ValidationError
from app.menfem.models import (
    Article,
    ArticleTag,
    Category,
    Comment,
    EmailVerificationToken,
    Event,
    EventRsvp,
    MembershipSubscription,
    NewsletterSubscription,
    SavedArticle,
    Tag,
    User,
    UserSession,
)
from app.menfem.modules.content import service as content
from app.menfem.modules.events.models import RsvpStatus
from app.menfem.utils import utcnow


def _seed(s):
    author = User(email="author@example.com", password_hash=generate_password_hash("pw"))
    reader = User(email="reader@example.com", password_hash=generate_password_hash("pw"))
    category = Category(name="Style", slug="style")
    s.add_all([author, reader, category])
    s.flush()
    article = content.create_article(
        s,
        {"title": "Hello World", "content": "Some words here.", "category_id": category.id, "tags": ["Fit"]},
        author,
    )
    return author, reader, category, article


def test_ids_are_opaque_hex(store):
    with store.session_scope() as s:
        author, _, _, article = _seed(s)
        assert len(author.id) == 32
        assert len(article.id) == 32
        int(article.id, 16)


def test_unique_email(store):
    with store.session_scope() as s:
        _seed(s)
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, User, email="author@example.com", password_hash="x")


def test_unique_slugs(store):
    with store.session_scope() as s:
        author, _, category, _ = _seed(s)
        author_id, category_id = author.id, category.id
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, Category, name="Other", slug="style")
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(
                s,
                Article,
                slug="hello-world",
                title="Dup",
                content="x",
                excerpt="x",
                author_id=author_id,
                category_id=category_id,
            )


def test_unique_category_name(store):
    with store.session_scope() as s:
        _seed(s)
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, Category, name="Style", slug="other")


def test_unique_tag_name_and_slug(store):
    with store.session_scope() as s:
        _seed(s)
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, Tag, name="Fit", slug="fit-2")
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, Tag, name="Fitted", slug="fit")


def test_unique_newsletter_email_and_confirm_token(store):
    with store.session_scope() as s:
        crud.create(s, NewsletterSubscription, email="fan@example.com", confirm_token="tok-1")
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, NewsletterSubscription, email="fan@example.com")
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, NewsletterSubscription, email="other@example.com", confirm_token="tok-1")


def test_get_missing_is_not_found(store):
    with store.session_scope() as s:
        with pytest.raises(NotFound):
            crud.get(s, Article, "0" * 32)
        with pytest.raises(NotFound):
            crud.get_by(s, Article, slug="missing")
        assert crud.find_by(s, Article, slug="missing") is None


def test_update_rejects_unknown_or_primary_key_field(store):
    with store.session_scope() as s:
        _, _, category, _ = _seed(s)
        with pytest.raises(ValidationError):
            crud.update(s, category, nope="x")
        with pytest.raises(ValidationError):
            crud.update(s, category, id="f" * 32)


def test_update_refreshes_updated_at(store):
    with store.session_scope() as s:
        _, _, _, article = _seed(s)
        article.updated_at = utcnow() - timedelta(days=1)
        s.flush()
        before = article.updated_at
        crud.update(s, article, title="New title")
        assert article.updated_at > before
        assert article.title == "New title"


def test_article_requires_existing_category(store):
    with store.session_scope() as s:
        author, _, _, _ = _seed(s)
        author_id = author.id
    with store.session_scope() as s:
        with pytest.raises(ForeignKeyViolation):
            crud.create(
                s,
                Article,
                slug="orphan",
                title="Orphan",
                content="x",
                excerpt="x",
                author_id=author_id,
                category_id="f" * 32,
            )


def test_category_delete_restricted_while_referenced(store):
    with store.session_scope() as s:
        _, _, category, _ = _seed(s)
        category_id = category.id
    with store.session_scope() as s:
        with pytest.raises(ForeignKeyViolation):
            content.delete_category(s, crud.get(s, Category, category_id))
    with store.session_scope() as s:
        assert s.get(Category, category_id) is not None


def test_unreferenced_category_delete(store):
    with store.session_scope() as s:
        category = crud.create(s, Category, name="Empty", slug="empty")
        category_id = category.id
    with store.session_scope() as s:
        content.delete_category(s, crud.get(s, Category, category_id))
    with store.session_scope() as s:
        assert s.get(Category, category_id) is None


def test_article_delete_cascades_to_dependents(store):
    with store.session_scope() as s:
        author, reader, category, article = _seed(s)
        content.save_article(s, reader, article)
        content.add_comment(s, reader, article, "Great read")
        article_id, category_id, author_id = article.id, category.id, author.id

    with store.session_scope() as s:
        content.delete_article(s, crud.get(s, Article, article_id))

    with store.session_scope() as s:
        assert s.scalars(select(ArticleTag).where(ArticleTag.article_id == article_id)).all() == []
        assert s.scalars(select(SavedArticle).where(SavedArticle.article_id == article_id)).all() == []
        assert s.scalars(select(Comment).where(Comment.article_id == article_id)).all() == []
        # Referenced rows are untouched
        assert s.get(Category, category_id) is not None
        assert s.get(User, author_id) is not None
        assert s.scalars(select(Tag).where(Tag.slug == "fit")).one_or_none() is not None


def test_user_delete_cascades_and_unlinks(store):
    with store.session_scope() as s:
        _, reader, _, article = _seed(s)
        event = crud.create(
            s,
            Event,
            title="Meetup",
            description="d",
            location="l",
            start_at=utcnow(),
            end_at=utcnow(),
            is_published=True,
        )
        crud.create(s, UserSession, user_id=reader.id, expires_at=utcnow())
        crud.create(s, EventRsvp, user_id=reader.id, event_id=event.id, status=RsvpStatus.CONFIRMED)
        crud.create(s, MembershipSubscription, user_id=reader.id)
        crud.create(s, NewsletterSubscription, email=reader.email, user_id=reader.id)
        crud.create(
            s, EmailVerificationToken, token="tok", email=reader.email, user_id=reader.id, expires_at=utcnow()
        )
        content.save_article(s, reader, article)
        content.add_comment(s, reader, article, "Hi")
        reader_id = reader.id

    # Fresh session so the ORM has nothing loaded: the database applies the rules.
    with store.session_scope() as s:
        crud.delete(s, crud.get(s, User, reader_id))

    with store.session_scope() as s:
        for model in (UserSession, EventRsvp, MembershipSubscription, SavedArticle, Comment):
            assert s.scalars(select(model).where(model.user_id == reader_id)).all() == []
        sub = s.scalars(select(NewsletterSubscription)).one()
        assert sub.user_id is None
        assert sub.email == "reader@example.com"
        # Tokens are not linked by a foreign key.
        token = s.scalars(select(EmailVerificationToken)).one()
        assert token.user_id == reader_id


def test_author_delete_restricted(store):
    with store.session_scope() as s:
        author, _, _, _ = _seed(s)
        author_id = author.id
    with store.session_scope() as s:
        with pytest.raises(ForeignKeyViolation):
            crud.delete(s, crud.get(s, User, author_id))


def test_rsvp_unique_per_user_and_event(store):
    with store.session_scope() as s:
        _, reader, _, _ = _seed(s)
        event = crud.create(
            s, Event, title="Meetup", description="d", location="l", start_at=utcnow(), end_at=utcnow()
        )
        crud.create(s, EventRsvp, user_id=reader.id, event_id=event.id)
        reader_id, event_id = reader.id, event.id
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, EventRsvp, user_id=reader_id, event_id=event_id)


def test_membership_unique_per_user(store):
    with store.session_scope() as s:
        _, reader, _, _ = _seed(s)
        crud.create(s, MembershipSubscription, user_id=reader.id, external_customer_id="cus_1")
        reader_id = reader.id
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, MembershipSubscription, user_id=reader_id)


def test_missing_required_field_is_validation_error(store):
    with store.session_scope() as s:
        with pytest.raises(ValidationError):
            crud.create(s, Category, name=None, slug="x")


def test_rsvp_status_updated_in_place(store):
    with store.session_scope() as s:
        _, reader, _, _ = _seed(s)
        event = crud.create(
            s, Event, title="Meetup", description="d", location="l", start_at=utcnow(), end_at=utcnow()
        )
        row = crud.create(s, EventRsvp, user_id=reader.id, event_id=event.id)
        crud.update(s, row, status=RsvpStatus.CANCELLED)
        event_id = event.id
    with store.session_scope() as s:
        row = s.scalars(select(EventRsvp).where(EventRsvp.event_id == event_id)).one()
        assert row.status is RsvpStatus.CANCELLED


def test_unique_tokens_and_external_ids(store):
    with store.session_scope() as s:
        _, reader, _, _ = _seed(s)
        crud.create(s, EmailVerificationToken, token="same", email=reader.email, user_id=reader.id, expires_at=utcnow())
        crud.create(s, MembershipSubscription, user_id=reader.id, external_subscription_id="sub_1")
        other = crud.create(s, User, email="other@example.com", password_hash="x")
        reader_id, other_id = reader.id, other.id
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, EmailVerificationToken, token="same", email="x@example.com", user_id=reader_id, expires_at=utcnow())
    with store.session_scope() as s:
        with pytest.raises(UniqueConstraintViolation):
            crud.create(s, MembershipSubscription, user_id=other_id, external_subscription_id="sub_1")


def test_publish_scenario(store):
    with store.session_scope() as s:
        author = crud.create(s, User, email="writer@example.com", password_hash="x")
        tech = content.create_category(s, {"name": "Tech", "slug": "tech"})
        article = content.create_article(
            s,
            {"title": "Hello World", "slug": "hello-world", "content": "First post.", "category_id": tech.id},
            author,
        )
        assert article.is_published is False
        assert content.list_published_articles(s).items == []

        content.update_article(s, article, {"is_published": True})
        slugs = [a.slug for a in content.list_published_articles(s).items]
        assert slugs == ["hello-world"]
