from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.menfem.models import Base, created_at_column, id_column, updated_at_column
from app.menfem.utils import utcnow

if TYPE_CHECKING:
    from app.menfem.models import User


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = id_column()
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(String(191), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(32), nullable=True)  # e.g. "#1f2937"
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # RESTRICT in the database; the ORM must not null out articles.category_id.
    articles: Mapped[list["Article"]] = relationship(back_populates="category", passive_deletes="all")


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[str] = id_column()
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(String(191), nullable=False, unique=True)

    article_links: Mapped[list["ArticleTag"]] = relationship(
        back_populates="tag",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Article(Base):
    __tablename__ = "articles"
    __table_args__ = (
        Index("idx_articles_published", "is_published", "published_at"),
        Index("idx_articles_category", "category_id"),
        Index("idx_articles_author", "author_id"),
    )

    id: Mapped[str] = id_column()
    slug: Mapped[str] = mapped_column(String(191), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    excerpt: Mapped[str] = mapped_column(Text, nullable=False)
    cover_image: Mapped[str | None] = mapped_column(String(1024), nullable=True)  # URL
    reading_time: Mapped[int] = mapped_column(Integer, nullable=False, default=5)  # minutes

    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # SEO
    meta_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    meta_description: Mapped[str | None] = mapped_column(String(512), nullable=True)

    author_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)

    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    author: Mapped["User"] = relationship(back_populates="articles")
    category: Mapped[Category] = relationship(back_populates="articles")
    tag_links: Mapped[list["ArticleTag"]] = relationship(
        back_populates="article",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    saved_by: Mapped[list["SavedArticle"]] = relationship(
        back_populates="article",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    comments: Mapped[list["Comment"]] = relationship(
        back_populates="article",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Comment.created_at",
    )

    @property
    def tags(self) -> list[Tag]:
        return [link.tag for link in self.tag_links]


class ArticleTag(Base):
    __tablename__ = "article_tags"

    article_id: Mapped[str] = mapped_column(ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True)
    tag_id: Mapped[str] = mapped_column(ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

    article: Mapped[Article] = relationship(back_populates="tag_links")
    tag: Mapped[Tag] = relationship(back_populates="article_links", lazy="selectin")


class SavedArticle(Base):
    """Bookmark of an article by a user."""

    __tablename__ = "saved_articles"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    article_id: Mapped[str] = mapped_column(ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    user: Mapped["User"] = relationship(back_populates="saved_articles")
    article: Mapped[Article] = relationship(back_populates="saved_by")


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        Index("idx_comments_article", "article_id", "created_at"),
        Index("idx_comments_user", "user_id"),
    )

    id: Mapped[str] = id_column()
    content: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    article_id: Mapped[str] = mapped_column(ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    user: Mapped["User"] = relationship(back_populates="comments")
    article: Mapped[Article] = relationship(back_populates="comments")
