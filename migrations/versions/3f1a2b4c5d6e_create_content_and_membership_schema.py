"""create content and membership schema

Revision ID: 3f1a2b4c5d6e
Revises:
Create Date: 2026-10-17 09:12:44.120391

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a2b4c5d6e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RSVP_STATUS = sa.Enum("CONFIRMED", "WAITLISTED", "CANCELLED", name="rsvp_status")
SUBSCRIPTION_STATUS = sa.Enum("ACTIVE", "INACTIVE", "CANCELLED", "PAST_DUE", name="subscription_status")


def _id() -> sa.Column:
    return sa.Column("id", sa.String(32), primary_key=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create every table with its unique, foreign-key and delete rules."""
    # Check if tables already exist (idempotent)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            _id(),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("username", sa.String(64), nullable=True, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
        )

    if "sessions" not in existing_tables:
        op.create_table(
            "sessions",
            _id(),
            sa.Column("user_id", sa.String(32), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
        )
        op.create_index("idx_sessions_user", "sessions", ["user_id"])

    # Tokens carry user_id without a foreign key.
    for table in ("email_verification_tokens", "password_reset_tokens"):
        if table not in existing_tables:
            op.create_table(
                table,
                _id(),
                sa.Column("token", sa.String(128), nullable=False, unique=True),
                sa.Column("email", sa.String(320), nullable=False),
                sa.Column("user_id", sa.String(32), nullable=False),
                sa.Column("expires_at", sa.DateTime(), nullable=False),
                sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            )

    if "categories" not in existing_tables:
        op.create_table(
            "categories",
            _id(),
            sa.Column("name", sa.String(128), nullable=False, unique=True),
            sa.Column("slug", sa.String(191), nullable=False, unique=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("color", sa.String(32), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        )

    if "tags" not in existing_tables:
        op.create_table(
            "tags",
            _id(),
            sa.Column("name", sa.String(64), nullable=False, unique=True),
            sa.Column("slug", sa.String(191), nullable=False, unique=True),
        )

    if "articles" not in existing_tables:
        op.create_table(
            "articles",
            _id(),
            sa.Column("slug", sa.String(191), nullable=False, unique=True),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("excerpt", sa.Text(), nullable=False),
            sa.Column("cover_image", sa.String(1024), nullable=True),
            sa.Column("reading_time", sa.Integer(), nullable=False, server_default="5"),
            sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("published_at", sa.DateTime(), nullable=True),
            sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("meta_title", sa.String(255), nullable=True),
            sa.Column("meta_description", sa.String(512), nullable=True),
            sa.Column("author_id", sa.String(32), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
            sa.Column(
                "category_id", sa.String(32), sa.ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
            ),
            *_timestamps(),
        )
        op.create_index("idx_articles_published", "articles", ["is_published", "published_at"])
        op.create_index("idx_articles_category", "articles", ["category_id"])
        op.create_index("idx_articles_author", "articles", ["author_id"])

    if "article_tags" not in existing_tables:
        op.create_table(
            "article_tags",
            sa.Column(
                "article_id", sa.String(32), sa.ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True
            ),
            sa.Column("tag_id", sa.String(32), sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
        )

    if "saved_articles" not in existing_tables:
        op.create_table(
            "saved_articles",
            sa.Column("user_id", sa.String(32), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column(
                "article_id", sa.String(32), sa.ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True
            ),
            sa.Column("saved_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "comments" not in existing_tables:
        op.create_table(
            "comments",
            _id(),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("user_id", sa.String(32), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "article_id", sa.String(32), sa.ForeignKey("articles.id", ondelete="CASCADE"), nullable=False
            ),
            *_timestamps(),
        )
        op.create_index("idx_comments_article", "comments", ["article_id", "created_at"])
        op.create_index("idx_comments_user", "comments", ["user_id"])

    if "newsletter_subscriptions" not in existing_tables:
        op.create_table(
            "newsletter_subscriptions",
            _id(),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("user_id", sa.String(32), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("subscribed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("unsubscribed_at", sa.DateTime(), nullable=True),
            sa.Column("confirm_token", sa.String(128), nullable=True, unique=True),
        )
        op.create_index("idx_newsletter_active", "newsletter_subscriptions", ["is_active"])

    if "events" not in existing_tables:
        op.create_table(
            "events",
            _id(),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("location", sa.String(255), nullable=False),
            sa.Column("start_at", sa.DateTime(), nullable=False),
            sa.Column("end_at", sa.DateTime(), nullable=False),
            sa.Column("capacity", sa.Integer(), nullable=True),
            sa.Column("image", sa.String(1024), nullable=True),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
        )
        op.create_index("idx_events_published_start", "events", ["is_published", "start_at"])

    if "event_rsvps" not in existing_tables:
        op.create_table(
            "event_rsvps",
            _id(),
            sa.Column("user_id", sa.String(32), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("event_id", sa.String(32), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
            sa.Column("status", RSVP_STATUS, nullable=False, server_default="CONFIRMED"),
            *_timestamps(),
            sa.UniqueConstraint("user_id", "event_id", name="uq_event_rsvps_user_event"),
        )
        op.create_index("idx_event_rsvps_event_status", "event_rsvps", ["event_id", "status"])

    if "membership_subscriptions" not in existing_tables:
        op.create_table(
            "membership_subscriptions",
            _id(),
            sa.Column(
                "user_id",
                sa.String(32),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
                unique=True,
            ),
            sa.Column("external_customer_id", sa.String(255), nullable=True, unique=True),
            sa.Column("external_subscription_id", sa.String(255), nullable=True, unique=True),
            sa.Column("status", SUBSCRIPTION_STATUS, nullable=False, server_default="INACTIVE"),
            sa.Column("current_period_end", sa.DateTime(), nullable=True),
            sa.Column("cancelled_at", sa.DateTime(), nullable=True),
            *_timestamps(),
        )


def downgrade() -> None:
    for table in (
        "membership_subscriptions",
        "event_rsvps",
        "events",
        "newsletter_subscriptions",
        "comments",
        "saved_articles",
        "article_tags",
        "articles",
        "tags",
        "categories",
        "password_reset_tokens",
        "email_verification_tokens",
        "sessions",
        "users",
    ):
        op.drop_table(table)
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        SUBSCRIPTION_STATUS.drop(bind, checkfirst=True)
        RSVP_STATUS.drop(bind, checkfirst=True)
