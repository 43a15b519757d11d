"""Tests for newsletter subscriptions."""
import pytest
from werkzeug.security import generate_password_hash

from app.menfem import store as crud
from app.menfem.errors import NotFound, ValidationError
from app.menfem.models import NewsletterSubscription, User
from app.menfem.modules.accounts import service as accounts
from app.menfem.modules.newsletter import service as newsletter


def test_subscribe_and_confirm(store):
    with store.session_scope() as s:
        sub = newsletter.subscribe(s, " Fan@Example.com ")
        assert sub.email == "fan@example.com"
        assert sub.is_active is True
        assert sub.is_confirmed is False
        token = sub.confirm_token

    with store.session_scope() as s:
        sub = newsletter.confirm_subscription(s, token)
        assert sub.is_confirmed is True
        with pytest.raises(NotFound):
            newsletter.confirm_subscription(s, token)


def test_subscribe_rejects_bad_email(store):
    with store.session_scope() as s:
        with pytest.raises(ValidationError):
            newsletter.subscribe(s, "not-an-email")


def test_resubscribe_reactivates_same_row(store):
    with store.session_scope() as s:
        first = newsletter.subscribe(s, "fan@example.com")
        first_id = first.id
        newsletter.unsubscribe(s, "fan@example.com")
        assert first.is_active is False
        assert first.unsubscribed_at is not None

    with store.session_scope() as s:
        again = newsletter.subscribe(s, "FAN@example.com")
        assert again.id == first_id
        assert again.is_active is True
        assert again.unsubscribed_at is None
        assert s.query(NewsletterSubscription).count() == 1


def test_unsubscribe_unknown_email(store):
    with store.session_scope() as s:
        with pytest.raises(NotFound):
            newsletter.unsubscribe(s, "ghost@example.com")


def test_list_active_subscriptions(store):
    with store.session_scope() as s:
        for i in range(3):
            newsletter.subscribe(s, f"fan{i}@example.com")
        newsletter.unsubscribe(s, "fan1@example.com")
        page = newsletter.list_active_subscriptions(s)
        assert page.total == 2
        assert {sub.email for sub in page.items} == {"fan0@example.com", "fan2@example.com"}


def test_user_deletion_unlinks_subscription(store):
    with store.session_scope() as s:
        user = User(email="fan@example.com", password_hash=generate_password_hash("pw"))
        s.add(user)
        s.flush()
        newsletter.subscribe(s, user.email, user=user)
        user_id = user.id

    with store.session_scope() as s:
        accounts.delete_user(s, crud.get(s, User, user_id))

    with store.session_scope() as s:
        sub = crud.get_by(s, NewsletterSubscription, email="fan@example.com")
        assert sub.user_id is None
        assert sub.is_active is True
