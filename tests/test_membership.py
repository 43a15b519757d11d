"""Tests for paid membership status and premium access."""
from datetime import timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.menfem import store as crud
from app.menfem.errors import NotFound, UniqueConstraintViolation, ValidationError
from app.menfem.models import User
from app.menfem.modules.membership import service as membership
from app.menfem.modules.membership.models import SubscriptionStatus
from app.menfem.utils import utcnow


def _user(s, email="member@example.com"):
    u = User(email=email, password_hash=generate_password_hash("pw"))
    s.add(u)
    s.flush()
    return u


def test_every_status_has_access_rule():
    assert set(membership.PREMIUM_ACCESS) == set(SubscriptionStatus)


@pytest.mark.parametrize(
    "status, expected",
    [
        (SubscriptionStatus.ACTIVE, True),
        (SubscriptionStatus.PAST_DUE, True),
        (SubscriptionStatus.INACTIVE, False),
        (SubscriptionStatus.CANCELLED, False),
    ],
)
def test_grants_premium_access(status, expected):
    assert membership.grants_premium_access(status) is expected


def test_no_membership_means_no_access(store):
    with store.session_scope() as s:
        user = _user(s)
        assert membership.find_membership(s, user) is None
        assert membership.has_premium_access(s, user) is False
        assert membership.has_premium_access(s, None) is False
        with pytest.raises(NotFound):
            membership.get_membership(s, user)


def test_billing_update_upserts_single_row(store):
    with store.session_scope() as s:
        user = _user(s)
        first = membership.apply_billing_update(
            s, user, status="ACTIVE", external_customer_id="cus_1", external_subscription_id="sub_1"
        )
        second = membership.apply_billing_update(s, user, status=SubscriptionStatus.PAST_DUE)
        assert first.id == second.id
        assert second.status is SubscriptionStatus.PAST_DUE
        # Fields not passed are left alone
        assert second.external_customer_id == "cus_1"
        assert membership.has_premium_access(s, user) is True


def test_billing_update_rejects_unknown_status(store):
    with store.session_scope() as s:
        user = _user(s)
        with pytest.raises(ValidationError):
            membership.apply_billing_update(s, user, status="TRIALING")


def test_external_ids_unique_across_users(store):
    with store.session_scope() as s:
        membership.apply_billing_update(s, _user(s), status="ACTIVE", external_customer_id="cus_1")
        other_id = _user(s, "other@example.com").id
    with store.session_scope() as s:
        other = crud.get(s, User, other_id)
        with pytest.raises(UniqueConstraintViolation):
            membership.apply_billing_update(s, other, status="ACTIVE", external_customer_id="cus_1")


def test_period_end_limits_access(store):
    now = utcnow()
    with store.session_scope() as s:
        user = _user(s)
        membership.apply_billing_update(s, user, status="ACTIVE", current_period_end=now + timedelta(days=1))
        assert membership.has_premium_access(s, user, now=now) is True
        assert membership.has_premium_access(s, user, now=now + timedelta(days=2)) is False


def test_cancel_membership(store):
    with store.session_scope() as s:
        user = _user(s)
        with pytest.raises(NotFound):
            membership.cancel_membership(s, user)
        membership.apply_billing_update(s, user, status="ACTIVE")
        row = membership.cancel_membership(s, user)
        assert row.status is SubscriptionStatus.CANCELLED
        assert row.cancelled_at is not None
        assert membership.has_premium_access(s, user) is False
