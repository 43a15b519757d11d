from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from app.menfem import store
from app.menfem.errors import NotFound, ValidationError
from app.menfem.modules.membership.models import MembershipSubscription, SubscriptionStatus
from app.menfem.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.menfem.models import User

logger = logging.getLogger(__name__)

# PAST_DUE keeps access while the billing provider retries payment.
PREMIUM_ACCESS: dict[SubscriptionStatus, bool] = {
    SubscriptionStatus.ACTIVE: True,
    SubscriptionStatus.PAST_DUE: True,
    SubscriptionStatus.INACTIVE: False,
    SubscriptionStatus.CANCELLED: False,
}

_UNSET = object()


def parse_status(value: "str | SubscriptionStatus") -> SubscriptionStatus:
    try:
        return SubscriptionStatus(value)
    except ValueError as e:
        allowed = ", ".join(st.value for st in SubscriptionStatus)
        raise ValidationError(
            f"Invalid subscription status. Must be one of: {allowed}",
            entity="MembershipSubscription",
            field="status",
        ) from e


def grants_premium_access(status: SubscriptionStatus) -> bool:
    return PREMIUM_ACCESS[status]


def find_membership(s: "Session", user: "User") -> MembershipSubscription | None:
    return store.find_by(s, MembershipSubscription, user_id=user.id)


def get_membership(s: "Session", user: "User") -> MembershipSubscription:
    return store.get_by(s, MembershipSubscription, user_id=user.id)


def has_premium_access(s: "Session", user: "User | None", now: datetime | None = None) -> bool:
    if user is None:
        return False
    membership = find_membership(s, user)
    if membership is None or not grants_premium_access(membership.status):
        return False
    if membership.current_period_end is not None and membership.current_period_end <= (now or utcnow()):
        return False
    return True


def apply_billing_update(
    s: "Session",
    user: "User",
    *,
    status: "str | SubscriptionStatus",
    external_customer_id=_UNSET,
    external_subscription_id=_UNSET,
    current_period_end=_UNSET,
    cancelled_at=_UNSET,
) -> MembershipSubscription:
    """
    Upsert the user's single membership row from a billing event.
    Only the fields passed are written; identifiers collide with
    UniqueConstraintViolation when already bound to another user.
    """
    fields: dict[str, object] = {"status": parse_status(status)}
    for key, value in (
        ("external_customer_id", external_customer_id),
        ("external_subscription_id", external_subscription_id),
        ("current_period_end", current_period_end),
        ("cancelled_at", cancelled_at),
    ):
        if value is not _UNSET:
            fields[key] = value

    membership = find_membership(s, user)
    if membership is None:
        membership = store.create(s, MembershipSubscription, user_id=user.id, **fields)
    else:
        membership = store.update(s, membership, **fields)
    logger.info("Membership billing update user_id=%s status=%s", user.id, membership.status.value)
    return membership


def cancel_membership(s: "Session", user: "User", now: datetime | None = None) -> MembershipSubscription:
    membership = find_membership(s, user)
    if membership is None:
        raise NotFound("Membership not found.", entity="MembershipSubscription")
    return store.update(s, membership, status=SubscriptionStatus.CANCELLED, cancelled_at=now or utcnow())
