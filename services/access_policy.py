"""Premium access rules derived from a user's subscription snapshot.

Every comparison against ``now`` is strict: an end date equal to now has
already lapsed. ``now`` is injectable so boundaries can be tested exactly.
"""
import math
from datetime import datetime, timedelta
from typing import Optional

from core.errors import PremiumRequiredError
from schemas.user_schema import PremiumAccessStatus
from utils.dates import ensure_utc, utcnow


def _is_future(value: Optional[datetime], now: datetime) -> bool:
    return value is not None and ensure_utc(value) > now


def get_premium_access_status(user, now: Optional[datetime] = None) -> PremiumAccessStatus:
    now = ensure_utc(now) if now else utcnow()
    if user is None:
        return PremiumAccessStatus(has_access=False, reason="no_subscription")

    status = user.subscription_status
    if status == "premium":
        if user.subscription_end_date is None or _is_future(user.subscription_end_date, now):
            return PremiumAccessStatus(has_access=True, reason="premium")
        return PremiumAccessStatus(has_access=False, reason="premium_expired")

    if status == "trial":
        if _is_future(user.trial_end_date, now):
            return PremiumAccessStatus(
                has_access=True,
                reason="trial",
                days_remaining=get_trial_days_remaining(user, now),
            )
        return PremiumAccessStatus(has_access=False, reason="trial_expired")

    if status == "canceled":
        # paid through the end of the current period
        if _is_future(user.subscription_end_date, now):
            return PremiumAccessStatus(has_access=True, reason="premium")
        return PremiumAccessStatus(has_access=False, reason="premium_canceled")

    return PremiumAccessStatus(has_access=False, reason="no_subscription")


def has_active_premium_access(user, now: Optional[datetime] = None) -> bool:
    return get_premium_access_status(user, now).has_access


def get_trial_days_remaining(user, now: Optional[datetime] = None) -> int:
    if user is None or user.subscription_status != "trial" or user.trial_end_date is None:
        return 0
    now = ensure_utc(now) if now else utcnow()
    remaining = ensure_utc(user.trial_end_date) - now
    return max(0, math.ceil(remaining / timedelta(days=1)))


def is_trial_expired(user, now: Optional[datetime] = None) -> bool:
    if user is None or user.subscription_status != "trial":
        return False
    now = ensure_utc(now) if now else utcnow()
    return not _is_future(user.trial_end_date, now)


def is_premium_expired(user, now: Optional[datetime] = None) -> bool:
    if user is None or user.subscription_status not in ("premium", "canceled"):
        return False
    if user.subscription_end_date is None:
        return user.subscription_status == "canceled"
    now = ensure_utc(now) if now else utcnow()
    return not _is_future(user.subscription_end_date, now)


def require_premium_access(user, now: Optional[datetime] = None) -> PremiumAccessStatus:
    status = get_premium_access_status(user, now)
    if not status.has_access:
        raise PremiumRequiredError(user_status=status.reason)
    return status
