"""
Unit tests for premium access rules.
"""
import pytest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from core.errors import PremiumRequiredError
from services import access_policy

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def snapshot(status="free", trial_end=None, sub_end=None):
    return SimpleNamespace(
        subscription_status=status,
        trial_end_date=trial_end,
        subscription_end_date=sub_end,
    )


@pytest.mark.unit
class TestHasActivePremiumAccess:
    """Strict comparisons against now."""

    def test_premium_ending_one_ms_from_now_has_access(self):
        user = snapshot("premium", sub_end=NOW + timedelta(milliseconds=1))
        assert access_policy.has_active_premium_access(user, NOW) is True

    def test_premium_ended_one_ms_ago_has_no_access(self):
        user = snapshot("premium", sub_end=NOW - timedelta(milliseconds=1))
        assert access_policy.has_active_premium_access(user, NOW) is False

    def test_premium_ending_exactly_now_has_no_access(self):
        user = snapshot("premium", sub_end=NOW)
        assert access_policy.has_active_premium_access(user, NOW) is False

    def test_premium_without_end_date_has_access(self):
        assert access_policy.has_active_premium_access(snapshot("premium"), NOW) is True

    def test_active_trial_has_access(self):
        user = snapshot("trial", trial_end=NOW + timedelta(days=3))
        assert access_policy.has_active_premium_access(user, NOW) is True

    def test_canceled_but_paid_through_has_access(self):
        user = snapshot("canceled", sub_end=NOW + timedelta(days=2))
        assert access_policy.has_active_premium_access(user, NOW) is True

    def test_free_and_missing_user_have_no_access(self):
        assert access_policy.has_active_premium_access(snapshot("free"), NOW) is False
        assert access_policy.has_active_premium_access(None, NOW) is False

    def test_naive_end_date_is_read_as_utc(self):
        naive = (NOW + timedelta(minutes=1)).replace(tzinfo=None)
        assert access_policy.has_active_premium_access(snapshot("premium", sub_end=naive), NOW) is True


@pytest.mark.unit
class TestPremiumAccessStatus:
    """Reason vocabulary and days remaining."""

    def test_expired_trial(self):
        status = access_policy.get_premium_access_status(snapshot("trial", trial_end=NOW - timedelta(days=1)), NOW)
        assert status.has_access is False
        assert status.reason == "trial_expired"
        assert status.days_remaining is None

    def test_active_trial_reports_days_remaining(self):
        status = access_policy.get_premium_access_status(
            snapshot("trial", trial_end=NOW + timedelta(days=2, hours=1)), NOW
        )
        assert status.has_access is True
        assert status.reason == "trial"
        assert status.days_remaining == 3

    def test_premium_expired(self):
        status = access_policy.get_premium_access_status(snapshot("premium", sub_end=NOW - timedelta(days=1)), NOW)
        assert (status.has_access, status.reason) == (False, "premium_expired")

    def test_canceled_and_lapsed(self):
        status = access_policy.get_premium_access_status(snapshot("canceled", sub_end=NOW - timedelta(days=1)), NOW)
        assert (status.has_access, status.reason) == (False, "premium_canceled")

    def test_canceled_without_end_date(self):
        status = access_policy.get_premium_access_status(snapshot("canceled"), NOW)
        assert (status.has_access, status.reason) == (False, "premium_canceled")

    def test_canceled_still_in_period_reports_premium(self):
        status = access_policy.get_premium_access_status(snapshot("canceled", sub_end=NOW + timedelta(days=1)), NOW)
        assert (status.has_access, status.reason) == (True, "premium")

    def test_free_user(self):
        status = access_policy.get_premium_access_status(snapshot("free"), NOW)
        assert (status.has_access, status.reason) == (False, "no_subscription")


@pytest.mark.unit
class TestTrialHelpers:

    def test_days_remaining_rounds_up(self):
        user = snapshot("trial", trial_end=NOW + timedelta(hours=1))
        assert access_policy.get_trial_days_remaining(user, NOW) == 1

    def test_days_remaining_floors_at_zero(self):
        user = snapshot("trial", trial_end=NOW - timedelta(days=5))
        assert access_policy.get_trial_days_remaining(user, NOW) == 0

    def test_days_remaining_is_zero_for_non_trial(self):
        user = snapshot("premium", trial_end=NOW + timedelta(days=5))
        assert access_policy.get_trial_days_remaining(user, NOW) == 0

    def test_trial_and_premium_expiry_flags(self):
        assert access_policy.is_trial_expired(snapshot("trial", trial_end=NOW), NOW) is True
        assert access_policy.is_trial_expired(snapshot("trial", trial_end=NOW + timedelta(seconds=1)), NOW) is False
        assert access_policy.is_premium_expired(snapshot("premium", sub_end=NOW - timedelta(seconds=1)), NOW) is True
        assert access_policy.is_premium_expired(snapshot("premium"), NOW) is False
        assert access_policy.is_premium_expired(snapshot("free"), NOW) is False

    def test_require_premium_access_raises_with_reason(self):
        with pytest.raises(PremiumRequiredError) as exc_info:
            access_policy.require_premium_access(snapshot("trial", trial_end=NOW - timedelta(days=1)), NOW)
        body = exc_info.value.to_dict()
        assert body["premiumRequired"] is True
        assert body["userStatus"] == "trial_expired"
        assert exc_info.value.status_code == 403
