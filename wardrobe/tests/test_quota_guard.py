"""
Quota guard and quota service: authorization, consume-after-success and
the weekly usage status.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from wardrobe.core.errors import QuotaExceededError, UpstreamServiceError
from wardrobe.features.entitlements.policy import EntitlementPolicy, QuotaAction, SubscriptionTier
from wardrobe.features.quota.guard import QuotaGuard
from wardrobe.features.quota.service import QuotaService
from wardrobe.features.usage.service import UsageCounterStore, week_start_ms


NOW = datetime(2026, 10, 18, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def quota(profile_store):
    return QuotaService(profile_store, EntitlementPolicy())


def _seed(store, user_id="u1", **fields):
    data = {"image_uploads": 0, "outfit_generations": 0, "week_start_timestamp": week_start_ms(NOW)}
    data.update(fields)
    store.set(user_id, data)


def test_free_user_at_limit_denied(profile_store, quota):
    _seed(profile_store, image_uploads=8)

    decision = quota.guard.authorize("u1", SubscriptionTier.FREE, "expired", QuotaAction.IMAGE_UPLOAD, NOW)

    assert not decision.allowed
    assert decision.remaining == 0
    assert decision.reason == QuotaExceededError.REASON_LIMIT


def test_free_user_below_limit_allowed(profile_store, quota):
    _seed(profile_store, image_uploads=7)

    decision = quota.guard.authorize("u1", SubscriptionTier.FREE, None, QuotaAction.IMAGE_UPLOAD, NOW)

    assert decision.allowed
    assert decision.remaining == 1
    assert decision.limit == 8


def test_paid_tier_not_active_denied_as_inactive(profile_store, quota):
    _seed(profile_store)

    decision = quota.guard.authorize("u1", SubscriptionTier.BASIC, "past_due", QuotaAction.IMAGE_UPLOAD, NOW)

    assert not decision.allowed
    assert decision.reason == QuotaExceededError.REASON_INACTIVE


def test_authorize_does_not_mutate(profile_store, quota):
    _seed(profile_store, image_uploads=2)
    quota.guard.authorize("u1", SubscriptionTier.FREE, None, QuotaAction.IMAGE_UPLOAD, NOW)
    assert profile_store.get("u1")["image_uploads"] == 2


def test_inactive_check_skips_counter_read():
    counters = MagicMock(spec=UsageCounterStore)
    guard = QuotaGuard(EntitlementPolicy(), counters)

    decision = guard.authorize("u1", "premium", "canceled", QuotaAction.OUTFIT_GENERATION, NOW)

    assert not decision.allowed
    counters.current_counter.assert_not_called()


def test_require_raises_with_reason(profile_store, quota):
    _seed(profile_store, outfit_generations=3)

    with pytest.raises(QuotaExceededError) as exc:
        quota.guard.require("u1", SubscriptionTier.FREE, None, QuotaAction.OUTFIT_GENERATION, NOW)

    assert exc.value.reason == QuotaExceededError.REASON_LIMIT
    assert exc.value.status_code == 429
    assert exc.value.details["remaining"] == 0
    assert exc.value.details["limit"] == 3


def test_inactive_denial_is_403(profile_store, quota):
    _seed(profile_store, subscription_tier="premium", subscription_status="unpaid")

    with pytest.raises(QuotaExceededError) as exc:
        with quota.check_and_consume_image_upload_quota("u1", NOW):
            pass

    assert exc.value.reason == QuotaExceededError.REASON_INACTIVE
    assert exc.value.status_code == 403


def test_consume_records_after_success(profile_store, quota):
    with quota.check_and_consume_image_upload_quota("u1", NOW) as decision:
        assert decision.allowed
        # Not charged until the block completes
        assert profile_store.get("u1")["image_uploads"] == 0

    assert profile_store.get("u1")["image_uploads"] == 1


def test_consume_not_charged_when_block_fails(profile_store, quota):
    with pytest.raises(UpstreamServiceError):
        with quota.check_and_consume_outfit_generation_quota("u1", NOW):
            raise UpstreamServiceError("recommender down")

    assert profile_store.get("u1")["outfit_generations"] == 0


def test_denied_block_never_runs(profile_store, quota):
    _seed(profile_store, image_uploads=8)
    work = MagicMock()

    with pytest.raises(QuotaExceededError):
        with quota.check_and_consume_image_upload_quota("u1", NOW):
            work()

    work.assert_not_called()


def test_free_uploads_then_week_rollover(profile_store, quota):
    for _ in range(8):
        with quota.check_and_consume_image_upload_quota("u1", NOW):
            pass

    with pytest.raises(QuotaExceededError) as exc:
        with quota.check_and_consume_image_upload_quota("u1", NOW):
            pass
    assert exc.value.remaining == 0
    assert profile_store.get("u1")["image_uploads"] == 8

    next_monday = NOW + timedelta(days=1, hours=1)
    with quota.check_and_consume_image_upload_quota("u1", next_monday) as decision:
        assert decision.remaining == 8

    stored = profile_store.get("u1")
    assert stored["image_uploads"] == 1
    assert stored["week_start_timestamp"] == week_start_ms(next_monday)


def test_active_premium_uses_premium_limits(profile_store, quota):
    _seed(profile_store, subscription_tier="premium", subscription_status="active", image_uploads=100)

    with quota.check_and_consume_image_upload_quota("u1", NOW) as decision:
        assert decision.remaining == 4900


def test_usage_status_shape(profile_store, quota):
    _seed(profile_store, image_uploads=3)

    status = quota.get_usage_status("u1", NOW)

    assert status["tier"] == "free"
    assert status["subscription_status"] == "expired"
    assert status["active"] is True
    assert status["image_uploads"] == {"used": 3, "remaining": 5, "total": 8}
    assert status["outfit_generations"] == {"used": 0, "remaining": 3, "total": 3}
    assert status["resets_on"] == "2026-10-19"
    assert status["resets_on_display"] == "Monday, October 19, 2026"


def test_usage_status_inactive_paid_has_nothing_remaining(profile_store, quota):
    _seed(profile_store, subscription_tier="basic", subscription_status="past_due", image_uploads=2)

    status = quota.get_usage_status("u1", NOW)

    assert status["active"] is False
    assert status["image_uploads"] == {"used": 2, "remaining": 0, "total": 25}


def test_usage_status_for_new_user_creates_counter(profile_store, quota):
    status = quota.get_usage_status("new-user", NOW)
    assert status["image_uploads"]["used"] == 0
    assert profile_store.get("new-user")["week_start_timestamp"] == week_start_ms(NOW)
