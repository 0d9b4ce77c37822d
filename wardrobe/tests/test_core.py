"""Config validation, structured logging and the error payload."""
import json
import logging

import pytest

from wardrobe.core.config import Settings, cors_origins, validate_config
from wardrobe.core.errors import QuotaExceededError, StorageUnavailableError
from wardrobe.core.logging import JsonFormatter, RequestIdFilter, latency_bucket_ms, request_id_ctx_var


def test_validate_config_strict_raises_on_missing_keys():
    cfg = Settings(DATABASE_URL=None, STRIPE_SECRET_KEY=None)
    with pytest.raises(RuntimeError) as exc:
        validate_config(strict=True, settings_obj=cfg)
    assert "DATABASE_URL" in str(exc.value)


def test_validate_config_warns_without_secrets(caplog):
    cfg = Settings(DATABASE_URL="sqlite://", STRIPE_SECRET_KEY="sk_live_do_not_log", GROQ_API_KEY=None)
    with caplog.at_level(logging.WARNING, logger="wardrobe"):
        assert validate_config(strict=False, settings_obj=cfg)
    assert "GROQ_API_KEY" in caplog.text
    assert "sk_live_do_not_log" not in caplog.text


def test_validate_config_requires_price_ids_once_billing_is_on(caplog):
    cfg = Settings(
        DATABASE_URL="sqlite://",
        STRIPE_SECRET_KEY="sk_test_x",
        STRIPE_WEBHOOK_SECRET="whsec_x",
        STRIPE_PRICE_BASIC=None,
        STRIPE_PRICE_PREMIUM="price_premium",
    )
    with caplog.at_level(logging.WARNING, logger="wardrobe"):
        validate_config(strict=False, settings_obj=cfg)
    assert "billing is missing STRIPE_PRICE_BASIC" in caplog.text
    assert cfg.billing_enabled


def test_cors_origins_split():
    cfg = Settings(CORS_ORIGINS="http://a.test, http://b.test,")
    assert cors_origins(cfg) == ["http://a.test", "http://b.test"]


def test_json_log_line_carries_request_id_and_extras():
    record = logging.LogRecord("wardrobe.quota", logging.INFO, __file__, 1, "[quota] denied", None, None)
    record.user_id = "u1"
    token = request_id_ctx_var.set("req-9")
    try:
        RequestIdFilter().filter(record)
    finally:
        request_id_ctx_var.reset(token)

    line = json.loads(JsonFormatter().format(record))

    assert line["request_id"] == "req-9"
    assert line["user_id"] == "u1"
    assert line["message"] == "[quota] denied"


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(5) == "<10ms"
    assert latency_bucket_ms(1500) == ">=1000ms"


def test_quota_error_carries_reason_and_status():
    limit = QuotaExceededError("limit", reason=QuotaExceededError.REASON_LIMIT)
    inactive = QuotaExceededError("inactive", reason=QuotaExceededError.REASON_INACTIVE)
    assert limit.status_code == 429
    assert inactive.status_code == 403
    assert limit.details == {"reason": "limit_reached", "remaining": 0}


def test_storage_errors_are_retryable():
    assert StorageUnavailableError("down").retryable
