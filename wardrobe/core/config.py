"""Runtime settings for the wardrobe backend, loaded from the environment and .env."""
import logging
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ENV: str = "development"
    CONFIG_STRICT: bool = False
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Bearer JWT; the `sub` claim is the user id
    AUTH_JWT_SECRET: Optional[str] = None
    AUTH_JWT_AUDIENCE: Optional[str] = None
    ADMIN_KEY: Optional[str] = None

    # Billing is switched off entirely when STRIPE_SECRET_KEY is unset
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PUBLISHABLE_KEY: Optional[str] = None
    STRIPE_PRICE_BASIC: Optional[str] = None
    STRIPE_PRICE_PREMIUM: Optional[str] = None

    # Outfit recommender
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"

    # Clothing image labeler
    LABELER_API_URL: str = "https://api.dragoneye.ai/predict"
    LABELER_API_KEY: Optional[str] = None
    LABELER_MODEL: str = "dragoneye/fashion"

    FRONTEND_URL: str = "http://localhost:3000"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    RECONCILE_INTERVAL_SECONDS: int = 86400

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def billing_enabled(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY)


settings = Settings()


def _missing_by_feature(cfg: Settings) -> Dict[str, List[str]]:
    required = {
        "database": ["DATABASE_URL"],
        "auth": ["AUTH_JWT_SECRET", "ADMIN_KEY"],
        "labeler": ["LABELER_API_KEY"],
        "recommender": ["GROQ_API_KEY"],
    }
    if cfg.billing_enabled:
        required["billing"] = ["STRIPE_WEBHOOK_SECRET", "STRIPE_PRICE_BASIC", "STRIPE_PRICE_PREMIUM"]
    else:
        required["billing"] = ["STRIPE_SECRET_KEY"]

    missing = {}
    for feature, keys in required.items():
        absent = [key for key in keys if not getattr(cfg, key, None)]
        if absent:
            missing[feature] = absent
    return missing


def validate_config(
    strict: Optional[bool] = None,
    settings_obj: Optional[Settings] = None,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Report configuration keys each feature needs but does not have.

    Only key names are reported, never values. In strict mode a gap raises
    RuntimeError; otherwise each affected feature gets one warning.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("wardrobe")
    strict_mode = cfg.CONFIG_STRICT if strict is None else strict

    missing = _missing_by_feature(cfg)
    if not missing:
        return True

    if strict_mode:
        keys = [key for absent in missing.values() for key in absent]
        raise RuntimeError(f"Missing required configuration: {', '.join(keys)}")
    for feature, absent in missing.items():
        log.warning("[config] %s is missing %s", feature, ", ".join(absent))
    return True


def cors_origins(settings_obj: Optional[Settings] = None) -> List[str]:
    cfg = settings_obj or settings
    return [origin.strip() for origin in (cfg.CORS_ORIGINS or "").split(",") if origin.strip()]
