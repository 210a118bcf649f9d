from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except ValueError:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")

    # Backend: "memory" (in-process) or "mongo"
    backend: str = Field(default="memory", alias="BACKEND")
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="storeops", alias="MONGODB_DB_NAME")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Loyalty defaults; also the fallback when the settings row can't be read
    loyalty_enabled: bool = Field(default=True, alias="LOYALTY_ENABLED")
    loyalty_default_coins_per_rupee: float = Field(default=0.10, alias="LOYALTY_DEFAULT_COINS_PER_RUPEE")
    loyalty_global_multiplier: float = Field(default=1.00, alias="LOYALTY_GLOBAL_MULTIPLIER")
    loyalty_min_coins_to_redeem: int = Field(default=10, alias="LOYALTY_MIN_COINS_TO_REDEEM")
    loyalty_festive_multiplier: float = Field(default=1.00, alias="LOYALTY_FESTIVE_MULTIPLIER")
    loyalty_referral_signup_coins: int = Field(default=50, alias="LOYALTY_REFERRAL_SIGNUP_COINS")
    loyalty_referral_purchase_coins: int = Field(default=100, alias="LOYALTY_REFERRAL_PURCHASE_COINS")
    loyalty_transactions_limit: int = Field(default=50, alias="LOYALTY_TRANSACTIONS_LIMIT")

    # Payroll
    payroll_total_working_days: int = Field(default=26, alias="PAYROLL_TOTAL_WORKING_DAYS")
    payroll_full_day_hours: float = Field(default=8, alias="PAYROLL_FULL_DAY_HOURS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
