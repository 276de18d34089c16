from functools import lru_cache
from typing import Any, List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:8081", "http://localhost:19006"]


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
    secret_key: str = Field(default="change-me-in-production-min-32-chars")
    dev_mode: bool = Field(default=False, alias="DEV_MODE", description="Allow phone-only login without OTP")
    session_max_age_seconds: int = 30 * 24 * 3600

    # Persistence
    store_backend: Literal["mongo", "memory"] = Field(default="mongo", alias="STORE_BACKEND")
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="clockwork", alias="MONGODB_DB_NAME")
    # Multi-document transactions need a replica set; turn off for a bare local mongod
    mongodb_transactions: bool = Field(default=True, alias="MONGODB_TRANSACTIONS")

    # Redis (arq worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Notifications: "store" writes directly, "queue" hands off to the arq worker
    notification_backend: Literal["store", "queue"] = Field(default="store", alias="NOTIFICATION_BACKEND")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:8081,http://localhost:19006",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Marketplace economics (credits)
    initial_credits: int = Field(default=100, alias="INITIAL_CREDITS")
    job_posting_reward: int = Field(default=10, alias="JOB_POSTING_REWARD")
    platform_fee_percentage: float = Field(default=10.0, alias="PLATFORM_FEE_PERCENTAGE")
    penalty_amount: int = Field(default=25, alias="PENALTY_AMOUNT")

    # Phone numbers allowed to use /v1/admin (comma-separated)
    admin_phone_numbers_raw: str = Field(default="", alias="ADMIN_PHONE_NUMBERS")

    @property
    def admin_phone_numbers(self) -> List[str]:
        return [p.strip() for p in self.admin_phone_numbers_raw.split(",") if p.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
