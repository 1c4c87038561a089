import json
import secrets
from decimal import Decimal
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import RejectRefundPolicy

DEFAULT_CORS_ORIGINS = ["http://localhost:3000"]


def _parse_cors_origins(value: str | List[str] | None) -> List[str] | None:
    if value is None:
        return None

    if isinstance(value, (list, tuple, set)):
        return [str(origin).strip() for origin in value if str(origin).strip()]

    stripped = str(value).strip()
    if not stripped:
        return []

    if stripped.startswith("[") and stripped.endswith("]"):
        try:
            loaded = json.loads(stripped)
        except json.JSONDecodeError:
            inner = stripped[1:-1].strip()
            if not inner:
                return []
            stripped = inner
        else:
            if isinstance(loaded, list):
                return [str(origin).strip() for origin in loaded if str(origin).strip()]

    return [origin.strip() for origin in stripped.split(",") if origin.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Custom Room Match Engine"
    api_prefix: str = "/api"
    secret_key: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    database_url: str = "sqlite+aiosqlite:///./custom_rooms.db"
    cors_origins_raw: str | None = Field(default=None, alias="CORS_ORIGINS")

    default_odds: Decimal = Field(default=Decimal("1.8"), gt=0, max_digits=8, decimal_places=4)
    reject_refund_policy: RejectRefundPolicy = RejectRefundPolicy.REFUND_BOTH
    room_write_attempts: int = Field(default=3, ge=1)
    room_write_retry_delay_seconds: float = 0.05
    # None keeps OPEN rooms alive until the creator cancels them.
    open_room_ttl_minutes: int | None = None
    room_cleanup_interval_seconds: int = 300

    # Per user and path, on room-changing participant endpoints.
    mutation_rate_limit_requests: int = Field(default=20, ge=1)
    mutation_rate_limit_window_seconds: int = Field(default=600, ge=1)

    evidence_dir: str = "./uploads"
    evidence_base_url: str = "/uploads"
    max_evidence_bytes: int = 5 * 1024 * 1024

    db_init_max_retries: int = 5
    db_init_retry_interval_seconds: float = 2.0

    @field_validator("database_url")
    @classmethod
    def ensure_async_driver(cls, value: str) -> str:
        """
        Hosted environments usually hand out postgres:// or postgresql:// URLs;
        rewrite them to the asyncpg driver.
        """
        if not value:
            return value

        if value.startswith("postgres://"):
            return "postgresql+asyncpg://" + value[len("postgres://") :]

        if value.startswith("postgresql://") and "+asyncpg" not in value.split("://", 1)[0]:
            return value.replace("postgresql://", "postgresql+asyncpg://", 1)

        return value

    @property
    def cors_origins(self) -> List[str]:
        parsed = _parse_cors_origins(self.cors_origins_raw)
        if not parsed:
            return DEFAULT_CORS_ORIGINS
        return parsed


@lru_cache
def get_settings() -> Settings:
    return Settings()
