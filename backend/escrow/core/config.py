from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Any, ClassVar
from decimal import Decimal
import json
from pathlib import Path
import os


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"

    # JWT configuration (provide a fallback for local development)
    SECRET_KEY: str = "fallback_secret_for_dev_only"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Database URL
    # Use an absolute path so running the app from different directories
    # (e.g., repo root or backend/) always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'escrow.db'}"

    # CORS origins
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    CORS_ALLOW_ALL: bool = False

    LOG_LEVEL: str = "INFO"

    # Default currency code for bookings and wallets
    DEFAULT_CURRENCY: str = "GHS"

    # Platform commission withheld when a booking has no commission_amount
    DEFAULT_COMMISSION_RATE: Decimal = Decimal("0.05")

    # Window the client has to accept or dispute after the provider marks done
    CLIENT_CONFIRM_WINDOW_HOURS: int = 48

    # Auto-release batch sizing. Bounded to keep each run short.
    AUTO_RELEASE_BATCH_SIZE: int = 50
    AUTO_RELEASE_MAX_BATCH_SIZE: int = 100
    AUTO_RELEASE_MAX_WORKERS: int = 1

    # In-process auto-release loop. Off by default; cron or the ops
    # endpoint drive the scheduler in production.
    AUTO_RELEASE_LOOP_ENABLED: bool = False
    AUTO_RELEASE_INTERVAL_SECONDS: int = 600

    # Optional outbound webhook receiving settlement events as JSON
    NOTIFIER_WEBHOOK_URL: str = ""
    NOTIFIER_WEBHOOK_TIMEOUT: float = 5.0

    @field_validator("CORS_ORIGINS", mode="before")
    def split_origins(cls, v: Any) -> list[str]:
        """Parse comma-separated or JSON list of origins from environment."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("DEFAULT_COMMISSION_RATE")
    def commission_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 1:
            raise ValueError("DEFAULT_COMMISSION_RATE must be in [0, 1)")
        return v

    @field_validator("NOTIFIER_WEBHOOK_URL", mode="before")
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def allow_all_if_requested(self) -> "Settings":
        if self.CORS_ALLOW_ALL:
            self.CORS_ORIGINS = ["*"]
        return self

    @model_validator(mode="after")
    def clamp_batch_size(self) -> "Settings":
        if self.AUTO_RELEASE_MAX_BATCH_SIZE < 1:
            self.AUTO_RELEASE_MAX_BATCH_SIZE = 1
        self.AUTO_RELEASE_BATCH_SIZE = max(
            1, min(self.AUTO_RELEASE_BATCH_SIZE, self.AUTO_RELEASE_MAX_BATCH_SIZE)
        )
        return self

    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=True,
    )


def load_settings() -> "Settings":
    return Settings(_env_file=os.getenv("ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")))


settings = load_settings()
