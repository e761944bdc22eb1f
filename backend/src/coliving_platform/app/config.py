"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from backend/ regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"
_DEFAULT_UPLOADS_DIR = Path(__file__).resolve().parents[3] / "uploads"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./coliving_platform.db"

    # Auth / JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Email (SendGrid)
    sendgrid_api_key: str = ""
    email_from: str = "noreply@coliving.local"
    email_from_name: str = "Coliving Management"

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"
    app_url: str = "http://localhost:3000"

    # Photo storage and signed access
    photo_access_secret: str = "default-secret-change-in-production"
    photo_url_ttl_seconds: int = 3600
    uploads_dir: str = str(_DEFAULT_UPLOADS_DIR)

    # Agreements
    agreement_expiration_days: int = 7
    agreement_max_reminders: int = 3
    agreement_monitor_interval_minutes: int = 60
    # HMAC-SHA256 key for provider webhooks; unsigned webhooks are refused while empty
    signing_webhook_secret: str = ""

    # Rent reminders, in days relative to a pending payment's due date
    payment_reminder_days_before: list[int] = [7]
    payment_reminder_days_after: list[int] = [0, 3]
    payment_reminder_max: int = 5

    # Rate limiting (per user + operation)
    rate_limit_max_requests: int = 100
    rate_limit_window_seconds: int = 60

    # Honour X-Forwarded-For only behind a trusted reverse proxy
    trust_forwarded_for: bool = False

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
