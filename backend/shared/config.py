"""
Runtime settings for the alert and notification engine.

Values come from the environment (a local .env file is loaded first).
A Settings instance is passed to the components that need it instead of
being read from module globals, so tests build their own.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()

DEFAULT_FRONTEND_BASE_URL = "https://offmarket-psi.vercel.app"
DEFAULT_FROM_EMAIL = "alerts@offmarket-psi.vercel.app"


class Settings(BaseModel):
    """Engine configuration."""

    model_config = ConfigDict(frozen=True)

    supabase_url: str | None = None
    supabase_service_key: str | None = None
    resend_api_key: str | None = None
    from_email: str = DEFAULT_FROM_EMAIL
    from_name: str = "Exclusimmo"
    frontend_base_url: str = DEFAULT_FRONTEND_BASE_URL
    unsubscribe_secret_key: str | None = None

    fanout_concurrency: int = Field(8, ge=1, le=64)
    email_timeout_seconds: float = Field(10.0, gt=0)
    expiry_warning_days: int = Field(7, ge=1)
    # None keeps a dedup key forever
    dedup_cooldown_hours: int | None = Field(None, ge=1)
    sweep_lease_minutes: int = Field(30, ge=1)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        cooldown = os.getenv("DEDUP_COOLDOWN_HOURS")

        return cls(
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY"),
            resend_api_key=os.getenv("RESEND_API_KEY"),
            from_email=os.getenv("NOTIFICATION_FROM_EMAIL", DEFAULT_FROM_EMAIL),
            from_name=os.getenv("NOTIFICATION_FROM_NAME", "Exclusimmo"),
            frontend_base_url=os.getenv(
                "FRONTEND_BASE_URL", DEFAULT_FRONTEND_BASE_URL
            ).rstrip("/"),
            unsubscribe_secret_key=os.getenv("UNSUBSCRIBE_SECRET_KEY"),
            fanout_concurrency=int(os.getenv("FANOUT_CONCURRENCY", "8")),
            email_timeout_seconds=float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10")),
            expiry_warning_days=int(os.getenv("EXPIRY_WARNING_DAYS", "7")),
            dedup_cooldown_hours=int(cooldown) if cooldown else None,
            sweep_lease_minutes=int(os.getenv("SWEEP_LEASE_MINUTES", "30")),
        )

    def absolute_url(self, path: str) -> str:
        """Turn an in-app action path like /property/123 into a full link."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.frontend_base_url}/{path.lstrip('/')}"
