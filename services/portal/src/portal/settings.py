from __future__ import annotations

import logging
import os
import secrets
import tempfile
from datetime import timedelta

from pydantic import BaseModel, Field

DEFAULT_DB_PATH = os.path.join(tempfile.gettempdir(), "jobsearch", "portal.sqlite3")
LOGGER = logging.getLogger("jobsearch.portal.settings")


class PortalSettings(BaseModel):
    database_path: str = DEFAULT_DB_PATH
    access_token_secret: str = Field(..., min_length=16)
    refresh_token_secret: str = Field(..., min_length=16)
    token_algorithm: str = "HS256"
    access_token_ttl_minutes: int = Field(default=60, ge=1)
    refresh_token_ttl_days: int = Field(default=7, ge=1)
    otp_ttl_minutes: int = Field(default=10, ge=1)
    chat_deletion_delay_seconds: int = Field(default=24 * 60 * 60, ge=0)
    scheduler_poll_seconds: float = Field(default=30.0, gt=0)
    housekeeping_interval_seconds: float = Field(default=6 * 60 * 60, gt=0)

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_ttl_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.refresh_token_ttl_days)

    @property
    def otp_ttl(self) -> timedelta:
        return timedelta(minutes=self.otp_ttl_minutes)

    @property
    def chat_deletion_delay(self) -> timedelta:
        return timedelta(seconds=self.chat_deletion_delay_seconds)

    @classmethod
    def from_env(cls, **overrides: object) -> PortalSettings:
        values: dict[str, object] = {
            "database_path": os.getenv("PORTAL_DB_PATH", DEFAULT_DB_PATH),
            "access_token_secret": os.getenv("PORTAL_ACCESS_TOKEN_SECRET", "").strip(),
            "refresh_token_secret": os.getenv("PORTAL_REFRESH_TOKEN_SECRET", "").strip(),
            "access_token_ttl_minutes": os.getenv("PORTAL_ACCESS_TOKEN_TTL_MINUTES", "60"),
            "refresh_token_ttl_days": os.getenv("PORTAL_REFRESH_TOKEN_TTL_DAYS", "7"),
            "otp_ttl_minutes": os.getenv("PORTAL_OTP_TTL_MINUTES", "10"),
            "chat_deletion_delay_seconds": os.getenv(
                "PORTAL_CHAT_DELETION_DELAY_SECONDS", str(24 * 60 * 60)
            ),
            "scheduler_poll_seconds": os.getenv("PORTAL_SCHEDULER_POLL_SECONDS", "30"),
            "housekeeping_interval_seconds": os.getenv(
                "PORTAL_HOUSEKEEPING_INTERVAL_SECONDS", str(6 * 60 * 60)
            ),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})

        for secret_field in ("access_token_secret", "refresh_token_secret"):
            if not values.get(secret_field):
                LOGGER.warning(
                    "%s is not configured; issued tokens will not survive a restart",
                    secret_field,
                )
                values[secret_field] = secrets.token_urlsafe(32)
        return cls.model_validate(values)
