"""Authentication configuration."""

import logging
import os
import secrets

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for short durations,
    hours or days for longer ones) to make configuration intuitive.

    Owner lockout and admin lockout are separate policies on purpose, as are
    the two rate-limit budgets; none of them are derived from each other.
    """

    # Magic link settings
    magic_link_expiry_minutes: int = Field(
        default=15,
        description="How long magic links remain valid",
        ge=5,
        le=60,
    )
    magic_link_requests_per_window: int = Field(
        default=5,
        description="Magic link requests allowed per email per window",
        ge=1,
        le=50,
    )

    # Password reset settings
    password_reset_expiry_minutes: int = Field(
        default=60,
        description="How long password reset links remain valid",
        ge=15,
        le=24 * 60,
    )

    # Session settings
    owner_session_days: int = Field(
        default=7,
        description="Business owner session lifetime (cookie max-age) in days",
        ge=1,
        le=90,
    )
    admin_session_hours: int = Field(
        default=8,
        description="Admin session lifetime in hours",
        ge=1,
        le=72,
    )

    # Persisted lockout (business owners)
    lockout_threshold: int = Field(
        default=10,
        description="Consecutive failed passwords before the account locks",
        ge=3,
        le=100,
    )
    lockout_minutes: int = Field(
        default=30,
        description="How long a locked account stays locked",
        ge=1,
        le=24 * 60,
    )
    lockout_warning_attempts: int = Field(
        default=3,
        description="Warn the user once this few attempts remain",
        ge=0,
    )

    # Persisted lockout (admins)
    admin_lockout_threshold: int = Field(default=10, ge=3, le=100)
    admin_lockout_minutes: int = Field(default=30, ge=1, le=24 * 60)

    # Rate limiting (process or Valkey counters)
    rate_limit_attempts: int = Field(
        default=5,
        description="Owner login attempts per IP / email per window",
        ge=1,
        le=50,
    )
    rate_limit_window_minutes: int = Field(
        default=15,
        description="Rate limit window duration",
        ge=1,
        le=60,
    )
    admin_rate_limit_attempts: int = Field(
        default=3,
        description="Admin login attempts per IP / username per window",
        ge=1,
        le=50,
    )
    admin_rate_limit_window_minutes: int = Field(default=15, ge=1, le=60)

    # Application
    site_url: str = Field(
        default="http://localhost:3000",
        description="Base URL for magic link and reset link generation",
    )
    environment: str = Field(
        default="development",
        description="development | test | production",
    )
    csrf_secret: str = Field(
        default_factory=lambda: secrets.token_hex(32),
        description="HMAC key binding CSRF tokens to admin sessions",
        min_length=32,
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Build config from SITE_URL, APP_ENV and CSRF_SECRET; other fields keep defaults."""
        overrides = {}
        if os.getenv("SITE_URL"):
            overrides["site_url"] = os.getenv("SITE_URL").rstrip("/")
        if os.getenv("APP_ENV"):
            overrides["environment"] = os.getenv("APP_ENV")
        if os.getenv("CSRF_SECRET"):
            overrides["csrf_secret"] = os.getenv("CSRF_SECRET")

        config = cls(**overrides)
        if config.is_production and "csrf_secret" not in overrides:
            # Each instance would sign with its own key
            logger.warning(
                "CSRF_SECRET is not set; admin CSRF tokens will only validate on the instance that issued them"
            )
        return config
