"""
Environment-based configuration management for JobWatch.

Uses pydantic-settings to load configuration values from environment
variables and .env files. The alert service and its helpers read their
settings from this module to ensure consistent configuration handling.

All environment variables are prefixed with ``JW_`` to avoid collisions.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jw_common.models.sender import SenderConfig

# Upper bound of the exponential back-off between two webhook attempts.
WEBHOOK_MAX_BACKOFF_S = 10.0
# Headroom added on top of the dispatch budget for the redis throttle lock.
LOCK_MARGIN_S = 30.0


class Settings(BaseSettings):
    """Central configuration loaded from ``JW_``-prefixed environment variables.

    Attributes:
        redis_url: Redis connection URL (shared throttle state).
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_json: Emit JSON log lines (``False`` = human-readable console).
        alert_cooldown_s: Minimum seconds between two alerts for one job.
        throttle_backend: ``memory`` (single process) or ``redis`` (shared).
        resource_manager_url: YARN ResourceManager web UI base URL.
        display_timezone: IANA timezone for rendered timestamps (empty = local).
        alert_category: Tag shown in the chat-card header.
        smtp_host: SMTP server host (empty disables the email channel).
        smtp_port: SMTP server port.
        smtp_username: SMTP login user.
        smtp_password: SMTP login password.
        smtp_from: Envelope/header from-address.
        smtp_ssl: Connect with implicit TLS.
        smtp_timeout_s: SMTP connect/send timeout in seconds.
        webhook_timeout_s: Per-request webhook timeout in seconds.
        webhook_max_attempts: Delivery attempts per webhook (1 = no retry).
        throttle_lock_timeout_s: Lifetime of the per-job redis lock (empty =
            derived from the channel timeouts).
        email_template_dir: Directory holding ``email.html`` (empty = bundled).
        api_host: Bind address for the alert service.
        api_port: Bind port for the alert service.
    """

    model_config = SettingsConfigDict(
        env_prefix="JW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Redis ──
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL.",
    )

    # ── Logging ──
    log_level: str = Field(default="INFO", description="Logging level.")
    log_json: bool = Field(default=True, description="Emit JSON log lines.")

    # ── Throttling ──
    alert_cooldown_s: int = Field(
        default=300,
        gt=0,
        description="Minimum seconds between two alerts for the same job.",
    )
    throttle_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Throttle store implementation.",
    )
    throttle_lock_timeout_s: float | None = Field(
        default=None,
        gt=0,
        description="Per-job redis lock lifetime in seconds (empty = derived).",
    )

    # ── Notification content ──
    resource_manager_url: str = Field(
        default="",
        description="YARN ResourceManager web UI base URL.",
    )
    display_timezone: str = Field(
        default="",
        description="IANA timezone for rendered timestamps (empty = local).",
    )
    alert_category: str = Field(
        default="JobWatch",
        max_length=64,
        description="Tag shown in the chat-card header.",
    )

    # ── Email ──
    smtp_host: str = Field(default="", description="SMTP server host.")
    smtp_port: int = Field(default=25, ge=1, le=65535, description="SMTP server port.")
    smtp_username: str = Field(default="", description="SMTP login user.")
    smtp_password: str = Field(default="", description="SMTP login password.")
    smtp_from: str = Field(default="", description="From-address for alert mail.")
    smtp_ssl: bool = Field(default=False, description="Use implicit TLS.")
    smtp_timeout_s: float = Field(default=30.0, gt=0, description="SMTP timeout.")
    email_template_dir: str = Field(
        default="",
        description="Directory holding email.html (empty = bundled template).",
    )

    # ── Webhook ──
    webhook_timeout_s: float = Field(default=10.0, gt=0, description="Webhook timeout.")
    webhook_max_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Delivery attempts per webhook URL.",
    )

    # ── API ──
    api_host: str = Field(default="0.0.0.0", description="Service bind address.")
    api_port: int = Field(default=8010, ge=1, le=65535, description="Service bind port.")

    @model_validator(mode="after")
    def _lock_outlives_dispatch(self) -> Settings:
        if (
            self.throttle_lock_timeout_s is not None
            and self.throttle_lock_timeout_s <= self.dispatch_budget_s()
        ):
            raise ValueError(
                f"throttle_lock_timeout_s ({self.throttle_lock_timeout_s}) must exceed "
                f"the dispatch budget ({self.dispatch_budget_s()}s)",
            )
        return self

    def dispatch_budget_s(self) -> float:
        """Worst-case seconds one channel send may take.

        A webhook delivery makes ``webhook_max_attempts`` requests with
        back-off in between; a mail is bounded by ``smtp_timeout_s``.
        Channels send concurrently, so the slower of the two wins.
        """
        attempts = self.webhook_max_attempts
        webhook = attempts * self.webhook_timeout_s + (attempts - 1) * WEBHOOK_MAX_BACKOFF_S
        return max(webhook, self.smtp_timeout_s)

    def lock_timeout_s(self) -> float:
        """Lifetime of the per-job redis lock held for one dispatch."""
        if self.throttle_lock_timeout_s is not None:
            return self.throttle_lock_timeout_s
        return self.dispatch_budget_s() + LOCK_MARGIN_S

    def sender_config(self) -> SenderConfig | None:
        """Return the SMTP sender, or ``None`` when email is not configured."""
        if not self.smtp_host or not self.smtp_from:
            return None
        return SenderConfig(
            host=self.smtp_host,
            port=self.smtp_port,
            username=self.smtp_username or None,
            password=self.smtp_password or None,
            from_address=self.smtp_from,
            ssl=self.smtp_ssl,
            timeout_s=self.smtp_timeout_s,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Returns:
        The global ``Settings`` instance.
    """
    return Settings()
