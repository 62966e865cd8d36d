"""
Outgoing mail sender configuration for JobWatch.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class SenderConfig(BaseModel):
    """SMTP server and identity used to send alert mail.

    Attributes:
        host: SMTP server host.
        port: SMTP server port.
        username: Login user (None = no authentication).
        password: Login password.
        from_address: From-address placed on every message.
        ssl: Connect with implicit TLS instead of plain/STARTTLS.
        timeout_s: Connect/send timeout in seconds.
    """

    model_config = {"frozen": True}

    host: str = Field(..., min_length=1, description="SMTP server host.")
    port: int = Field(default=25, ge=1, le=65535, description="SMTP server port.")
    username: str | None = Field(default=None, description="Login user.")
    password: str | None = Field(default=None, repr=False, description="Login password.")
    from_address: str = Field(..., min_length=1, description="From-address.")
    ssl: bool = Field(default=False, description="Use implicit TLS.")
    timeout_s: float = Field(default=30.0, gt=0, description="SMTP timeout in seconds.")
