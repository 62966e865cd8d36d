"""
Email alert channel for JobWatch.

Renders the notification record into the ``email.html`` template with
jinja2 and sends one HTML message to all recipients over SMTP
(:mod:`aiosmtplib`). The channel only takes part in a dispatch when a
sender configuration is available.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Union

import aiosmtplib
import structlog
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from jw_common.models import NotificationRecord, SenderConfig, StateChangeEvent

from ..errors import ChannelSendError, RenderError
from .base import AlertChannel

logger = structlog.get_logger()

EMAIL_TEMPLATE = "email.html"
_BUNDLED_TEMPLATES = Path(__file__).resolve().parent.parent / "templates"

TemplateRenderer = Callable[[str, dict[str, Any]], str]
SenderProvider = Callable[[], Union[SenderConfig, None, Awaitable[Union[SenderConfig, None]]]]
MailTransport = Callable[[EmailMessage, SenderConfig], Awaitable[Any]]


class JinjaTemplateRenderer:
    """``render(template_name, data) -> str`` backed by a jinja2 environment.

    Args:
        template_dir: Directory to load templates from (defaults to the
                      templates bundled with the service).
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        self.template_dir = Path(template_dir) if template_dir else _BUNDLED_TEMPLATES
        self._env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(enabled_extensions=("html",)),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def __call__(self, template_name: str, data: dict[str, Any]) -> str:
        return self._env.get_template(template_name).render(**data)


class EmailPayload:
    """A rendered alert mail."""

    __slots__ = ("subject", "html")

    def __init__(self, subject: str, html: str) -> None:
        self.subject = subject
        self.html = html


async def smtp_transport(message: EmailMessage, sender: SenderConfig) -> Any:
    """Send *message* through the SMTP server described by *sender*."""
    return await aiosmtplib.send(
        message,
        hostname=sender.host,
        port=sender.port,
        username=sender.username,
        password=sender.password,
        use_tls=sender.ssl,
        timeout=sender.timeout_s,
    )


class EmailChannel(AlertChannel):
    """Send one HTML alert mail to all of a job's recipients.

    Args:
        sender_provider: Returns the current :class:`SenderConfig` or
                         ``None`` (may be sync or async). The first
                         non-``None`` result is cached.
        renderer: Template render function; defaults to the bundled
                  jinja2 template.
        transport: Coroutine performing the actual SMTP send.
        template_name: Template rendered for every alert.
    """

    name: str = "email"
    bulk: bool = True

    def __init__(
        self,
        sender_provider: SenderProvider,
        *,
        renderer: TemplateRenderer | None = None,
        transport: MailTransport = smtp_transport,
        template_name: str = EMAIL_TEMPLATE,
    ) -> None:
        self._sender_provider = sender_provider
        self._sender: SenderConfig | None = None
        self._renderer = renderer or JinjaTemplateRenderer()
        self._transport = transport
        self.template_name = template_name

    async def sender(self) -> SenderConfig | None:
        """Return the sender configuration, fetching it until one exists."""
        if self._sender is None:
            result = self._sender_provider()
            if inspect.isawaitable(result):
                result = await result
            self._sender = result
        return self._sender

    async def targets(self, event: StateChangeEvent) -> list[str]:
        if not event.alert_emails:
            return []
        if await self.sender() is None:
            logger.info("email_sender_not_configured", entity_id=event.entity_id)
            return []
        return list(event.alert_emails)

    def render(self, record: NotificationRecord) -> EmailPayload:
        try:
            html = self._renderer(self.template_name, {"mail": record.model_dump(mode="json")})
        except TemplateError as exc:
            raise RenderError(self.name, f"{self.template_name}: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise RenderError(self.name, f"{self.template_name}: {exc!r}") from exc
        return EmailPayload(subject=record.subject, html=html)

    def _build_message(
        self, payload: EmailPayload, sender: SenderConfig, recipients: list[str],
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = payload.subject
        message["From"] = sender.from_address
        message["To"] = ", ".join(recipients)
        message.set_content(payload.subject)
        message.add_alternative(payload.html, subtype="html")
        return message

    async def send(self, payload: Any, targets: list[str]) -> None:
        sender = await self.sender()
        recipients = ",".join(targets)
        if sender is None:
            raise ChannelSendError(self.name, recipients, "no sender configured")

        message = self._build_message(payload, sender, targets)
        log = logger.bind(channel=self.name, recipients=len(targets), subject=payload.subject)
        try:
            await self._transport(message, sender)
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            raise ChannelSendError(self.name, recipients, str(exc) or type(exc).__name__) from exc
        log.info("email_delivered")
