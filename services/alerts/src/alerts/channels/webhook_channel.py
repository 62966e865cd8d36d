"""
Chat-bot webhook alert channel for JobWatch.

Posts an interactive card (see :mod:`alerts.cards`) to every webhook URL
configured on the job. Each URL is a separate delivery; a failing URL
does not affect the others.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from jw_common.config import WEBHOOK_MAX_BACKOFF_S
from jw_common.models import NotificationRecord, StateChangeEvent

from ..cards import build_alert_card
from ..errors import ChannelSendError, RenderError
from .base import AlertChannel

logger = structlog.get_logger()

# Defaults, overridable via constructor.
_DEFAULT_MAX_ATTEMPTS = 1
_DEFAULT_TIMEOUT_S = 10.0


class WebhookChannel(AlertChannel):
    """Deliver alert cards as HTTP POST JSON payloads.

    Uses :mod:`httpx` for async HTTP. With ``max_attempts > 1`` transient
    failures are retried through :mod:`tenacity` with exponential back-off;
    the default is a single attempt.

    Args:
        category: Tag shown in the card header.
        max_attempts: Number of delivery attempts per URL (default 1).
        timeout: Per-request timeout in seconds (default 10).
        headers: Optional extra headers to include on every request.
    """

    name: str = "webhook"
    bulk: bool = False

    def __init__(
        self,
        *,
        category: str = "JobWatch",
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        timeout: float = _DEFAULT_TIMEOUT_S,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.category = category
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.headers = headers or {}
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Return (and lazily create) the shared ``httpx.AsyncClient``."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def targets(self, event: StateChangeEvent) -> list[str]:
        return list(event.alert_webhooks)

    def render(self, record: NotificationRecord) -> dict[str, Any]:
        try:
            return build_alert_card(record, category=self.category).to_payload()
        except ValidationError as exc:
            raise RenderError(self.name, str(exc)) from exc

    # ── delivery ──

    async def _post_with_retry(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        """POST *payload* to *url*, retrying transport errors and 5xx replies.

        ``max_attempts`` is per channel instance, so the tenacity policy is
        built per call.
        """

        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=WEBHOOK_MAX_BACKOFF_S),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        async def _inner() -> httpx.Response:
            client = await self._get_client()
            resp = await client.post(
                url,
                json=payload,
                headers={
                    "Content-Type": "application/json; charset=utf-8",
                    **self.headers,
                },
            )
            resp.raise_for_status()
            return resp

        return await _inner()

    async def send(self, payload: Any, targets: list[str]) -> None:
        for url in targets:
            await self._send_one(url, payload)

    async def _send_one(self, url: str, payload: dict[str, Any]) -> None:
        log = logger.bind(channel=self.name, webhook_url=url)
        try:
            resp = await self._post_with_retry(url, payload)
        except httpx.HTTPStatusError as exc:
            raise ChannelSendError(
                self.name, url, f"HTTP {exc.response.status_code}",
            ) from exc
        except httpx.TransportError as exc:
            raise ChannelSendError(self.name, url, str(exc) or type(exc).__name__) from exc

        # Bots answer 200 with a non-zero ``code`` when they reject the card.
        code = _response_code(resp)
        if code not in (None, 0):
            raise ChannelSendError(
                self.name, url, f"bot rejected card: code={code} body={resp.text[:200]}",
            )
        log.info("webhook_delivered", status=resp.status_code)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def _is_transient(exc: BaseException) -> bool:
    """``True`` for transport errors and 5xx replies."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


def _response_code(resp: httpx.Response) -> Any:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("code", body.get("StatusCode"))
    return None
