"""Shared fixtures for alerts service tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

# Keep the developer's .env / shell out of the service under test.
os.environ.setdefault("JW_LOG_JSON", "false")
os.environ.setdefault("JW_THROTTLE_BACKEND", "memory")

from jw_common.models import StateChangeEvent  # noqa: E402

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
COOLDOWN_MS = 300_000


# ─── Fixtures ────────────────────────────────────────────────────


@pytest.fixture()
def t0() -> datetime:
    return T0


@pytest.fixture()
def make_event() -> Callable[..., StateChangeEvent]:
    """Factory for state-change events with sensible defaults."""

    def _make(**overrides: Any) -> StateChangeEvent:
        data: dict[str, Any] = dict(
            entity_id="1",
            job_name="order-etl",
            app_id="application_1700000000000_0042",
            state="FAILED",
            execution_mode="YARN_APPLICATION",
            start_time=T0 - timedelta(minutes=30),
            alert_emails=["ops@example.com"],
            alert_webhooks=["https://open.feishu.example/hook/abc"],
        )
        data.update(overrides)
        return StateChangeEvent(**data)

    return _make


@pytest.fixture()
def mock_redis() -> AsyncMock:
    """Async mock standing in for a ``redis.asyncio.Redis`` instance."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.aclose = AsyncMock()
    # ``Redis.lock`` is synchronous and returns an async lock object.
    lock = AsyncMock()
    lock.acquire = AsyncMock(return_value=True)
    lock.release = AsyncMock(return_value=None)
    redis.lock = MagicMock(return_value=lock)
    return redis


def _make_channel(
    name: str = "test",
    *,
    bulk: bool = False,
    render_exc: BaseException | None = None,
    send_exc: BaseException | None = None,
) -> MagicMock:
    """Create a mock AlertChannel whose targets mirror the event.

    ``email`` channels use the event's emails, everything else its webhooks.
    """
    ch = MagicMock()
    ch.name = name
    ch.bulk = bulk

    def _targets(event: StateChangeEvent) -> list[str]:
        if name == "email":
            return list(event.alert_emails)
        return list(event.alert_webhooks)

    ch.targets = AsyncMock(side_effect=_targets)
    ch.render = MagicMock(return_value={"channel": name}, side_effect=render_exc)
    ch.send = AsyncMock(return_value=None, side_effect=send_exc)
    ch.close = AsyncMock()
    return ch


@pytest.fixture()
def make_channel() -> Callable[..., MagicMock]:
    """Factory for mock channels (see :func:`_make_channel`)."""
    return _make_channel
