"""
Per-job alert cool-down for JobWatch.

Prevents alert storms by allowing at most one alert per job within a
cool-down interval (default 5 minutes).

Rules
-----
* No entry for a job: the alert is allowed.
* Otherwise ``elapsed = now - last_alert``; the alert is allowed when
  ``elapsed == 0`` or ``elapsed >= cooldown``. The ``elapsed == 0`` case
  lets the first check for a brand-new job through even when the caller
  records and checks within the same millisecond.
* ``record`` upserts the last-alert time after a dispatch attempt.
* ``clear`` drops the entry when a job reaches a terminal state, so the
  next failure episode of that job is never suppressed.

Implementation
--------------
* :class:`InMemoryAlertThrottle` keeps a dict of timestamps and one
  ``asyncio.Lock`` per job while a dispatch for that job is running or
  waiting. State is lost on restart and is not shared between service
  instances.
* :class:`RedisAlertThrottle` stores ``alert:last:{entity_id}`` keys and
  uses a Redis lock per job, so several service instances share one
  cool-down. The lock lifetime must exceed the longest dispatch; a lock
  that expired anyway is logged as ``throttle_lock_lost`` on release.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from redis.exceptions import LockError

logger = structlog.get_logger()

DEFAULT_COOLDOWN_MS = 5 * 60 * 1000


class AlertThrottle(ABC):
    """Cool-down store keyed by job identifier.

    Args:
        cooldown_ms: Minimum milliseconds between two alerts for one job.
    """

    backend: str = "base"

    def __init__(self, *, cooldown_ms: int = DEFAULT_COOLDOWN_MS) -> None:
        if cooldown_ms <= 0:
            raise ValueError("cooldown_ms must be positive")
        self.cooldown_ms = cooldown_ms

    def _elapsed_allows(self, last_ms: int, now_ms: int) -> bool:
        elapsed = now_ms - last_ms
        return elapsed == 0 or elapsed >= self.cooldown_ms

    @abstractmethod
    async def allow(self, entity_id: str, now_ms: int) -> bool:
        """Return ``True`` if an alert for *entity_id* may be sent at *now_ms*."""

    @abstractmethod
    async def record(self, entity_id: str, now_ms: int) -> None:
        """Remember *now_ms* as the last alert time of *entity_id*."""

    @abstractmethod
    async def clear(self, entity_id: str) -> None:
        """Forget *entity_id* so its next alert is not throttled."""

    @abstractmethod
    def hold(self, entity_id: str) -> Any:
        """Async context manager serialising dispatches for *entity_id*.

        Dispatches for other jobs are never blocked.
        """

    async def close(self) -> None:
        """Release any resources held by the store (override if needed)."""


class InMemoryAlertThrottle(AlertThrottle):
    """Single-process cool-down store."""

    backend: str = "memory"

    def __init__(self, *, cooldown_ms: int = DEFAULT_COOLDOWN_MS) -> None:
        super().__init__(cooldown_ms=cooldown_ms)
        self._last_alert: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._last_alert)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._last_alert

    async def allow(self, entity_id: str, now_ms: int) -> bool:
        last = self._last_alert.get(entity_id)
        if last is None:
            return True
        allowed = self._elapsed_allows(last, now_ms)
        if not allowed:
            logger.debug(
                "alert_throttled",
                entity_id=entity_id,
                elapsed_ms=now_ms - last,
                cooldown_ms=self.cooldown_ms,
            )
        return allowed

    async def record(self, entity_id: str, now_ms: int) -> None:
        self._last_alert[entity_id] = now_ms

    async def clear(self, entity_id: str) -> None:
        self._last_alert.pop(entity_id, None)

    @asynccontextmanager
    async def hold(self, entity_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(entity_id, asyncio.Lock())
        self._lock_users[entity_id] = self._lock_users.get(entity_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # Drop the lock once no dispatch holds or awaits it.
            remaining = self._lock_users[entity_id] - 1
            if remaining:
                self._lock_users[entity_id] = remaining
            else:
                del self._lock_users[entity_id]
                del self._locks[entity_id]


class RedisAlertThrottle(AlertThrottle):
    """Cool-down store shared through Redis.

    Args:
        redis: An async Redis connection (``redis.asyncio.Redis``) created
               with ``decode_responses=True``.
        cooldown_ms: Minimum milliseconds between two alerts for one job.
        lock_timeout_s: Upper bound on how long one dispatch may hold the
                        per-job lock.
        key_prefix: Namespace for throttle keys.
    """

    backend: str = "redis"

    def __init__(
        self,
        redis: Any,
        *,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
        lock_timeout_s: float = 60.0,
        key_prefix: str = "alert",
    ) -> None:
        super().__init__(cooldown_ms=cooldown_ms)
        self._redis = redis
        self.lock_timeout_s = lock_timeout_s
        self.key_prefix = key_prefix

    def _last_key(self, entity_id: str) -> str:
        return f"{self.key_prefix}:last:{entity_id}"

    def _lock_key(self, entity_id: str) -> str:
        return f"{self.key_prefix}:lock:{entity_id}"

    async def allow(self, entity_id: str, now_ms: int) -> bool:
        raw = await self._redis.get(self._last_key(entity_id))
        if raw is None:
            return True
        try:
            last = int(raw)
        except (TypeError, ValueError):
            logger.warning("throttle_entry_corrupt", entity_id=entity_id, value=raw)
            return True
        return self._elapsed_allows(last, now_ms)

    async def record(self, entity_id: str, now_ms: int) -> None:
        # Expire well after the cool-down as a safety net for abandoned jobs.
        await self._redis.set(
            self._last_key(entity_id),
            str(now_ms),
            px=self.cooldown_ms * 2,
        )

    async def clear(self, entity_id: str) -> None:
        await self._redis.delete(self._last_key(entity_id))

    @asynccontextmanager
    async def hold(self, entity_id: str) -> AsyncIterator[None]:
        lock = self._redis.lock(self._lock_key(entity_id), timeout=self.lock_timeout_s)
        if not await lock.acquire():
            raise LockError(f"could not acquire {self._lock_key(entity_id)}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as exc:
                logger.warning(
                    "throttle_lock_lost",
                    entity_id=entity_id,
                    lock_timeout_s=self.lock_timeout_s,
                    error=str(exc),
                )

    async def close(self) -> None:
        await self._redis.aclose()
