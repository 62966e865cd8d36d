"""
Central alert dispatcher for JobWatch.

Receives job state-change events from the job-management layer and
delivers one notification per event to every configured channel, at most
once per cool-down interval per job.

Flow
----
1. Take the job's throttle hold so concurrent events for one job are
   handled one after another (other jobs proceed in parallel).
2. Throttle check: skip if the job alerted within the cool-down.
3. Skip if no channel has a destination for the job.
4. Build the :class:`NotificationRecord` (a malformed event aborts here,
   before anything is sent).
5. Render and send on every channel concurrently; each channel's failure
   is recorded in the report and never affects the others. A send that
   outruns ``send_timeout_s`` counts as failed.
6. Update the throttle whatever the delivery results: terminal states
   clear the job's entry, any other state records the attempt time.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, tzinfo

import structlog

from jw_common.metrics import alerts_dispatched_total, alerts_suppressed_total
from jw_common.models import NotificationRecord, StateChangeEvent
from jw_common.utils import ensure_utc, to_epoch_ms, utc_now

from .channels.base import AlertChannel
from .context import build_notification
from .errors import ChannelSendError, RenderError
from .report import DeliveryResult, DeliveryStatus, DispatchOutcome, DispatchReport
from .throttle import AlertThrottle

logger = structlog.get_logger()


class AlertDispatcher:
    """Orchestrates throttle, record building and channel fan-out.

    Args:
        throttle: Cool-down store shared by all dispatches.
        channels: Enabled :class:`AlertChannel` implementations.
        resource_manager_url: YARN ResourceManager base URL for deep links.
        display_tz: Timezone for rendered timestamps (``None`` = local).
        send_timeout_s: Hard cap on one channel send; a send still running
            after it is reported as failed. ``None`` leaves sends unbounded.
    """

    def __init__(
        self,
        throttle: AlertThrottle,
        channels: list[AlertChannel],
        *,
        resource_manager_url: str = "",
        display_tz: tzinfo | None = None,
        send_timeout_s: float | None = None,
    ) -> None:
        self.throttle = throttle
        self.channels = channels
        self.resource_manager_url = resource_manager_url
        self.display_tz = display_tz
        self.send_timeout_s = send_timeout_s

    # ── dispatch pipeline ──

    async def dispatch(
        self,
        event: StateChangeEvent,
        now: datetime | None = None,
    ) -> DispatchReport:
        """Run the full dispatch pipeline for *event*.

        Args:
            event: The state change to alert on.
            now: Dispatch time (defaults to the current UTC time).

        Returns:
            A :class:`DispatchReport`; delivery failures are reported,
            not raised.

        Raises:
            MalformedEventError: If the event cannot produce a record.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        now_ms = to_epoch_ms(now)
        entity_id = event.entity_id
        log = logger.bind(entity_id=entity_id, state=event.state.value)

        async with self.throttle.hold(entity_id):
            if not await self.throttle.allow(entity_id, now_ms):
                log.info("alert_suppressed_throttle")
                alerts_suppressed_total.labels(reason="throttle").inc()
                return DispatchReport(entity_id=entity_id, outcome=DispatchOutcome.SUPPRESSED)

            plan: list[tuple[AlertChannel, list[str]]] = []
            for channel in self.channels:
                try:
                    targets = await channel.targets(event)
                except Exception as exc:  # noqa: BLE001
                    log.error("channel_targets_failed", channel=channel.name, error=repr(exc))
                    continue
                if targets:
                    plan.append((channel, targets))
            if not plan:
                log.info("alert_skipped_no_destinations")
                alerts_suppressed_total.labels(reason="no_destinations").inc()
                return DispatchReport(entity_id=entity_id, outcome=DispatchOutcome.NO_DESTINATIONS)

            record = build_notification(
                event,
                now,
                resource_manager_url=self.resource_manager_url,
                display_tz=self.display_tz,
            )
            log = log.bind(kind=record.kind.value)
            log.info("alert_dispatching", subject=record.subject)

            per_channel = await asyncio.gather(
                *(self._deliver(channel, record, targets) for channel, targets in plan),
            )
            deliveries = [result for results in per_channel for result in results]

            if event.state.is_terminal:
                await self.throttle.clear(entity_id)
            else:
                await self.throttle.record(entity_id, now_ms)

        report = DispatchReport(
            entity_id=entity_id,
            outcome=DispatchOutcome.DISPATCHED,
            kind=record.kind,
            deliveries=deliveries,
        )
        log.info(
            "alert_dispatched",
            delivered_to=report.delivered_to,
            failed=[f"{r.channel}:{r.status.value}" for r in report.failures],
        )
        return report

    async def _deliver(
        self,
        channel: AlertChannel,
        record: NotificationRecord,
        targets: list[str],
    ) -> list[DeliveryResult]:
        """Render once for *channel*, then send to each target group."""
        log = logger.bind(entity_id=record.entity_id, channel=channel.name)
        try:
            payload = channel.render(record)
        except RenderError as exc:
            log.error("channel_render_failed", error=exc.reason)
            alerts_dispatched_total.labels(channel=channel.name, status="render_failed").inc()
            return [
                DeliveryResult(
                    channel=channel.name,
                    targets=targets,
                    status=DeliveryStatus.RENDER_FAILED,
                    error=str(exc),
                ),
            ]
        except Exception as exc:  # noqa: BLE001
            log.error("channel_render_error", error=repr(exc))
            alerts_dispatched_total.labels(channel=channel.name, status="error").inc()
            return [
                DeliveryResult(
                    channel=channel.name,
                    targets=targets,
                    status=DeliveryStatus.ERROR,
                    error=repr(exc),
                ),
            ]

        groups = [targets] if channel.bulk else [[target] for target in targets]
        return list(
            await asyncio.gather(
                *(self._send(channel, payload, group, record.entity_id) for group in groups),
            ),
        )

    async def _send(
        self,
        channel: AlertChannel,
        payload: object,
        targets: list[str],
        entity_id: str,
    ) -> DeliveryResult:
        log = logger.bind(entity_id=entity_id, channel=channel.name, targets=targets)
        status = DeliveryStatus.DELIVERED
        error: str | None = None
        try:
            await asyncio.wait_for(channel.send(payload, targets), timeout=self.send_timeout_s)
        except ChannelSendError as exc:
            log.error("channel_send_failed", error=exc.reason)
            status, error = DeliveryStatus.SEND_FAILED, str(exc)
        except asyncio.TimeoutError:
            log.error("channel_send_timeout", timeout_s=self.send_timeout_s)
            error = f"timed out after {self.send_timeout_s}s"
            status = DeliveryStatus.SEND_FAILED
        except Exception as exc:  # noqa: BLE001
            log.error("channel_send_error", error=repr(exc))
            status, error = DeliveryStatus.ERROR, repr(exc)
        alerts_dispatched_total.labels(channel=channel.name, status=status.value).inc()
        return DeliveryResult(channel=channel.name, targets=targets, status=status, error=error)

    async def close(self) -> None:
        """Close every channel and the throttle store."""
        for channel in self.channels:
            await channel.close()
        await self.throttle.close()
