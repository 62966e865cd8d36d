"""
Notification record builder for JobWatch.

Turns a :class:`StateChangeEvent` into the channel-agnostic
:class:`NotificationRecord` every channel renders from.
"""

from __future__ import annotations

from datetime import datetime, tzinfo

from jw_common.models import (
    AlertKind,
    CheckpointPolicy,
    DurationUnit,
    NotificationRecord,
    RestartInfo,
    StateChangeEvent,
)
from jw_common.utils import ensure_utc, format_timestamp, rich_duration

from .errors import MalformedEventError


def build_deep_link(event: StateChangeEvent, resource_manager_url: str) -> str:
    """Return the ResourceManager proxy URL of *event*'s application.

    Only YARN deployments have one; every other mode gets ``""`` until
    those modes grow a link of their own.
    """
    if not event.execution_mode.is_yarn or not resource_manager_url or not event.app_id:
        return ""
    return f"{resource_manager_url.rstrip('/')}/proxy/{event.app_id}/"


def _restart_info(event: StateChangeEvent) -> RestartInfo | None:
    if not (event.need_restart_on_failure and event.restart_count > 0):
        return None
    return RestartInfo(index=event.restart_count, total=event.restart_size)


def _checkpoint_policy(event: StateChangeEvent) -> CheckpointPolicy | None:
    if event.cp_failure_rate_interval is None and event.cp_max_failure_interval is None:
        return None
    rate_interval = None
    if event.cp_failure_rate_interval is not None:
        rate_interval = rich_duration(event.cp_failure_rate_interval * 60, smallest="m")
    return CheckpointPolicy(
        failure_rate_interval=rate_interval,
        max_failure_interval=event.cp_max_failure_interval,
    )


def build_notification(
    event: StateChangeEvent,
    now: datetime,
    *,
    resource_manager_url: str = "",
    display_tz: tzinfo | None = None,
) -> NotificationRecord:
    """Build the notification record for *event* as seen at *now*.

    Args:
        event: The triggering state change.
        now: Current time; stands in for the end time of a running job.
        resource_manager_url: YARN ResourceManager base URL for deep links.
        display_tz: Timezone for rendered timestamps (``None`` = local).

    Returns:
        A frozen :class:`NotificationRecord`.

    Raises:
        MalformedEventError: If the event has no start time or ends
            before it starts.
    """
    if event.start_time is None:
        raise MalformedEventError(event.entity_id, "start_time is missing")

    now = ensure_utc(now)
    end = event.end_time or now
    elapsed_s = (end - event.start_time).total_seconds()
    if elapsed_s < 0:
        raise MalformedEventError(
            event.entity_id,
            f"end {end.isoformat()} precedes start {event.start_time.isoformat()}",
        )

    checkpoint = None
    if event.checkpoint_failed:
        kind = AlertKind.CHECKPOINT_FAILURE
        duration = int(elapsed_s)
        unit = DurationUnit.SECONDS
        duration_text = rich_duration(duration)
        title = f"Notify: {event.job_name} checkpoint FAILED"
        subject = f"Alert: {event.job_name}, checkPoint is Failed"
        checkpoint = _checkpoint_policy(event)
    else:
        kind = AlertKind.STATE_CHANGE
        duration = int(elapsed_s // 60)
        unit = DurationUnit.MINUTES
        duration_text = rich_duration(duration * 60, smallest="m")
        title = f"Notify: {event.job_name} {event.state.value}"
        subject = f"Alert: {event.job_name} {event.state.value}"

    return NotificationRecord(
        entity_id=event.entity_id,
        job_name=event.job_name,
        app_id=event.app_id,
        status=event.state.value,
        kind=kind,
        title=title,
        subject=subject,
        start_time=format_timestamp(event.start_time, display_tz),
        end_time=format_timestamp(end, display_tz),
        duration=duration,
        duration_unit=unit,
        duration_text=duration_text,
        link=build_deep_link(event, resource_manager_url),
        restart=_restart_info(event),
        checkpoint=checkpoint,
        alert_time=format_timestamp(now, display_tz),
    )
