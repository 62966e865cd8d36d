"""
Notification content models for JobWatch.

A ``NotificationRecord`` is the channel-agnostic rendering of one
state-change event: every channel (email, chat webhook) builds its
payload from it and nothing else.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field


class AlertKind(str, enum.Enum):
    """What triggered the alert."""

    STATE_CHANGE = "state_change"
    CHECKPOINT_FAILURE = "checkpoint_failure"


class DurationUnit(str, enum.Enum):
    """Unit of ``NotificationRecord.duration``."""

    MINUTES = "min"
    SECONDS = "s"


class RestartInfo(BaseModel):
    """Restart progress of a job with auto-restart enabled."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=1, description="Current restart attempt.")
    total: int = Field(..., ge=0, description="Restart attempts allowed.")


class CheckpointPolicy(BaseModel):
    """Checkpoint failure tolerance configured on the job."""

    model_config = ConfigDict(frozen=True)

    failure_rate_interval: str | None = Field(
        default=None,
        description="Failure-rate window, human readable.",
    )
    max_failure_interval: int | None = Field(
        default=None,
        description="Failures tolerated within the window.",
    )


class NotificationRecord(BaseModel):
    """Channel-agnostic alert content, built once per dispatch.

    Attributes:
        entity_id: Monitored job identifier.
        job_name: Human-readable job name.
        app_id: Cluster application id, if known.
        status: Lifecycle state label (e.g. ``FAILED``).
        kind: State change or checkpoint failure.
        title: Heading shown inside the message.
        subject: Mail subject line.
        start_time: Formatted start timestamp.
        end_time: Formatted end timestamp (alert time while still running).
        duration: Elapsed time expressed in ``duration_unit``.
        duration_unit: Minutes for state changes, seconds for checkpoints.
        duration_text: Human-readable elapsed time.
        link: Deep link to the job UI (empty when not applicable).
        restart: Restart progress, only when a restart is under way.
        checkpoint: Checkpoint policy, only for checkpoint-failure alerts.
        alert_time: Formatted time the record was built.
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str
    job_name: str
    app_id: str | None = None
    status: str
    kind: AlertKind
    title: str
    subject: str
    start_time: str
    end_time: str
    duration: int = Field(..., ge=0)
    duration_unit: DurationUnit
    duration_text: str
    link: str = ""
    restart: RestartInfo | None = None
    checkpoint: CheckpointPolicy | None = None
    alert_time: str
