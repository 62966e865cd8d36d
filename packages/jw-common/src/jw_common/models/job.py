"""
Job lifecycle models for JobWatch.

Defines the Pydantic model of a state-change event emitted by the
job-management layer for a monitored streaming job, together with the
lifecycle-state and execution-mode enumerations it refers to.
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from jw_common.utils import ensure_utc


class JobState(str, enum.Enum):
    """Lifecycle state of a monitored job."""

    ADDED = "ADDED"
    INITIALIZING = "INITIALIZING"
    CREATED = "CREATED"
    STARTING = "STARTING"
    RESTARTING = "RESTARTING"
    RUNNING = "RUNNING"
    FAILING = "FAILING"
    FAILED = "FAILED"
    CANCELLING = "CANCELLING"
    CANCELED = "CANCELED"
    FINISHED = "FINISHED"
    SUSPENDED = "SUSPENDED"
    RECONCILING = "RECONCILING"
    LOST = "LOST"
    MAPPING = "MAPPING"
    OTHER = "OTHER"
    REVOKED = "REVOKED"
    LAUNCHED = "LAUNCHED"

    @property
    def is_terminal(self) -> bool:
        """``True`` for states that end the current run."""
        return self in TERMINAL_STATES


TERMINAL_STATES: frozenset[JobState] = frozenset(
    {JobState.CANCELED, JobState.FAILED, JobState.LOST},
)


class ExecutionMode(str, enum.Enum):
    """Where and how a job is deployed."""

    LOCAL = "LOCAL"
    REMOTE = "REMOTE"
    YARN_PER_JOB = "YARN_PER_JOB"
    YARN_SESSION = "YARN_SESSION"
    YARN_APPLICATION = "YARN_APPLICATION"
    KUBERNETES_NATIVE_SESSION = "KUBERNETES_NATIVE_SESSION"
    KUBERNETES_NATIVE_APPLICATION = "KUBERNETES_NATIVE_APPLICATION"

    @property
    def is_yarn(self) -> bool:
        """``True`` when the job runs under the YARN cluster manager."""
        return self.value.startswith("YARN_")


class StateChangeEvent(BaseModel):
    """A lifecycle change (or checkpoint failure) of a monitored job.

    Attributes:
        entity_id: Stable identifier of the monitored job.
        job_name: Human-readable job name.
        app_id: Cluster application id (e.g. ``application_1_0001``).
        state: New lifecycle state.
        execution_mode: Deployment mode of the job.
        checkpoint_failed: Event reports a checkpoint failure.
        start_time: Job start timestamp (UTC).
        end_time: Job end timestamp (None while running).
        need_restart_on_failure: Auto-restart is enabled for the job.
        restart_count: Current restart attempt.
        restart_size: Total restart attempts allowed.
        cp_failure_rate_interval: Checkpoint failure-rate window in minutes.
        cp_max_failure_interval: Checkpoint failures tolerated in that window.
        alert_emails: Email recipients.
        alert_webhooks: Chat-bot webhook URLs.
    """

    model_config = {"from_attributes": True, "frozen": True}

    entity_id: str = Field(..., min_length=1, description="Monitored job identifier.")
    job_name: str = Field(..., description="Human-readable job name.")
    app_id: str | None = Field(default=None, description="Cluster application id.")
    state: JobState = Field(..., description="New lifecycle state.")
    execution_mode: ExecutionMode = Field(
        default=ExecutionMode.YARN_APPLICATION,
        description="Deployment mode of the job.",
    )
    checkpoint_failed: bool = Field(default=False, description="Checkpoint failure.")
    start_time: datetime | None = Field(default=None, description="Job start (UTC).")
    end_time: datetime | None = Field(default=None, description="Job end (UTC).")
    need_restart_on_failure: bool = Field(default=False, description="Auto-restart.")
    restart_count: int = Field(default=0, ge=0, description="Current restart attempt.")
    restart_size: int = Field(default=0, ge=0, description="Restart attempts allowed.")
    cp_failure_rate_interval: int | None = Field(
        default=None,
        ge=0,
        description="Checkpoint failure-rate window in minutes.",
    )
    cp_max_failure_interval: int | None = Field(
        default=None,
        ge=0,
        description="Checkpoint failures tolerated within the window.",
    )
    alert_emails: list[str] = Field(default_factory=list, description="Email recipients.")
    alert_webhooks: list[str] = Field(default_factory=list, description="Webhook URLs.")

    @field_validator("entity_id", mode="before")
    @classmethod
    def _coerce_entity_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("alert_emails", "alert_webhooks", mode="before")
    @classmethod
    def _split_destinations(cls, value: object) -> object:
        """Accept the console's comma-separated columns as well as lists."""
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def _ensure_utc_timestamps(cls, value: datetime | None) -> datetime | None:
        """Ensure all timestamps carry UTC timezone info."""
        if value is None:
            return None
        return ensure_utc(value)
