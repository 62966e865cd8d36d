"""
Shared Pydantic data models for JobWatch.

This package contains the job state-change event, the channel-agnostic
notification record and the mail sender configuration.
"""

from jw_common.models.job import (
    TERMINAL_STATES,
    ExecutionMode,
    JobState,
    StateChangeEvent,
)
from jw_common.models.notification import (
    AlertKind,
    CheckpointPolicy,
    DurationUnit,
    NotificationRecord,
    RestartInfo,
)
from jw_common.models.sender import SenderConfig

__all__ = [
    "AlertKind",
    "CheckpointPolicy",
    "DurationUnit",
    "ExecutionMode",
    "JobState",
    "NotificationRecord",
    "RestartInfo",
    "SenderConfig",
    "StateChangeEvent",
    "TERMINAL_STATES",
]
