"""
jw-common: Shared library for JobWatch.

Provides the job/notification data models, configuration management,
structured logging, Prometheus metric definitions and time helpers used
by the JobWatch alert service.
"""

from jw_common.config import Settings, get_settings
from jw_common.logging import configure_logging

__all__ = [
    "Settings",
    "configure_logging",
    "get_settings",
]
