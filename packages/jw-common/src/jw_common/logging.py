"""
Structured logging setup for JobWatch.

Configures structlog for JSON-formatted structured logging. Every log
line includes timestamp, level, service name, and event. Per-job context
(entity_id, channel) is bound at dispatch time.
"""

from __future__ import annotations

import logging

import structlog


def configure_logging(
    service: str,
    level: str = "INFO",
    *,
    json_output: bool = True,
) -> None:
    """Configure structlog for *service*.

    Args:
        service: Service name added to every log line.
        level: Minimum level name (``DEBUG`` … ``CRITICAL``).
        json_output: Render JSON lines; ``False`` uses the console renderer.
    """
    level_no = logging.getLevelName(level.upper())
    if not isinstance(level_no, int):
        level_no = logging.INFO

    renderer: structlog.typing.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_service(service),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        cache_logger_on_first_use=False,
    )


def _add_service(service: str) -> structlog.typing.Processor:
    def processor(
        logger: object, method_name: str, event_dict: structlog.typing.EventDict,
    ) -> structlog.typing.EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return processor
