"""
Alert pipeline exceptions for JobWatch.

``MalformedEventError`` aborts a dispatch before anything is sent.
``RenderError`` and ``ChannelSendError`` are confined to the channel
that raised them; the dispatcher records them and carries on.
"""

from __future__ import annotations


class AlertError(Exception):
    """Base class for alert pipeline failures."""


class MalformedEventError(AlertError):
    """A state-change event cannot be turned into a notification."""

    def __init__(self, entity_id: str, reason: str) -> None:
        super().__init__(f"malformed event for {entity_id}: {reason}")
        self.entity_id = entity_id
        self.reason = reason


class RenderError(AlertError):
    """A channel could not build its payload."""

    def __init__(self, channel: str, reason: str) -> None:
        super().__init__(f"{channel} render failed: {reason}")
        self.channel = channel
        self.reason = reason


class ChannelSendError(AlertError):
    """A transport failed to deliver a rendered payload."""

    def __init__(self, channel: str, target: str, reason: str) -> None:
        super().__init__(f"{channel} delivery to {target} failed: {reason}")
        self.channel = channel
        self.target = target
        self.reason = reason
