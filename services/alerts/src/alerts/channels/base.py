"""
Abstract base class for alert channels in JobWatch.

Defines the AlertChannel interface every channel implementation must
follow: pick its targets from the event, render the notification record
into a channel payload, and deliver that payload.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from jw_common.models import NotificationRecord, StateChangeEvent


class AlertChannel(ABC):
    """Base class every alert delivery channel must implement.

    Attributes:
        name: Channel name used in logs, metrics and delivery reports.
        bulk: ``True`` sends once to all targets (one mail, many
              recipients); ``False`` sends once per target, each delivery
              isolated from the others.
    """

    name: str = "base"
    bulk: bool = False

    @abstractmethod
    async def targets(self, event: StateChangeEvent) -> list[str]:
        """Return the destinations this channel serves for *event*.

        An empty list means the channel does not take part in the dispatch.
        """

    @abstractmethod
    def render(self, record: NotificationRecord) -> Any:
        """Build the channel payload for *record*.

        Raises:
            RenderError: If the payload cannot be built.
        """

    @abstractmethod
    async def send(self, payload: Any, targets: list[str]) -> None:
        """Deliver *payload* to *targets*.

        Raises:
            ChannelSendError: On any transport-level failure.
        """

    async def close(self) -> None:
        """Release any resources held by the channel (override if needed)."""
