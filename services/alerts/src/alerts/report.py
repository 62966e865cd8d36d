"""
Per-dispatch outcome report for JobWatch alerts.

Every channel delivery yields a :class:`DeliveryResult`; the dispatcher
collects them into one :class:`DispatchReport` that is logged and
returned to the caller instead of raising.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field

from jw_common.models import AlertKind


class DispatchOutcome(str, enum.Enum):
    """What the dispatcher did with an event."""

    DISPATCHED = "dispatched"
    SUPPRESSED = "suppressed"
    NO_DESTINATIONS = "no_destinations"


class DeliveryStatus(str, enum.Enum):
    """Result of one channel delivery."""

    DELIVERED = "delivered"
    RENDER_FAILED = "render_failed"
    SEND_FAILED = "send_failed"
    ERROR = "error"


class DeliveryResult(BaseModel):
    """Outcome of delivering one payload through one channel.

    Attributes:
        channel: Channel name (``email``, ``webhook`` …).
        targets: Recipients or URLs the payload was addressed to.
        status: Delivery status.
        error: Failure description, ``None`` on success.
    """

    channel: str
    targets: list[str] = Field(default_factory=list)
    status: DeliveryStatus
    error: str | None = None


class DispatchReport(BaseModel):
    """Aggregated outcome of one dispatch.

    Attributes:
        entity_id: Monitored job identifier.
        outcome: Whether the event was dispatched, throttled or had no
                 destinations.
        kind: Alert kind, when a notification was built.
        deliveries: One entry per channel delivery attempt.
    """

    entity_id: str
    outcome: DispatchOutcome
    kind: AlertKind | None = None
    deliveries: list[DeliveryResult] = Field(default_factory=list)

    @property
    def delivered_to(self) -> list[str]:
        """Names of channels with at least one successful delivery."""
        names: list[str] = []
        for result in self.deliveries:
            if result.status is DeliveryStatus.DELIVERED and result.channel not in names:
                names.append(result.channel)
        return names

    @property
    def failures(self) -> list[DeliveryResult]:
        """Deliveries that did not succeed."""
        return [r for r in self.deliveries if r.status is not DeliveryStatus.DELIVERED]
