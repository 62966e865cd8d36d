"""
Prometheus metrics helpers for JobWatch.

Shared metric definitions for the alert dispatch pipeline. The service
exposes them through ``prometheus_client.make_asgi_app()``.
"""

from __future__ import annotations

from prometheus_client import Counter

alerts_dispatched_total = Counter(
    "alerts_dispatched_total",
    "Alert deliveries attempted, by channel and outcome",
    ["channel", "status"],
)
alerts_suppressed_total = Counter(
    "alerts_suppressed_total",
    "Alerts not sent, by reason",
    ["reason"],
)
