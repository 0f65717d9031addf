"""TypedDicts for flow metrics."""

from __future__ import annotations

from typing import TypedDict


class TypeMetrics(TypedDict):
    avg_cycle_time_days: float | None
    count: int


class FlowMetrics(TypedDict):
    period_days: int
    throughput: int
    avg_cycle_time_days: float | None
    avg_lead_time_days: float | None
    by_type: dict[str, TypeMetrics]
    status_distribution: dict[str, int]
