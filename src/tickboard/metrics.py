"""Flow metrics for tickboard: cycle time, lead time, throughput.

No status history is kept, so every figure is inferred from a ticket's
``created_at`` and ``updated_at`` timestamps. For a done ticket,
``updated_at`` is taken as the completion time. Values are in days.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from tickboard.statuses import DONE, STATUSES

if TYPE_CHECKING:
    from tickboard.core import Ticket
    from tickboard.types.metrics import FlowMetrics, TypeMetrics

_SECONDS_PER_DAY = 86400
_MIN_DAYS = 0.5
# Work is assumed to start this far into the created -> done interval
_WORK_START_FRACTION = 0.3


def _parse_iso(ts: str) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC. None when unparseable."""
    try:
        dt = datetime.fromisoformat(ts)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=UTC)
        return dt
    except (ValueError, TypeError):
        return None


def _span_days(ticket: Ticket) -> float | None:
    created = _parse_iso(ticket.created_at)
    updated = _parse_iso(ticket.updated_at)
    if created is None or updated is None:
        return None
    return (updated - created).total_seconds() / _SECONDS_PER_DAY


def lead_time(ticket: Ticket) -> float:
    """Days from creation to done. 0 for a ticket that is not done."""
    if ticket.status != DONE:
        return 0
    span = _span_days(ticket)
    if span is None:
        return 0
    return max(_MIN_DAYS, round(span, 1))


def cycle_time(ticket: Ticket) -> float:
    """Days from the estimated start of work to done. 0 for a ticket that is not done."""
    if ticket.status != DONE:
        return 0
    span = _span_days(ticket)
    if span is None:
        return 0
    return max(_MIN_DAYS, round(span * (1 - _WORK_START_FRACTION), 1))


def status_distribution(tickets: Iterable[Ticket]) -> dict[str, int]:
    """Ticket count per status, every status present, in workflow order."""
    counts = Counter(t.status for t in tickets)
    return {status: counts.get(status, 0) for status in STATUSES}


def get_flow_metrics(tickets: Iterable[Ticket], *, days: int = 30, now: datetime | None = None) -> FlowMetrics:
    """Aggregate flow metrics over tickets finished within the last *days* days."""
    all_tickets = list(tickets)
    cutoff = (now or datetime.now(UTC)) - timedelta(days=days)

    finished: list[Ticket] = []
    for t in all_tickets:
        if t.status != DONE:
            continue
        done_at = _parse_iso(t.updated_at)
        if done_at is not None and done_at >= cutoff:
            finished.append(t)

    cycle_times = [cycle_time(t) for t in finished]
    lead_times = [lead_time(t) for t in finished]
    by_type: dict[str, list[float]] = {}
    for t, ct in zip(finished, cycle_times, strict=True):
        by_type.setdefault(t.issue_type, []).append(ct)

    type_metrics: dict[str, TypeMetrics] = {}
    for issue_type, times in by_type.items():
        type_metrics[issue_type] = {
            "avg_cycle_time_days": round(sum(times) / len(times), 1) if times else None,
            "count": len(times),
        }

    return {
        "period_days": days,
        "throughput": len(finished),
        "avg_cycle_time_days": round(sum(cycle_times) / len(cycle_times), 1) if cycle_times else None,
        "avg_lead_time_days": round(sum(lead_times) / len(lead_times), 1) if lead_times else None,
        "by_type": type_metrics,
        "status_distribution": status_distribution(all_tickets),
    }
