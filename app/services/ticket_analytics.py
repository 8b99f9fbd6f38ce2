"""
Ticket analytics — pure read-side aggregation over a ticket collection.

Nothing here touches the database. Every function takes the tickets the
caller is allowed to see (ORM rows or their ``to_dict()`` form) and a
reference ``now`` so results are reproducible.

Timing semantics:
  - resolution time = updated_at − created_at for resolved/closed tickets,
    0 for anything still open; a resolved ticket counts as resolved on the
    day of its updated_at
  - first response  = first_response_at − created_at, where
    ``first_response_at`` is stamped by the first message posted by someone
    other than the submitter
  - SLA compliance  = share of resolved tickets resolved within the target for
    their priority; None when there is nothing to measure
"""

from datetime import datetime, timedelta

from app.models.support import RESOLVED_STATUSES, TICKET_PRIORITIES, TICKET_STATUSES
from app.utils.helpers import as_utc, utcnow

DEFAULT_RESOLUTION_TARGET_HOURS = {"urgent": 4, "high": 24, "medium": 72, "low": 168}
DEFAULT_FIRST_RESPONSE_TARGET_HOURS = {"urgent": 1, "high": 4, "medium": 8, "low": 24}

DAILY_BUCKETS = 30
WEEKLY_BUCKETS = 12
MONTHLY_BUCKETS = 6


def _get(ticket, name):
    if isinstance(ticket, dict):
        return ticket.get(name)
    return getattr(ticket, name, None)


def _ts(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return as_utc(value)


def _hours(start: datetime | None, end: datetime | None) -> float | None:
    if start is None or end is None:
        return None
    return max((end - start).total_seconds() / 3600, 0.0)


def is_resolved(ticket) -> bool:
    return _get(ticket, "status") in RESOLVED_STATUSES


def resolved_when(ticket) -> datetime | None:
    """updated_at of a resolved/closed ticket, None while it is still being worked."""
    if not is_resolved(ticket):
        return None
    return _ts(_get(ticket, "updated_at"))


def resolution_hours(ticket) -> float:
    hours = _hours(_ts(_get(ticket, "created_at")), resolved_when(ticket))
    return round(hours, 2) if hours is not None else 0.0


def first_response_hours(ticket) -> float | None:
    hours = _hours(_ts(_get(ticket, "created_at")), _ts(_get(ticket, "first_response_at")))
    return round(hours, 2) if hours is not None else None


def _mean(values) -> float | None:
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


# ═════════════════════════════════════════════════════════════════════════════
# Trends
# ═════════════════════════════════════════════════════════════════════════════

def _month_back(year: int, month: int, steps: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) - steps
    return index // 12, index % 12 + 1


def ticket_trends(tickets, now: datetime | None = None) -> dict:
    """Created/resolved counts per day (30), week (12 × 7 days) and calendar month (6).

    Daily buckets are UTC calendar days ending today. Weekly buckets are
    fixed 7-day windows ``(start, end]`` ending at ``now``. Monthly buckets are
    calendar months ending with the current one. Oldest bucket first.
    """
    now = as_utc(now) if now is not None else utcnow()
    today = now.date()

    created = [_ts(_get(t, "created_at")) for t in tickets]
    created = [c for c in created if c is not None]
    resolved = [r for r in (resolved_when(t) for t in tickets) if r is not None]

    daily = []
    for offset in range(DAILY_BUCKETS - 1, -1, -1):
        day = today - timedelta(days=offset)
        daily.append({
            "date": day.isoformat(),
            "label": f"{day:%b} {day.day}",
            "created": sum(1 for c in created if c.date() == day),
            "resolved": sum(1 for r in resolved if r.date() == day),
        })

    weekly = []
    for offset in range(WEEKLY_BUCKETS - 1, -1, -1):
        end = now - timedelta(days=7 * offset)
        start = end - timedelta(days=7)
        weekly.append({
            "start": start.date().isoformat(),
            "label": f"Week of {start:%b} {start.day}",
            "created": sum(1 for c in created if start < c <= end),
            "resolved": sum(1 for r in resolved if start < r <= end),
        })

    monthly = []
    for offset in range(MONTHLY_BUCKETS - 1, -1, -1):
        year, month = _month_back(today.year, today.month, offset)
        label = datetime(year, month, 1).strftime("%b %Y")
        monthly.append({
            "month": f"{year:04d}-{month:02d}",
            "label": label,
            "created": sum(1 for c in created if (c.year, c.month) == (year, month)),
            "resolved": sum(1 for r in resolved if (r.year, r.month) == (year, month)),
        })

    return {"daily": daily, "weekly": weekly, "monthly": monthly}


# ═════════════════════════════════════════════════════════════════════════════
# Departments
# ═════════════════════════════════════════════════════════════════════════════

def department_analytics(tickets, departments) -> list[dict]:
    """Per-department counts and mean resolution hours, busiest department first."""
    by_department = {}
    for ticket in tickets:
        by_department.setdefault(_get(ticket, "department_id"), []).append(ticket)

    rows = []
    for dept in departments:
        dept_id = _get(dept, "id")
        items = by_department.get(dept_id, [])
        done = [t for t in items if is_resolved(t)]
        avg = _mean(resolution_hours(t) for t in done)
        rows.append({
            "department_id": dept_id,
            "name": _get(dept, "name"),
            "total": len(items),
            "open": sum(1 for t in items if _get(t, "status") == "open"),
            "resolved": len(done),
            "avg_resolution_hours": round(avg, 1) if avg is not None else 0.0,
            "urgent": sum(1 for t in items if _get(t, "priority") == "urgent"),
            "high": sum(1 for t in items if _get(t, "priority") == "high"),
        })
    rows.sort(key=lambda r: (-r["total"], r["name"] or ""))
    return rows


# ═════════════════════════════════════════════════════════════════════════════
# Response times & SLA
# ═════════════════════════════════════════════════════════════════════════════

def _target(targets: dict, priority: str | None) -> float:
    return targets.get(priority) or targets.get("medium") or DEFAULT_RESOLUTION_TARGET_HOURS["medium"]


def response_time_metrics(tickets, resolution_targets=None, first_response_targets=None) -> dict:
    """Measured first-response and resolution metrics with per-priority SLA compliance.

    Values are None when no ticket carries the timestamp they need.
    """
    resolution_targets = resolution_targets or DEFAULT_RESOLUTION_TARGET_HOURS
    first_response_targets = first_response_targets or DEFAULT_FIRST_RESPONSE_TARGET_HOURS

    responded = [(t, first_response_hours(t)) for t in tickets]
    responded = [(t, h) for t, h in responded if h is not None]
    done = [(t, resolution_hours(t)) for t in tickets if is_resolved(t)]

    avg_first = _mean(h for _, h in responded)
    avg_resolution = _mean(h for _, h in done)

    first_ok = sum(1 for t, h in responded if h <= _target(first_response_targets, _get(t, "priority")))
    resolution_ok = sum(1 for t, h in done if h <= _target(resolution_targets, _get(t, "priority")))

    return {
        "responded_tickets": len(responded),
        "resolved_tickets": len(done),
        "avg_first_response_hours": round(avg_first, 2) if avg_first is not None else None,
        "avg_resolution_hours": round(avg_resolution, 2) if avg_resolution is not None else None,
        "first_response_compliance_pct": round(first_ok / len(responded) * 100, 1) if responded else None,
        "sla_compliance_pct": round(resolution_ok / len(done) * 100, 1) if done else None,
    }


def priority_distribution(tickets) -> dict:
    counts = {p: 0 for p in TICKET_PRIORITIES}
    for ticket in tickets:
        priority = _get(ticket, "priority")
        counts[priority] = counts.get(priority, 0) + 1
    return counts


def status_distribution(tickets) -> dict:
    counts = {s: 0 for s in TICKET_STATUSES}
    for ticket in tickets:
        status = _get(ticket, "status")
        counts[status] = counts.get(status, 0) + 1
    return counts


def build_ticket_analytics(
    tickets,
    departments,
    *,
    now: datetime | None = None,
    resolution_targets=None,
    first_response_targets=None,
) -> dict:
    tickets = list(tickets)
    now = as_utc(now) if now is not None else utcnow()
    return {
        "generated_at": now.isoformat(),
        "total": len(tickets),
        "trends": ticket_trends(tickets, now),
        "departments": department_analytics(tickets, departments),
        "response_times": response_time_metrics(tickets, resolution_targets, first_response_targets),
        "priority_distribution": priority_distribution(tickets),
        "status_distribution": status_distribution(tickets),
    }
