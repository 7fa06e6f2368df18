from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta

WEEKLY_FREQUENCIES = {"WEEKLY"}
BIWEEKLY_FREQUENCIES = {"BIWEEKLY"}
MONTHLY_FREQUENCIES = {"MONTHLY", "APPROXIMATELY_MONTHLY"}
ANNUAL_FREQUENCIES = {"ANNUALLY", "YEARLY"}
FALLBACK_DAYS = 30


def parse_date(value: Any) -> Optional[date]:
    """Coerce a date, datetime or ISO-8601 string to a ``date``; None when absent."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def next_due_date(
    last_date: Any,
    frequency: Optional[str],
    today: Optional[date] = None,
) -> Optional[date]:
    """
    Project the next occurrence of a recurring charge after ``today``.

    Weekly, biweekly and monthly schedules are rolled forward until they land
    after today. Annual schedules get a single +1 year step and unknown
    frequencies a flat 30 day estimate, neither of which catches up.
    """
    last = parse_date(last_date)
    if last is None:
        return None

    today = today or date.today()
    if last > today:
        return last

    key = (frequency or "").upper()

    if key in WEEKLY_FREQUENCIES or key in BIWEEKLY_FREQUENCIES:
        step = timedelta(days=7 if key in WEEKLY_FREQUENCIES else 14)
        candidate = last + step
        while candidate <= today:
            candidate += step
        return candidate

    if key in MONTHLY_FREQUENCIES:
        # Offset from the original date so month-end days are not clamped twice
        months = 1
        candidate = last + relativedelta(months=months)
        while candidate <= today:
            months += 1
            candidate = last + relativedelta(months=months)
        return candidate

    if key in ANNUAL_FREQUENCIES:
        return last + relativedelta(years=1)

    return last + timedelta(days=FALLBACK_DAYS)


def _due_in_label(days: int) -> str:
    if days < 0:
        return f"{abs(days)} days ago"
    if days == 0:
        return "Today"
    if days == 1:
        return "Tomorrow"
    return f"in {days} days"


def annotate_due(rows: List[Dict[str, Any]], today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Attach ``days_until_due`` and a human ``due_in`` label to recurring rows."""
    today = today or date.today()
    annotated = []
    for row in rows:
        due = parse_date(row.get("next_due_date"))
        if due is None:
            annotated.append(row)
            continue
        days = (due - today).days
        annotated.append({**row, "days_until_due": days, "due_in": _due_in_label(days)})
    return annotated
