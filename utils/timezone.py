"""UTC-everywhere time handling for ledger timestamps and due dates."""

from datetime import date, datetime, timedelta, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Payment and invoice timestamps always come from here, never datetime.now().
    """
    return datetime.now(timezone.utc)


def today_utc() -> date:
    """Current calendar date in UTC. Used for date_issued and overdue checks."""
    return now_utc().date()


def due_date(issued: date, due_in_days: int) -> date:
    """
    Due date for an invoice issued on `issued`.

    Raises ValueError for negative terms.
    """
    if due_in_days < 0:
        raise ValueError(f"due_in_days must be >= 0, got {due_in_days}")
    return issued + timedelta(days=due_in_days)
