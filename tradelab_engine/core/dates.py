"""UTC calendar-date helpers.

All simulation dates are plain ``datetime.date`` values interpreted as UTC days.
"""

from datetime import date, timedelta


def date_range_inclusive(start: date, end: date) -> list[date]:
    """Return every date from start to end, both inclusive (empty if end < start)."""
    days = (end - start).days
    return [start + timedelta(days=i) for i in range(days + 1)]


def last_n_dates(n: int, anchor: date) -> list[date]:
    """Return the n dates ending the day before ``anchor``, oldest first."""
    if n <= 0:
        return []
    return date_range_inclusive(anchor - timedelta(days=n), anchor - timedelta(days=1))
