import calendar
from datetime import date, timedelta
from typing import NamedTuple, Optional

QUICK_RANGES = ("today", "week", "month", "last_month", "term", "year")


class DateRange(NamedTuple):
    start: date
    end: date

    def as_params(self) -> dict:
        return {"startDate": self.start.isoformat(), "endDate": self.end.isoformat()}


def _month_range(year: int, month: int) -> DateRange:
    last_day = calendar.monthrange(year, month)[1]
    return DateRange(date(year, month, 1), date(year, month, last_day))


def term_for(day: date) -> int:
    """Terms are calendar quarters: Jan-Mar is term 1, Oct-Dec is term 4."""
    return (day.month - 1) // 3 + 1


def term_range(year: int, term: int) -> DateRange:
    if term not in (1, 2, 3, 4):
        raise ValueError(f"Unknown term: {term}")
    first_month = (term - 1) * 3 + 1
    return DateRange(
        _month_range(year, first_month).start, _month_range(year, first_month + 2).end
    )


def quick_range(kind: str, today: Optional[date] = None) -> DateRange:
    """Resolve a quick-select button ("This Week", "This Term", ...) into dates."""
    today = today or date.today()

    if kind == "today":
        return DateRange(today, today)
    if kind == "week":
        monday = today - timedelta(days=today.weekday())
        return DateRange(monday, monday + timedelta(days=6))
    if kind == "month":
        return _month_range(today.year, today.month)
    if kind == "last_month":
        if today.month == 1:
            return _month_range(today.year - 1, 12)
        return _month_range(today.year, today.month - 1)
    if kind == "term":
        return term_range(today.year, term_for(today))
    if kind == "year":
        return DateRange(date(today.year, 1, 1), date(today.year, 12, 31))
    raise ValueError(f"Unknown quick range: {kind}")
