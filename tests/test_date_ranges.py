from datetime import date, timedelta

import pytest

from schoolboard.services.date_ranges import QUICK_RANGES, DateRange, quick_range, term_for, term_range


@pytest.mark.parametrize(
    "today, expected",
    [
        (date(2026, 1, 15), (date(2026, 1, 1), date(2026, 3, 31))),
        (date(2026, 6, 30), (date(2026, 4, 1), date(2026, 6, 30))),
        (date(2026, 7, 1), (date(2026, 7, 1), date(2026, 9, 30))),
        (date(2025, 11, 3), (date(2025, 10, 1), date(2025, 12, 31))),
    ],
)
def test_term_is_calendar_quarter(today, expected):
    assert quick_range("term", today) == DateRange(*expected)


def test_week_runs_monday_to_sunday():
    # 2026-10-18 is a Sunday
    assert quick_range("week", date(2026, 10, 18)) == DateRange(date(2026, 10, 12), date(2026, 10, 18))
    assert quick_range("week", date(2026, 10, 12)) == DateRange(date(2026, 10, 12), date(2026, 10, 18))


def test_month_handles_leap_february():
    assert quick_range("month", date(2024, 2, 10)) == DateRange(date(2024, 2, 1), date(2024, 2, 29))


def test_last_month_crosses_year_boundary():
    assert quick_range("last_month", date(2026, 1, 20)) == DateRange(date(2025, 12, 1), date(2025, 12, 31))
    assert quick_range("last_month", date(2026, 3, 31)) == DateRange(date(2026, 2, 1), date(2026, 2, 28))


def test_today_and_year():
    today = date(2026, 5, 4)
    assert quick_range("today", today) == DateRange(today, today)
    assert quick_range("year", today) == DateRange(date(2026, 1, 1), date(2026, 12, 31))


def test_every_range_is_ordered_and_contains_today():
    day = date(2024, 1, 1)
    while day.year == 2024:
        for kind in QUICK_RANGES:
            start, end = quick_range(kind, day)
            assert start <= end
            if kind != "last_month":
                assert start <= day <= end
        day += timedelta(days=1)


def test_terms():
    assert [term_for(date(2026, m, 1)) for m in range(1, 13)] == [1, 1, 1, 2, 2, 2, 3, 3, 3, 4, 4, 4]
    assert term_range(2026, 4) == DateRange(date(2026, 10, 1), date(2026, 12, 31))
    with pytest.raises(ValueError):
        term_range(2026, 5)


def test_unknown_range():
    with pytest.raises(ValueError):
        quick_range("fortnight", date(2026, 1, 1))


def test_as_params():
    assert DateRange(date(2026, 1, 1), date(2026, 3, 31)).as_params() == {
        "startDate": "2026-01-01",
        "endDate": "2026-03-31",
    }
