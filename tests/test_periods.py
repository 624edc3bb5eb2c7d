from datetime import date

import pytest

from periods import (
    Granularity,
    add_months,
    bucket_periods,
    month_end,
    resolve_period,
    week_start,
)


def test_month_helpers() -> None:
    assert month_end(date(2024, 2, 10)) == date(2024, 2, 29)
    assert month_end(date(2025, 12, 3)) == date(2025, 12, 31)
    assert add_months(date(2025, 1, 1), -1) == date(2024, 12, 1)
    assert add_months(date(2025, 11, 1), 3) == date(2026, 2, 1)


def test_week_start_depends_on_first_weekday() -> None:
    wednesday = date(2025, 6, 18)
    assert week_start(wednesday, 6) == date(2025, 6, 15)
    assert week_start(wednesday, 0) == date(2025, 6, 16)
    sunday = date(2025, 6, 15)
    assert week_start(sunday, 6) == sunday


def test_monthly_windows_end_with_current_month() -> None:
    periods = bucket_periods(Granularity.monthly, today=date(2025, 3, 9))
    assert len(periods) == 12
    assert periods[0].slug == "Apr 2024"
    assert periods[0].start == date(2024, 4, 1)
    assert periods[-1].slug == "Mar 2025"
    assert periods[-1].end == date(2025, 3, 31)
    assert periods[-1].contains(date(2025, 3, 9))
    for earlier, later in zip(periods, periods[1:]):
        assert (later.start - earlier.end).days == 1


def test_weekly_windows_are_seven_days() -> None:
    periods = bucket_periods(
        Granularity.weekly, today=date(2025, 6, 18), first_weekday=0
    )
    assert len(periods) == 12
    assert all((p.end - p.start).days == 6 for p in periods)
    assert all(p.start.weekday() == 0 for p in periods)
    assert periods[-1].slug == "Jun 16 - Jun 22"


def test_yearly_windows() -> None:
    periods = bucket_periods(Granularity.yearly, today=date(2025, 6, 18))
    assert [p.slug for p in periods] == ["2021", "2022", "2023", "2024", "2025"]
    assert periods[0].start == date(2021, 1, 1)
    assert periods[-1].end == date(2025, 12, 31)


def test_resolve_period() -> None:
    today = date(2025, 3, 9)
    assert resolve_period(None, None, None, today=today).slug == "all"

    this_month = resolve_period("this_month", None, None, today=today)
    assert (this_month.start, this_month.end) == (date(2025, 3, 1), date(2025, 3, 31))

    last_month = resolve_period("last_month", None, None, today=today)
    assert (last_month.start, last_month.end) == (date(2025, 2, 1), date(2025, 2, 28))

    custom = resolve_period("custom", "2025-01-05", "2025-01-10", today=today)
    assert custom.contains(date(2025, 1, 10))
    assert not custom.contains(date(2025, 1, 11))


@pytest.mark.parametrize(
    "period,start,end",
    [
        ("custom", None, "2025-01-10"),
        ("custom", "2025-02-01", "2025-01-01"),
        ("fortnight", None, None),
    ],
)
def test_resolve_period_rejects_bad_input(period, start, end) -> None:
    with pytest.raises(ValueError):
        resolve_period(period, start, end, today=date(2025, 3, 9))
