from datetime import date, datetime, timedelta, timezone
from app.engine.streak import (
    ShipDay,
    StreakData,
    compute_current_streak,
    compute_longest_streak,
    compute_streaks,
    day_start_utc,
    days_since_last_ship,
    fill_week,
    format_streak,
    has_shipped_today,
    local_today,
    next_streak,
    should_celebrate,
    streak_milestone,
    weekly_average,
)

TODAY = date(2026, 2, 27)
YESTERDAY = TODAY - timedelta(days=1)
TWO_DAYS_AGO = TODAY - timedelta(days=2)


def days(*pairs):
    return [ShipDay(d, n) for d, n in pairs]


class TestComputeStreaks:
    def test_empty_history(self):
        assert compute_streaks([], TODAY) == StreakData(0, 0, None)

    def test_no_ships_anywhere(self):
        result = compute_streaks(days((TODAY, 0), (YESTERDAY, 0)), TODAY)
        assert result.current_streak == 0
        assert result.longest_streak == 0
        assert result.last_ship_date is None

    def test_three_consecutive_days(self):
        result = compute_streaks(days((TODAY, 1), (YESTERDAY, 2), (TWO_DAYS_AGO, 1)), TODAY)
        assert result.current_streak == 3
        assert result.longest_streak == 3
        assert result.last_ship_date == TODAY

    def test_zero_day_breaks_current_streak(self):
        records = days((TODAY, 1), (YESTERDAY, 0), (TWO_DAYS_AGO, 4))
        assert compute_current_streak(records, TODAY) == 1

    def test_gap_breaks_current_streak(self):
        records = days((TODAY, 1), (TWO_DAYS_AGO, 1))
        assert compute_current_streak(records, TODAY) == 1

    def test_current_streak_requires_today(self):
        records = days((YESTERDAY, 1), (TWO_DAYS_AGO, 1))
        result = compute_streaks(records, TODAY)
        assert result.current_streak == 0
        assert result.longest_streak == 2
        assert result.last_ship_date == YESTERDAY

    def test_input_order_does_not_matter(self):
        records = days((TWO_DAYS_AGO, 1), (TODAY, 1), (YESTERDAY, 1))
        assert compute_current_streak(records, TODAY) == 3

    def test_longest_streak_picks_best_run(self):
        base = date(2026, 1, 1)
        records = days(
            (base, 1), (base + timedelta(days=1), 1),
            (base + timedelta(days=3), 1), (base + timedelta(days=4), 2),
            (base + timedelta(days=5), 1), (base + timedelta(days=6), 0),
            (base + timedelta(days=7), 1),
        )
        assert compute_longest_streak(records) == 3

    def test_as_dict_serialises_date(self):
        data = StreakData(2, 5, TODAY)
        assert data.as_dict() == {"current_streak": 2, "longest_streak": 5, "last_ship_date": "2026-02-27"}

    def test_has_shipped_today(self):
        assert has_shipped_today(days((TODAY, 2)), TODAY)
        assert not has_shipped_today(days((TODAY, 0), (YESTERDAY, 3)), TODAY)


class TestNextStreak:
    def test_first_activity_starts_at_1(self):
        assert next_streak(None, 0, TODAY) == 1

    def test_consecutive_day_increments(self):
        assert next_streak(YESTERDAY, 5, TODAY) == 6

    def test_same_day_unchanged(self):
        assert next_streak(TODAY, 5, TODAY) == 5

    def test_broken_streak_resets_to_1(self):
        assert next_streak(TWO_DAYS_AGO, 10, TODAY) == 1


class TestMilestones:
    def test_known_milestones(self):
        assert streak_milestone(7) == "Week streak!"
        assert streak_milestone(100) == "Century!"
        assert streak_milestone(8) is None

    def test_format_streak(self):
        assert format_streak(0) == "No active streak"
        assert format_streak(1) == "1 day streak"
        assert format_streak(4) == "4 days streak"

    def test_should_celebrate(self):
        assert should_celebrate(3, 4)
        assert should_celebrate(7, 7)
        assert not should_celebrate(5, 5)


class TestTimezones:
    def test_local_today_behind_utc(self):
        now = datetime(2026, 2, 27, 3, 0, tzinfo=timezone.utc)
        assert local_today("America/New_York", now) == date(2026, 2, 26)

    def test_local_today_ahead_of_utc(self):
        now = datetime(2026, 2, 27, 20, 0, tzinfo=timezone.utc)
        assert local_today("Asia/Tokyo", now) == date(2026, 2, 28)

    def test_unknown_zone_falls_back_to_utc(self):
        now = datetime(2026, 2, 27, 23, 0, tzinfo=timezone.utc)
        assert local_today("Not/AZone", now) == TODAY

    def test_naive_now_treated_as_utc(self):
        assert local_today(None, datetime(2026, 2, 27, 23, 0)) == TODAY

    def test_day_start_utc(self):
        start = day_start_utc("America/New_York", TODAY)
        assert start == datetime(2026, 2, 27, 5, 0, tzinfo=timezone.utc)


class TestWeek:
    def test_fill_week_pads_missing_days(self):
        week = fill_week(days((TODAY, 2), (TWO_DAYS_AGO, 1)), TODAY)
        assert len(week) == 7
        assert week[0]["date"] == (TODAY - timedelta(days=6)).isoformat()
        assert week[-1] == {"date": "2026-02-27", "ship_count": 2, "day_of_week": "Fri"}
        assert week[-2]["ship_count"] == 0
        assert week[-3]["ship_count"] == 1

    def test_weekly_average(self):
        week = fill_week(days((TODAY, 4), (YESTERDAY, 3)), TODAY)
        assert weekly_average(week) == 1.0
        assert weekly_average([]) == 0


class TestDaysSinceLastShip:
    def test_never_shipped(self):
        assert days_since_last_ship(None, TODAY) is None

    def test_two_days(self):
        assert days_since_last_ship(TWO_DAYS_AGO, TODAY) == 2
