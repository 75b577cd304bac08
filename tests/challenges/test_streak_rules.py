"""Tests for the pure streak transition rules."""

from datetime import date

from foodie.challenges.streak_service import next_streak

D = date(2024, 3, 10)


def test_first_completion_starts_at_one() -> None:
    t = next_streak(0, 0, None, D)
    assert (t.current_streak, t.highest_streak, t.last_completed_at, t.increased) == (1, 1, D, True)


def test_consecutive_days_increment() -> None:
    t = next_streak(0, 0, None, D)
    t = next_streak(t.current_streak, t.highest_streak, t.last_completed_at, date(2024, 3, 11))
    t = next_streak(t.current_streak, t.highest_streak, t.last_completed_at, date(2024, 3, 12))
    assert t.current_streak == 3
    assert t.highest_streak == 3


def test_same_day_is_unchanged() -> None:
    t = next_streak(4, 6, D, D)
    assert (t.current_streak, t.highest_streak, t.increased) == (4, 6, False)


def test_gap_resets_but_keeps_highest() -> None:
    t = next_streak(5, 5, D, date(2024, 3, 12))
    assert t.current_streak == 1
    assert t.highest_streak == 5
    assert t.increased is True


def test_crosses_month_boundary() -> None:
    t = next_streak(2, 2, date(2024, 2, 29), date(2024, 3, 1))
    assert t.current_streak == 3
