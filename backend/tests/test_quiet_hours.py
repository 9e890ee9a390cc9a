from datetime import datetime, timezone

import pytest

from blognotify.services.quiet_hours import (
    DoNotDisturb,
    is_quiet_now,
    is_valid_time,
    is_valid_timezone,
    minute_in_window,
    minutes_until_quiet_end,
    next_available_time,
    parse_time,
    quiet_status,
)


def _utc(hour, minute=0, day=1):
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def _dnd(start, end, tz="UTC", enabled=True):
    return DoNotDisturb(enabled=enabled, start=start, end=end, timezone=tz)


@pytest.mark.parametrize(
    "value,expected",
    [("00:00", (0, 0)), ("23:59", (23, 59)), ("07:05", (7, 5)), ("24:00", None), ("7:05", None), ("12:60", None), ("", None)],
)
def test_parse_time(value, expected):
    assert parse_time(value) == expected
    assert is_valid_time(value) == (expected is not None)


def test_same_day_window_is_half_open():
    for m in range(24 * 60):
        assert minute_in_window(m, 9 * 60, 17 * 60) == (9 * 60 <= m < 17 * 60)


def test_overnight_window_wraps_midnight():
    for m in range(24 * 60):
        assert minute_in_window(m, 22 * 60, 7 * 60) == (m >= 22 * 60 or m < 7 * 60)


def test_zero_length_window_follows_configuration():
    assert minute_in_window(600, 480, 480, zero_length_quiet=True) is True
    assert minute_in_window(600, 480, 480, zero_length_quiet=False) is False
    dnd = _dnd("08:00", "08:00")
    assert is_quiet_now(dnd, _utc(15), zero_length_quiet=True)
    assert not is_quiet_now(dnd, _utc(15), zero_length_quiet=False)


def test_disabled_is_never_quiet():
    dnd = _dnd("00:00", "23:59", enabled=False)
    assert not is_quiet_now(dnd, _utc(12))


def test_overnight_boundaries():
    dnd = _dnd("22:00", "07:00")
    assert is_quiet_now(dnd, _utc(23))
    assert is_quiet_now(dnd, _utc(22, 0))
    assert is_quiet_now(dnd, _utc(6, 59))
    assert not is_quiet_now(dnd, _utc(7, 0))
    assert not is_quiet_now(dnd, _utc(21, 59))


def test_now_is_converted_to_user_timezone():
    # 14:00 UTC is 23:00 in Tokyo
    dnd = _dnd("22:00", "07:00", tz="Asia/Tokyo")
    assert is_quiet_now(dnd, _utc(14))
    assert not is_quiet_now(dnd, _utc(1))  # 10:00 in Tokyo


def test_naive_now_is_treated_as_utc():
    dnd = _dnd("22:00", "07:00")
    assert is_quiet_now(dnd, datetime(2024, 1, 1, 23, 30))


def test_unknown_timezone_falls_back_to_utc():
    dnd = _dnd("22:00", "07:00", tz="Mars/Olympus")
    assert is_quiet_now(dnd, _utc(23))
    assert not is_valid_timezone("Mars/Olympus")
    assert is_valid_timezone("Europe/Berlin")


def test_minutes_until_end_and_next_available():
    dnd = _dnd("22:00", "07:00")
    now = _utc(23, 30)
    assert minutes_until_quiet_end(dnd, now) == 7 * 60 + 30
    assert next_available_time(dnd, now) == _utc(7, 0, day=2)
    assert minutes_until_quiet_end(dnd, _utc(12)) == 0
    assert next_available_time(dnd, _utc(12)) == _utc(12)


def test_full_day_window_never_ends():
    dnd = _dnd("09:00", "09:00")
    assert minutes_until_quiet_end(dnd, _utc(12), zero_length_quiet=True) is None
    assert next_available_time(dnd, _utc(12), zero_length_quiet=True) is None


def test_quiet_status_descriptions():
    assert quiet_status(_dnd("22:00", "07:00", enabled=False), _utc(23))["is_active"] is False
    status = quiet_status(_dnd("22:00", "07:00"), _utc(23))
    assert status["is_active"] is True
    assert status["description"] == "Quiet hours active, ends in 8h"
    assert status["resumes_at"] == _utc(7, 0, day=2).isoformat()
    idle = quiet_status(_dnd("22:00", "07:00"), _utc(12))
    assert idle["is_active"] is False
    assert "22:00 - 07:00" in idle["description"]
