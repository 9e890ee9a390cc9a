"""
Do-not-disturb (quiet hours) evaluation.

A window is start/end "HH:mm" in the user's declared timezone. While "now" falls inside
it, interrupting channels (email, push) are suppressed; in-app rows are still written.
start == end is a zero-length window whose meaning is set by QUIET_HOURS_ZERO_LENGTH
(full-day quiet by default, or no effect).
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MINUTES_PER_DAY = 24 * 60
DEFAULT_TIMEZONE = "UTC"


@dataclass(frozen=True)
class DoNotDisturb:
    enabled: bool = False
    start: str | None = "22:00"
    end: str | None = "08:00"
    timezone: str = DEFAULT_TIMEZONE


def is_valid_time(value: object) -> bool:
    return isinstance(value, str) and TIME_RE.match(value) is not None


def parse_time(value: str) -> tuple[int, int] | None:
    """'HH:mm' -> (hour, minute); None when malformed."""
    if not isinstance(value, str):
        return None
    m = TIME_RE.match(value)
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


def to_minutes(value: str) -> int | None:
    parsed = parse_time(value)
    if parsed is None:
        return None
    return parsed[0] * 60 + parsed[1]


def get_zone(name: str | None) -> ZoneInfo:
    """ZoneInfo for name; unknown or empty names fall back to UTC."""
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def is_valid_timezone(name: object) -> bool:
    if not isinstance(name, str) or not name.strip():
        return False
    try:
        ZoneInfo(name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def local_now(dnd: DoNotDisturb, now: datetime | None = None) -> datetime:
    """now (naive = UTC) converted to the user's timezone."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(get_zone(dnd.timezone))


def _window(dnd: DoNotDisturb) -> tuple[int, int] | None:
    if not dnd.enabled:
        return None
    s = to_minutes(dnd.start) if dnd.start else None
    e = to_minutes(dnd.end) if dnd.end else None
    if s is None or e is None:
        return None
    return s, e


def minute_in_window(m: int, s: int, e: int, zero_length_quiet: bool = True) -> bool:
    """Window membership on minutes-since-midnight; end is exclusive."""
    if s < e:
        return s <= m < e
    if s > e:
        return m >= s or m < e
    return zero_length_quiet


def is_quiet_now(
    dnd: DoNotDisturb,
    now: datetime | None = None,
    zero_length_quiet: bool = True,
) -> bool:
    """True when now (in the user's timezone) is inside an enabled quiet window."""
    window = _window(dnd)
    if window is None:
        return False
    local = local_now(dnd, now)
    return minute_in_window(local.hour * 60 + local.minute, window[0], window[1], zero_length_quiet)


def minutes_until_quiet_end(
    dnd: DoNotDisturb,
    now: datetime | None = None,
    zero_length_quiet: bool = True,
) -> int | None:
    """
    Minutes left in the current quiet window: 0 when not quiet, None when the window
    never ends (zero-length window configured as full-day quiet).
    """
    if not is_quiet_now(dnd, now, zero_length_quiet):
        return 0
    s, e = _window(dnd)
    if s == e:
        return None
    local = local_now(dnd, now)
    m = local.hour * 60 + local.minute
    return (e - m) % MINUTES_PER_DAY


def next_available_time(
    dnd: DoNotDisturb,
    now: datetime | None = None,
    zero_length_quiet: bool = True,
) -> datetime | None:
    """Earliest UTC time interrupting channels may be used again (None = not while enabled)."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    remaining = minutes_until_quiet_end(dnd, now, zero_length_quiet)
    if remaining is None:
        return None
    if remaining == 0:
        return now
    local = local_now(dnd, now).replace(second=0, microsecond=0)
    return (local + timedelta(minutes=remaining)).astimezone(timezone.utc)


def quiet_status(
    dnd: DoNotDisturb,
    now: datetime | None = None,
    zero_length_quiet: bool = True,
) -> dict:
    """Human-readable state for the settings page."""
    if not dnd.enabled:
        return {"is_active": False, "description": "Do not disturb is off", "resumes_at": None}
    if not is_quiet_now(dnd, now, zero_length_quiet):
        return {
            "is_active": False,
            "description": f"Quiet hours: {dnd.start} - {dnd.end} ({dnd.timezone})",
            "resumes_at": None,
        }
    remaining = minutes_until_quiet_end(dnd, now, zero_length_quiet)
    if remaining is None:
        return {"is_active": True, "description": "Quiet all day", "resumes_at": None}
    hours, minutes = divmod(remaining, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    resumes_at = next_available_time(dnd, now, zero_length_quiet)
    return {
        "is_active": True,
        "description": f"Quiet hours active, ends in {' '.join(parts) or '1m'}",
        "resumes_at": resumes_at.isoformat() if resumes_at else None,
    }
