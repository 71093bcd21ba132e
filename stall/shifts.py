"""Which day, shift and week a timestamp belongs to.

Every "which day does this belong to" decision goes through
``logical_day_key``: local hours before the cutoff (05:00) count toward the
previous calendar date, so a shift running 17:00 -> 01:00 stays on one key.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo

from .config import get_settings

# Rush-hour window: 17:00 -> 01:00 next day, in 15 minute bins.
RUSH_START_MIN = 17 * 60
RUSH_END_MIN = 25 * 60
RUSH_BIN_MIN = 15
RUSH_BIN_COUNT = (RUSH_END_MIN - RUSH_START_MIN) // RUSH_BIN_MIN


def local_zone() -> tzinfo:
    return get_settings().local_tz


def as_aware(ts: datetime) -> datetime:
    """SQLite hands datetimes back naive; they were written as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def to_local(ts: datetime, tz: tzinfo | None = None) -> datetime:
    return as_aware(ts).astimezone(tz or local_zone())


def from_epoch_ms(value: float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def to_epoch_ms(ts: datetime) -> int:
    return int(as_aware(ts).timestamp() * 1000)


def logical_date(ts: datetime, tz: tzinfo | None = None) -> date:
    local = to_local(ts, tz)
    if local.hour < get_settings().day_cutoff_hour:
        local -= timedelta(days=1)
    return local.date()


def logical_day_key(ts: datetime, tz: tzinfo | None = None) -> str:
    return logical_date(ts, tz).isoformat()


# Loyalty counts one visit per shift and a shift never crosses the cutoff.
shift_key = logical_day_key


def week_key(ts: datetime, tz: tzinfo | None = None) -> str:
    """ISO week key ``YYYY-Www`` of the local calendar date."""
    year, week, _ = to_local(ts, tz).date().isocalendar()
    return f"{year}-W{week:02d}"


def rush_minutes(ts: datetime, tz: tzinfo | None = None) -> int:
    """Minutes since local midnight, shifted +24h when before 17:00."""
    local = to_local(ts, tz)
    minutes = local.hour * 60 + local.minute
    if minutes < RUSH_START_MIN:
        minutes += 24 * 60
    return minutes


def rush_bin_index(ts: datetime, tz: tzinfo | None = None) -> int:
    """Bin counted from 17:00. Indexes >= RUSH_BIN_COUNT fall past the charted window."""
    return (rush_minutes(ts, tz) - RUSH_START_MIN) // RUSH_BIN_MIN


def rush_bin_label(index: int) -> str:
    minutes = (RUSH_START_MIN + index * RUSH_BIN_MIN) % (24 * 60)
    hour, minute = divmod(minutes, 60)
    hour12 = (hour + 11) % 12 + 1
    suffix = "PM" if hour >= 12 else "AM"
    return f"{hour12}:{minute:02d} {suffix}"
