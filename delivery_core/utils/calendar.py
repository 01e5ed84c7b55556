# delivery_core/utils/calendar.py

# Delivery calendar anchored to the kitchen's time zone.
# Enumerates upcoming delivery Saturdays, computes the Friday 5 PM order cutoff
# for a delivery week, and converts between UTC instants and wall-clock parts
# of any IANA zone (offset taken from the zone at that instant, so DST is honoured).

from __future__ import annotations
from datetime import date, datetime, time, timedelta
from typing import Iterator, NamedTuple
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")

SATURDAY = 5  # date.weekday()
CUTOFF_TIME = time(17, 0)
MAX_SCAN_DAYS = 30


class TimeZoneParts(NamedTuple):
    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    fold: int = 0  # 1 = second occurrence of a repeated (fall-back) wall time


def aware_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken as UTC (SQLite drops tzinfo); aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def date_to_timezone_parts(instant: datetime, tz_name: str) -> TimeZoneParts:
    local = aware_utc(instant).astimezone(ZoneInfo(tz_name))
    return TimeZoneParts(local.year, local.month, local.day, local.hour, local.minute, local.fold)


def timezone_parts_to_instant(parts: TimeZoneParts, tz_name: str) -> datetime:
    """UTC instant for a wall-clock reading in tz_name, using the offset in force at that reading."""
    local = datetime(
        parts.year, parts.month, parts.day, parts.hour, parts.minute,
        tzinfo=ZoneInfo(tz_name), fold=parts.fold,
    )
    return local.astimezone(UTC)


class DeliveryCalendar:
    """
    Weekly delivery calendar for one kitchen.

    A delivery week is identified by its Saturday as observed in the kitchen's
    zone. Orders for that week lock at 17:00 kitchen time on the Friday before.
    """

    def __init__(self, tz_name: str):
        self.tz_name = tz_name
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(UTC)

    def local_date(self, instant: datetime) -> date:
        parts = date_to_timezone_parts(instant, self.tz_name)
        return date(parts.year, parts.month, parts.day)

    def is_delivery_week(self, week: date) -> bool:
        return week.weekday() == SATURDAY

    def upcoming_delivery_weeks(self, count: int = 4, from_instant: datetime | None = None) -> Iterator[date]:
        """Yield the next `count` Saturdays on or after from_instant's kitchen-local date."""
        cursor = self.local_date(from_instant or self.now())
        found = 0
        steps = 0
        while found < count and steps < MAX_SCAN_DAYS:
            if cursor.weekday() == SATURDAY:
                yield cursor
                found += 1
                steps = 0
            else:
                steps += 1
            cursor += timedelta(days=1)

    def cutoff_instant(self, week: date) -> datetime:
        friday = week - timedelta(days=1)
        parts = TimeZoneParts(friday.year, friday.month, friday.day, CUTOFF_TIME.hour, CUTOFF_TIME.minute)
        return timezone_parts_to_instant(parts, self.tz_name)

    def is_past_cutoff(self, week: date, now: datetime | None = None) -> bool:
        now = aware_utc(now) if now is not None else self.now()
        return now > self.cutoff_instant(week)
