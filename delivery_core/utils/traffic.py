# delivery_core/utils/traffic.py

# Time-of-day and day-of-week multipliers for per-stop dwell time.
# Peak hours mean slower parking and hand-off, so the flat average stop time
# is scaled by the kitchen-local hour and weekday of the expected arrival.

from __future__ import annotations
from datetime import datetime

# (start_hour, end_hour, factor), end exclusive
TIME_OF_DAY_FACTORS = (
    (0, 6, 0.8),    # late night
    (6, 9, 1.2),    # morning rush
    (9, 11, 0.9),   # midday lull
    (17, 20, 1.3),  # evening rush
)

SATURDAY_FACTOR = 1.1
SUNDAY_FACTOR = 0.9
WEEKDAY_FACTOR = 1.0


def time_of_day_factor(hour: int) -> float:
    for start, end, factor in TIME_OF_DAY_FACTORS:
        if start <= hour < end:
            return factor
    return 1.0


def day_of_week_factor(weekday: int) -> float:
    """weekday follows datetime.weekday(): Monday=0 .. Sunday=6."""
    if weekday == 5:
        return SATURDAY_FACTOR
    if weekday == 6:
        return SUNDAY_FACTOR
    return WEEKDAY_FACTOR


def combined_factor(local_dt: datetime) -> float:
    return time_of_day_factor(local_dt.hour) * day_of_week_factor(local_dt.weekday())


def adjusted_stop_minutes(average_stop_minutes: float, local_dt: datetime, enabled: bool = True) -> float:
    """Dwell minutes at a stop reached at local_dt; the flat average when adjustment is off."""
    if not enabled:
        return average_stop_minutes
    return average_stop_minutes * combined_factor(local_dt)
