"""
Time-of-day arithmetic shared by segmentation, matching and late/early calculation.
All datetimes are naive wall-clock times in the site's local timezone.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

MINUTES_PER_DAY = 24 * 60
HALF_DAY_MINUTES = 12 * 60
MORNING_CUTOFF_HOUR = 12


def to_minutes(value) -> int:
    """Minutes from midnight for a time or datetime."""
    return value.hour * 60 + value.minute


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def whole_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def hours_between(start: datetime, end: datetime) -> float:
    return round((end - start).total_seconds() / 3600.0, 2)


def wrap_minutes(difference: float) -> float:
    """Use the 24h complement for differences larger than 12 hours."""
    if difference > HALF_DAY_MINUTES:
        return MINUTES_PER_DAY - difference
    return difference


def project_time_onto_date(day: date, time_of_day: time, after: Optional[time] = None) -> datetime:
    """
    Place a time-of-day on a calendar date.

    Args:
        day: Calendar date the time belongs to
        time_of_day: Time to project
        after: Reference time-of-day on ``day``; when ``time_of_day`` is earlier
            than it, the projection crosses midnight onto the next date

    Returns:
        Naive datetime
    """
    projected = datetime.combine(day, time_of_day)
    if after is not None and time_of_day < after:
        projected += timedelta(days=1)
    return projected


def nearest_occurrence(reference: datetime, time_of_day: time) -> datetime:
    """
    The instance of ``time_of_day`` on the previous, same or next date that is
    closest to ``reference``. Ties go to the earlier instance.

    e.g. 22:00 seen from 01:00 is the previous evening, 00:00 seen from 23:50
    is the coming midnight.
    """
    same_day = project_time_onto_date(reference.date(), time_of_day)
    instances = (same_day - timedelta(days=1), same_day, same_day + timedelta(days=1))
    return min(instances, key=lambda instance: abs(minutes_between(instance, reference)))


def shift_bounds(reference: datetime, start: time, end: time) -> Tuple[datetime, datetime]:
    """
    Concrete start/end of the shift instance a punch at ``reference`` belongs to.
    """
    shift_start = nearest_occurrence(reference, start)
    shift_end = project_time_onto_date(shift_start.date(), end, after=start)
    return shift_start, shift_end


def overlap_minutes(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> float:
    latest_start = max(a_start, b_start)
    earliest_end = min(a_end, b_end)
    return max(0.0, minutes_between(latest_start, earliest_end))
