"""
On-duty (OD) reconciliation.

Approved OD time inside the shift window but outside the punched window is added
to the worked hours, and late-in/early-out penalties fully covered by OD are waived.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from models.schema import AttendanceStatus, ODHalf, ODType, OnDutyInterval, ProcessedSegment
from shift_engine.time_rules import overlap_minutes, project_time_onto_date, shift_bounds

PRESENT_RATIO = 0.9
HALF_DAY_RATIO = 0.45

Window = Tuple[datetime, datetime]


def od_window(od: OnDutyInterval, shift_window: Window, shift_start_time) -> Optional[Window]:
    """Concrete datetimes of an OD interval, anchored to the shift instance it falls in."""
    shift_start, shift_end = shift_window
    if od.od_type == ODType.FULL_DAY:
        return shift_start, shift_end
    if od.od_type == ODType.HALF_DAY:
        midpoint = shift_start + (shift_end - shift_start) / 2
        if od.half == ODHalf.SECOND:
            return midpoint, shift_end
        return shift_start, midpoint

    if od.start_time is None or od.end_time is None:
        return None

    start = project_time_onto_date(shift_start.date(), od.start_time)
    if shift_end.date() > shift_start.date() and od.start_time < shift_start_time:
        start += timedelta(days=1)
    end = project_time_onto_date(start.date(), od.end_time, after=od.start_time)
    return start, end


def classify_segment(working_hours: float, expected_hours: Optional[float]) -> Tuple[AttendanceStatus, float]:
    if not expected_hours:
        return AttendanceStatus.ABSENT, 0.0
    if working_hours >= PRESENT_RATIO * expected_hours:
        return AttendanceStatus.PRESENT, 1.0
    if working_hours >= HALF_DAY_RATIO * expected_hours:
        return AttendanceStatus.HALF_DAY, 0.5
    return AttendanceStatus.ABSENT, 0.0


def apply_on_duty(segment: ProcessedSegment, od_intervals: List[OnDutyInterval]) -> ProcessedSegment:
    """
    Fill punch gaps with OD time and classify a matched segment.

    Segments without an assigned shift or an in-time are returned unchanged apart
    from their working hours.
    """
    if segment.shift_id is None or segment.in_time is None:
        return segment.model_copy(update={"working_hours": segment.punch_hours})

    shift_window = shift_bounds(segment.in_time, segment.shift_start_time, segment.shift_end_time)
    shift_start, shift_end = shift_window
    punch_end = segment.out_time or segment.in_time

    gap_minutes = 0.0
    late_waived = False
    early_waived = False
    for od in od_intervals:
        window = od_window(od, shift_window, segment.shift_start_time)
        if window is None:
            continue
        od_start, od_end = window
        od_in_shift = overlap_minutes(od_start, od_end, shift_start, shift_end)
        od_in_punch = overlap_minutes(od_start, od_end, segment.in_time, punch_end)
        gap_minutes += max(0.0, od_in_shift - od_in_punch)

        if segment.is_late_in and od_start <= shift_start and od_end >= segment.in_time:
            late_waived = True
        if segment.is_early_out and segment.out_time is not None \
                and od_start <= segment.out_time and od_end >= shift_end:
            early_waived = True

    od_hours = round(gap_minutes / 60, 2)
    working_hours = round(segment.punch_hours + od_hours, 2)
    expected = segment.expected_hours or 0
    extra_hours = round(max(0.0, working_hours - expected), 2)
    classification, payable = classify_segment(working_hours, segment.expected_hours)

    update = {
        "od_hours": od_hours,
        "working_hours": working_hours,
        "extra_hours": extra_hours,
        "classification": classification,
        "payable_shift": payable,
    }
    if late_waived:
        update.update({"is_late_in": False, "late_in_minutes": 0, "late_in_waived": True})
    if early_waived:
        update.update({"is_early_out": False, "early_out_minutes": 0, "early_out_waived": True})
    return segment.model_copy(update=update)
