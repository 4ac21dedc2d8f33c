from datetime import date
from typing import List

from models.schema import AttendanceStatus, CatalogTier, DailyAttendanceAggregate, ProcessedSegment


def overall_status(segments: List[ProcessedSegment], total_payable: float) -> AttendanceStatus:
    if not segments:
        return AttendanceStatus.ABSENT
    if segments[-1].out_time is None:
        return AttendanceStatus.PARTIAL
    if total_payable >= 1:
        return AttendanceStatus.PRESENT
    if total_payable >= 0.5:
        return AttendanceStatus.HALF_DAY
    return AttendanceStatus.ABSENT


def aggregate_day(
    employee_id: int,
    attendance_date: date,
    segments: List[ProcessedSegment],
    catalog_tier: CatalogTier = CatalogTier.NONE,
) -> DailyAttendanceAggregate:
    """Fold the day's processed segments into one attendance record."""
    total_working = round(sum(s.working_hours for s in segments), 2)
    total_ot = round(sum(s.extra_hours for s in segments), 2)
    total_od = round(sum(s.od_hours for s in segments), 2)
    total_payable = round(sum(s.payable_shift for s in segments), 2)

    in_times = [s.in_time for s in segments if s.in_time is not None]
    return DailyAttendanceAggregate(
        employee_id=employee_id,
        date=attendance_date,
        segments=segments,
        total_shifts=len(segments),
        total_working_hours=total_working,
        total_ot_hours=total_ot,
        total_od_hours=total_od,
        total_payable_shifts=total_payable,
        first_in_time=in_times[0] if in_times else None,
        last_out_time=segments[-1].out_time if segments else None,
        status=overall_status(segments, total_payable),
        pending_review=any(s.pending_review for s in segments),
        catalog_tier=catalog_tier,
    )
