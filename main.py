import logging
from datetime import datetime, date, timedelta
from typing import Optional, Dict, List, Iterable, Tuple

from models.schema import (
    ConfusedShiftRecord,
    ConfusedShiftStatus,
    DailyAttendanceAggregate,
    MatchMethod,
    MatchResult,
    ProcessedSegment,
    Punch,
    PunchDirection,
    ResolutionResult,
    WorkSegment,
)
from shift_engine import confused_shift
from shift_engine.aggregator import aggregate_day
from shift_engine.od_gap_filler import apply_on_duty
from shift_engine.segmenter import segment_punches
from shift_engine.shift_catalog import resolve_shift_catalog
from shift_engine.shift_matcher import assign_shift, auto_assign_nearest_shift, match_shift
from utils.config import ProcessingConfig, build_processing_config
from utils.exceptions import AttendanceError, InvalidStateError, NotFoundError, SourceReadError
from utils.helper import (
    atomic_write,
    get_all_punches_for_day,
    get_approved_od_intervals,
    get_attendance_settings,
    get_confused_shift,
    get_confused_shift_by_key,
    get_employee_by_badge,
    get_shift,
    insert_punch,
    list_confused_shifts,
    upsert_confused_shift,
    upsert_daily_attendance,
)


def _read(source: str, reader, *args):
    try:
        return reader(*args)
    except SourceReadError:
        raise
    except Exception as exc:
        raise SourceReadError(f"{source} read failed: {exc}") from exc


def load_processing_config() -> ProcessingConfig:
    return build_processing_config(_read("settings", get_attendance_settings))


def process_punch(badge_id: str, timestamp: datetime, direction: PunchDirection) -> Optional[Punch]:
    """Record a punch. Returns None for unknown or inactive badges."""
    employee = get_employee_by_badge(badge_id)
    if not employee or not employee.is_active:
        logging.error(f"Unknown or inactive badge ID: {badge_id}")
        return None

    punch = Punch(employee_id=employee.id, timestamp=timestamp, direction=direction)
    insert_punch(punch)
    return punch


def affected_dates(timestamp: datetime, lookahead_hours: int) -> List[date]:
    """Attendance dates a punch can change: its own, and the previous one for overnight OUTs."""
    dates = [timestamp.date()]
    if timestamp.hour < lookahead_hours:
        dates.insert(0, timestamp.date() - timedelta(days=1))
    return dates


def _to_processed(segment: WorkSegment, match: Optional[MatchResult] = None) -> ProcessedSegment:
    processed = ProcessedSegment(
        segment_number=segment.segment_number,
        in_time=segment.in_time,
        out_time=segment.out_time,
        status=segment.status,
        punch_hours=segment.punch_hours,
    )
    if match is None or not match.success:
        return processed

    shift = match.shift
    return processed.model_copy(update={
        "shift_id": shift.id,
        "shift_name": shift.name,
        "shift_start_time": shift.start_time,
        "shift_end_time": shift.end_time,
        "match_method": match.method,
        "late_in_minutes": match.late_in_minutes,
        "early_out_minutes": match.early_out_minutes,
        "is_late_in": match.is_late_in,
        "is_early_out": match.is_early_out,
        "expected_hours": match.expected_hours,
    })


def _compute_day(
    employee_id: int,
    attendance_date: date,
    config: ProcessingConfig,
    review: Optional[ConfusedShiftRecord] = None,
) -> Tuple[DailyAttendanceAggregate, List[ConfusedShiftRecord]]:
    """
    Derive the day's aggregate from source data without writing anything.

    ``review`` overrides the stored confused-shift record for the day, so a
    resolution can be applied before it is persisted.
    """
    catalog = _read("shift catalog", resolve_shift_catalog, employee_id, attendance_date)
    punches = _read("punch", get_all_punches_for_day, employee_id, attendance_date, config.overnight_lookahead_hours)
    od_intervals = _read("on-duty", get_approved_od_intervals, employee_id, attendance_date)
    if review is None:
        review = _read("confused shift", get_confused_shift_by_key, employee_id, attendance_date)

    def reviewed_match(segment: WorkSegment) -> Optional[MatchResult]:
        if not confused_shift.applies_to(review, segment) or review.status != ConfusedShiftStatus.RESOLVED:
            return None
        shift = _read("shift catalog", get_shift, review.assigned_shift_id)
        if shift is None:
            logging.warning(f"Resolved shift {review.assigned_shift_id} no longer exists for employee_id: {employee_id}")
            return None
        method = review.resolution_method or MatchMethod.MANUAL
        return assign_shift(shift, segment.in_time, segment.out_time, method, catalog.tier, config)

    def matched(segment: WorkSegment) -> MatchResult:
        return reviewed_match(segment) or match_shift(segment.in_time, segment.out_time, catalog, config)

    def shift_lookup(segment: WorkSegment):
        return matched(segment).shift

    segments = segment_punches(punches, attendance_date, config, shift_lookup=shift_lookup)

    processed: List[ProcessedSegment] = []
    escalations: List[ConfusedShiftRecord] = []
    for segment in segments:
        if segment.in_time is None:
            logging.warning(f"OUT without IN for employee_id: {employee_id} on {attendance_date}")
            processed.append(_to_processed(segment))
            continue

        if confused_shift.applies_to(review, segment) and review.status == ConfusedShiftStatus.DISMISSED:
            processed.append(_to_processed(segment))
            continue

        match = matched(segment)
        row = _to_processed(segment, match)

        if match.confused:
            if review is not None and confused_shift.is_terminal(review.status):
                logging.warning(
                    f"Segment {segment.segment_number} for employee_id: {employee_id} on {attendance_date} "
                    f"needs review but the day's confused shift is already {review.status.value}"
                )
            elif escalations:
                logging.warning(
                    f"Segment {segment.segment_number} for employee_id: {employee_id} on {attendance_date} "
                    f"waits for segment {escalations[0].segment_number} to be reviewed"
                )
                row.pending_review = True
            else:
                escalations.append(confused_shift.build_confused_record(employee_id, attendance_date, segment, match))
                row.pending_review = True
        elif not match.success:
            logging.info(f"{match.message} for employee_id: {employee_id} on {attendance_date}")

        processed.append(apply_on_duty(row, od_intervals))

    return aggregate_day(employee_id, attendance_date, processed, catalog.tier), escalations


def _commit(aggregate: DailyAttendanceAggregate, escalations: List[ConfusedShiftRecord]) -> None:
    with atomic_write():
        for record in escalations:
            current = get_confused_shift_by_key(record.employee_id, record.date)
            if current is not None and confused_shift.is_terminal(current.status):
                logging.warning(f"Confused shift for employee_id: {record.employee_id} on {record.date} is already {current.status.value}")
                continue
            upsert_confused_shift(confused_shift.escalate(current, record))
        upsert_daily_attendance(aggregate)


def process_attendance_for_day(
    employee_id: int,
    attendance_date: date,
    config: Optional[ProcessingConfig] = None,
) -> DailyAttendanceAggregate:
    """
    Recompute and store the attendance record for one employee and date.

    Raises SourceReadError when any source read fails; nothing is written then.
    """
    try:
        config = config or load_processing_config()
        aggregate, escalations = _compute_day(employee_id, attendance_date, config)
    except SourceReadError as exc:
        logging.error(f"Aborting attendance for employee_id: {employee_id} on {attendance_date}: {exc}")
        raise

    _commit(aggregate, escalations)
    for record in escalations:
        logging.warning(f"Confused shift recorded for employee_id: {employee_id} on {attendance_date}: {record.message}")
    logging.info(
        f"Attendance for employee_id: {employee_id} on {attendance_date}: "
        f"{aggregate.status.value}, {aggregate.total_shifts} shift(s), {aggregate.total_working_hours}h"
    )
    return aggregate


def reprocess_after_punch(punch: Punch, config: Optional[ProcessingConfig] = None) -> List[DailyAttendanceAggregate]:
    config = config or load_processing_config()
    return [
        process_attendance_for_day(punch.employee_id, day, config)
        for day in affected_dates(punch.timestamp, config.overnight_lookahead_hours)
    ]


def process_attendance_batch(
    keys: Iterable[Tuple[int, date]],
    config: Optional[ProcessingConfig] = None,
) -> Dict:
    stats = {
        "units_processed": 0,
        "segments_processed": 0,
        "escalated": 0,
        "failed": 0,
        "retryable": [],
        "errors": [],
    }
    for employee_id, attendance_date in keys:
        try:
            aggregate = process_attendance_for_day(employee_id, attendance_date, config)
        except AttendanceError as exc:
            stats["failed"] += 1
            stats["errors"].append(f"{employee_id} on {attendance_date}: {exc}")
            if exc.retryable:
                stats["retryable"].append((employee_id, attendance_date))
            continue

        stats["units_processed"] += 1
        stats["segments_processed"] += aggregate.total_shifts
        if aggregate.pending_review:
            stats["escalated"] += 1

    logging.info(f"Batch processed {stats['units_processed']} unit(s), {stats['failed']} failed")
    return stats


# Manual review

def _get_pending(confused_shift_id: int) -> ConfusedShiftRecord:
    record = get_confused_shift(confused_shift_id)
    if record is None:
        raise NotFoundError(f"Confused shift {confused_shift_id} not found")
    if record.status != ConfusedShiftStatus.PENDING:
        raise InvalidStateError(f"Confused shift {confused_shift_id} is already {record.status.value}")
    return record


def _apply_review(record: ConfusedShiftRecord, config: Optional[ProcessingConfig]) -> ResolutionResult:
    config = config or load_processing_config()
    aggregate, escalations = _compute_day(record.employee_id, record.date, config, review=record)

    with atomic_write():
        current = get_confused_shift(record.id)
        if current is None or current.status != ConfusedShiftStatus.PENDING:
            raise InvalidStateError(f"Confused shift {record.id} changed while being reviewed")
        record = upsert_confused_shift(record)
        _commit(aggregate, escalations)

    return ResolutionResult(confused_shift=record, daily_record=aggregate)


def resolve_confused_shift(
    confused_shift_id: int,
    chosen_shift_id: int,
    reviewer: str,
    comments: Optional[str] = None,
    config: Optional[ProcessingConfig] = None,
) -> ResolutionResult:
    record = _get_pending(confused_shift_id)
    shift = get_shift(chosen_shift_id)
    if shift is None:
        raise NotFoundError(f"Shift {chosen_shift_id} not found")

    resolved = confused_shift.resolve(record, shift.id, MatchMethod.MANUAL, reviewer, comments)
    result = _apply_review(resolved, config)
    logging.info(f"Confused shift {confused_shift_id} resolved to shift {shift.name} by {reviewer}")
    return result


def auto_assign_confused_shift(
    confused_shift_id: int,
    reviewer: Optional[str] = None,
    config: Optional[ProcessingConfig] = None,
) -> ResolutionResult:
    record = _get_pending(confused_shift_id)
    config = config or load_processing_config()
    catalog = _read("shift catalog", resolve_shift_catalog, record.employee_id, record.date)

    match = auto_assign_nearest_shift(record.in_time, record.out_time, catalog, config)
    if not match.success:
        raise NotFoundError(match.message)

    resolved = confused_shift.resolve(
        record, match.shift.id, MatchMethod.AUTO_NEAREST, reviewer, "Auto-assigned nearest shift"
    )
    result = _apply_review(resolved, config)
    logging.info(f"Confused shift {confused_shift_id} auto-assigned to shift {match.shift.name}")
    return result


def auto_assign_all_confused_shifts(reviewer: Optional[str] = None) -> Dict:
    stats = {"processed": 0, "assigned": 0, "failed": 0, "errors": []}
    for record in list_confused_shifts(ConfusedShiftStatus.PENDING):
        stats["processed"] += 1
        try:
            auto_assign_confused_shift(record.id, reviewer)
        except AttendanceError as exc:
            stats["failed"] += 1
            stats["errors"].append(f"{record.employee_id} on {record.date}: {exc}")
            continue
        stats["assigned"] += 1

    logging.info(f"Processed {stats['processed']} records: {stats['assigned']} assigned, {stats['failed']} failed")
    return stats


def dismiss_confused_shift(
    confused_shift_id: int,
    reviewer: str,
    comments: Optional[str] = None,
    config: Optional[ProcessingConfig] = None,
) -> ResolutionResult:
    record = _get_pending(confused_shift_id)
    result = _apply_review(confused_shift.dismiss(record, reviewer, comments), config)
    logging.info(f"Confused shift {confused_shift_id} dismissed by {reviewer}")
    return result


def get_confused_shift_stats() -> Dict:
    records = list_confused_shifts()
    stats = {status.value: 0 for status in ConfusedShiftStatus}
    for record in records:
        stats[record.status.value] += 1
    stats["total"] = len(records)
    return stats
