"""
Confused shift lifecycle.

pending -> resolved (manual pick or auto-nearest)
pending -> dismissed
Both resolved and dismissed are terminal.
"""
from datetime import date, datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from models.schema import (
    ConfusedShiftRecord,
    ConfusedShiftStatus,
    MatchMethod,
    MatchResult,
    PossibleShift,
    WorkSegment,
)
from utils.exceptions import InvalidStateError


class ConfusedShiftEvent(str, Enum):
    ESCALATE = "escalate"
    RESOLVE = "resolve"
    DISMISS = "dismiss"


TRANSITIONS: Dict[Tuple[ConfusedShiftStatus, ConfusedShiftEvent], ConfusedShiftStatus] = {
    (ConfusedShiftStatus.PENDING, ConfusedShiftEvent.ESCALATE): ConfusedShiftStatus.PENDING,
    (ConfusedShiftStatus.PENDING, ConfusedShiftEvent.RESOLVE): ConfusedShiftStatus.RESOLVED,
    (ConfusedShiftStatus.PENDING, ConfusedShiftEvent.DISMISS): ConfusedShiftStatus.DISMISSED,
}


def is_terminal(status: ConfusedShiftStatus) -> bool:
    return status in (ConfusedShiftStatus.RESOLVED, ConfusedShiftStatus.DISMISSED)


def transition(status: ConfusedShiftStatus, event: ConfusedShiftEvent) -> ConfusedShiftStatus:
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidStateError(f"Cannot {event.value} a confused shift that is {status.value}")


def build_confused_record(
    employee_id: int,
    attendance_date: date,
    segment: WorkSegment,
    match: MatchResult,
) -> ConfusedShiftRecord:
    return ConfusedShiftRecord(
        employee_id=employee_id,
        date=attendance_date,
        segment_number=segment.segment_number,
        in_time=segment.in_time,
        out_time=segment.out_time,
        possible_shifts=[
            PossibleShift(
                shift_id=c.shift.id,
                shift_name=c.shift.name,
                start_time=c.shift.start_time,
                end_time=c.shift.end_time,
                match_reason=c.match_reason,
            )
            for c in match.candidates
        ],
        message=match.message,
    )


def escalate(existing: Optional[ConfusedShiftRecord], record: ConfusedShiftRecord) -> ConfusedShiftRecord:
    """Refresh a pending record with a new escalation; raises on terminal records."""
    if existing is None:
        return record
    transition(existing.status, ConfusedShiftEvent.ESCALATE)
    return record.model_copy(update={"id": existing.id})


def resolve(
    record: ConfusedShiftRecord,
    shift_id: int,
    method: MatchMethod,
    reviewer: Optional[str] = None,
    comments: Optional[str] = None,
    reviewed_at: Optional[datetime] = None,
) -> ConfusedShiftRecord:
    status = transition(record.status, ConfusedShiftEvent.RESOLVE)
    return record.model_copy(update={
        "status": status,
        "assigned_shift_id": shift_id,
        "resolution_method": method,
        "requires_manual_selection": False,
        "reviewed_by": reviewer,
        "reviewed_at": reviewed_at or datetime.now(),
        "review_comments": comments,
    })


def dismiss(
    record: ConfusedShiftRecord,
    reviewer: Optional[str] = None,
    comments: Optional[str] = None,
    reviewed_at: Optional[datetime] = None,
) -> ConfusedShiftRecord:
    status = transition(record.status, ConfusedShiftEvent.DISMISS)
    return record.model_copy(update={
        "status": status,
        "requires_manual_selection": False,
        "reviewed_by": reviewer,
        "reviewed_at": reviewed_at or datetime.now(),
        "review_comments": comments,
    })


def applies_to(record: Optional[ConfusedShiftRecord], segment: WorkSegment) -> bool:
    return (
        record is not None
        and record.segment_number == segment.segment_number
        and record.in_time == segment.in_time
    )
