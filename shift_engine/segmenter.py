import logging
from datetime import date
from typing import Callable, List, Optional

from models.schema import Punch, PunchDirection, SegmentStatus, ShiftDefinition, WorkSegment
from shift_engine.punch_filter import InPunchAction, evaluate_in_punch
from shift_engine.time_rules import MORNING_CUTOFF_HOUR, hours_between
from utils.config import ProcessingConfig

ShiftLookup = Callable[[WorkSegment], Optional[ShiftDefinition]]


def _close(segment: WorkSegment, out_time) -> WorkSegment:
    return segment.model_copy(update={
        "out_time": out_time,
        "punch_hours": hours_between(segment.in_time, out_time),
        "status": SegmentStatus.COMPLETE,
    })


def segment_punches(
    punches: List[Punch],
    attendance_date: date,
    config: ProcessingConfig,
    shift_lookup: Optional[ShiftLookup] = None,
) -> List[WorkSegment]:
    """
    Turn a day's punches into ordered work segments.

    Punches must be sorted. OUT punches on the following date may close an open
    overnight segment; the first IN dated on the following date ends the day.
    ``shift_lookup`` returns the shift matched to an open segment so repeated INs
    can be judged against its end time.
    """
    segments: List[WorkSegment] = []
    open_segment: Optional[WorkSegment] = None

    def start(in_time) -> Optional[WorkSegment]:
        if len(segments) >= config.max_shifts_per_day:
            logging.warning(f"Max {config.max_shifts_per_day} shifts reached on {attendance_date}, ignoring IN at {in_time}")
            return None
        return WorkSegment(segment_number=len(segments) + 1, in_time=in_time)

    for punch in punches:
        on_day = punch.timestamp.date() == attendance_date

        if punch.direction == PunchDirection.IN:
            if not on_day:
                break

            if open_segment is None:
                previous = segments[-1] if segments else None
                decision = evaluate_in_punch(
                    punch.timestamp,
                    previous.in_time if previous else None,
                    True,
                    None,
                    config.duplicate_in_grace,
                    config.new_shift_gap,
                )
            else:
                assigned = shift_lookup(open_segment) if shift_lookup else None
                decision = evaluate_in_punch(
                    punch.timestamp,
                    open_segment.in_time,
                    False,
                    assigned,
                    config.duplicate_in_grace,
                    config.new_shift_gap,
                )

            action = decision.action
            if action == InPunchAction.IGNORE:
                logging.info(f"Ignoring IN at {punch.timestamp} for employee_id: {punch.employee_id}: {decision.reason}")
                continue

            if action == InPunchAction.CONVERT_TO_OUT:
                segments[-1] = _close(open_segment, punch.timestamp)
                open_segment = None
                continue

            if action == InPunchAction.AUTO_CLOSE_AND_NEW_SHIFT:
                segments[-1] = _close(open_segment, punch.timestamp)
            elif open_segment is not None:
                logging.warning(f"Missing OUT punch for employee_id: {punch.employee_id}, dropping IN at {open_segment.in_time}")
                segments.pop()

            open_segment = start(punch.timestamp)
            if open_segment is not None:
                segments.append(open_segment)
            continue

        # OUT punch
        if open_segment is not None:
            segments[-1] = _close(open_segment, punch.timestamp)
            open_segment = None
            continue

        if not on_day:
            break

        if segments:
            logging.warning(f"Duplicate OUT-type punch for employee_id: {punch.employee_id} at {punch.timestamp}")
        elif punch.timestamp.hour < MORNING_CUTOFF_HOUR:
            logging.info(f"Skipping OUT at {punch.timestamp}, belongs to the previous day")
        else:
            segments.append(WorkSegment(
                segment_number=1,
                out_time=punch.timestamp,
                status=SegmentStatus.INCOMPLETE,
            ))

    return segments
