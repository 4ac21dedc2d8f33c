from datetime import datetime
from typing import Optional, Tuple

from models.schema import ShiftDefinition
from shift_engine.time_rules import shift_bounds, whole_minutes

DEFAULT_GRACE_MINUTES = 15


def resolve_grace(global_override: Optional[int], shift_grace: Optional[int], default: int = DEFAULT_GRACE_MINUTES) -> int:
    """Global override, then the shift's own grace, then the default."""
    if global_override is not None:
        return global_override
    if shift_grace is not None:
        return shift_grace
    return default


def calculate_late_in(in_time: datetime, shift: ShiftDefinition, grace_minutes: int) -> int:
    shift_start, _ = shift_bounds(in_time, shift.start_time, shift.end_time)
    return max(0, whole_minutes(shift_start, in_time) - grace_minutes)


def calculate_early_out(
    out_time: Optional[datetime],
    in_time: datetime,
    shift: ShiftDefinition,
    grace_minutes: int,
) -> Optional[int]:
    """Minutes left before the shift end, less grace. None without an out-time."""
    if out_time is None:
        return None
    _, shift_end = shift_bounds(in_time, shift.start_time, shift.end_time)
    return max(0, whole_minutes(out_time, shift_end) - grace_minutes)


def calculate_late_early(
    in_time: datetime,
    out_time: Optional[datetime],
    shift: ShiftDefinition,
    late_in_grace: Optional[int] = None,
    early_out_grace: Optional[int] = None,
    default_grace: int = DEFAULT_GRACE_MINUTES,
) -> Tuple[int, Optional[int]]:
    late_grace = resolve_grace(late_in_grace, shift.grace_period, default_grace)
    early_grace = resolve_grace(early_out_grace, shift.grace_period, default_grace)
    return (
        calculate_late_in(in_time, shift, late_grace),
        calculate_early_out(out_time, in_time, shift, early_grace),
    )
