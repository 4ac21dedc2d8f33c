"""
Duplicate IN detection.

Decides what a repeated IN punch means for the day's last segment: a new session,
the OUT of the open session, an auto-close plus new session, or noise.
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from models.schema import ShiftDefinition
from shift_engine.time_rules import minutes_between, shift_bounds


class InPunchAction(str, Enum):
    NEW_SHIFT = "NEW_SHIFT"
    IGNORE = "IGNORE"
    CONVERT_TO_OUT = "CONVERT_TO_OUT"
    AUTO_CLOSE_AND_NEW_SHIFT = "AUTO_CLOSE_AND_NEW_SHIFT"


class InPunchDecision(BaseModel):
    action: InPunchAction
    reason: str


def _gap_rule(new_in: datetime, previous_in: datetime, gap_minutes: int, prefix: str = "") -> InPunchDecision:
    gap = minutes_between(previous_in, new_in)
    if gap >= gap_minutes:
        return InPunchDecision(
            action=InPunchAction.NEW_SHIFT,
            reason=f"{prefix}{gap:.0f} min gap from previous IN (>= {gap_minutes} min)",
        )
    return InPunchDecision(
        action=InPunchAction.IGNORE,
        reason=f"{prefix}{gap:.0f} min gap from previous IN (< {gap_minutes} min)",
    )


def evaluate_in_punch(
    new_in: datetime,
    previous_in: Optional[datetime],
    previous_has_out: bool,
    assigned_shift: Optional[ShiftDefinition],
    grace_minutes: int,
    gap_minutes: int = 60,
) -> InPunchDecision:
    """
    Classify an IN punch against the previous segment of the day.

    Args:
        new_in: Timestamp of the new IN punch
        previous_in: IN time of the day's last segment, None for the first punch
        previous_has_out: Whether that segment is already closed
        assigned_shift: Shift matched to the open segment, if any
        grace_minutes: Grace after shift end during which an IN counts as the OUT
        gap_minutes: Minimum IN-to-IN gap that starts a new session

    Returns:
        InPunchDecision
    """
    if previous_in is None:
        return InPunchDecision(action=InPunchAction.NEW_SHIFT, reason="First shift of the day")

    if previous_has_out:
        return _gap_rule(new_in, previous_in, gap_minutes)

    if assigned_shift is None:
        return _gap_rule(new_in, previous_in, gap_minutes, prefix="No assigned shift, ")

    _, shift_end = shift_bounds(previous_in, assigned_shift.start_time, assigned_shift.end_time)
    grace_end = shift_end + timedelta(minutes=grace_minutes)

    if new_in < shift_end:
        return InPunchDecision(
            action=InPunchAction.IGNORE,
            reason=f"Still within shift working hours (shift ends at {shift_end:%H:%M})",
        )
    if new_in <= grace_end:
        return InPunchDecision(
            action=InPunchAction.CONVERT_TO_OUT,
            reason=f"Within grace period after shift end ({grace_minutes} min)",
        )
    return InPunchDecision(
        action=InPunchAction.AUTO_CLOSE_AND_NEW_SHIFT,
        reason="Beyond grace period, auto-close previous shift",
    )
