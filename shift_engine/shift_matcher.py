"""
Shift matching by arrival proximity.

Always match the closest shift unless the arrival is ambiguous; ambiguous arrivals
are disambiguated with the out-time when possible and escalated for review otherwise.
"""
import logging
from datetime import datetime
from typing import List, Optional

from models.schema import (
    CatalogTier,
    MatchMethod,
    MatchResult,
    ShiftCandidate,
    ShiftCatalogResult,
    ShiftDefinition,
)
from shift_engine.late_early import calculate_late_early
from shift_engine.time_rules import (
    MINUTES_PER_DAY,
    HALF_DAY_MINUTES,
    minutes_between,
    nearest_occurrence,
    shift_bounds,
    to_minutes,
    wrap_minutes,
)
from utils.config import ProcessingConfig

IN_TIME_WEIGHT = 0.6
OUT_TIME_WEIGHT = 0.4


def calculate_time_difference(in_time: datetime, start_time) -> float:
    """
    Minutes between an arrival and the nearest instance of a shift start,
    which may fall on the previous or next date.
    """
    return abs(minutes_between(nearest_occurrence(in_time, start_time), in_time))


def build_candidate(in_time: datetime, shift: ShiftDefinition, preferred_max_difference: int) -> ShiftCandidate:
    difference = calculate_time_difference(in_time, shift.start_time)
    start_before_log = nearest_occurrence(in_time, shift.start_time) <= in_time
    return ShiftCandidate(
        shift=shift,
        difference_minutes=difference,
        is_start_before_log=start_before_log,
        is_preferred=start_before_log and difference <= preferred_max_difference,
        match_reason=(
            f"In-time {in_time:%H:%M} is {difference:.1f} minutes from shift "
            f"{shift.name} start ({shift.start_time:%H:%M})"
        ),
    )


def find_candidate_shifts(
    in_time: datetime,
    shifts: List[ShiftDefinition],
    tolerance_minutes: int = 180,
    preferred_max_difference: int = 35,
) -> List[ShiftCandidate]:
    """Candidates within tolerance, closest first."""
    candidates = [
        build_candidate(in_time, shift, preferred_max_difference) for shift in shifts
    ]
    candidates = [c for c in candidates if c.difference_minutes <= tolerance_minutes]
    return sorted(candidates, key=lambda c: c.difference_minutes)


def rank_candidates(candidates: List[ShiftCandidate]) -> List[ShiftCandidate]:
    """Preferred shifts first, then by distance."""
    return sorted(candidates, key=lambda c: (not c.is_preferred, c.difference_minutes))


def find_nearest_shift(in_time: datetime, shifts: List[ShiftDefinition]) -> Optional[ShiftCandidate]:
    nearest = None
    for shift in shifts:
        candidate = build_candidate(in_time, shift, 0)
        if nearest is None or candidate.difference_minutes < nearest.difference_minutes:
            nearest = candidate
    return nearest


def is_ambiguous_arrival(in_time: datetime, candidates: List[ShiftCandidate], threshold_minutes: int = 30) -> bool:
    """
    True when the two closest candidates cannot be told apart by arrival alone.

    ``candidates`` must be sorted by distance.
    """
    if len(candidates) <= 1:
        return False

    top, second = candidates[0], candidates[1]
    if abs(second.difference_minutes - top.difference_minutes) < threshold_minutes:
        return True

    # e.g. 08:40 arrival between 08:00 and 09:00 shifts
    in_minutes = to_minutes(in_time)
    first_start = to_minutes(top.shift.start_time)
    second_start = to_minutes(second.shift.start_time)
    lower, upper = min(first_start, second_start), max(first_start, second_start)

    if upper - lower > HALF_DAY_MINUTES:
        to_lower = min(abs(in_minutes - lower), MINUTES_PER_DAY - abs(in_minutes - lower))
        to_upper = min(abs(in_minutes - upper), MINUTES_PER_DAY - abs(in_minutes - upper))
        return abs(to_lower - to_upper) < threshold_minutes

    if lower < in_minutes < upper:
        return abs((in_minutes - lower) - (upper - in_minutes)) < threshold_minutes

    return False


def disambiguate_with_out_time(
    in_time: datetime,
    out_time: Optional[datetime],
    candidates: List[ShiftCandidate],
    tolerance_minutes: int = 60,
) -> Optional[ShiftCandidate]:
    """
    Pick the candidate whose start and end best fit the whole segment.

    Scores are weighted 60% arrival / 40% departure distance; the best must beat
    the runner-up by more than half the tolerance.
    """
    if out_time is None or not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]

    scored = []
    for candidate in candidates:
        _, shift_end = shift_bounds(in_time, candidate.shift.start_time, candidate.shift.end_time)
        out_score = abs(minutes_between(shift_end, out_time))
        score = candidate.difference_minutes * IN_TIME_WEIGHT + out_score * OUT_TIME_WEIGHT
        scored.append((score, candidate))

    scored.sort(key=lambda item: item[0])
    (top_score, best), (second_score, _) = scored[0], scored[1]
    if second_score - top_score > tolerance_minutes * 0.5:
        return best
    return None


def assign_shift(
    shift: ShiftDefinition,
    in_time: datetime,
    out_time: Optional[datetime],
    method: MatchMethod,
    source: CatalogTier,
    config: ProcessingConfig,
) -> MatchResult:
    late_in, early_out = calculate_late_early(
        in_time,
        out_time,
        shift,
        late_in_grace=config.late_in_grace,
        early_out_grace=config.early_out_grace,
        default_grace=config.default_grace,
    )
    return MatchResult(
        success=True,
        shift=shift,
        method=method,
        source=source,
        late_in_minutes=late_in,
        early_out_minutes=early_out,
        is_late_in=late_in > 0,
        is_early_out=bool(early_out),
        expected_hours=shift.duration,
    )


def _escalate(message: str, candidates: List[ShiftCandidate], source: CatalogTier) -> MatchResult:
    return MatchResult(success=False, confused=True, message=message, candidates=candidates, source=source)


def match_shift(
    in_time: Optional[datetime],
    out_time: Optional[datetime],
    catalog: ShiftCatalogResult,
    config: ProcessingConfig,
) -> MatchResult:
    """
    Assign a segment to one of the catalog's shifts.

    Returns:
        MatchResult with success=True and late/early metrics, or
        confused=True with the candidate list when the segment needs review, or
        success=False, confused=False when there is nothing to match against.
    """
    if in_time is None:
        return MatchResult(success=False, message="In-time is required for shift detection")

    shifts = catalog.shifts
    source = catalog.tier
    if not shifts:
        return MatchResult(success=False, message="No shifts available", source=source)

    if source == CatalogTier.PRE_SCHEDULED and len(shifts) == 1:
        return assign_shift(shifts[0], in_time, out_time, MatchMethod.PRE_SCHEDULED, source, config)

    candidates = find_candidate_shifts(
        in_time, shifts, config.proximity_tolerance, config.preferred_max_difference
    )

    if not candidates:
        nearest = find_nearest_shift(in_time, shifts)
        return assign_shift(nearest.shift, in_time, out_time, MatchMethod.NEAREST_FALLBACK, source, config)

    if len(candidates) == 1:
        return assign_shift(candidates[0].shift, in_time, out_time, MatchMethod.SINGLE, source, config)

    same_start = all(c.shift.start_time == candidates[0].shift.start_time for c in candidates)
    if same_start or is_ambiguous_arrival(in_time, candidates, config.ambiguity_threshold):
        best = disambiguate_with_out_time(in_time, out_time, candidates, config.out_time_tolerance)
        if best is not None:
            return assign_shift(best.shift, in_time, out_time, MatchMethod.OUTTIME_DISAMBIGUATED, source, config)

        kind = "Multiple shifts with same start time" if same_start else "Ambiguous arrival time"
        if out_time is None:
            message = f"{kind} - out-time needed to distinguish"
        else:
            message = f"{kind} - out-time did not help distinguish"
        logging.warning(f"{message} (in-time {in_time})")
        return _escalate(message, candidates, source)

    best = rank_candidates(candidates)[0]
    return assign_shift(best.shift, in_time, out_time, MatchMethod.PROXIMITY_CLOSEST, source, config)


def auto_assign_nearest_shift(
    in_time: datetime,
    out_time: Optional[datetime],
    catalog: ShiftCatalogResult,
    config: ProcessingConfig,
) -> MatchResult:
    """Pick the shift whose start time-of-day is closest to the arrival."""
    if not catalog.shifts:
        return MatchResult(success=False, message="No shifts available for auto-assignment", source=catalog.tier)

    in_minutes = to_minutes(in_time)
    nearest = min(
        catalog.shifts,
        key=lambda s: wrap_minutes(abs(in_minutes - to_minutes(s.start_time))),
    )
    return assign_shift(nearest, in_time, out_time, MatchMethod.AUTO_NEAREST, catalog.tier, config)
