from datetime import datetime, time, date
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field


class PunchDirection(str, Enum):
    IN = "IN"
    OUT = "OUT"


class CatalogTier(str, Enum):
    PRE_SCHEDULED = "pre_scheduled"
    DESIGNATION = "designation"
    DEPARTMENT = "department"
    GENERAL = "general"
    NONE = "none"


class SegmentStatus(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


class MatchMethod(str, Enum):
    PRE_SCHEDULED = "pre_scheduled"
    SINGLE = "proximity_single"
    NEAREST_FALLBACK = "nearest_fallback"
    PROXIMITY_CLOSEST = "proximity_closest"
    OUTTIME_DISAMBIGUATED = "outtime_disambiguated"
    MANUAL = "manual"
    AUTO_NEAREST = "auto_nearest"


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    PARTIAL = "PARTIAL"
    HALF_DAY = "HALF_DAY"
    ABSENT = "ABSENT"


class ConfusedShiftStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ODType(str, Enum):
    HOURS = "hours"
    HALF_DAY = "half_day"
    FULL_DAY = "full_day"


class ODHalf(str, Enum):
    FIRST = "first"
    SECOND = "second"


# Reference data

class Employee(BaseModel):
    id: int
    badge_id: str
    is_active: bool = True
    department_id: Optional[int] = None
    designation_id: Optional[int] = None


class ShiftDefinition(BaseModel):
    id: int
    name: str
    start_time: time
    end_time: time
    duration: float
    grace_period: Optional[int] = None
    is_active: bool = True

    @property
    def is_overnight(self) -> bool:
        return self.end_time < self.start_time


class Designation(BaseModel):
    id: int
    name: str
    shift_ids: List[int] = Field(default_factory=list)


class Department(BaseModel):
    id: int
    name: str
    shift_ids: List[int] = Field(default_factory=list)


class PreScheduledShift(BaseModel):
    id: int
    employee_id: int
    date: date
    shift_id: int


class AttendanceSettings(BaseModel):
    """Externally managed numeric settings. Any value may be missing."""
    late_in_grace: Optional[int] = None
    early_out_grace: Optional[int] = None
    duplicate_in_grace: Optional[int] = None
    proximity_tolerance: Optional[int] = None
    ambiguity_threshold: Optional[int] = None
    out_time_tolerance: Optional[int] = None
    max_shifts_per_day: Optional[int] = None


class OnDutyInterval(BaseModel):
    id: int
    employee_id: int
    date: date
    od_type: ODType = ODType.HOURS
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    half: Optional[ODHalf] = None
    approved: bool = False


# Punch processing

class Punch(BaseModel):
    employee_id: int
    timestamp: datetime
    direction: PunchDirection
    source: str = "biometric"


class ShiftCatalogResult(BaseModel):
    shifts: List[ShiftDefinition] = Field(default_factory=list)
    tier: CatalogTier = CatalogTier.NONE
    pre_scheduled_id: Optional[int] = None


class WorkSegment(BaseModel):
    segment_number: int
    in_time: Optional[datetime] = None
    out_time: Optional[datetime] = None
    punch_hours: float = 0.0
    status: SegmentStatus = SegmentStatus.INCOMPLETE


class ShiftCandidate(BaseModel):
    shift: ShiftDefinition
    difference_minutes: float
    is_start_before_log: bool = False
    is_preferred: bool = False
    match_reason: str = ""


class MatchResult(BaseModel):
    success: bool
    confused: bool = False
    message: Optional[str] = None
    shift: Optional[ShiftDefinition] = None
    method: Optional[MatchMethod] = None
    source: CatalogTier = CatalogTier.NONE
    late_in_minutes: Optional[int] = None
    early_out_minutes: Optional[int] = None
    is_late_in: bool = False
    is_early_out: bool = False
    expected_hours: Optional[float] = None
    candidates: List[ShiftCandidate] = Field(default_factory=list)

    @property
    def assigned_shift_id(self) -> Optional[int]:
        return self.shift.id if self.shift else None


class ProcessedSegment(BaseModel):
    segment_number: int
    in_time: Optional[datetime] = None
    out_time: Optional[datetime] = None
    status: SegmentStatus = SegmentStatus.INCOMPLETE
    punch_hours: float = 0.0
    shift_id: Optional[int] = None
    shift_name: Optional[str] = None
    shift_start_time: Optional[time] = None
    shift_end_time: Optional[time] = None
    match_method: Optional[MatchMethod] = None
    late_in_minutes: Optional[int] = None
    early_out_minutes: Optional[int] = None
    is_late_in: bool = False
    is_early_out: bool = False
    late_in_waived: bool = False
    early_out_waived: bool = False
    expected_hours: Optional[float] = None
    od_hours: float = 0.0
    working_hours: float = 0.0
    extra_hours: float = 0.0
    classification: Optional[AttendanceStatus] = None
    payable_shift: float = 0.0
    pending_review: bool = False


class DailyAttendanceAggregate(BaseModel):
    employee_id: int
    date: date
    segments: List[ProcessedSegment] = Field(default_factory=list)
    total_shifts: int = 0
    total_working_hours: float = 0.0
    total_ot_hours: float = 0.0
    total_od_hours: float = 0.0
    total_payable_shifts: float = 0.0
    first_in_time: Optional[datetime] = None
    last_out_time: Optional[datetime] = None
    status: AttendanceStatus = AttendanceStatus.ABSENT
    pending_review: bool = False
    catalog_tier: CatalogTier = CatalogTier.NONE


class PossibleShift(BaseModel):
    shift_id: int
    shift_name: str
    start_time: time
    end_time: time
    match_reason: str = ""


class ConfusedShiftRecord(BaseModel):
    id: Optional[int] = None
    employee_id: int
    date: date
    segment_number: int = 1
    in_time: datetime
    out_time: Optional[datetime] = None
    possible_shifts: List[PossibleShift] = Field(default_factory=list)
    message: Optional[str] = None
    requires_manual_selection: bool = True
    status: ConfusedShiftStatus = ConfusedShiftStatus.PENDING
    assigned_shift_id: Optional[int] = None
    resolution_method: Optional[MatchMethod] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_comments: Optional[str] = None


class ResolutionResult(BaseModel):
    confused_shift: ConfusedShiftRecord
    daily_record: DailyAttendanceAggregate
