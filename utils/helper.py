import threading
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Optional, List, Dict, Tuple

from models.schema import (
    AttendanceSettings,
    ConfusedShiftRecord,
    ConfusedShiftStatus,
    DailyAttendanceAggregate,
    Department,
    Designation,
    Employee,
    OnDutyInterval,
    PreScheduledShift,
    Punch,
    ShiftDefinition,
)

# Mock reference data and stores
mock_employees: List[Employee] = []
mock_shifts: List[ShiftDefinition] = []
mock_designations: List[Designation] = []
mock_departments: List[Department] = []
mock_pre_scheduled_shifts: List[PreScheduledShift] = []

mock_punches: List[Punch] = []
mock_od_intervals: List[OnDutyInterval] = []
mock_attendance_settings: Dict[str, AttendanceSettings] = {"current": AttendanceSettings()}

daily_attendance: Dict[Tuple[int, date], DailyAttendanceAggregate] = {}
confused_shifts: Dict[Tuple[int, date], ConfusedShiftRecord] = {}

_store_lock = threading.RLock()
_confused_shift_ids = {"next": 1}


def _seed_reference_data() -> None:
    mock_employees[:] = [
        Employee(id=1, badge_id="123456", is_active=True, department_id=1),
    ]
    mock_shifts[:] = [
        ShiftDefinition(id=1, name="General", start_time=time(9, 0), end_time=time(18, 0), duration=9, grace_period=15),
    ]
    mock_designations[:] = []
    mock_departments[:] = [
        Department(id=1, name="Operations", shift_ids=[1]),
    ]


_seed_reference_data()


@contextmanager
def atomic_write():
    """Hold the store lock for a group of upserts belonging to one unit."""
    with _store_lock:
        yield


def reset_stores() -> None:
    with _store_lock:
        _seed_reference_data()
        mock_pre_scheduled_shifts.clear()
        mock_punches.clear()
        mock_od_intervals.clear()
        daily_attendance.clear()
        confused_shifts.clear()
        mock_attendance_settings["current"] = AttendanceSettings()
        _confused_shift_ids["next"] = 1


# Reference reads

def get_employee(employee_id: int) -> Optional[Employee]:
    for emp in mock_employees:
        if emp.id == employee_id:
            return emp
    return None


def get_employee_by_badge(badge_id: str) -> Optional[Employee]:
    for emp in mock_employees:
        if emp.badge_id == badge_id:
            return emp
    return None


def get_active_employees() -> List[Employee]:
    return [emp for emp in mock_employees if emp.is_active]


def get_shift(shift_id: int) -> Optional[ShiftDefinition]:
    for shift in mock_shifts:
        if shift.id == shift_id:
            return shift
    return None


def get_active_shifts(shift_ids: Optional[List[int]] = None) -> List[ShiftDefinition]:
    shifts = [s for s in mock_shifts if s.is_active]
    if shift_ids is not None:
        shifts = [s for s in shifts if s.id in shift_ids]
    return shifts


def get_designation(designation_id: Optional[int]) -> Optional[Designation]:
    for designation in mock_designations:
        if designation.id == designation_id:
            return designation
    return None


def get_department(department_id: Optional[int]) -> Optional[Department]:
    for department in mock_departments:
        if department.id == department_id:
            return department
    return None


def get_pre_scheduled_shift(employee_id: int, shift_date: date) -> Optional[PreScheduledShift]:
    for entry in mock_pre_scheduled_shifts:
        if entry.employee_id == employee_id and entry.date == shift_date:
            return entry
    return None


def get_attendance_settings() -> AttendanceSettings:
    return mock_attendance_settings["current"]


def set_attendance_settings(attendance_settings: AttendanceSettings) -> None:
    mock_attendance_settings["current"] = attendance_settings


# Punches & OD

def insert_punch(punch: Punch) -> None:
    with _store_lock:
        mock_punches.append(punch)


def get_punches_in_window(employee_id: int, start: datetime, end: datetime) -> List[Punch]:
    return sorted([
        p for p in mock_punches if p.employee_id == employee_id and start <= p.timestamp < end
    ], key=lambda p: p.timestamp)


def get_all_punches_for_day(employee_id: int, punch_date: date, lookahead_hours: int = 0) -> List[Punch]:
    start = datetime.combine(punch_date, time(0, 0))
    end = start + timedelta(days=1, hours=lookahead_hours)
    return get_punches_in_window(employee_id, start, end)


def get_approved_od_intervals(employee_id: int, od_date: date) -> List[OnDutyInterval]:
    return [
        od for od in mock_od_intervals
        if od.employee_id == employee_id and od.date == od_date and od.approved
    ]


# Aggregates

def get_daily_attendance(employee_id: int, attendance_date: date) -> Optional[DailyAttendanceAggregate]:
    return daily_attendance.get((employee_id, attendance_date))


def upsert_daily_attendance(aggregate: DailyAttendanceAggregate) -> DailyAttendanceAggregate:
    with _store_lock:
        daily_attendance[(aggregate.employee_id, aggregate.date)] = aggregate
    return aggregate


# Confused shifts

def get_confused_shift(confused_shift_id: int) -> Optional[ConfusedShiftRecord]:
    for record in confused_shifts.values():
        if record.id == confused_shift_id:
            return record
    return None


def get_confused_shift_by_key(employee_id: int, shift_date: date) -> Optional[ConfusedShiftRecord]:
    return confused_shifts.get((employee_id, shift_date))


def list_confused_shifts(status: Optional[ConfusedShiftStatus] = None) -> List[ConfusedShiftRecord]:
    records = sorted(confused_shifts.values(), key=lambda r: r.id or 0)
    if status is not None:
        records = [r for r in records if r.status == status]
    return records


def upsert_confused_shift(record: ConfusedShiftRecord) -> ConfusedShiftRecord:
    """Insert or replace the record for (employee_id, date), keeping its id."""
    with _store_lock:
        key = (record.employee_id, record.date)
        existing = confused_shifts.get(key)
        if existing is not None:
            record = record.model_copy(update={"id": existing.id})
        elif record.id is None:
            record = record.model_copy(update={"id": _confused_shift_ids["next"]})
            _confused_shift_ids["next"] += 1
        confused_shifts[key] = record
    return record
