import pytest
from datetime import datetime, timedelta, time, date

from main import (
    auto_assign_all_confused_shifts,
    auto_assign_confused_shift,
    dismiss_confused_shift,
    get_confused_shift_stats,
    process_attendance_batch,
    process_attendance_for_day,
    process_punch,
    reprocess_after_punch,
    resolve_confused_shift,
)
from models.schema import (
    AttendanceSettings,
    AttendanceStatus,
    ConfusedShiftStatus,
    Employee,
    MatchMethod,
    OnDutyInterval,
    Punch,
    PunchDirection,
    ShiftDefinition,
)
from utils import helper
from utils.exceptions import InvalidStateError, NotFoundError, SourceReadError

DAY = date(2025, 7, 21)
BADGE = "123456"

EARLY = ShiftDefinition(id=2, name="Early", start_time=time(8, 0), end_time=time(16, 0), duration=8, grace_period=15)
LATE = ShiftDefinition(id=3, name="Late", start_time=time(9, 0), end_time=time(17, 0), duration=8, grace_period=15)
NIGHT = ShiftDefinition(id=4, name="Night", start_time=time(22, 0), end_time=time(6, 0), duration=8, grace_period=15)


def setup_function():
    helper.reset_stores()


def at(hour, minute=0, days=0):
    return datetime.combine(DAY, time(hour, minute)) + timedelta(days=days)


def punch(hour, minute=0, direction=PunchDirection.IN, days=0):
    return process_punch(BADGE, at(hour, minute, days), direction)


def use_shifts(*shifts):
    helper.mock_shifts[:] = list(shifts)
    helper.mock_departments[0].shift_ids = [s.id for s in shifts]


def test_regular_in_and_out():
    punch_in = punch(9, 0)
    punch(18, 0, PunchDirection.OUT)

    assert punch_in is not None
    assert punch_in.direction == PunchDirection.IN

    record = process_attendance_for_day(punch_in.employee_id, DAY)
    assert record.total_shifts == 1
    assert record.total_working_hours == 9.0
    assert record.total_ot_hours == 0.0
    assert record.status == AttendanceStatus.PRESENT
    segment = record.segments[0]
    assert segment.shift_id == 1
    assert segment.late_in_minutes == 0
    assert segment.early_out_minutes == 0


def test_unknown_badge():
    assert process_punch("99999", at(9), PunchDirection.IN) is None
    assert helper.mock_punches == []


def test_late_in_past_grace():
    punch(9, 18)
    punch(18, 0, PunchDirection.OUT)

    segment = process_attendance_for_day(1, DAY).segments[0]
    assert segment.late_in_minutes == 3
    assert segment.is_late_in is True


def test_global_grace_override_beats_shift_grace():
    helper.set_attendance_settings(AttendanceSettings(late_in_grace=20))
    punch(9, 18)
    punch(18, 0, PunchDirection.OUT)
    assert process_attendance_for_day(1, DAY).segments[0].late_in_minutes == 0

    helper.reset_stores()
    helper.set_attendance_settings(AttendanceSettings(late_in_grace=20))
    punch(9, 25)
    punch(18, 0, PunchDirection.OUT)
    assert process_attendance_for_day(1, DAY).segments[0].late_in_minutes == 5


def test_duplicate_in_is_ignored():
    punch(9, 0)
    punch(9, 5)
    punch(18, 0, PunchDirection.OUT)

    record = process_attendance_for_day(1, DAY)
    assert record.total_shifts == 1
    assert record.segments[0].in_time == at(9, 0)


def test_in_within_grace_after_shift_end_closes_segment():
    punch(9, 0)
    punch(18, 10)

    record = process_attendance_for_day(1, DAY)
    assert record.total_shifts == 1
    assert record.segments[0].out_time == at(18, 10)
    assert record.status == AttendanceStatus.PRESENT


def test_missing_out_is_partial():
    punch(9, 0)

    record = process_attendance_for_day(1, DAY)
    assert record.status == AttendanceStatus.PARTIAL
    assert record.segments[0].out_time is None


def test_no_punches_is_absent():
    record = process_attendance_for_day(1, DAY)
    assert record.status == AttendanceStatus.ABSENT
    assert record.total_shifts == 0


def test_overnight_shift():
    use_shifts(NIGHT)
    punch(22, 10)
    punch(5, 50, PunchDirection.OUT, days=1)

    record = process_attendance_for_day(1, DAY)
    segment = record.segments[0]
    assert segment.shift_id == NIGHT.id
    assert segment.late_in_minutes == 0
    assert segment.early_out_minutes == 0
    assert segment.working_hours == 7.67
    assert record.status == AttendanceStatus.PRESENT


def test_overnight_out_does_not_leak_into_next_day():
    use_shifts(NIGHT)
    punch(22, 0)
    punch(6, 0, PunchDirection.OUT, days=1)

    next_day = process_attendance_for_day(1, DAY + timedelta(days=1))
    assert next_day.total_shifts == 0


def test_reprocess_after_overnight_out_updates_previous_day():
    use_shifts(NIGHT)
    punch(22, 0)
    out = punch(6, 0, PunchDirection.OUT, days=1)

    records = reprocess_after_punch(out)
    assert [r.date for r in records] == [DAY, DAY + timedelta(days=1)]
    assert helper.get_daily_attendance(1, DAY).total_working_hours == 8.0


def test_on_duty_fills_gap_and_waives_late_in():
    helper.mock_od_intervals.append(OnDutyInterval(
        id=1, employee_id=1, date=DAY, start_time=time(9, 0), end_time=time(11, 0), approved=True,
    ))
    punch(11, 0)
    punch(18, 0, PunchDirection.OUT)

    record = process_attendance_for_day(1, DAY)
    segment = record.segments[0]
    assert segment.od_hours == 2.0
    assert segment.working_hours == 9.0
    assert segment.is_late_in is False
    assert segment.late_in_waived is True
    assert record.status == AttendanceStatus.PRESENT


def test_unapproved_on_duty_is_ignored():
    helper.mock_od_intervals.append(OnDutyInterval(
        id=1, employee_id=1, date=DAY, start_time=time(9, 0), end_time=time(11, 0), approved=False,
    ))
    punch(11, 0)
    punch(18, 0, PunchDirection.OUT)

    segment = process_attendance_for_day(1, DAY).segments[0]
    assert segment.od_hours == 0.0
    assert segment.is_late_in is True


def test_ambiguous_arrival_is_escalated_once():
    use_shifts(EARLY, LATE)
    punch(8, 40)

    first = process_attendance_for_day(1, DAY)
    second = process_attendance_for_day(1, DAY)

    assert first.segments[0].shift_id is None
    assert first.pending_review is True
    assert len(helper.confused_shifts) == 1
    record = helper.get_confused_shift_by_key(1, DAY)
    assert record.status == ConfusedShiftStatus.PENDING
    assert {p.shift_id for p in record.possible_shifts} == {EARLY.id, LATE.id}
    assert first == second


def test_unknown_employee_has_no_shifts_and_no_escalation():
    helper.mock_punches.append(
        Punch(employee_id=42, timestamp=at(9), direction=PunchDirection.IN)
    )

    record = process_attendance_for_day(42, DAY)
    assert record.segments[0].shift_id is None
    assert record.pending_review is False
    assert helper.confused_shifts == {}


def test_pipeline_is_idempotent():
    use_shifts(EARLY, LATE)
    punch(8, 55)
    punch(13, 0, PunchDirection.OUT)
    punch(14, 30)
    punch(17, 0, PunchDirection.OUT)

    first = process_attendance_for_day(1, DAY)
    second = process_attendance_for_day(1, DAY)
    assert first == second
    assert len(helper.daily_attendance) == 1


def test_source_failure_aborts_unit(monkeypatch):
    punch(9, 0)
    punch(18, 0, PunchDirection.OUT)

    def broken(*args):
        raise ConnectionError("od store unavailable")

    monkeypatch.setattr("main.get_approved_od_intervals", broken)

    with pytest.raises(SourceReadError) as excinfo:
        process_attendance_for_day(1, DAY)
    assert excinfo.value.retryable is True
    assert helper.get_daily_attendance(1, DAY) is None


def test_batch_keeps_going_after_a_failed_unit(monkeypatch):
    punch(9, 0)
    punch(18, 0, PunchDirection.OUT)
    real_reader = helper.get_approved_od_intervals

    def flaky(employee_id, od_date):
        if od_date == DAY:
            raise ConnectionError("timeout")
        return real_reader(employee_id, od_date)

    monkeypatch.setattr("main.get_approved_od_intervals", flaky)

    stats = process_attendance_batch([(1, DAY), (1, DAY + timedelta(days=1))])
    assert stats["units_processed"] == 1
    assert stats["failed"] == 1
    assert stats["retryable"] == [(1, DAY)]


def test_resolve_confused_shift():
    use_shifts(EARLY, LATE)
    punch(8, 40)
    process_attendance_for_day(1, DAY)
    record = helper.get_confused_shift_by_key(1, DAY)

    result = resolve_confused_shift(record.id, LATE.id, "hr-admin", "confirmed with supervisor")

    assert result.confused_shift.status == ConfusedShiftStatus.RESOLVED
    assert result.confused_shift.reviewed_by == "hr-admin"
    segment = result.daily_record.segments[0]
    assert segment.shift_id == LATE.id
    assert segment.match_method == MatchMethod.MANUAL
    assert segment.late_in_minutes == 0
    assert result.daily_record.pending_review is False

    # later punches keep the chosen shift
    punch(17, 0, PunchDirection.OUT)
    reprocessed = process_attendance_for_day(1, DAY)
    assert reprocessed.segments[0].shift_id == LATE.id
    assert reprocessed.status == AttendanceStatus.PRESENT

    with pytest.raises(InvalidStateError):
        resolve_confused_shift(record.id, EARLY.id, "hr-admin")


def test_resolve_unknown_record_or_shift():
    with pytest.raises(NotFoundError):
        resolve_confused_shift(99, LATE.id, "hr-admin")

    use_shifts(EARLY, LATE)
    punch(8, 40)
    process_attendance_for_day(1, DAY)
    record = helper.get_confused_shift_by_key(1, DAY)
    with pytest.raises(NotFoundError):
        resolve_confused_shift(record.id, 999, "hr-admin")


def test_dismiss_confused_shift():
    use_shifts(EARLY, LATE)
    punch(8, 40)
    process_attendance_for_day(1, DAY)
    record = helper.get_confused_shift_by_key(1, DAY)

    result = dismiss_confused_shift(record.id, "hr-admin", "not a working day")
    assert result.confused_shift.status == ConfusedShiftStatus.DISMISSED
    assert result.daily_record.segments[0].shift_id is None
    assert result.daily_record.pending_review is False

    process_attendance_for_day(1, DAY)
    assert helper.get_confused_shift_by_key(1, DAY).status == ConfusedShiftStatus.DISMISSED
    assert len(helper.confused_shifts) == 1

    with pytest.raises(InvalidStateError):
        dismiss_confused_shift(record.id, "hr-admin")


def test_auto_assign_nearest_shift():
    use_shifts(EARLY, LATE)
    punch(8, 40)
    process_attendance_for_day(1, DAY)
    record = helper.get_confused_shift_by_key(1, DAY)

    result = auto_assign_confused_shift(record.id)
    assert result.confused_shift.assigned_shift_id == LATE.id
    assert result.confused_shift.resolution_method == MatchMethod.AUTO_NEAREST
    assert result.daily_record.segments[0].match_method == MatchMethod.AUTO_NEAREST


def test_auto_assign_all_and_stats():
    use_shifts(EARLY, LATE)
    helper.mock_employees.append(Employee(id=2, badge_id="654321", department_id=1))
    punch(8, 40)
    process_punch("654321", at(8, 35), PunchDirection.IN)
    process_attendance_for_day(1, DAY)
    process_attendance_for_day(2, DAY)

    assert get_confused_shift_stats() == {"pending": 2, "resolved": 0, "dismissed": 0, "total": 2}

    stats = auto_assign_all_confused_shifts()
    assert stats["processed"] == 2
    assert stats["assigned"] == 2
    assert stats["failed"] == 0
    assert get_confused_shift_stats()["resolved"] == 2


def test_shift_starting_at_midnight_with_late_evening_arrival():
    use_shifts(ShiftDefinition(id=5, name="Midnight", start_time=time(0, 0), end_time=time(8, 0), duration=8, grace_period=15))
    punch(23, 50)
    punch(23, 55)
    punch(8, 0, PunchDirection.OUT, days=1)

    record = process_attendance_for_day(1, DAY)
    assert record.total_shifts == 1
    segment = record.segments[0]
    assert segment.in_time == at(23, 50)
    assert segment.out_time == at(8, 0, days=1)
    assert segment.shift_id == 5
    assert segment.late_in_minutes == 0
    assert segment.is_late_in is False
    assert segment.early_out_minutes == 0
    assert record.status == AttendanceStatus.PRESENT
