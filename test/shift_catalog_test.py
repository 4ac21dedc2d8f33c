from datetime import time, date

from models.schema import CatalogTier, Designation, PreScheduledShift, ShiftDefinition
from shift_engine.shift_catalog import department_shifts, general_shifts, resolve_shift_catalog
from utils import helper

DAY = date(2025, 7, 21)


def setup_function():
    helper.reset_stores()
    helper.mock_shifts.extend([
        ShiftDefinition(id=2, name="Morning", start_time=time(6, 0), end_time=time(14, 0), duration=8),
        ShiftDefinition(id=3, name="Evening", start_time=time(14, 0), end_time=time(22, 0), duration=8),
        ShiftDefinition(id=5, name="Retired", start_time=time(7, 0), end_time=time(15, 0), duration=8, is_active=False),
    ])


def test_department_tier():
    result = resolve_shift_catalog(1, DAY)

    assert result.tier == CatalogTier.DEPARTMENT
    assert [s.id for s in result.shifts] == [1]


def test_designation_short_circuits_department():
    helper.mock_designations.append(Designation(id=1, name="Supervisor", shift_ids=[2, 3]))
    helper.mock_employees[0].designation_id = 1

    result = resolve_shift_catalog(1, DAY)
    assert result.tier == CatalogTier.DESIGNATION
    assert [s.id for s in result.shifts] == [2, 3]


def test_inactive_designation_shifts_fall_through():
    helper.mock_designations.append(Designation(id=1, name="Supervisor", shift_ids=[5]))
    helper.mock_employees[0].designation_id = 1

    assert resolve_shift_catalog(1, DAY).tier == CatalogTier.DEPARTMENT


def test_pre_scheduled_wins():
    helper.mock_pre_scheduled_shifts.append(PreScheduledShift(id=7, employee_id=1, date=DAY, shift_id=3))

    result = resolve_shift_catalog(1, DAY)
    assert result.tier == CatalogTier.PRE_SCHEDULED
    assert result.pre_scheduled_id == 7
    assert [s.id for s in result.shifts] == [3]

    assert resolve_shift_catalog(1, date(2025, 7, 22)).tier == CatalogTier.DEPARTMENT


def test_general_fallback():
    helper.mock_employees[0].department_id = None

    result = resolve_shift_catalog(1, DAY)
    assert result.tier == CatalogTier.GENERAL
    assert [s.id for s in result.shifts] == [1, 2, 3]


def test_unknown_employee():
    result = resolve_shift_catalog(42, DAY)

    assert result.tier == CatalogTier.NONE
    assert result.shifts == []


def test_custom_strategies():
    result = resolve_shift_catalog(1, DAY, strategies=[general_shifts, department_shifts])
    assert result.tier == CatalogTier.GENERAL
