"""
Candidate shift resolution for an employee on a date.
Priority: Pre-Scheduled -> Designation -> Department -> General
"""
import logging
from datetime import date
from typing import Callable, List, Optional, Tuple

from models.schema import CatalogTier, Employee, ShiftCatalogResult
from utils.helper import (
    get_active_shifts,
    get_department,
    get_designation,
    get_employee,
    get_pre_scheduled_shift,
    get_shift,
)

CatalogStrategy = Callable[[Employee, date], Optional[ShiftCatalogResult]]


def pre_scheduled_shifts(employee: Employee, shift_date: date) -> Optional[ShiftCatalogResult]:
    entry = get_pre_scheduled_shift(employee.id, shift_date)
    if entry is None:
        return None
    shift = get_shift(entry.shift_id)
    if shift is None:
        logging.warning(f"Pre-scheduled shift {entry.shift_id} missing for employee_id: {employee.id} on {shift_date}")
        return None
    return ShiftCatalogResult(shifts=[shift], tier=CatalogTier.PRE_SCHEDULED, pre_scheduled_id=entry.id)


def designation_shifts(employee: Employee, shift_date: date) -> Optional[ShiftCatalogResult]:
    designation = get_designation(employee.designation_id)
    if designation is None or not designation.shift_ids:
        return None
    return ShiftCatalogResult(shifts=get_active_shifts(designation.shift_ids), tier=CatalogTier.DESIGNATION)


def department_shifts(employee: Employee, shift_date: date) -> Optional[ShiftCatalogResult]:
    department = get_department(employee.department_id)
    if department is None or not department.shift_ids:
        return None
    return ShiftCatalogResult(shifts=get_active_shifts(department.shift_ids), tier=CatalogTier.DEPARTMENT)


def general_shifts(employee: Employee, shift_date: date) -> Optional[ShiftCatalogResult]:
    return ShiftCatalogResult(shifts=get_active_shifts(), tier=CatalogTier.GENERAL)


CATALOG_STRATEGIES: Tuple[CatalogStrategy, ...] = (
    pre_scheduled_shifts,
    designation_shifts,
    department_shifts,
    general_shifts,
)


def resolve_shift_catalog(
    employee_id: int,
    shift_date: date,
    strategies: Optional[List[CatalogStrategy]] = None,
) -> ShiftCatalogResult:
    """Return the first non-empty tier for the employee, or an empty NONE result."""
    employee = get_employee(employee_id)
    if employee is None:
        logging.error(f"Unknown employee_id: {employee_id}")
        return ShiftCatalogResult()

    for strategy in strategies or CATALOG_STRATEGIES:
        result = strategy(employee, shift_date)
        if result is not None and result.shifts:
            return result

    return ShiftCatalogResult()
