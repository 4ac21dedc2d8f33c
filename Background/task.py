import logging
from datetime import datetime, date
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel

from main import (
    auto_assign_all_confused_shifts,
    auto_assign_confused_shift,
    dismiss_confused_shift,
    get_confused_shift_stats,
    process_attendance_for_day,
    process_punch,
    reprocess_after_punch,
    resolve_confused_shift,
)
from models.schema import ConfusedShiftStatus, PunchDirection
from utils.config import settings
from utils.exceptions import AttendanceError, InvalidStateError, NotFoundError, SourceReadError
from utils.helper import get_active_employees, list_confused_shifts

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

app = FastAPI()


class ResolveRequest(BaseModel):
    shift_id: int
    reviewer: str
    comments: Optional[str] = None


class ReviewRequest(BaseModel):
    reviewer: Optional[str] = None
    comments: Optional[str] = None


def _http_error(exc: AttendanceError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, SourceReadError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def reprocess_in_background(punch) -> None:
    try:
        reprocess_after_punch(punch)
    except SourceReadError as exc:
        logging.error(f"Reprocessing failed for employee_id: {punch.employee_id}, retry later: {exc}")


@app.post("/punch")
def receive_punch(badge_id: str, timestamp: datetime, direction: PunchDirection, background_tasks: BackgroundTasks):
    punch = process_punch(badge_id, timestamp, direction)
    if punch is None:
        raise HTTPException(status_code=404, detail=f"Unknown or inactive badge ID: {badge_id}")
    background_tasks.add_task(reprocess_in_background, punch)
    return {"status": "Punch received, processing in background."}


@app.post("/attendance/{employee_id}/{day}/reprocess")
def reprocess_attendance(employee_id: int, day: date):
    try:
        return process_attendance_for_day(employee_id, day)
    except AttendanceError as exc:
        raise _http_error(exc)


@app.get("/confused-shifts")
def get_confused_shifts(status: ConfusedShiftStatus = ConfusedShiftStatus.PENDING):
    return list_confused_shifts(status)


@app.get("/confused-shifts/stats")
def confused_shift_stats():
    return get_confused_shift_stats()


@app.put("/confused-shifts/auto-assign-all")
def auto_assign_all(request: Optional[ReviewRequest] = None):
    reviewer = request.reviewer if request else None
    return auto_assign_all_confused_shifts(reviewer)


@app.put("/confused-shifts/{confused_shift_id}/resolve")
def resolve(confused_shift_id: int, request: ResolveRequest):
    try:
        return resolve_confused_shift(confused_shift_id, request.shift_id, request.reviewer, request.comments)
    except AttendanceError as exc:
        raise _http_error(exc)


@app.put("/confused-shifts/{confused_shift_id}/auto-assign")
def auto_assign(confused_shift_id: int, request: Optional[ReviewRequest] = None):
    try:
        return auto_assign_confused_shift(confused_shift_id, request.reviewer if request else None)
    except AttendanceError as exc:
        raise _http_error(exc)


@app.put("/confused-shifts/{confused_shift_id}/dismiss")
def dismiss(confused_shift_id: int, request: ReviewRequest):
    try:
        return dismiss_confused_shift(confused_shift_id, request.reviewer, request.comments)
    except AttendanceError as exc:
        raise _http_error(exc)


def run_end_of_day_reprocess(day: Optional[date] = None) -> None:
    day = day or datetime.now().date()
    logging.info(f"Running end-of-day attendance reprocess for {day}")
    for emp in get_active_employees():
        try:
            process_attendance_for_day(emp.id, day)
        except SourceReadError as exc:
            logging.error(f"End-of-day reprocess failed for employee_id: {emp.id}: {exc}")
    logging.info("End-of-day attendance reprocess completed.")
