from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from storeops.backend.base import BackendClient
from storeops.deps import get_backend
from storeops.models.attendance import AttendanceStatus
from storeops.services import attendance as attendance_service

router = APIRouter()


class MarkAttendanceRequest(BaseModel):
    employee_id: str
    attendance_date: date
    status: AttendanceStatus
    working_hours: float | None = Field(default=None, ge=0)
    check_in_time: str | None = None
    check_out_time: str | None = None
    notes: str | None = None
    overwrite: bool = False


class BulkAttendanceRequest(BaseModel):
    attendance_date: date
    status: AttendanceStatus


class LockAttendanceRequest(BaseModel):
    employee_id: str
    month: int = Field(ge=1, le=12)
    year: int
    actor_id: str | None = None


@router.post("")
async def attendance_mark(body: MarkAttendanceRequest, backend: BackendClient = Depends(get_backend)):
    record = await attendance_service.mark_attendance(
        backend,
        body.employee_id,
        body.attendance_date,
        body.status,
        working_hours=body.working_hours,
        check_in_time=body.check_in_time,
        check_out_time=body.check_out_time,
        notes=body.notes,
        overwrite=body.overwrite,
    )
    return record.model_dump(mode="json")


@router.post("/bulk")
async def attendance_bulk(body: BulkAttendanceRequest, backend: BackendClient = Depends(get_backend)):
    """Mark every active employee not yet marked for the day."""
    marked = await attendance_service.bulk_mark(backend, body.attendance_date, body.status)
    return {"marked": marked}


@router.post("/lock")
async def attendance_lock(body: LockAttendanceRequest, backend: BackendClient = Depends(get_backend)):
    locked = await attendance_service.lock_attendance(
        backend, body.employee_id, body.month, body.year, actor_id=body.actor_id
    )
    return {"locked": locked}


@router.get("")
async def attendance_list(
    day: date | None = None,
    month: int | None = Query(None, ge=1, le=12),
    year: int | None = None,
    employee_id: str | None = None,
    backend: BackendClient = Depends(get_backend),
):
    records = await attendance_service.list_attendance(backend, day, month, year, employee_id)
    return {"records": [r.model_dump(mode="json") for r in records]}
