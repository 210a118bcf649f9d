"""Daily attendance marking. One record per employee per day."""

from datetime import date

from storeops.backend.base import BackendClient, BackendError, eq, gte, lt
from storeops.core.audit import log_event
from storeops.core.config import get_settings
from storeops.core.exceptions import BadRequestError, ConflictError, ServiceUnavailableError
from storeops.core.logging import get_logger
from storeops.models.attendance import ATTENDANCE_STATUSES, TABLE, AttendanceRecord
from storeops.models.employee import TABLE as EMPLOYEE_TABLE
from storeops.services.payroll import month_window

log = get_logger(__name__)

DEFAULT_CHECK_IN = "09:00"
DEFAULT_CHECK_OUT = "18:00"


def working_hours_for(status: str, hours: float) -> float:
    if status == "Present":
        return hours
    if status == "Half Day":
        return hours / 2
    return 0


async def _find(backend: BackendClient, employee_id: str, day: date) -> AttendanceRecord | None:
    rows = await backend.select(TABLE, eq("employee_id", employee_id), eq("attendance_date", day.isoformat()), limit=1)
    return AttendanceRecord.model_validate(rows[0]) if rows else None


async def mark_attendance(
    backend: BackendClient,
    employee_id: str,
    day: date,
    status: str,
    working_hours: float | None = None,
    check_in_time: str | None = None,
    check_out_time: str | None = None,
    notes: str | None = None,
    overwrite: bool = False,
    actor_id: str | None = None,
) -> AttendanceRecord:
    """Record attendance for a day.

    An existing record is a ConflictError unless overwrite is set; locked
    records can never be edited.
    """
    if status not in ATTENDANCE_STATUSES:
        raise BadRequestError(f"Invalid attendance status: {status}")
    if working_hours is None:
        working_hours = get_settings().payroll_full_day_hours
    record = AttendanceRecord(
        employee_id=employee_id,
        attendance_date=day,
        status=status,
        check_in_time=check_in_time if status in ("Present", "Half Day") else None,
        check_out_time=check_out_time if status in ("Present", "Half Day") else None,
        working_hours=working_hours_for(status, working_hours),
        notes=notes,
    )
    row = record.model_dump(mode="json", exclude_none=True)
    try:
        existing = await _find(backend, employee_id, day)
        if existing is not None:
            if existing.is_locked:
                raise ConflictError("Attendance record is locked")
            if not overwrite:
                raise ConflictError("Attendance already marked for this day")
            saved = (await backend.update(TABLE, row, eq("id", existing.id)))[0]
            event_type = "update"
        else:
            saved = (await backend.insert(TABLE, row))[0]
            event_type = "create"
    except BackendError as exc:
        if exc.is_unique_violation():
            raise ConflictError("Attendance already marked for this day") from exc
        log.error("attendance_write_failed", employee_id=employee_id, day=day.isoformat(), code=exc.code)
        raise ServiceUnavailableError("Failed to save attendance") from exc

    await log_event(
        backend,
        actor_id,
        event_type,
        TABLE,
        entity_id=saved["id"],
        operation_source="admin_attendance_mark",
        metadata={"employee_id": employee_id, "attendance_date": day.isoformat(), "status": status},
    )
    return AttendanceRecord.model_validate(saved)


async def bulk_mark(backend: BackendClient, day: date, status: str, actor_id: str | None = None) -> int:
    """Mark every active employee without a record for the day. Returns how many were marked."""
    if status not in ATTENDANCE_STATUSES:
        raise BadRequestError(f"Invalid attendance status: {status}")
    full_day = get_settings().payroll_full_day_hours
    try:
        employees = await backend.select(EMPLOYEE_TABLE, eq("status", "Active"), columns=["id"])
        marked = await backend.select(TABLE, eq("attendance_date", day.isoformat()), columns=["employee_id"])
    except BackendError as exc:
        raise ServiceUnavailableError("Failed to load employees for attendance") from exc

    already = {r["employee_id"] for r in marked}
    rows = []
    for emp in employees:
        if emp["id"] in already:
            continue
        working = status in ("Present", "Half Day")
        rows.append(
            AttendanceRecord(
                employee_id=emp["id"],
                attendance_date=day,
                status=status,
                check_in_time=DEFAULT_CHECK_IN if working else None,
                check_out_time=DEFAULT_CHECK_OUT if working else None,
                working_hours=working_hours_for(status, full_day),
            ).model_dump(mode="json", exclude_none=True)
        )
    if not rows:
        return 0
    try:
        await backend.insert(TABLE, rows)
    except BackendError as exc:
        log.error("attendance_bulk_failed", day=day.isoformat(), count=len(rows), code=exc.code)
        raise ServiceUnavailableError("Failed to mark attendance") from exc
    log.info("attendance_bulk_marked", day=day.isoformat(), status=status, count=len(rows))
    await log_event(
        backend,
        actor_id,
        "create",
        TABLE,
        entity_id=f"bulk_{day.isoformat()}",
        operation_source="admin_attendance_bulk",
        metadata={"attendance_date": day.isoformat(), "status": status, "count": len(rows)},
    )
    return len(rows)


async def lock_attendance(
    backend: BackendClient, employee_id: str, month: int, year: int, actor_id: str | None = None
) -> int:
    """Lock a month's records once payroll is settled. Returns how many were locked."""
    start, end = month_window(month, year)
    try:
        rows = await backend.update(
            TABLE,
            {"is_locked": True},
            eq("employee_id", employee_id),
            gte("attendance_date", start.isoformat()),
            lt("attendance_date", end.isoformat()),
        )
    except BackendError as exc:
        log.error("attendance_lock_failed", employee_id=employee_id, month=month, year=year, code=exc.code)
        raise ServiceUnavailableError("Failed to lock attendance") from exc
    await log_event(
        backend,
        actor_id,
        "update",
        TABLE,
        entity_id=f"{employee_id}_{month}_{year}",
        operation_source="admin_attendance_lock",
        metadata={"employee_id": employee_id, "month": month, "year": year, "count": len(rows)},
    )
    return len(rows)


async def list_attendance(
    backend: BackendClient,
    day: date | None = None,
    month: int | None = None,
    year: int | None = None,
    employee_id: str | None = None,
) -> list[AttendanceRecord]:
    """Records for one day, or for a calendar month when month/year are given."""
    filters = []
    if day is not None:
        filters.append(eq("attendance_date", day.isoformat()))
    elif month is not None and year is not None:
        start, end = month_window(month, year)
        filters += [gte("attendance_date", start.isoformat()), lt("attendance_date", end.isoformat())]
    else:
        raise BadRequestError("Pass a date or a month and year")
    if employee_id:
        filters.append(eq("employee_id", employee_id))
    try:
        rows = await backend.select(TABLE, *filters, order_by="attendance_date")
    except BackendError as exc:
        log.error("attendance_list_failed", code=exc.code)
        raise ServiceUnavailableError("Failed to fetch attendance") from exc
    return [AttendanceRecord.model_validate(r) for r in rows]
