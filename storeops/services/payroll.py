"""Attendance-driven salary generation and payment.

A salary record moves Pending -> Paid or Pending -> On Hold. Nothing moves a
record back to Pending and Paid is final.
"""

from datetime import date
from typing import Any, Iterable

from pydantic import BaseModel

from storeops.backend.base import BackendClient, BackendError, eq, gte, lt, timestamp
from storeops.core.audit import log_event
from storeops.core.config import get_settings
from storeops.core.exceptions import BadRequestError, ConflictError, NotFoundError, ServiceUnavailableError
from storeops.core.logging import get_logger
from storeops.models.attendance import TABLE as ATTENDANCE_TABLE
from storeops.models.attendance import AttendanceSummary
from storeops.models.employee import TABLE as EMPLOYEE_TABLE
from storeops.models.employee import Employee
from storeops.models.salary import TABLE as SALARY_TABLE
from storeops.models.salary import SalaryAdjustments, SalaryRecord

log = get_logger(__name__)

PAYMENT_MODES = ("Cash", "Bank Transfer", "UPI")
PAYMENT_STATUSES = ("Pending", "Paid", "On Hold")


class BulkGenerateResult(BaseModel):
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    failed_employee_ids: list[str] = []


def _money(value: float) -> float:
    return round(float(value), 2)


def month_window(month: int, year: int) -> tuple[date, date]:
    """[first day of month, first day of next month)."""
    if not 1 <= month <= 12:
        raise BadRequestError(f"Invalid month: {month}")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def summarize_attendance(records: Iterable[dict[str, Any]], total_working_days: int) -> AttendanceSummary:
    summary = AttendanceSummary(total_working_days=total_working_days)
    for rec in records:
        status = rec.get("status")
        if status == "Present":
            summary.present_days += 1
        elif status == "Absent":
            summary.absent_days += 1
        elif status == "Half Day":
            summary.half_days += 1
        elif status == "Leave":
            summary.leave_days += 1
        elif status == "Holiday":
            summary.holiday_days += 1
        summary.total_working_hours += float(rec.get("working_hours") or 0)
    return summary


async def get_attendance_summary(backend: BackendClient, employee_id: str, month: int, year: int) -> AttendanceSummary:
    """Roll up one employee's attendance for a calendar month.

    total_working_days is the configured constant, not derived from the calendar.
    A failed read yields the zero summary.
    """
    total_working_days = get_settings().payroll_total_working_days
    start, end = month_window(month, year)
    try:
        rows = await backend.select(
            ATTENDANCE_TABLE,
            eq("employee_id", employee_id),
            gte("attendance_date", start.isoformat()),
            lt("attendance_date", end.isoformat()),
            columns=["status", "working_hours"],
        )
    except BackendError as exc:
        log.warning("attendance_summary_unavailable", employee_id=employee_id, month=month, year=year, code=exc.code)
        return AttendanceSummary(total_working_days=total_working_days)
    return summarize_attendance(rows, total_working_days)


def compute_gross_salary(employee: Employee, summary: AttendanceSummary) -> tuple[float, float]:
    """Return (gross_salary, absent_deduction) for the employee's salary type."""
    base = employee.base_salary
    if employee.salary_type == "Monthly":
        if summary.total_working_days <= 0:
            raise ValueError("total_working_days must be positive for monthly salaries")
        return base, base / summary.total_working_days * summary.absent_days
    if employee.salary_type == "Daily":
        return base * (summary.present_days + summary.half_days * 0.5), 0.0
    if employee.salary_type == "Hourly":
        return base * summary.total_working_hours, 0.0
    raise ValueError(f"Unsupported salary type: {employee.salary_type}")


def build_salary_record(
    employee: Employee,
    month: int,
    year: int,
    summary: AttendanceSummary,
    adjustments: SalaryAdjustments | None = None,
) -> SalaryRecord:
    """Pending salary record. net = gross + bonus + incentives + overtime - total_deductions."""
    adj = adjustments or SalaryAdjustments()
    gross, absent_deduction = compute_gross_salary(employee, summary)
    gross = _money(gross)
    absent_deduction = _money(absent_deduction)
    total_deductions = _money(absent_deduction + adj.late_penalty + adj.advance_deduction + adj.other_deductions)
    net = _money(gross + adj.bonus + adj.incentives + adj.overtime_amount - total_deductions)
    return SalaryRecord(
        employee_id=employee.id or employee.employee_id,
        salary_month=month,
        salary_year=year,
        **summary.model_dump(),
        base_salary=_money(employee.base_salary),
        gross_salary=gross,
        bonus=_money(adj.bonus),
        incentives=_money(adj.incentives),
        overtime_amount=_money(adj.overtime_amount),
        absent_deduction=absent_deduction,
        late_penalty=_money(adj.late_penalty),
        advance_deduction=_money(adj.advance_deduction),
        other_deductions=_money(adj.other_deductions),
        total_deductions=total_deductions,
        net_salary=net,
        payment_status="Pending",
    )


async def list_salaries(
    backend: BackendClient,
    month: int,
    year: int,
    status: str | None = None,
    employee_id: str | None = None,
) -> list[SalaryRecord]:
    """Salary records for a period, newest generated first."""
    filters = [eq("salary_month", month), eq("salary_year", year)]
    if status:
        filters.append(eq("payment_status", status))
    if employee_id:
        filters.append(eq("employee_id", employee_id))
    try:
        rows = await backend.select(SALARY_TABLE, *filters, order_by="generated_at", descending=True)
    except BackendError as exc:
        log.error("salary_list_failed", month=month, year=year, code=exc.code)
        raise ServiceUnavailableError("Failed to fetch salary records") from exc
    return [SalaryRecord.model_validate(r) for r in rows]


def _already_generated(existing: Iterable[SalaryRecord], employee_id: str, month: int, year: int) -> bool:
    return any(
        s.employee_id == employee_id and s.salary_month == month and s.salary_year == year for s in existing
    )


async def _insert_salary(backend: BackendClient, record: SalaryRecord) -> SalaryRecord:
    row = record.model_dump(mode="json", exclude_none=True)
    row["generated_at"] = timestamp()
    try:
        inserted = await backend.insert(SALARY_TABLE, row)
    except BackendError as exc:
        if exc.is_unique_violation():
            raise ConflictError("Salary already generated for this employee and month") from exc
        log.error("salary_insert_failed", employee_id=record.employee_id, code=exc.code)
        raise ServiceUnavailableError("Failed to generate salary") from exc
    return SalaryRecord.model_validate(inserted[0])


async def _get_employee(backend: BackendClient, employee_id: str) -> Employee:
    try:
        row = await backend.select_one(EMPLOYEE_TABLE, eq("id", employee_id))
    except BackendError as exc:
        if exc.is_no_rows():
            raise NotFoundError("Employee not found") from exc
        raise ServiceUnavailableError("Failed to fetch employee") from exc
    return Employee.model_validate(row)


async def generate_salary(
    backend: BackendClient,
    employee_id: str,
    month: int,
    year: int,
    adjustments: SalaryAdjustments | None = None,
    existing: list[SalaryRecord] | None = None,
    actor_id: str | None = None,
) -> SalaryRecord:
    """Generate one Pending salary record.

    Rejects a period that already has a record in `existing` (the records the
    caller already fetched; fetched here when not given). A unique violation
    from the backend is reported the same way.
    """
    month_window(month, year)
    employee = await _get_employee(backend, employee_id)
    if existing is None:
        existing = await list_salaries(backend, month, year, employee_id=employee_id)
    if _already_generated(existing, employee_id, month, year):
        raise ConflictError("Salary already generated for this employee and month")

    summary = await get_attendance_summary(backend, employee_id, month, year)
    try:
        record = build_salary_record(employee, month, year, summary, adjustments)
    except ValueError as exc:
        raise BadRequestError(str(exc)) from exc
    saved = await _insert_salary(backend, record)
    log.info("salary_generated", employee_id=employee_id, month=month, year=year, net_salary=saved.net_salary)
    await log_event(
        backend,
        actor_id,
        "create",
        SALARY_TABLE,
        entity_id=f"{employee_id}_{month}_{year}",
        operation_source="admin_salary_generate",
        metadata={
            "employee_id": employee.employee_id,
            "employee_name": employee.full_name,
            "salary_month": month,
            "salary_year": year,
            "gross_salary": saved.gross_salary,
            "net_salary": saved.net_salary,
            "present_days": saved.present_days,
            "absent_days": saved.absent_days,
        },
    )
    return saved


async def bulk_generate(backend: BackendClient, month: int, year: int, actor_id: str | None = None) -> BulkGenerateResult:
    """Generate salaries for every active employee, one at a time.

    Employees that already have a record are skipped. A failure for one
    employee is counted and the loop moves on; nothing is rolled back.
    """
    month_window(month, year)
    existing = await list_salaries(backend, month, year)
    try:
        rows = await backend.select(EMPLOYEE_TABLE, eq("status", "Active"), order_by="full_name")
    except BackendError as exc:
        raise ServiceUnavailableError("Failed to fetch employees") from exc

    result = BulkGenerateResult()
    for row in rows:
        employee_id = row.get("id")
        if _already_generated(existing, employee_id, month, year):
            result.skipped_count += 1
            continue
        try:
            employee = Employee.model_validate(row)
            summary = await get_attendance_summary(backend, employee_id, month, year)
            record = build_salary_record(employee, month, year, summary)
            await _insert_salary(backend, record)
            result.success_count += 1
        except Exception:
            log.exception("bulk_salary_failed", employee_id=employee_id, month=month, year=year)
            result.error_count += 1
            result.failed_employee_ids.append(str(employee_id))

    log.info(
        "bulk_salary_generated",
        month=month,
        year=year,
        success_count=result.success_count,
        error_count=result.error_count,
        skipped_count=result.skipped_count,
    )
    await log_event(
        backend,
        actor_id,
        "create",
        SALARY_TABLE,
        entity_id=f"bulk_{month}_{year}",
        operation_source="admin_salary_bulk_generate",
        metadata={
            "salary_month": month,
            "salary_year": year,
            "success_count": result.success_count,
            "error_count": result.error_count,
            "total_employees": len(rows),
        },
    )
    return result


async def get_salary(backend: BackendClient, salary_id: str) -> SalaryRecord:
    try:
        row = await backend.select_one(SALARY_TABLE, eq("id", salary_id))
    except BackendError as exc:
        if exc.is_no_rows():
            raise NotFoundError("Salary record not found") from exc
        raise ServiceUnavailableError("Failed to fetch salary record") from exc
    return SalaryRecord.model_validate(row)


async def _transition(backend: BackendClient, salary: SalaryRecord, patch: dict[str, Any]) -> SalaryRecord:
    # guarded on the current status so two admins can't both move it
    try:
        rows = await backend.update(SALARY_TABLE, patch, eq("id", salary.id), eq("payment_status", "Pending"))
    except BackendError as exc:
        log.error("salary_update_failed", salary_id=salary.id, code=exc.code)
        raise ServiceUnavailableError("Failed to update salary record") from exc
    if not rows:
        raise ConflictError("Salary record is no longer pending")
    return SalaryRecord.model_validate(rows[0])


async def record_payment(
    backend: BackendClient,
    salary_id: str,
    mode: str,
    reference: str | None = None,
    notes: str | None = None,
    actor_id: str | None = None,
    today: date | None = None,
) -> SalaryRecord:
    """Pending -> Paid, stamped with today's date."""
    if mode not in PAYMENT_MODES:
        raise BadRequestError(f"Invalid payment mode: {mode}")
    salary = await get_salary(backend, salary_id)
    if salary.payment_status != "Pending":
        raise ConflictError(f"Cannot record payment for a salary that is {salary.payment_status}")
    paid = await _transition(
        backend,
        salary,
        {
            "payment_status": "Paid",
            "payment_date": (today or date.today()).isoformat(),
            "payment_mode": mode,
            "transaction_reference": reference,
            "payment_notes": notes,
        },
    )
    log.info("salary_paid", salary_id=salary_id, mode=mode, net_salary=paid.net_salary)
    await log_event(
        backend,
        actor_id,
        "update",
        SALARY_TABLE,
        entity_id=salary_id,
        operation_source="admin_salary_payment",
        metadata={
            "employee_id": paid.employee_id,
            "salary_month": paid.salary_month,
            "salary_year": paid.salary_year,
            "net_salary": paid.net_salary,
            "payment_mode": mode,
            "transaction_reference": reference,
        },
    )
    return paid


async def hold_salary(
    backend: BackendClient, salary_id: str, notes: str | None = None, actor_id: str | None = None
) -> SalaryRecord:
    """Pending -> On Hold."""
    salary = await get_salary(backend, salary_id)
    if salary.payment_status != "Pending":
        raise ConflictError(f"Cannot hold a salary that is {salary.payment_status}")
    held = await _transition(backend, salary, {"payment_status": "On Hold", "payment_notes": notes})
    await log_event(
        backend,
        actor_id,
        "update",
        SALARY_TABLE,
        entity_id=salary_id,
        operation_source="admin_salary_hold",
        metadata={"employee_id": held.employee_id, "notes": notes},
    )
    return held


async def payroll_summary(backend: BackendClient, month: int, year: int) -> dict[str, Any]:
    salaries = await list_salaries(backend, month, year)
    paid = [s for s in salaries if s.payment_status == "Paid"]
    return {
        "salary_month": month,
        "salary_year": year,
        "total_records": len(salaries),
        "paid_count": len(paid),
        "pending_count": sum(1 for s in salaries if s.payment_status == "Pending"),
        "on_hold_count": sum(1 for s in salaries if s.payment_status == "On Hold"),
        "total_net": _money(sum(s.net_salary for s in salaries)),
        "paid_amount": _money(sum(s.net_salary for s in paid)),
    }


async def preview_salary(backend: BackendClient, employee_id: str, month: int, year: int) -> dict[str, float]:
    """Gross/deductions/net without saving; backend function first, local computation otherwise."""
    try:
        data = await backend.rpc("calculate_monthly_salary", {"emp_id": employee_id, "month": month, "year": year})
        if data:
            return data[0] if isinstance(data, list) else data
    except BackendError as exc:
        log.warning("salary_rpc_unavailable", employee_id=employee_id, code=exc.code)
    employee = await _get_employee(backend, employee_id)
    summary = await get_attendance_summary(backend, employee_id, month, year)
    record = build_salary_record(employee, month, year, summary)
    return {
        "calculated_gross": record.gross_salary,
        "calculated_deductions": record.total_deductions,
        "calculated_net": record.net_salary,
    }
