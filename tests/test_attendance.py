import io
from datetime import date

import openpyxl
import pytest

from storeops.backend.memory import MemoryBackend
from storeops.core.exceptions import BadRequestError, ConflictError, NotFoundError, ServiceUnavailableError
from storeops.models.employee import Employee
from storeops.services import attendance, employees, payroll
from storeops.services.salary_export import export_salary_register

pytestmark = pytest.mark.asyncio

DAY = date(2026, 6, 15)


async def test_mark_present_and_half_day_hours(backend: MemoryBackend, make_employee):
    a = await make_employee("EMP001", "A One")
    b = await make_employee("EMP002", "B Two")
    c = await make_employee("EMP003", "C Three")
    present = await attendance.mark_attendance(backend, a["id"], DAY, "Present", working_hours=9, check_in_time="09:00")
    half = await attendance.mark_attendance(backend, b["id"], DAY, "Half Day", working_hours=8)
    leave = await attendance.mark_attendance(backend, c["id"], DAY, "Leave", working_hours=8, check_in_time="09:00")
    assert present.working_hours == 9
    assert half.working_hours == 4
    assert leave.working_hours == 0
    assert leave.check_in_time is None


async def test_duplicate_day_is_a_conflict(backend: MemoryBackend, make_employee):
    a = await make_employee("EMP001", "A One")
    await attendance.mark_attendance(backend, a["id"], DAY, "Present")
    with pytest.raises(ConflictError):
        await attendance.mark_attendance(backend, a["id"], DAY, "Absent")
    updated = await attendance.mark_attendance(backend, a["id"], DAY, "Absent", overwrite=True)
    assert updated.status == "Absent"
    assert len(backend.rows("employee_attendance")) == 1


async def test_locked_record_cannot_be_edited(backend: MemoryBackend, make_employee):
    a = await make_employee("EMP001", "A One")
    await attendance.mark_attendance(backend, a["id"], DAY, "Present")
    assert await attendance.lock_attendance(backend, a["id"], 6, 2026) == 1
    with pytest.raises(ConflictError):
        await attendance.mark_attendance(backend, a["id"], DAY, "Absent", overwrite=True)


async def test_lock_is_audited(backend: MemoryBackend, make_employee):
    a = await make_employee("EMP001", "A One")
    await attendance.mark_attendance(backend, a["id"], date(2026, 6, 1), "Present")
    await attendance.mark_attendance(backend, a["id"], date(2026, 6, 2), "Absent")
    await attendance.mark_attendance(backend, a["id"], date(2026, 7, 1), "Present")
    assert await attendance.lock_attendance(backend, a["id"], 6, 2026, actor_id="admin-1") == 2
    locks = [r for r in backend.rows("audit_logs") if r.get("operation_source") == "admin_attendance_lock"]
    assert len(locks) == 1
    assert locks[0]["user_id"] == "admin-1"
    assert locks[0]["entity_id"] == f"{a['id']}_6_2026"
    assert locks[0]["metadata"]["count"] == 2
    july = await attendance.list_attendance(backend, month=7, year=2026)
    assert [r.is_locked for r in july] == [False]


async def test_lock_backend_failure_is_unavailable(backend: MemoryBackend):
    backend.drop_table("employee_attendance")
    with pytest.raises(ServiceUnavailableError):
        await attendance.lock_attendance(backend, "e1", 6, 2026)
    assert not any(r.get("operation_source") == "admin_attendance_lock" for r in backend.rows("audit_logs"))


async def test_invalid_status_rejected(backend: MemoryBackend):
    with pytest.raises(BadRequestError):
        await attendance.mark_attendance(backend, "e1", DAY, "Sick")


async def test_bulk_mark_only_unmarked_active_employees(backend: MemoryBackend, make_employee):
    a = await make_employee("EMP001", "A One")
    b = await make_employee("EMP002", "B Two")
    await make_employee("EMP003", "C Three", status="Inactive")
    await attendance.mark_attendance(backend, a["id"], DAY, "Absent")
    assert await attendance.bulk_mark(backend, DAY, "Present") == 1
    records = {r.employee_id: r for r in await attendance.list_attendance(backend, day=DAY)}
    assert records[a["id"]].status == "Absent"
    assert records[b["id"]].working_hours == 8
    assert records[b["id"]].check_in_time == "09:00"
    assert records[b["id"]].check_out_time == "18:00"
    assert await attendance.bulk_mark(backend, DAY, "Present") == 0


async def test_list_attendance_for_month(backend: MemoryBackend, make_employee):
    a = await make_employee("EMP001", "A One")
    await attendance.mark_attendance(backend, a["id"], date(2026, 6, 1), "Present")
    await attendance.mark_attendance(backend, a["id"], date(2026, 6, 30), "Half Day")
    await attendance.mark_attendance(backend, a["id"], date(2026, 7, 1), "Present")
    records = await attendance.list_attendance(backend, month=6, year=2026, employee_id=a["id"])
    assert [r.attendance_date for r in records] == [date(2026, 6, 1), date(2026, 6, 30)]
    with pytest.raises(BadRequestError):
        await attendance.list_attendance(backend)


async def test_employees_directory(backend: MemoryBackend):
    saved = await employees.create_employee(backend, Employee(employee_id="EMP010", full_name="Zoya"))
    await employees.create_employee(backend, Employee(employee_id="EMP011", full_name="Arun", status="Inactive"))
    assert (await employees.get_employee(backend, saved.id)).full_name == "Zoya"
    assert [e.full_name for e in await employees.list_employees(backend)] == ["Arun", "Zoya"]
    assert [e.full_name for e in await employees.list_employees(backend, active_only=True)] == ["Zoya"]
    with pytest.raises(ConflictError):
        await employees.create_employee(backend, Employee(employee_id="EMP010", full_name="Someone Else"))
    with pytest.raises(NotFoundError):
        await employees.get_employee(backend, "missing")


async def test_salary_register_export(backend: MemoryBackend, make_employee):
    a = await make_employee("EMP001", "Asha", base=30000)
    b = await make_employee("EMP002", "Bala", base=20000)
    await payroll.generate_salary(backend, a["id"], 6, 2026)
    await payroll.generate_salary(backend, b["id"], 6, 2026)
    content = await export_salary_register(backend, 6, 2026)
    ws = openpyxl.load_workbook(io.BytesIO(content)).active
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0][0] == "Employee Code"
    assert [r[1] for r in rows[1:3]] == ["Asha", "Bala"]
    assert rows[-1][0] == "Total"
    assert rows[-1][13] == 50000
