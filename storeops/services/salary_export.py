"""Monthly salary register as an xlsx workbook."""

import io

import openpyxl
from openpyxl.styles import Font

from storeops.backend.base import BackendClient, in_
from storeops.models.employee import TABLE as EMPLOYEE_TABLE
from storeops.services.payroll import list_salaries

COLUMNS = [
    ("Employee Code", None),
    ("Name", None),
    ("Present", "present_days"),
    ("Absent", "absent_days"),
    ("Half Days", "half_days"),
    ("Leave", "leave_days"),
    ("Hours", "total_working_hours"),
    ("Base Salary", "base_salary"),
    ("Gross", "gross_salary"),
    ("Bonus", "bonus"),
    ("Incentives", "incentives"),
    ("Overtime", "overtime_amount"),
    ("Deductions", "total_deductions"),
    ("Net Salary", "net_salary"),
    ("Status", "payment_status"),
    ("Payment Mode", "payment_mode"),
    ("Payment Date", "payment_date"),
]


async def export_salary_register(backend: BackendClient, month: int, year: int) -> bytes:
    salaries = await list_salaries(backend, month, year)
    ids = {s.employee_id for s in salaries}
    employees = {}
    if ids:
        rows = await backend.select(EMPLOYEE_TABLE, in_("id", ids), columns=["id", "employee_id", "full_name"])
        employees = {r["id"]: r for r in rows}

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = f"Salaries {year}-{month:02d}"
    ws.append([title for title, _ in COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for salary in sorted(salaries, key=lambda s: employees.get(s.employee_id, {}).get("full_name") or ""):
        emp = employees.get(salary.employee_id, {})
        values = [emp.get("employee_id") or salary.employee_id, emp.get("full_name") or ""]
        for _, field in COLUMNS[2:]:
            value = getattr(salary, field)
            values.append(value.isoformat() if hasattr(value, "isoformat") else value)
        ws.append(values)

    ws.append([])
    ws.append(["Total", "", *[""] * 11, sum(s.net_salary for s in salaries)])

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
