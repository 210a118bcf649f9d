from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from storeops.backend.base import BackendClient
from storeops.deps import get_backend
from storeops.models.salary import PaymentMode, PaymentStatus, SalaryAdjustments
from storeops.services import payroll as payroll_service
from storeops.services.salary_export import export_salary_register

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class Period(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000)


class GenerateRequest(Period):
    employee_id: str
    adjustments: SalaryAdjustments = SalaryAdjustments()
    actor_id: str | None = None


class BulkGenerateRequest(Period):
    actor_id: str | None = None


class PaymentRequest(BaseModel):
    payment_mode: PaymentMode
    transaction_reference: str | None = None
    payment_notes: str | None = None
    actor_id: str | None = None


class HoldRequest(BaseModel):
    notes: str | None = None
    actor_id: str | None = None


@router.get("/summary")
async def payroll_summary(
    month: int = Query(..., ge=1, le=12), year: int = Query(...), backend: BackendClient = Depends(get_backend)
):
    return await payroll_service.payroll_summary(backend, month, year)


@router.get("/salaries")
async def payroll_salaries(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(...),
    status: PaymentStatus | None = None,
    employee_id: str | None = None,
    backend: BackendClient = Depends(get_backend),
):
    salaries = await payroll_service.list_salaries(backend, month, year, status, employee_id)
    return {"salaries": [s.model_dump(mode="json") for s in salaries]}


@router.post("/generate")
async def payroll_generate(body: GenerateRequest, backend: BackendClient = Depends(get_backend)):
    """Generate one employee's salary for the month."""
    record = await payroll_service.generate_salary(
        backend, body.employee_id, body.month, body.year, body.adjustments, actor_id=body.actor_id
    )
    return record.model_dump(mode="json")


@router.post("/bulk")
async def payroll_bulk(body: BulkGenerateRequest, backend: BackendClient = Depends(get_backend)):
    """Generate salaries for all active employees; per-employee failures are counted, not raised."""
    result = await payroll_service.bulk_generate(backend, body.month, body.year, actor_id=body.actor_id)
    return result.model_dump()


@router.post("/salaries/{salary_id}/payment")
async def payroll_payment(salary_id: str, body: PaymentRequest, backend: BackendClient = Depends(get_backend)):
    record = await payroll_service.record_payment(
        backend,
        salary_id,
        body.payment_mode,
        reference=body.transaction_reference,
        notes=body.payment_notes,
        actor_id=body.actor_id,
    )
    return record.model_dump(mode="json")


@router.post("/salaries/{salary_id}/hold")
async def payroll_hold(salary_id: str, body: HoldRequest, backend: BackendClient = Depends(get_backend)):
    record = await payroll_service.hold_salary(backend, salary_id, body.notes, body.actor_id)
    return record.model_dump(mode="json")


@router.get("/preview/{employee_id}")
async def payroll_preview(
    employee_id: str,
    month: int = Query(..., ge=1, le=12),
    year: int = Query(...),
    backend: BackendClient = Depends(get_backend),
):
    return await payroll_service.preview_salary(backend, employee_id, month, year)


@router.get("/export")
async def payroll_export(
    month: int = Query(..., ge=1, le=12), year: int = Query(...), backend: BackendClient = Depends(get_backend)
):
    """Salary register for the month as xlsx."""
    content = await export_salary_register(backend, month, year)
    filename = f"salary_register_{year}_{month:02d}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
