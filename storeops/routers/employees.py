from fastapi import APIRouter, Depends

from storeops.backend.base import BackendClient
from storeops.deps import get_backend
from storeops.models.employee import Employee
from storeops.services import employees as employees_service

router = APIRouter()


@router.post("")
async def employee_create(body: Employee, backend: BackendClient = Depends(get_backend)):
    employee = await employees_service.create_employee(backend, body)
    return employee.model_dump(mode="json")


@router.get("")
async def employee_list(active_only: bool = False, backend: BackendClient = Depends(get_backend)):
    employees = await employees_service.list_employees(backend, active_only)
    return {"employees": [e.model_dump(mode="json") for e in employees]}


@router.get("/{id}")
async def employee_get(id: str, backend: BackendClient = Depends(get_backend)):
    employee = await employees_service.get_employee(backend, id)
    return employee.model_dump(mode="json")
