"""Employee directory used by attendance and payroll."""

from storeops.backend.base import BackendClient, BackendError, eq
from storeops.core.audit import log_event
from storeops.core.exceptions import ConflictError, NotFoundError, ServiceUnavailableError
from storeops.core.logging import get_logger
from storeops.models.employee import TABLE, Employee

log = get_logger(__name__)


async def create_employee(backend: BackendClient, employee: Employee, actor_id: str | None = None) -> Employee:
    row = employee.model_dump(mode="json", exclude_none=True)
    try:
        inserted = await backend.insert(TABLE, row)
    except BackendError as exc:
        if exc.is_unique_violation():
            raise ConflictError(f"Employee code {employee.employee_id} already exists") from exc
        log.error("employee_create_failed", employee_id=employee.employee_id, code=exc.code)
        raise ServiceUnavailableError("Failed to create employee") from exc
    saved = Employee.model_validate(inserted[0])
    await log_event(
        backend,
        actor_id,
        "create",
        TABLE,
        entity_id=saved.id,
        operation_source="admin_employee_create",
        metadata={"employee_id": saved.employee_id, "full_name": saved.full_name},
    )
    return saved


async def get_employee(backend: BackendClient, id: str) -> Employee:
    try:
        row = await backend.select_one(TABLE, eq("id", id))
    except BackendError as exc:
        if exc.is_no_rows():
            raise NotFoundError("Employee not found") from exc
        raise ServiceUnavailableError("Failed to fetch employee") from exc
    return Employee.model_validate(row)


async def list_employees(backend: BackendClient, active_only: bool = False) -> list[Employee]:
    filters = [eq("status", "Active")] if active_only else []
    try:
        rows = await backend.select(TABLE, *filters, order_by="full_name")
    except BackendError as exc:
        log.error("employee_list_failed", code=exc.code)
        raise ServiceUnavailableError("Failed to fetch employees") from exc
    return [Employee.model_validate(r) for r in rows]
