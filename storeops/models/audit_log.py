from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field

TABLE = "audit_logs"


class AuditLog(BaseModel):
    table_name: ClassVar[str] = TABLE

    id: str | None = None
    user_id: str | None = None  # acting admin; None for system events
    event_type: str  # create | update | delete
    entity_type: str  # table the event touched
    entity_id: str | None = None
    operation_source: str | None = None  # admin_salary_generate, admin_attendance_mark, ...
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
