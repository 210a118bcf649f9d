from datetime import datetime
from typing import ClassVar, Literal

from pydantic import BaseModel, Field

TABLE = "employees"

SalaryType = Literal["Monthly", "Daily", "Hourly"]


class Employee(BaseModel):
    table_name: ClassVar[str] = TABLE

    id: str | None = None
    employee_id: str  # staff code shown on payslips
    full_name: str
    role: str = ""
    department: str = ""
    salary_type: SalaryType = "Monthly"
    base_salary: float = Field(default=0, ge=0)  # per month, day or hour by salary_type
    status: Literal["Active", "Inactive"] = "Active"
    created_at: datetime | None = None
