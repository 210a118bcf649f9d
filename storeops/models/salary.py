from datetime import date, datetime
from typing import ClassVar, Literal

from pydantic import BaseModel, Field

TABLE = "employee_salaries"

PaymentStatus = Literal["Pending", "Paid", "On Hold"]
PaymentMode = Literal["Cash", "Bank Transfer", "UPI"]


class SalaryAdjustments(BaseModel):
    bonus: float = Field(default=0, ge=0)
    incentives: float = Field(default=0, ge=0)
    overtime_amount: float = Field(default=0, ge=0)
    late_penalty: float = Field(default=0, ge=0)
    advance_deduction: float = Field(default=0, ge=0)
    other_deductions: float = Field(default=0, ge=0)


class SalaryRecord(BaseModel):
    """Salary for one employee and period. Unique per (employee_id, salary_month, salary_year)."""

    table_name: ClassVar[str] = TABLE

    id: str | None = None
    employee_id: str
    salary_month: int = Field(ge=1, le=12)
    salary_year: int

    # attendance roll-up
    total_working_days: int = 26
    present_days: int = 0
    absent_days: int = 0
    half_days: int = 0
    leave_days: int = 0
    holiday_days: int = 0
    total_working_hours: float = 0

    # money
    base_salary: float = 0
    gross_salary: float = 0
    bonus: float = 0
    incentives: float = 0
    overtime_amount: float = 0
    absent_deduction: float = 0
    late_penalty: float = 0
    advance_deduction: float = 0
    other_deductions: float = 0
    total_deductions: float = 0
    net_salary: float = 0

    payment_status: PaymentStatus = "Pending"
    payment_date: date | None = None
    payment_mode: PaymentMode | None = None
    transaction_reference: str | None = None
    payment_notes: str | None = None
    generated_at: datetime | None = None
    created_at: datetime | None = None
