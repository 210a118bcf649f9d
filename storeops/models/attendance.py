from datetime import date, datetime
from typing import ClassVar, Literal

from pydantic import BaseModel, Field

TABLE = "employee_attendance"

AttendanceStatus = Literal["Present", "Absent", "Half Day", "Leave", "Holiday"]
ATTENDANCE_STATUSES = ("Present", "Absent", "Half Day", "Leave", "Holiday")


class AttendanceRecord(BaseModel):
    """One per employee per day."""

    table_name: ClassVar[str] = TABLE

    id: str | None = None
    employee_id: str
    attendance_date: date
    status: AttendanceStatus
    check_in_time: str | None = None  # HH:MM
    check_out_time: str | None = None
    working_hours: float = Field(default=0, ge=0)
    notes: str | None = None
    is_locked: bool = False
    created_at: datetime | None = None


class AttendanceSummary(BaseModel):
    total_working_days: int = 26
    present_days: int = 0
    absent_days: int = 0
    half_days: int = 0
    leave_days: int = 0
    holiday_days: int = 0
    total_working_hours: float = 0
