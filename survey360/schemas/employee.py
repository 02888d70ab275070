from datetime import datetime
from pydantic import BaseModel, Field


class EmployeeCreate(BaseModel):
    employee_number: str = Field(min_length=1, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    designation: str | None = Field(default=None, max_length=100)
    department: str | None = Field(default=None, max_length=100)


class EmployeeUpdate(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: str | None = Field(default=None, max_length=255)
    designation: str | None = Field(default=None, max_length=100)
    department: str | None = Field(default=None, max_length=100)
    is_active: bool | None = None


class EmployeeOut(BaseModel):
    id: str
    employee_number: str
    first_name: str
    last_name: str
    full_name: str
    email: str
    designation: str | None
    department: str | None
    is_active: bool
    created_at: datetime
