from datetime import datetime
from pydantic import BaseModel, Field


class ParticipantCreate(BaseModel):
    """Create a subject or an evaluator from an existing employee"""
    employee_id: str


class ParticipantOut(BaseModel):
    id: str
    employee_id: str
    employee_number: str
    full_name: str
    email: str
    designation: str | None
    department: str | None
    is_active: bool
    created_at: datetime


class RelationshipCreate(BaseModel):
    subject_id: str
    evaluator_id: str
    relationship: str | None = Field(default=None, max_length=50)


class RelationshipUpdate(BaseModel):
    relationship: str | None = Field(default=None, max_length=50)
    is_active: bool | None = None


class RelationshipOut(BaseModel):
    id: str
    subject_id: str
    subject_name: str
    subject_email: str
    evaluator_id: str
    evaluator_name: str
    evaluator_email: str
    relationship: str | None
    is_active: bool
    created_at: datetime
