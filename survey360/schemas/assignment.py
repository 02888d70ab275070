from datetime import datetime
from pydantic import BaseModel, Field


class AssignmentResult(BaseModel):
    """Outcome of a bulk assign / unassign; errors do not abort the batch"""
    success: bool
    message: str
    assigned_count: int = 0
    skipped_count: int = 0
    unassigned_count: int = 0
    error_count: int = 0
    errors: list[str] = Field(default_factory=list)


class AssignRelationshipsRequest(BaseModel):
    relationship_ids: list[str] = Field(min_length=1, max_length=1000)


class AssignedRelationshipOut(BaseModel):
    assignment_id: str
    relationship_id: str
    subject_id: str
    subject_name: str
    evaluator_id: str
    evaluator_name: str
    evaluator_email: str
    relationship: str | None
    submission_status: str | None
    last_reminder_sent_at: datetime | None
    assigned_at: datetime


class AvailableRelationshipOut(BaseModel):
    relationship_id: str
    subject_id: str
    subject_name: str
    evaluator_id: str
    evaluator_name: str
    evaluator_email: str
    relationship: str | None


class CsvAssignmentRow(BaseModel):
    """One CSV line: who evaluates whom (by employee number) and how they relate"""
    evaluator_employee_number: str = ""
    subject_employee_number: str = ""
    relationship: str = ""


class AssignCsvRequest(BaseModel):
    rows: list[CsvAssignmentRow] = Field(min_length=1, max_length=5000)
