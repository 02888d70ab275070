from datetime import datetime
from pydantic import BaseModel


class MyAssignmentOut(BaseModel):
    assignment_id: str
    survey_id: str
    survey_title: str
    subject_id: str
    subject_name: str
    relationship: str | None
    status: str
    started_at: datetime | None
    completed_at: datetime | None


class SubmissionSave(BaseModel):
    response_data: dict


class SubmissionOut(BaseModel):
    id: str
    assignment_id: str
    survey_id: str
    subject_id: str
    evaluator_id: str
    status: str
    response_data: dict | None
    started_at: datetime | None
    completed_at: datetime | None


class AssignmentFormOut(BaseModel):
    """What a participant needs to render and fill a survey"""
    assignment_id: str
    survey_id: str
    survey_title: str
    survey_description: str | None
    definition: dict
    subject_name: str
    submission: SubmissionOut | None
