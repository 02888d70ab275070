from datetime import datetime
from pydantic import BaseModel


class PendingReminderItem(BaseModel):
    assignment_id: str
    survey_title: str
    subject_name: str
    link: str


class PendingReminderBatch(BaseModel):
    evaluator_email: str
    evaluator_name: str
    tenant_slug: str
    items: list[PendingReminderItem]


class ReminderSweepSummary(BaseModel):
    started_at: datetime
    finished_at: datetime
    evaluators_found: int
    emails_sent: int
    emails_failed: int
    assignments_stamped: int


class FormReminderRequest(BaseModel):
    assignment_id: str


class FormReminderResult(BaseModel):
    assignment_id: str
    recipient: str
    message: str


class EmailAuditLogOut(BaseModel):
    id: str
    email: str
    subject: str
    kind: str
    status: str
    error_message: str | None
    assignment_count: int
    sent_at: datetime | None
    created_at: datetime
