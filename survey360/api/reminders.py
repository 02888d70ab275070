from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from survey360.core.audit import log_event
from survey360.core.config import settings
from survey360.core.email import EmailSender, get_email_sender
from survey360.core.rbac import MANAGE_SURVEYS, require_tenant_access
from survey360.core.reminders import (
    build_reminder_batches,
    find_pending_assignments,
    run_reminder_sweep,
    send_form_reminder,
)
from survey360.core.tenancy import get_current_tenant, get_scoped_by_raw_id_or_404
from survey360.db.base import utcnow
from survey360.db.session import get_db
from survey360.models.email_audit_log import EmailAuditLog
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.survey_submission import COMPLETED, SurveySubmission
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.reminder import (
    EmailAuditLogOut,
    FormReminderRequest,
    FormReminderResult,
    PendingReminderBatch,
    ReminderSweepSummary,
)

router = APIRouter(prefix="/{tenant_slug}/api/reminders", tags=["reminders"])


@router.get("/pending", response_model=list[PendingReminderBatch])
def preview_pending_reminders(
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    """What the next sweep would send for this tenant, grouped per evaluator."""
    pending = find_pending_assignments(
        db,
        now=utcnow(),
        threshold_days=settings.REMINDER_THRESHOLD_DAYS,
        tenant_id=tenant.id,
    )
    return [batch for batch, _ in build_reminder_batches(pending, frontend_url=settings.frontend_base_url)]


@router.post("/run", response_model=ReminderSweepSummary)
def run_reminders_now(
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    """Run a reminder sweep restricted to this tenant."""
    summary = run_reminder_sweep(db, sender=sender, tenant_id=tenant.id)

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="REMINDERS_RUN",
        entity_type="tenant",
        entity_id=tenant.id,
        metadata={
            "evaluators_found": summary.evaluators_found,
            "emails_sent": summary.emails_sent,
            "emails_failed": summary.emails_failed,
        },
    )
    db.commit()
    return summary


@router.post("/send-form-reminder", response_model=FormReminderResult)
def remind_one_form(
    payload: FormReminderRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    """Email the evaluator of one assignment about that form only."""
    a = get_scoped_by_raw_id_or_404(db, SurveyAssignment, payload.assignment_id, tenant, "Form assignment not found")
    if not (a.is_active and a.survey.is_active and a.subject_evaluator.is_active):
        raise HTTPException(status_code=404, detail="Form assignment not found")

    submission = (
        db.query(SurveySubmission).filter(SurveySubmission.assignment_id == a.id).one_or_none()
    )
    if submission and submission.status == COMPLETED:
        raise HTTPException(status_code=400, detail="Form has already been completed")

    ok = send_form_reminder(db, assignment=a, sender=sender)
    recipient = a.subject_evaluator.evaluator.employee.email

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="FORM_REMINDER_SENT" if ok else "FORM_REMINDER_FAILED",
        entity_type="assignment",
        entity_id=a.id,
        metadata={"recipient": recipient},
    )
    # the failed attempt is still recorded before answering
    db.commit()

    if not ok:
        raise HTTPException(status_code=502, detail="Failed to send reminder email")
    return FormReminderResult(
        assignment_id=str(a.id),
        recipient=recipient,
        message="Reminder email sent successfully",
    )


@router.get("/email-log", response_model=list[EmailAuditLogOut])
def list_email_log(
    status: str | None = Query(default=None, description="Sent or Failed"),
    email: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    q = db.query(EmailAuditLog).filter(EmailAuditLog.tenant_id == tenant.id)
    if status:
        q = q.filter(EmailAuditLog.status == status)
    if email:
        q = q.filter(EmailAuditLog.email == email.strip().lower())

    rows = q.order_by(EmailAuditLog.created_at.desc()).limit(limit).all()
    return [
        EmailAuditLogOut(
            id=str(r.id),
            email=r.email,
            subject=r.subject,
            kind=r.kind,
            status=r.status,
            error_message=r.error_message,
            assignment_count=r.assignment_count,
            sent_at=r.sent_at,
            created_at=r.created_at,
        )
        for r in rows
    ]
