import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from survey360.core.config import settings
from survey360.core.email import render_email
from survey360.core.logger import get_logger
from survey360.db.base import utcnow
from survey360.models.email_audit_log import FAILED, KIND_FORM, KIND_SWEEP, SENT, EmailAuditLog
from survey360.models.evaluator import Evaluator
from survey360.models.subject_evaluator import SubjectEvaluator
from survey360.models.survey import Survey
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.survey_submission import COMPLETED, SurveySubmission
from survey360.models.tenant import Tenant
from survey360.schemas.reminder import (
    PendingReminderBatch,
    PendingReminderItem,
    ReminderSweepSummary,
)

logger = get_logger(__name__)

REMINDER_SUBJECT = "Reminder: you have pending surveys to complete"
FORM_REMINDER_SUBJECT = "Reminder: {survey_title} is waiting for your feedback"


class Sender(Protocol):
    def send_email(self, recipient: str, subject: str, html_body: str) -> bool: ...


def find_pending_assignments(
    db: Session,
    *,
    now: datetime,
    threshold_days: int,
    tenant_id=None,
) -> list[SurveyAssignment]:
    """
    Active assignments created before `now - threshold_days`, never reminded,
    with no Completed submission. The survey, the pair, the evaluator and the
    tenant must all still be active, otherwise the form link would 404.
    """
    cutoff = now - timedelta(days=threshold_days)
    completed_ids = select(SurveySubmission.assignment_id).where(
        SurveySubmission.status == COMPLETED
    )

    query = (
        db.query(SurveyAssignment)
        .join(Survey, Survey.id == SurveyAssignment.survey_id)
        .join(SubjectEvaluator, SubjectEvaluator.id == SurveyAssignment.subject_evaluator_id)
        .join(Evaluator, Evaluator.id == SubjectEvaluator.evaluator_id)
        .join(Tenant, Tenant.id == SurveyAssignment.tenant_id)
        .filter(
            SurveyAssignment.is_active.is_(True),
            Survey.is_active.is_(True),
            SubjectEvaluator.is_active.is_(True),
            Evaluator.is_active.is_(True),
            Tenant.is_active.is_(True),
            SurveyAssignment.created_at < cutoff,
            SurveyAssignment.last_reminder_sent_at.is_(None),
            ~SurveyAssignment.id.in_(completed_ids),
        )
    )
    if tenant_id is not None:
        query = query.filter(SurveyAssignment.tenant_id == tenant_id)
    return query.order_by(SurveyAssignment.created_at.asc()).all()


def build_reminder_batches(
    assignments: list[SurveyAssignment],
    *,
    frontend_url: str,
) -> list[tuple[PendingReminderBatch, list[SurveyAssignment]]]:
    """
    Group assignments per evaluator email within a tenant. Someone evaluating
    in two tenants gets one email per tenant, each with its own dashboard link.
    """
    grouped: dict[tuple, list[SurveyAssignment]] = defaultdict(list)
    for a in assignments:
        grouped[(a.tenant_id, a.subject_evaluator.evaluator.employee.email)].append(a)

    batches = []
    for (_, email), group in grouped.items():
        first = group[0]
        batch = PendingReminderBatch(
            evaluator_email=email,
            evaluator_name=first.subject_evaluator.evaluator.employee.full_name,
            tenant_slug=first.tenant.slug,
            items=[
                PendingReminderItem(
                    assignment_id=str(a.id),
                    survey_title=a.survey.title,
                    subject_name=a.subject_evaluator.subject.employee.full_name,
                    link=form_link(frontend_url, a),
                )
                for a in group
            ],
        )
        batches.append((batch, group))
    return batches


def form_link(frontend_url: str, assignment: SurveyAssignment) -> str:
    return f"{frontend_url}/{assignment.tenant.slug}/participant/forms/{assignment.id}"


def render_reminder_email(batch: PendingReminderBatch, *, frontend_url: str) -> str:
    return render_email(
        "reminder.html",
        evaluator_name=batch.evaluator_name,
        items=batch.items,
        dashboard_link=f"{frontend_url}/{batch.tenant_slug}/participant/dashboard",
    )


def _deliver(
    db: Session,
    sender: Sender,
    *,
    tenant_id,
    recipient: str,
    subject: str,
    html_body: str,
    kind: str,
    assignment_count: int,
) -> bool:
    """Send one email and add an EmailAuditLog row for the attempt. Never raises."""
    error = None
    try:
        ok = sender.send_email(recipient, subject, html_body)
        if not ok:
            error = "Email sender reported failure"
    except Exception as exc:
        logger.exception("Email to %s raised", recipient)
        ok = False
        error = str(exc) or exc.__class__.__name__

    db.add(
        EmailAuditLog(
            tenant_id=tenant_id,
            email=recipient,
            subject=subject[:255],
            kind=kind,
            status=SENT if ok else FAILED,
            error_message=error,
            assignment_count=assignment_count,
            sent_at=utcnow() if ok else None,
        )
    )
    return ok


def run_reminder_sweep(
    db: Session,
    *,
    sender: Sender,
    now: datetime | None = None,
    threshold_days: int | None = None,
    tenant_id=None,
    frontend_url: str | None = None,
) -> ReminderSweepSummary:
    """
    One reminder pass: one consolidated email per evaluator, stamping
    `last_reminder_sent_at` only for groups whose send succeeded. A failing
    group is logged and skipped. Every attempt leaves an EmailAuditLog row.
    Stamps and log rows are committed once at the end.
    """
    started_at = utcnow()
    now = now or started_at
    threshold_days = settings.REMINDER_THRESHOLD_DAYS if threshold_days is None else threshold_days
    frontend_url = (frontend_url or settings.frontend_base_url).rstrip("/")

    pending = find_pending_assignments(db, now=now, threshold_days=threshold_days, tenant_id=tenant_id)
    batches = build_reminder_batches(pending, frontend_url=frontend_url)
    logger.info(
        "Reminder sweep: %d pending assignment(s) for %d evaluator(s)", len(pending), len(batches)
    )

    sent = failed = stamped = 0
    for batch, group in batches:
        try:
            html_body = render_reminder_email(batch, frontend_url=frontend_url)
        except Exception:
            logger.exception("Could not render reminder for %s", batch.evaluator_email)
            failed += 1
            continue

        ok = _deliver(
            db,
            sender,
            tenant_id=group[0].tenant_id,
            recipient=batch.evaluator_email,
            subject=REMINDER_SUBJECT,
            html_body=html_body,
            kind=KIND_SWEEP,
            assignment_count=len(group),
        )
        if not ok:
            failed += 1
            logger.error(
                "Failed to send reminder to %s (%d pending)", batch.evaluator_email, len(group)
            )
            continue

        for a in group:
            a.last_reminder_sent_at = now
            a.updated_at = now
        sent += 1
        stamped += len(group)
        logger.info("Sent reminder to %s for %d pending survey(s)", batch.evaluator_email, len(group))

    db.commit()

    return ReminderSweepSummary(
        started_at=started_at,
        finished_at=utcnow(),
        evaluators_found=len(batches),
        emails_sent=sent,
        emails_failed=failed,
        assignments_stamped=stamped,
    )


def send_form_reminder(
    db: Session,
    *,
    assignment: SurveyAssignment,
    sender: Sender,
    frontend_url: str | None = None,
) -> bool:
    """
    Remind the evaluator about one form, on demand. Does not touch
    `last_reminder_sent_at`, so the next sweep may still remind them.
    The caller commits.
    """
    frontend_url = (frontend_url or settings.frontend_base_url).rstrip("/")
    evaluator = assignment.subject_evaluator.evaluator.employee
    html_body = render_email(
        "form_reminder.html",
        evaluator_name=evaluator.full_name,
        subject_name=assignment.subject_evaluator.subject.employee.full_name,
        survey_title=assignment.survey.title,
        tenant_name=assignment.tenant.name,
        link=form_link(frontend_url, assignment),
    )
    ok = _deliver(
        db,
        sender,
        tenant_id=assignment.tenant_id,
        recipient=evaluator.email,
        subject=FORM_REMINDER_SUBJECT.format(survey_title=assignment.survey.title),
        html_body=html_body,
        kind=KIND_FORM,
        assignment_count=1,
    )
    if ok:
        logger.info("Sent form reminder to %s for assignment %s", evaluator.email, assignment.id)
    else:
        logger.warning("Failed to send form reminder for assignment %s", assignment.id)
    return ok


class ReminderScheduler:
    """
    Background loop: one sweep at start, then one every `interval_hours`.
    Each run opens its own session.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        sender: Sender,
        interval_hours: float = 24,
    ):
        self.session_factory = session_factory
        self.sender = sender
        self.interval_seconds = interval_hours * 3600
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> ReminderSweepSummary | None:
        db = self.session_factory()
        try:
            return run_reminder_sweep(db, sender=self.sender)
        except Exception:
            db.rollback()
            logger.exception("Reminder sweep failed")
            return None
        finally:
            db.close()

    def run_forever(self) -> None:
        logger.info("Reminder scheduler started (every %s h)", self.interval_seconds / 3600)
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self.interval_seconds)
        logger.info("Reminder scheduler stopped")

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="reminder-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
