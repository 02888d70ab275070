import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from survey360.core.access import assert_user_is_evaluator, get_evaluator_for_user
from survey360.core.audit import log_event
from survey360.core.rbac import FILL_SURVEYS, require_tenant_access
from survey360.core.tenancy import get_current_tenant
from survey360.db.base import utcnow
from survey360.db.session import get_db
from survey360.models.subject_evaluator import SubjectEvaluator
from survey360.models.survey import Survey
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.survey_submission import COMPLETED, IN_PROGRESS, PENDING, SurveySubmission
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.submission import AssignmentFormOut, MyAssignmentOut, SubmissionOut, SubmissionSave

router = APIRouter(prefix="/{tenant_slug}/api/participant", tags=["participant"])


def submission_to_out(s: SurveySubmission) -> SubmissionOut:
    return SubmissionOut(
        id=str(s.id),
        assignment_id=str(s.assignment_id),
        survey_id=str(s.survey_id),
        subject_id=str(s.subject_id),
        evaluator_id=str(s.evaluator_id),
        status=s.status,
        response_data=s.response_data,
        started_at=s.started_at,
        completed_at=s.completed_at,
    )


def _get_my_assignment(db: Session, tenant: Tenant, user: User, assignment_id: uuid.UUID) -> SurveyAssignment:
    a = db.get(SurveyAssignment, assignment_id)
    if not a or a.tenant_id != tenant.id or not a.is_active or not a.survey.is_active:
        raise HTTPException(status_code=404, detail="Assignment not found")
    assert_user_is_evaluator(db, user, a)
    return a


def _get_submission(db: Session, assignment: SurveyAssignment) -> SurveySubmission | None:
    return (
        db.query(SurveySubmission)
        .filter(SurveySubmission.assignment_id == assignment.id)
        .one_or_none()
    )


@router.get("/assignments", response_model=list[MyAssignmentOut])
def my_assignments(
    status: str | None = Query(default=None, description="Filter by status: Pending, InProgress, Completed"),
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=FILL_SURVEYS)),
):
    """Active assignments where the current user is the evaluator."""
    evaluator = get_evaluator_for_user(db, current_user)
    if not evaluator:
        return []

    assignments = (
        db.query(SurveyAssignment)
        .join(SubjectEvaluator, SubjectEvaluator.id == SurveyAssignment.subject_evaluator_id)
        .join(Survey, Survey.id == SurveyAssignment.survey_id)
        .filter(
            SurveyAssignment.tenant_id == tenant.id,
            SurveyAssignment.is_active.is_(True),
            Survey.is_active.is_(True),
            SubjectEvaluator.evaluator_id == evaluator.id,
        )
        .order_by(SurveyAssignment.created_at.desc())
        .all()
    )

    submissions = {}
    if assignments:
        submissions = {
            s.assignment_id: s
            for s in db.query(SurveySubmission)
            .filter(SurveySubmission.assignment_id.in_([a.id for a in assignments]))
            .all()
        }

    items = []
    for a in assignments:
        sub = submissions.get(a.id)
        item_status = sub.status if sub else PENDING
        if status and item_status != status:
            continue
        items.append(
            MyAssignmentOut(
                assignment_id=str(a.id),
                survey_id=str(a.survey_id),
                survey_title=a.survey.title,
                subject_id=str(a.subject_evaluator.subject_id),
                subject_name=a.subject_evaluator.subject.employee.full_name,
                relationship=a.subject_evaluator.relationship_type,
                status=item_status,
                started_at=sub.started_at if sub else None,
                completed_at=sub.completed_at if sub else None,
            )
        )
    return items


@router.get("/assignments/{assignment_id}", response_model=AssignmentFormOut)
def get_assignment_form(
    assignment_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=FILL_SURVEYS)),
):
    a = _get_my_assignment(db, tenant, current_user, assignment_id)
    sub = _get_submission(db, a)
    return AssignmentFormOut(
        assignment_id=str(a.id),
        survey_id=str(a.survey_id),
        survey_title=a.survey.title,
        survey_description=a.survey.description,
        definition=a.survey.definition or {},
        subject_name=a.subject_evaluator.subject.employee.full_name,
        submission=submission_to_out(sub) if sub else None,
    )


def _save(
    db: Session,
    *,
    tenant: Tenant,
    user: User,
    assignment_id: uuid.UUID,
    response_data: dict,
    complete: bool,
) -> SurveySubmission:
    a = _get_my_assignment(db, tenant, user, assignment_id)
    sub = _get_submission(db, a)
    now = utcnow()

    if sub and sub.status == COMPLETED:
        raise HTTPException(status_code=409, detail="Submission is already completed")

    if not sub:
        sub = SurveySubmission(
            tenant_id=tenant.id,
            assignment_id=a.id,
            evaluator_id=a.subject_evaluator.evaluator_id,
            subject_id=a.subject_evaluator.subject_id,
            survey_id=a.survey_id,
            started_at=now,
        )
        db.add(sub)

    sub.response_data = response_data
    if complete:
        sub.status = COMPLETED
        sub.completed_at = now
    else:
        sub.status = IN_PROGRESS
    db.flush()

    log_event(
        db=db,
        actor=user,
        tenant=tenant,
        action="SUBMISSION_COMPLETED" if complete else "SUBMISSION_SAVED",
        entity_type="survey_submission",
        entity_id=sub.id,
        metadata={"assignment_id": str(a.id)},
    )
    db.commit()
    db.refresh(sub)
    return sub


@router.put("/assignments/{assignment_id}/submission", response_model=SubmissionOut)
def save_draft(
    assignment_id: uuid.UUID,
    payload: SubmissionSave,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=FILL_SURVEYS)),
):
    """Save answers without submitting (status InProgress)."""
    sub = _save(
        db,
        tenant=tenant,
        user=current_user,
        assignment_id=assignment_id,
        response_data=payload.response_data,
        complete=False,
    )
    return submission_to_out(sub)


@router.post("/assignments/{assignment_id}/submit", response_model=SubmissionOut)
def submit(
    assignment_id: uuid.UUID,
    payload: SubmissionSave,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=FILL_SURVEYS)),
):
    """Submit answers. Completed submissions cannot be changed afterwards."""
    sub = _save(
        db,
        tenant=tenant,
        user=current_user,
        assignment_id=assignment_id,
        response_data=payload.response_data,
        complete=True,
    )
    return submission_to_out(sub)
