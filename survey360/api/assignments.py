import uuid

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from survey360.core import assignment as assignment_service
from survey360.core.rbac import MANAGE_SURVEYS, require_tenant_access
from survey360.core.tenancy import get_current_tenant
from survey360.db.session import get_db
from survey360.models.subject_evaluator import SubjectEvaluator
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.survey_submission import SurveySubmission
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.assignment import (
    AssignCsvRequest,
    AssignedRelationshipOut,
    AssignmentResult,
    AssignRelationshipsRequest,
    AvailableRelationshipOut,
)

router = APIRouter(prefix="/{tenant_slug}/api/surveys/{survey_id}", tags=["assignments"])


def assigned_to_out(a: SurveyAssignment, submission_status: str | None) -> AssignedRelationshipOut:
    r = a.subject_evaluator
    return AssignedRelationshipOut(
        assignment_id=str(a.id),
        relationship_id=str(r.id),
        subject_id=str(r.subject_id),
        subject_name=r.subject.employee.full_name,
        evaluator_id=str(r.evaluator_id),
        evaluator_name=r.evaluator.employee.full_name,
        evaluator_email=r.evaluator.employee.email,
        relationship=r.relationship_type,
        submission_status=submission_status,
        last_reminder_sent_at=a.last_reminder_sent_at,
        assigned_at=a.created_at,
    )


def available_to_out(r: SubjectEvaluator) -> AvailableRelationshipOut:
    return AvailableRelationshipOut(
        relationship_id=str(r.id),
        subject_id=str(r.subject_id),
        subject_name=r.subject.employee.full_name,
        evaluator_id=str(r.evaluator_id),
        evaluator_name=r.evaluator.employee.full_name,
        evaluator_email=r.evaluator.employee.email,
        relationship=r.relationship_type,
    )


@router.post("/auto-assign", response_model=AssignmentResult)
def auto_assign(
    survey_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    """
    Assign the survey to every active subject-evaluator relationship of the
    tenant. Already assigned relationships are skipped.
    """
    result = assignment_service.auto_assign_survey(
        db, tenant=tenant, survey_id=survey_id, actor=current_user
    )
    if result.success:
        db.commit()
    return result


@router.post("/assign-csv", response_model=AssignmentResult)
def assign_from_csv_rows(
    survey_id: uuid.UUID,
    payload: AssignCsvRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    """
    Assign from parsed CSV rows (evaluator employee number, subject employee
    number, relationship). Missing subjects, evaluators and relationships are
    created on the way.
    """
    result = assignment_service.assign_survey_from_csv_rows(
        db, tenant=tenant, survey_id=survey_id, rows=payload.rows, actor=current_user
    )
    if result.success:
        db.commit()
    return result


@router.post("/assign-csv/upload", response_model=AssignmentResult)
def assign_from_csv_file(
    survey_id: uuid.UUID,
    file: UploadFile = File(...),
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    """Same as /assign-csv, reading the rows from an uploaded CSV file."""
    try:
        content = file.file.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded")

    rows = assignment_service.parse_assignment_csv(content)
    result = assignment_service.assign_survey_from_csv_rows(
        db, tenant=tenant, survey_id=survey_id, rows=rows, actor=current_user
    )
    if result.success:
        db.commit()
    return result


@router.post("/assign", response_model=AssignmentResult)
def assign(
    survey_id: uuid.UUID,
    payload: AssignRelationshipsRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    result = assignment_service.assign_survey_to_relationships(
        db,
        tenant=tenant,
        survey_id=survey_id,
        relationship_ids=payload.relationship_ids,
        actor=current_user,
    )
    db.commit()
    return result


@router.post("/unassign", response_model=AssignmentResult)
def unassign(
    survey_id: uuid.UUID,
    payload: AssignRelationshipsRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    result = assignment_service.unassign_survey(
        db,
        tenant=tenant,
        survey_id=survey_id,
        relationship_ids=payload.relationship_ids,
        actor=current_user,
    )
    db.commit()
    return result


@router.get("/assigned-relationships", response_model=list[AssignedRelationshipOut])
def list_assigned_relationships(
    survey_id: uuid.UUID,
    search: str | None = Query(default=None, description="Search by subject or evaluator name/email"),
    relationship: str | None = Query(default=None, description="Filter by relationship type"),
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    assignments = assignment_service.list_assigned(
        db, tenant=tenant, survey_id=survey_id, search=search, relationship=relationship
    )
    statuses = {}
    if assignments:
        statuses = {
            row.assignment_id: row.status
            for row in db.query(SurveySubmission.assignment_id, SurveySubmission.status)
            .filter(SurveySubmission.assignment_id.in_([a.id for a in assignments]))
            .all()
        }
    return [assigned_to_out(a, statuses.get(a.id)) for a in assignments]


@router.get("/available-relationships", response_model=list[AvailableRelationshipOut])
def list_available_relationships(
    survey_id: uuid.UUID,
    search: str | None = Query(default=None, description="Search by subject or evaluator name/email"),
    relationship: str | None = Query(default=None, description="Filter by relationship type"),
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    rows = assignment_service.list_available(
        db, tenant=tenant, survey_id=survey_id, search=search, relationship=relationship
    )
    return [available_to_out(r) for r in rows]
