import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from survey360.core.audit import log_event
from survey360.core.rbac import MANAGE_SURVEYS, require_tenant_access
from survey360.core.survey_definition import count_questions
from survey360.core.tenancy import get_current_tenant, get_scoped_or_404
from survey360.db.session import get_db
from survey360.models.survey import Survey
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.pagination import paginate
from survey360.schemas.survey import SurveyCreate, SurveyDetailOut, SurveyOut, SurveyUpdate

router = APIRouter(prefix="/{tenant_slug}/api/surveys", tags=["surveys"])


def survey_to_out(s: Survey) -> SurveyOut:
    return SurveyOut(
        id=str(s.id),
        title=s.title,
        description=s.description,
        is_self_evaluation=s.is_self_evaluation,
        is_active=s.is_active,
        question_count=count_questions(s.definition),
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


def survey_to_detail(s: Survey) -> SurveyDetailOut:
    return SurveyDetailOut(**survey_to_out(s).model_dump(), definition=s.definition or {})


@router.post("", response_model=SurveyDetailOut, status_code=status.HTTP_201_CREATED)
def create_survey(
    payload: SurveyCreate,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    s = Survey(
        tenant_id=tenant.id,
        title=payload.title,
        description=payload.description,
        definition=payload.definition,
        is_self_evaluation=payload.is_self_evaluation,
        is_active=True,
    )
    db.add(s)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="SURVEY_CREATED",
        entity_type="survey",
        entity_id=s.id,
        metadata={"title": s.title, "question_count": count_questions(s.definition)},
    )
    db.commit()
    db.refresh(s)
    return survey_to_detail(s)


@router.get("")
def list_surveys(
    search: str | None = Query(default=None, description="Search by title"),
    include_inactive: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    query = db.query(Survey).filter(Survey.tenant_id == tenant.id)
    if not include_inactive:
        query = query.filter(Survey.is_active.is_(True))
    if search:
        query = query.filter(Survey.title.ilike(f"%{search.lower()}%"))

    total = query.count()
    rows = query.order_by(Survey.created_at.desc()).offset(offset).limit(limit).all()
    items = [survey_to_out(s) for s in rows]

    if include_pagination:
        return paginate(items, total=total, limit=limit, offset=offset)
    return items


@router.get("/{survey_id}", response_model=SurveyDetailOut)
def get_survey(
    survey_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    return survey_to_detail(get_scoped_or_404(db, Survey, survey_id, tenant, "Survey not found"))


@router.patch("/{survey_id}", response_model=SurveyDetailOut)
def update_survey(
    survey_id: uuid.UUID,
    payload: SurveyUpdate,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    s = get_scoped_or_404(db, Survey, survey_id, tenant, "Survey not found")

    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if field == "definition" and value is None:
            continue
        setattr(s, field, value)

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="SURVEY_UPDATED",
        entity_type="survey",
        entity_id=s.id,
        metadata={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(s)
    return survey_to_detail(s)


@router.delete("/{survey_id}", response_model=SurveyOut)
def deactivate_survey(
    survey_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_SURVEYS)),
):
    """Soft delete. Existing assignments and submissions are kept."""
    s = get_scoped_or_404(db, Survey, survey_id, tenant, "Survey not found")
    s.is_active = False

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="SURVEY_DEACTIVATED",
        entity_type="survey",
        entity_id=s.id,
    )
    db.commit()
    return survey_to_out(s)
