import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from survey360.core.audit import log_event
from survey360.core.rbac import MANAGE_USERS, require_tenant_access
from survey360.core.tenancy import get_current_tenant, get_scoped_by_raw_id_or_404, get_scoped_or_404
from survey360.db.session import get_db
from survey360.models.evaluator import Evaluator
from survey360.models.subject import Subject
from survey360.models.subject_evaluator import RELATIONSHIP_TYPES, SubjectEvaluator
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.participant import RelationshipCreate, RelationshipOut, RelationshipUpdate

router = APIRouter(prefix="/{tenant_slug}/api/relationships", tags=["relationships"])


def relationship_to_out(r: SubjectEvaluator) -> RelationshipOut:
    subject_emp = r.subject.employee
    evaluator_emp = r.evaluator.employee
    return RelationshipOut(
        id=str(r.id),
        subject_id=str(r.subject_id),
        subject_name=subject_emp.full_name,
        subject_email=subject_emp.email,
        evaluator_id=str(r.evaluator_id),
        evaluator_name=evaluator_emp.full_name,
        evaluator_email=evaluator_emp.email,
        relationship=r.relationship_type,
        is_active=r.is_active,
        created_at=r.created_at,
    )


def _check_relationship_type(value: str | None):
    if value is not None and value not in RELATIONSHIP_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"relationship must be one of: {list(RELATIONSHIP_TYPES)}",
        )


@router.post("", response_model=RelationshipOut, status_code=status.HTTP_201_CREATED)
def create_relationship(
    payload: RelationshipCreate,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    _check_relationship_type(payload.relationship)
    subject = get_scoped_by_raw_id_or_404(db, Subject, payload.subject_id, tenant, "Subject not found")
    evaluator = get_scoped_by_raw_id_or_404(db, Evaluator, payload.evaluator_id, tenant, "Evaluator not found")
    if not subject.is_active or not evaluator.is_active:
        raise HTTPException(status_code=400, detail="Subject and evaluator must both be active")

    r = SubjectEvaluator(
        tenant_id=tenant.id,
        subject_id=subject.id,
        evaluator_id=evaluator.id,
        relationship_type=payload.relationship,
        is_active=True,
    )
    db.add(r)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Relationship between this subject and evaluator already exists")

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="RELATIONSHIP_CREATED",
        entity_type="subject_evaluator",
        entity_id=r.id,
        metadata={"relationship": r.relationship_type},
    )
    db.commit()
    db.refresh(r)
    return relationship_to_out(r)


@router.get("", response_model=list[RelationshipOut])
def list_relationships(
    subject_id: uuid.UUID | None = Query(default=None),
    evaluator_id: uuid.UUID | None = Query(default=None),
    relationship: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    q = db.query(SubjectEvaluator).filter(SubjectEvaluator.tenant_id == tenant.id)
    if not include_inactive:
        q = q.filter(SubjectEvaluator.is_active.is_(True))
    if subject_id:
        q = q.filter(SubjectEvaluator.subject_id == subject_id)
    if evaluator_id:
        q = q.filter(SubjectEvaluator.evaluator_id == evaluator_id)
    if relationship:
        q = q.filter(SubjectEvaluator.relationship_type == relationship)
    return [relationship_to_out(r) for r in q.order_by(SubjectEvaluator.created_at.asc()).all()]


@router.patch("/{relationship_id}", response_model=RelationshipOut)
def update_relationship(
    relationship_id: uuid.UUID,
    payload: RelationshipUpdate,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    r = get_scoped_or_404(db, SubjectEvaluator, relationship_id, tenant, "Relationship not found")

    changes = payload.model_dump(exclude_unset=True)
    if "relationship" in changes:
        _check_relationship_type(changes["relationship"])
        r.relationship_type = changes["relationship"]
    if changes.get("is_active") is not None:
        r.is_active = changes["is_active"]

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="RELATIONSHIP_UPDATED",
        entity_type="subject_evaluator",
        entity_id=r.id,
        metadata=changes,
    )
    db.commit()
    db.refresh(r)
    return relationship_to_out(r)


@router.delete("/{relationship_id}", response_model=RelationshipOut)
def deactivate_relationship(
    relationship_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    r = get_scoped_or_404(db, SubjectEvaluator, relationship_id, tenant, "Relationship not found")
    r.is_active = False

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="RELATIONSHIP_DEACTIVATED",
        entity_type="subject_evaluator",
        entity_id=r.id,
    )
    db.commit()
    return relationship_to_out(r)
