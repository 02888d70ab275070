import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from survey360.core.audit import log_event
from survey360.core.rbac import MANAGE_USERS, require_tenant_access
from survey360.core.tenancy import get_current_tenant, get_scoped_by_raw_id_or_404, get_scoped_or_404
from survey360.db.session import get_db
from survey360.models.employee import Employee
from survey360.models.evaluator import Evaluator
from survey360.models.subject import Subject
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.participant import ParticipantCreate, ParticipantOut


def participant_to_out(p: Subject | Evaluator) -> ParticipantOut:
    e = p.employee
    return ParticipantOut(
        id=str(p.id),
        employee_id=str(e.id),
        employee_number=e.employee_number,
        full_name=e.full_name,
        email=e.email,
        designation=e.designation,
        department=e.department,
        is_active=p.is_active,
        created_at=p.created_at,
    )


def build_participant_router(model: type[Subject] | type[Evaluator], *, path: str, label: str) -> APIRouter:
    """Subjects and evaluators share the same shape: one employee, one flag."""
    entity_type = label.lower()
    not_found = f"{label} not found"

    router = APIRouter(prefix=f"/{{tenant_slug}}/api/{path}", tags=[path])

    @router.post("", response_model=ParticipantOut, status_code=status.HTTP_201_CREATED)
    def create_participant(
        payload: ParticipantCreate,
        tenant: Tenant = Depends(get_current_tenant),
        db: Session = Depends(get_db),
        current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
    ):
        employee = get_scoped_by_raw_id_or_404(db, Employee, payload.employee_id, tenant, "Employee not found")
        if not employee.is_active:
            raise HTTPException(status_code=400, detail="Employee is inactive")

        p = model(tenant_id=tenant.id, employee_id=employee.id, is_active=True)
        db.add(p)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise HTTPException(status_code=409, detail=f"Employee is already a {entity_type}")

        log_event(
            db=db,
            actor=current_user,
            tenant=tenant,
            action=f"{label.upper()}_CREATED",
            entity_type=entity_type,
            entity_id=p.id,
            metadata={"employee_id": str(employee.id)},
        )
        db.commit()
        db.refresh(p)
        return participant_to_out(p)

    @router.get("", response_model=list[ParticipantOut])
    def list_participants(
        search: str | None = Query(default=None, description="Search by name, email or employee number"),
        include_inactive: bool = Query(default=False),
        tenant: Tenant = Depends(get_current_tenant),
        db: Session = Depends(get_db),
        _: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
    ):
        query = (
            db.query(model)
            .join(Employee, Employee.id == model.employee_id)
            .filter(model.tenant_id == tenant.id)
        )
        if not include_inactive:
            query = query.filter(model.is_active.is_(True))
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(
                Employee.first_name.ilike(term)
                | Employee.last_name.ilike(term)
                | Employee.email.ilike(term)
                | Employee.employee_number.ilike(term)
            )
        rows = query.order_by(Employee.last_name.asc(), Employee.first_name.asc()).all()
        return [participant_to_out(p) for p in rows]

    @router.get("/{participant_id}", response_model=ParticipantOut)
    def get_participant(
        participant_id: uuid.UUID,
        tenant: Tenant = Depends(get_current_tenant),
        db: Session = Depends(get_db),
        _: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
    ):
        return participant_to_out(get_scoped_or_404(db, model, participant_id, tenant, not_found))

    @router.delete("/{participant_id}", response_model=ParticipantOut)
    def deactivate_participant(
        participant_id: uuid.UUID,
        tenant: Tenant = Depends(get_current_tenant),
        db: Session = Depends(get_db),
        current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
    ):
        p = get_scoped_or_404(db, model, participant_id, tenant, not_found)
        p.is_active = False

        log_event(
            db=db,
            actor=current_user,
            tenant=tenant,
            action=f"{label.upper()}_DEACTIVATED",
            entity_type=entity_type,
            entity_id=p.id,
        )
        db.commit()
        return participant_to_out(p)

    return router


subjects_router = build_participant_router(Subject, path="subjects", label="Subject")
evaluators_router = build_participant_router(Evaluator, path="evaluators", label="Evaluator")
