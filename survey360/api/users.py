import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from survey360.core.audit import log_event
from survey360.core.rbac import (
    MANAGE_USERS,
    PARTICIPANT,
    TENANT_ADMIN,
    get_user_role_names,
    grant_role,
    require_tenant_access,
)
from survey360.core.security import hash_password
from survey360.core.tenancy import get_current_tenant, get_scoped_by_raw_id_or_404, get_scoped_or_404
from survey360.db.session import get_db
from survey360.models.employee import Employee
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.auth import UserCreate, UserOut

router = APIRouter(prefix="/{tenant_slug}/api/users", tags=["users"])

# roles a tenant admin may hand out
TENANT_ROLES = {TENANT_ADMIN, PARTICIPANT}


def user_to_out(db: Session, u: User) -> UserOut:
    return UserOut(
        id=str(u.id),
        email=u.email,
        full_name=u.full_name,
        is_active=u.is_active,
        tenant_id=str(u.tenant_id) if u.tenant_id else None,
        employee_id=str(u.employee_id) if u.employee_id else None,
        roles=sorted(get_user_role_names(db, u)),
    )


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    if payload.role not in TENANT_ROLES:
        raise HTTPException(status_code=400, detail=f"Role must be one of: {sorted(TENANT_ROLES)}")

    employee_id = None
    if payload.employee_id:
        employee = get_scoped_by_raw_id_or_404(db, Employee, payload.employee_id, tenant, "Employee not found")
        employee_id = employee.id

    u = User(
        email=payload.email.strip().lower(),
        full_name=payload.full_name,
        password_hash=hash_password(payload.password),
        tenant_id=tenant.id,
        employee_id=employee_id,
        is_active=True,
    )
    db.add(u)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="User email already exists")

    grant_role(db, u, payload.role)

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="USER_CREATED",
        entity_type="user",
        entity_id=u.id,
        metadata={"email": u.email, "role": payload.role},
    )
    db.commit()
    db.refresh(u)
    return user_to_out(db, u)


@router.get("", response_model=list[UserOut])
def list_users(
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    rows = db.query(User).filter(User.tenant_id == tenant.id).order_by(User.email.asc()).all()
    return [user_to_out(db, u) for u in rows]


@router.delete("/{user_id}", response_model=UserOut)
def deactivate_user(
    user_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    u = get_scoped_or_404(db, User, user_id, tenant, "User not found")
    if u.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate yourself")
    u.is_active = False

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="USER_DEACTIVATED",
        entity_type="user",
        entity_id=u.id,
    )
    db.commit()
    return user_to_out(db, u)
