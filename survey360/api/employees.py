import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from survey360.core.audit import log_event
from survey360.core.rbac import MANAGE_USERS, require_tenant_access
from survey360.core.tenancy import get_current_tenant, get_scoped_or_404
from survey360.db.session import get_db
from survey360.models.employee import Employee
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.employee import EmployeeCreate, EmployeeOut, EmployeeUpdate
from survey360.schemas.pagination import paginate

router = APIRouter(prefix="/{tenant_slug}/api/employees", tags=["employees"])


def employee_to_out(e: Employee) -> EmployeeOut:
    return EmployeeOut(
        id=str(e.id),
        employee_number=e.employee_number,
        first_name=e.first_name,
        last_name=e.last_name,
        full_name=e.full_name,
        email=e.email,
        designation=e.designation,
        department=e.department,
        is_active=e.is_active,
        created_at=e.created_at,
    )


@router.post("", response_model=EmployeeOut, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: EmployeeCreate,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    e = Employee(
        tenant_id=tenant.id,
        employee_number=payload.employee_number,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email.strip().lower(),
        designation=payload.designation,
        department=payload.department,
        is_active=True,
    )
    db.add(e)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Employee number already exists")

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="EMPLOYEE_CREATED",
        entity_type="employee",
        entity_id=e.id,
        metadata={"employee_number": e.employee_number},
    )
    db.commit()
    db.refresh(e)
    return employee_to_out(e)


@router.get("")
def list_employees(
    search: str | None = Query(default=None, description="Search by employee number, name or email"),
    department: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500, description="Maximum number of results"),
    offset: int = Query(default=0, ge=0, description="Number of results to skip"),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    """
    List employees of the tenant with optional search and pagination.

    Use ?include_pagination=true to get pagination metadata.
    """
    query = db.query(Employee).filter(Employee.tenant_id == tenant.id)

    if not include_inactive:
        query = query.filter(Employee.is_active.is_(True))
    if department:
        query = query.filter(Employee.department == department)
    if search:
        search_term = f"%{search.lower()}%"
        query = query.filter(
            (Employee.employee_number.ilike(search_term))
            | (Employee.first_name.ilike(search_term))
            | (Employee.last_name.ilike(search_term))
            | (Employee.email.ilike(search_term))
        )

    total = query.count()
    employees = (
        query.order_by(Employee.last_name.asc(), Employee.first_name.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    items = [employee_to_out(e) for e in employees]

    if include_pagination:
        return paginate(items, total=total, limit=limit, offset=offset)
    return items


@router.get("/{employee_id}", response_model=EmployeeOut)
def get_employee(
    employee_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    return employee_to_out(get_scoped_or_404(db, Employee, employee_id, tenant, "Employee not found"))


@router.patch("/{employee_id}", response_model=EmployeeOut)
def update_employee(
    employee_id: uuid.UUID,
    payload: EmployeeUpdate,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    e = get_scoped_or_404(db, Employee, employee_id, tenant, "Employee not found")

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("email"):
        changes["email"] = changes["email"].strip().lower()
    for field, value in changes.items():
        setattr(e, field, value)

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="EMPLOYEE_UPDATED",
        entity_type="employee",
        entity_id=e.id,
        metadata=changes,
    )
    db.commit()
    db.refresh(e)
    return employee_to_out(e)


@router.delete("/{employee_id}", response_model=EmployeeOut)
def deactivate_employee(
    employee_id: uuid.UUID,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_tenant_access(permission=MANAGE_USERS)),
):
    e = get_scoped_or_404(db, Employee, employee_id, tenant, "Employee not found")
    e.is_active = False

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="EMPLOYEE_DEACTIVATED",
        entity_type="employee",
        entity_id=e.id,
    )
    db.commit()
    return employee_to_out(e)
