import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from survey360.core.audit import log_event
from survey360.core.logger import get_logger
from survey360.core.rbac import SUPER_ADMIN, TENANT_ADMIN, ensure_default_roles, grant_role, require_roles
from survey360.core.security import hash_password
from survey360.core.tenancy import validate_slug
from survey360.db.session import get_db
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.tenant import TenantCreate, TenantOut, TenantUpdate

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/tenants", tags=["admin"])


def tenant_to_out(t: Tenant) -> TenantOut:
    return TenantOut(
        id=str(t.id),
        name=t.name,
        slug=t.slug,
        description=t.description,
        is_active=t.is_active,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


def _get_tenant_or_404(db: Session, tenant_id: uuid.UUID) -> Tenant:
    tenant = db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


@router.post("", response_model=TenantOut, status_code=status.HTTP_201_CREATED)
def create_tenant(
    payload: TenantCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(SUPER_ADMIN)),
):
    """
    Create a tenant. If `admin` is given, its first TenantAdmin user is
    created in the same transaction.
    """
    slug = validate_slug(payload.slug)

    tenant = Tenant(name=payload.name, slug=slug, description=payload.description, is_active=True)
    db.add(tenant)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=f"Tenant slug '{slug}' already exists")

    if payload.admin:
        email = payload.admin.email.strip().lower()
        if db.query(User).filter(User.email == email).one_or_none():
            db.rollback()
            raise HTTPException(status_code=409, detail=f"User '{email}' already exists")

        ensure_default_roles(db)
        admin = User(
            email=email,
            full_name=payload.admin.full_name,
            password_hash=hash_password(payload.admin.password),
            tenant_id=tenant.id,
            is_active=True,
        )
        db.add(admin)
        db.flush()
        grant_role(db, admin, TENANT_ADMIN)

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="TENANT_CREATED",
        entity_type="tenant",
        entity_id=tenant.id,
        metadata={"slug": tenant.slug, "with_admin": payload.admin is not None},
    )

    db.commit()
    db.refresh(tenant)
    logger.info("Tenant '%s' created", tenant.slug)
    return tenant_to_out(tenant)


@router.get("", response_model=list[TenantOut])
def list_tenants(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(SUPER_ADMIN)),
):
    q = db.query(Tenant)
    if not include_inactive:
        q = q.filter(Tenant.is_active.is_(True))
    return [tenant_to_out(t) for t in q.order_by(Tenant.name.asc()).all()]


@router.get("/{tenant_id}", response_model=TenantOut)
def get_tenant(
    tenant_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(SUPER_ADMIN)),
):
    return tenant_to_out(_get_tenant_or_404(db, tenant_id))


@router.patch("/{tenant_id}", response_model=TenantOut)
def update_tenant(
    tenant_id: uuid.UUID,
    payload: TenantUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(SUPER_ADMIN)),
):
    tenant = _get_tenant_or_404(db, tenant_id)

    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(tenant, field, value)

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="TENANT_UPDATED",
        entity_type="tenant",
        entity_id=tenant.id,
        metadata=changes,
    )
    db.commit()
    db.refresh(tenant)
    return tenant_to_out(tenant)


@router.delete("/{tenant_id}", response_model=TenantOut)
def deactivate_tenant(
    tenant_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(SUPER_ADMIN)),
):
    """Soft delete: the tenant stops resolving but its data is kept."""
    tenant = _get_tenant_or_404(db, tenant_id)
    tenant.is_active = False

    log_event(
        db=db,
        actor=current_user,
        tenant=tenant,
        action="TENANT_DEACTIVATED",
        entity_type="tenant",
        entity_id=tenant.id,
    )
    db.commit()
    db.refresh(tenant)
    return tenant_to_out(tenant)
