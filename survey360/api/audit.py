import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from survey360.core.rbac import TENANT_ADMIN, require_tenant_access
from survey360.core.tenancy import get_current_tenant
from survey360.db.session import get_db
from survey360.models.audit_event import AuditEvent
from survey360.models.tenant import Tenant

router = APIRouter(prefix="/{tenant_slug}/api/audit", tags=["audit"])


@router.get("")
def list_audit_events(
    entity_type: str | None = Query(default=None),
    entity_id: uuid.UUID | None = Query(default=None),
    limit: int = Query(default=50, le=200),
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    _=Depends(require_tenant_access(TENANT_ADMIN)),
):
    q = db.query(AuditEvent).filter(AuditEvent.tenant_id == tenant.id)

    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditEvent.entity_id == entity_id)

    rows = q.order_by(AuditEvent.created_at.desc()).limit(limit).all()

    return [
        {
            "id": str(r.id),
            "actor_user_id": str(r.actor_user_id) if r.actor_user_id else None,
            "action": r.action,
            "entity_type": r.entity_type,
            "entity_id": str(r.entity_id),
            "metadata": r.event_metadata,
            "created_at": r.created_at,
        }
        for r in rows
    ]
