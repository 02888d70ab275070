from sqlalchemy.orm import Session
from typing import Any

from survey360.models.audit_event import AuditEvent
from survey360.models.tenant import Tenant
from survey360.models.user import User


def log_event(
    *,
    db: Session,
    actor: User | None,
    action: str,
    entity_type: str,
    entity_id,
    tenant: Tenant | None = None,
    metadata: dict[str, Any] | None = None,
):
    event = AuditEvent(
        tenant_id=tenant.id if tenant else None,
        actor_user_id=actor.id if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        event_metadata=metadata,
    )
    db.add(event)
