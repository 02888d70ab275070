from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from survey360.core.access import get_evaluator_for_user
from survey360.core.rbac import get_user_permission_names, get_user_role_names, require_tenant_access
from survey360.db.session import get_db
from survey360.models.user import User
from survey360.schemas.auth import MeOut

router = APIRouter(prefix="/{tenant_slug}/api", tags=["auth"])


@router.get("/me", response_model=MeOut)
def me(
    current_user: User = Depends(require_tenant_access()),
    db: Session = Depends(get_db),
):
    """Get current user information including linked employee and evaluator IDs"""
    evaluator = get_evaluator_for_user(db, current_user)
    return MeOut(
        id=str(current_user.id),
        email=current_user.email,
        full_name=current_user.full_name,
        is_active=current_user.is_active,
        tenant_id=str(current_user.tenant_id) if current_user.tenant_id else None,
        employee_id=str(current_user.employee_id) if current_user.employee_id else None,
        evaluator_id=str(evaluator.id) if evaluator else None,
        roles=sorted(get_user_role_names(db, current_user)),
        permissions=sorted(get_user_permission_names(db, current_user)),
    )
