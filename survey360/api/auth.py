from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from survey360.core.config import settings
from survey360.core.logger import get_logger
from survey360.core.rbac import SUPER_ADMIN, get_user_permission_names, get_user_role_names
from survey360.core.security import create_access_token, verify_password
from survey360.db.base import utcnow
from survey360.db.session import get_db
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.auth import LoginRequest, TokenResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """
    Exchange email + password for a bearer token.

    Pass tenant_slug to make sure the account belongs to that tenant.
    """
    user = db.query(User).filter(User.email == payload.email.strip().lower()).one_or_none()
    if not user or not user.is_active or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    roles = get_user_role_names(db, user)

    if user.tenant_id and (not user.tenant or not user.tenant.is_active):
        raise HTTPException(status_code=403, detail="Tenant is inactive")

    if payload.tenant_slug and SUPER_ADMIN not in roles:
        tenant = db.query(Tenant).filter(Tenant.slug == payload.tenant_slug.lower()).one_or_none()
        if not tenant or tenant.id != user.tenant_id:
            raise HTTPException(status_code=403, detail="Access denied: Tenant mismatch")

    permissions = get_user_permission_names(db, user)
    token = create_access_token(user=user, roles=list(roles), permissions=list(permissions))

    user.last_login_at = utcnow()
    db.commit()

    return TokenResponse(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user_id=str(user.id),
        tenant_id=str(user.tenant_id) if user.tenant_id else None,
        tenant_slug=user.tenant.slug if user.tenant else None,
        roles=sorted(roles),
        permissions=sorted(permissions),
    )
