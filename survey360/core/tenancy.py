import re
import uuid

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from survey360.core.logger import get_logger
from survey360.db.session import get_db
from survey360.models.tenant import Tenant

logger = get_logger(__name__)

# first path segments that never name a tenant
RESERVED_SLUGS = frozenset(
    {
        "api",
        "admin",
        "auth",
        "docs",
        "redoc",
        "openapi.json",
        "health",
        "swagger",
        "login",
        "register",
        "favicon.ico",
        "robots.txt",
        "static",
        "css",
        "js",
        "images",
    }
)

SLUG_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,48}[a-z0-9])?$")


def extract_tenant_slug(path: str) -> str | None:
    """First path segment, unless it is empty or reserved."""
    segment = path.strip("/").split("/", 1)[0].lower()
    if not segment or segment in RESERVED_SLUGS:
        return None
    return segment


def validate_slug(slug: str) -> str:
    slug = slug.strip().lower()
    if slug in RESERVED_SLUGS:
        raise HTTPException(status_code=400, detail=f"Slug '{slug}' is reserved")
    if not SLUG_RE.match(slug):
        raise HTTPException(
            status_code=400,
            detail="Slug must be 1-50 lowercase letters, digits or hyphens, not starting or ending with a hyphen",
        )
    return slug


def get_current_tenant(
    tenant_slug: str,
    request: Request,
    db: Session = Depends(get_db),
) -> Tenant:
    """
    Resolve `/{tenant_slug}/api/...` to an active tenant and stash it on
    `request.state.tenant`.
    """
    slug = tenant_slug.lower()
    tenant = None
    if slug not in RESERVED_SLUGS:
        tenant = (
            db.query(Tenant)
            .filter(Tenant.slug == slug, Tenant.is_active.is_(True))
            .one_or_none()
        )
    if not tenant:
        logger.info("Tenant '%s' not found or inactive", slug)
        raise HTTPException(status_code=404, detail=f"Tenant '{slug}' not found or inactive")

    request.state.tenant = tenant
    return tenant


def get_scoped_or_404(db: Session, model, obj_id, tenant: Tenant, detail: str):
    """Load a tenant-scoped row; rows of other tenants look like missing rows."""
    obj = db.get(model, obj_id)
    if not obj or obj.tenant_id != tenant.id:
        raise HTTPException(status_code=404, detail=detail)
    return obj


def get_scoped_by_raw_id_or_404(db: Session, model, raw_id: str, tenant: Tenant, detail: str):
    """Same as get_scoped_or_404 for ids that arrive in a JSON body."""
    try:
        obj_id = uuid.UUID(str(raw_id))
    except ValueError:
        raise HTTPException(status_code=404, detail=detail)
    return get_scoped_or_404(db, model, obj_id, tenant, detail)
