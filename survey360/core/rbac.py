from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from survey360.core.security import get_current_user
from survey360.core.tenancy import get_current_tenant
from survey360.db.session import get_db
from survey360.models.rbac import Permission, Role, RolePermission, UserRole
from survey360.models.tenant import Tenant
from survey360.models.user import User

SUPER_ADMIN = "SuperAdmin"
TENANT_ADMIN = "TenantAdmin"
PARTICIPANT = "Participant"

MANAGE_USERS = "manage_users"
MANAGE_SURVEYS = "manage_surveys"
VIEW_REPORTS = "view_reports"
FILL_SURVEYS = "fill_surveys"

PERMISSION_DESCRIPTIONS = {
    MANAGE_USERS: "Create and edit users, employees, subjects and evaluators",
    MANAGE_SURVEYS: "Create surveys and assign them to relationships",
    VIEW_REPORTS: "Render reports and manage report templates",
    FILL_SURVEYS: "Fill in assigned surveys",
}

DEFAULT_ROLE_PERMISSIONS: dict[str, set[str]] = {
    SUPER_ADMIN: set(PERMISSION_DESCRIPTIONS),
    TENANT_ADMIN: set(PERMISSION_DESCRIPTIONS),
    PARTICIPANT: {FILL_SURVEYS},
}

# roles that pass every permission check
ADMIN_ROLES = {SUPER_ADMIN, TENANT_ADMIN}


def ensure_default_roles(db: Session) -> dict[str, Role]:
    """Create missing roles, permissions and their links. Safe to call repeatedly."""
    perms: dict[str, Permission] = {p.name: p for p in db.query(Permission).all()}
    for name, description in PERMISSION_DESCRIPTIONS.items():
        if name not in perms:
            perms[name] = Permission(name=name, description=description)
            db.add(perms[name])

    roles: dict[str, Role] = {r.name: r for r in db.query(Role).all()}
    for name in DEFAULT_ROLE_PERMISSIONS:
        if name not in roles:
            roles[name] = Role(name=name)
            db.add(roles[name])
    db.flush()

    existing = {(rp.role_id, rp.permission_id) for rp in db.query(RolePermission).all()}
    for role_name, perm_names in DEFAULT_ROLE_PERMISSIONS.items():
        for perm_name in perm_names:
            key = (roles[role_name].id, perms[perm_name].id)
            if key not in existing:
                db.add(RolePermission(role_id=key[0], permission_id=key[1]))
    db.flush()
    return roles


def grant_role(db: Session, user: User, role_name: str) -> None:
    role = db.query(Role).filter(Role.name == role_name).one_or_none()
    if not role:
        role = ensure_default_roles(db).get(role_name)
    if not role:
        raise ValueError(f"Unknown role: {role_name}")

    exists = (
        db.query(UserRole)
        .filter(UserRole.user_id == user.id, UserRole.role_id == role.id)
        .one_or_none()
    )
    if not exists:
        db.add(UserRole(user_id=user.id, role_id=role.id))
        db.flush()


def get_user_role_names(db: Session, user: User) -> set[str]:
    rows = (
        db.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user.id)
        .all()
    )
    return {r[0] for r in rows}


def get_user_permission_names(db: Session, user: User) -> set[str]:
    rows = (
        db.query(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user.id)
        .distinct()
        .all()
    )
    return {r[0] for r in rows}


def require_roles(*required: str):
    """
    Usage:
      Depends(require_roles("SuperAdmin"))
      Depends(require_roles("TenantAdmin", "Participant"))  # any-of
    """
    required_set = set(required)

    def _dep(
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ) -> User:
        role_names = get_user_role_names(db, user)
        if not (role_names & required_set):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden. Requires one of: {sorted(required_set)}",
            )
        return user

    return _dep


def require_tenant_access(*roles: str, permission: str | None = None):
    """
    Tenant-scoped guard. The user must belong to the tenant in the URL
    (SuperAdmin may act on any tenant), hold one of `roles` if given and
    hold `permission` if given. Admin roles pass every permission check.

    Usage:
      Depends(require_tenant_access())                          # any tenant member
      Depends(require_tenant_access(permission=MANAGE_SURVEYS))
    """
    required_roles = set(roles)

    def _dep(
        tenant: Tenant = Depends(get_current_tenant),
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ) -> User:
        role_names = get_user_role_names(db, user)
        if SUPER_ADMIN in role_names:
            return user

        if user.tenant_id is None:
            raise HTTPException(status_code=403, detail="Access denied: No tenant access")
        if user.tenant_id != tenant.id:
            raise HTTPException(status_code=403, detail="Access denied: Tenant mismatch")

        if required_roles and not (role_names & required_roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden. Requires one of: {sorted(required_roles)}",
            )

        if permission and not (role_names & ADMIN_ROLES):
            if permission not in get_user_permission_names(db, user):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Forbidden. Requires permission: {permission}",
                )
        return user

    return _dep
