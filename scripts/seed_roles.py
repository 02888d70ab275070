from survey360.core.rbac import DEFAULT_ROLE_PERMISSIONS, ensure_default_roles
from survey360.db.session import SessionLocal


def main():
    db = SessionLocal()
    try:
        ensure_default_roles(db)
        db.commit()
        for role, perms in DEFAULT_ROLE_PERMISSIONS.items():
            print(f"Role seeded: {role} -> {sorted(perms)}")
    finally:
        db.close()

if __name__ == "__main__":
    main()
