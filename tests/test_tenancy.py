import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from survey360.core.tenancy import extract_tenant_slug, validate_slug
from survey360.main import app
from survey360.models.rbac import UserRole
from survey360.models.tenant import Tenant
from survey360.models.user import User
from tests.helpers import (
    PASSWORD,
    auth_headers,
    create_employee,
    create_relationship,
    create_super_admin,
    create_survey,
    create_tenant,
    create_tenant_admin,
)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/acme/api/surveys", "acme"),
        ("/ACME/api/me", "acme"),
        ("/api/surveys", None),
        ("/health", None),
        ("/admin/tenants", None),
        ("/", None),
    ],
)
def test_extract_tenant_slug(path, expected):
    assert extract_tenant_slug(path) == expected


def test_validate_slug_rejects_reserved_and_malformed():
    assert validate_slug("  Acme-Corp ") == "acme-corp"
    for bad in ("admin", "api", "-acme", "acme_corp", "a" * 51):
        with pytest.raises(HTTPException) as exc:
            validate_slug(bad)
        assert exc.value.status_code == 400


def test_unknown_tenant_404(db_session):
    client = TestClient(app)
    r = client.get("/nope/api/surveys")
    assert r.status_code == 404
    assert r.json()["detail"] == "Tenant 'nope' not found or inactive"


def test_inactive_tenant_404_even_for_super_admin(db_session):
    create_tenant(db_session, "acme", is_active=False)
    root = create_super_admin(db_session)

    client = TestClient(app)
    r = client.get("/acme/api/surveys", headers=auth_headers(db_session, root))
    assert r.status_code == 404


def test_reserved_segment_never_resolves_as_tenant(db_session):
    # even if a row with a reserved slug sneaks into the database
    db_session.add(Tenant(slug="admin", name="Admin", is_active=True))
    db_session.commit()

    client = TestClient(app)
    r = client.get("/admin/api/me")
    assert r.status_code == 404


def test_token_for_tenant_a_rejected_on_tenant_b(db_session):
    acme = create_tenant(db_session, "acme")
    create_tenant(db_session, "globex")
    admin = create_tenant_admin(db_session, acme)

    client = TestClient(app)
    r = client.get("/globex/api/surveys", headers=auth_headers(db_session, admin))
    assert r.status_code == 403
    assert r.json()["detail"] == "Access denied: Tenant mismatch"


def test_tenant_b_data_invisible_through_tenant_a(db_session):
    acme = create_tenant(db_session, "acme")
    globex = create_tenant(db_session, "globex")
    admin = create_tenant_admin(db_session, acme)
    globex_survey = create_survey(db_session, globex, title="Globex secret")
    create_survey(db_session, acme, title="Acme survey")

    client = TestClient(app)
    headers = auth_headers(db_session, admin)

    r = client.get("/acme/api/surveys", headers=headers)
    assert [s["title"] for s in r.json()] == ["Acme survey"]

    r = client.get(f"/acme/api/surveys/{globex_survey.id}", headers=headers)
    assert r.status_code == 404

    r = client.post(f"/acme/api/surveys/{globex_survey.id}/auto-assign", headers=headers)
    assert r.status_code == 404


def test_tenant_b_relationship_not_assignable_through_tenant_a(db_session):
    acme = create_tenant(db_session, "acme")
    globex = create_tenant(db_session, "globex")
    admin = create_tenant_admin(db_session, acme)
    survey = create_survey(db_session, acme)
    g1 = create_employee(db_session, globex, "Gina", "Gold")
    g2 = create_employee(db_session, globex, "Gus", "Grey")
    globex_pair = create_relationship(db_session, globex, g1, g2)

    client = TestClient(app)
    r = client.post(
        f"/acme/api/surveys/{survey.id}/assign",
        headers=auth_headers(db_session, admin),
        json={"relationship_ids": [str(globex_pair.id)]},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["assigned_count"] == 0
    assert data["errors"] == [f"Subject-Evaluator relationship {globex_pair.id} not found"]


def test_super_admin_creates_tenant_with_first_admin(db_session):
    root = create_super_admin(db_session)

    client = TestClient(app)
    r = client.post(
        "/admin/tenants",
        headers=auth_headers(db_session, root),
        json={
            "name": "Initech",
            "slug": "Initech",
            "admin": {"email": "Boss@Initech.test", "full_name": "Bill L", "password": "tps-reports-1"},
        },
    )
    assert r.status_code == 201, r.text
    assert r.json()["slug"] == "initech"

    admin = db_session.query(User).filter(User.email == "boss@initech.test").one()
    assert str(admin.tenant_id) == r.json()["id"]
    assert db_session.query(UserRole).filter(UserRole.user_id == admin.id).count() == 1

    r = client.post(
        "/auth/login",
        json={"email": "boss@initech.test", "password": "tps-reports-1", "tenant_slug": "initech"},
    )
    assert r.status_code == 200
    assert r.json()["roles"] == ["TenantAdmin"]


def test_duplicate_and_reserved_tenant_slugs(db_session):
    root = create_super_admin(db_session)
    create_tenant(db_session, "acme")

    client = TestClient(app)
    headers = auth_headers(db_session, root)

    r = client.post("/admin/tenants", headers=headers, json={"name": "Acme 2", "slug": "acme"})
    assert r.status_code == 409

    r = client.post("/admin/tenants", headers=headers, json={"name": "Health", "slug": "health"})
    assert r.status_code == 400


def test_deactivated_tenant_stops_resolving(db_session):
    root = create_super_admin(db_session)
    acme = create_tenant(db_session, "acme")
    admin = create_tenant_admin(db_session, acme)

    client = TestClient(app)
    r = client.delete(f"/admin/tenants/{acme.id}", headers=auth_headers(db_session, root))
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    r = client.get("/acme/api/me", headers=auth_headers(db_session, admin))
    assert r.status_code == 404

    r = client.post("/auth/login", json={"email": admin.email, "password": PASSWORD})
    assert r.status_code == 403
