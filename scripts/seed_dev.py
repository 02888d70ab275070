# seed_dev.py
import os

from sqlalchemy.orm import Session

from survey360.core.rbac import PARTICIPANT, SUPER_ADMIN, TENANT_ADMIN, ensure_default_roles, grant_role
from survey360.core.security import hash_password
from survey360.db.session import SessionLocal
from survey360.models.employee import Employee
from survey360.models.evaluator import Evaluator
from survey360.models.subject import Subject
from survey360.models.subject_evaluator import SubjectEvaluator
from survey360.models.survey import Survey
from survey360.models.tenant import Tenant
from survey360.models.user import User

DEV_PASSWORD = os.getenv("SEED_PASSWORD", "password123")

EMPLOYEES = [
    # employee_number, first, last, designation, department
    ("E001", "Ada", "Lovelace", "Engineering Manager", "Engineering"),
    ("E002", "Alan", "Turing", "Senior Engineer", "Engineering"),
    ("E003", "Grace", "Hopper", "Engineer", "Engineering"),
    ("E004", "Edsger", "Dijkstra", "Engineer", "Engineering"),
]

# subject number, evaluator number, relationship
RELATIONSHIPS = [
    ("E002", "E001", "Manager"),
    ("E002", "E003", "Peer"),
    ("E002", "E002", "Self"),
    ("E003", "E001", "Manager"),
    ("E003", "E004", "Peer"),
    ("E001", "E002", "DirectReport"),
]

SURVEY_DEFINITION = {
    "pages": [
        {
            "name": "collaboration",
            "elements": [
                {"type": "rating", "name": "communication", "title": "Communicates clearly", "rateMax": 5},
                {"type": "rating", "name": "teamwork", "title": "Works well with others", "rateMax": 5},
            ],
        },
        {
            "name": "comments",
            "elements": [
                {"type": "comment", "name": "strengths", "title": "Main strengths"},
                {"type": "comment", "name": "improvements", "title": "Areas to improve"},
            ],
        },
    ]
}


def get_or_create_user(db: Session, email: str, full_name: str, tenant: Tenant | None, role: str, employee=None) -> User:
    u = db.query(User).filter(User.email == email).one_or_none()
    if not u:
        u = User(
            email=email,
            full_name=full_name,
            password_hash=hash_password(DEV_PASSWORD),
            tenant_id=tenant.id if tenant else None,
            employee_id=employee.id if employee else None,
            is_active=True,
        )
        db.add(u)
        db.flush()
    grant_role(db, u, role)
    return u


def get_or_create_tenant(db: Session, slug: str, name: str) -> Tenant:
    t = db.query(Tenant).filter(Tenant.slug == slug).one_or_none()
    if t:
        return t
    t = Tenant(slug=slug, name=name, description="Development tenant", is_active=True)
    db.add(t)
    db.flush()
    return t


def get_or_create(db: Session, model, **filters):
    obj = db.query(model).filter_by(**filters).one_or_none()
    if obj:
        return obj
    obj = model(**filters)
    db.add(obj)
    db.flush()
    return obj


def main():
    db = SessionLocal()
    try:
        ensure_default_roles(db)

        get_or_create_user(db, "superadmin@survey360.dev", "Super Admin", None, SUPER_ADMIN)

        tenant = get_or_create_tenant(db, "acme", "Acme Corp")
        get_or_create_user(db, "admin@acme.dev", "Acme Admin", tenant, TENANT_ADMIN)

        employees: dict[str, Employee] = {}
        for number, first, last, designation, department in EMPLOYEES:
            e = db.query(Employee).filter(
                Employee.tenant_id == tenant.id, Employee.employee_number == number
            ).one_or_none()
            if not e:
                e = Employee(
                    tenant_id=tenant.id,
                    employee_number=number,
                    first_name=first,
                    last_name=last,
                    email=f"{first.lower()}.{last.lower()}@acme.dev",
                    designation=designation,
                    department=department,
                )
                db.add(e)
                db.flush()
            employees[number] = e
            get_or_create_user(db, e.email, e.full_name, tenant, PARTICIPANT, employee=e)

        for subject_no, evaluator_no, label in RELATIONSHIPS:
            subject = get_or_create(db, Subject, tenant_id=tenant.id, employee_id=employees[subject_no].id)
            evaluator = get_or_create(db, Evaluator, tenant_id=tenant.id, employee_id=employees[evaluator_no].id)
            pair = get_or_create(
                db, SubjectEvaluator, tenant_id=tenant.id, subject_id=subject.id, evaluator_id=evaluator.id
            )
            pair.relationship_type = label

        survey = db.query(Survey).filter(Survey.tenant_id == tenant.id, Survey.title == "Annual 360").one_or_none()
        if not survey:
            db.add(
                Survey(
                    tenant_id=tenant.id,
                    title="Annual 360",
                    description="Yearly peer and manager feedback",
                    definition=SURVEY_DEFINITION,
                )
            )

        db.commit()
        print("Seeded tenant 'acme' with", len(employees), "employees and", len(RELATIONSHIPS), "relationships")
        print("Login password for all dev users:", DEV_PASSWORD)
    finally:
        db.close()


if __name__ == "__main__":
    main()
