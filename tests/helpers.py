import uuid
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from survey360.core.rbac import (
    PARTICIPANT,
    SUPER_ADMIN,
    TENANT_ADMIN,
    ensure_default_roles,
    get_user_permission_names,
    get_user_role_names,
    grant_role,
)
from survey360.core.security import create_access_token, hash_password
from survey360.db.base import utcnow
from survey360.models.employee import Employee
from survey360.models.evaluator import Evaluator
from survey360.models.report_template import ReportTemplate
from survey360.models.subject import Subject
from survey360.models.subject_evaluator import SubjectEvaluator
from survey360.models.survey import Survey
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.survey_submission import COMPLETED, SurveySubmission
from survey360.models.tenant import Tenant
from survey360.models.user import User

PASSWORD = "correct-horse-9"
_password_hash: str | None = None

DEFINITION = {
    "pages": [
        {"name": "p1", "elements": [{"type": "rating", "name": "q1"}, {"type": "rating", "name": "q2"}]},
        {"name": "p2", "elements": [{"type": "comment", "name": "q3"}]},
    ]
}


def password_hash() -> str:
    # bcrypt is slow on purpose, hash once per run
    global _password_hash
    if _password_hash is None:
        _password_hash = hash_password(PASSWORD)
    return _password_hash


def create_tenant(db: Session, slug: str = "acme", name: str | None = None, is_active: bool = True) -> Tenant:
    t = Tenant(slug=slug, name=name or slug.title(), is_active=is_active)
    db.add(t)
    db.commit()
    db.refresh(t)
    return t


def create_user(
    db: Session,
    email: str,
    *,
    tenant: Tenant | None = None,
    role: str | None = None,
    employee: Employee | None = None,
    full_name: str = "User",
) -> User:
    ensure_default_roles(db)
    u = User(
        email=email,
        full_name=full_name,
        password_hash=password_hash(),
        tenant_id=tenant.id if tenant else None,
        employee_id=employee.id if employee else None,
        is_active=True,
    )
    db.add(u)
    db.flush()
    if role:
        grant_role(db, u, role)
    db.commit()
    db.refresh(u)
    return u


def auth_headers(db: Session, user: User) -> dict[str, str]:
    token = create_access_token(
        user=user,
        roles=list(get_user_role_names(db, user)),
        permissions=list(get_user_permission_names(db, user)),
    )
    return {"Authorization": f"Bearer {token}"}


def create_super_admin(db: Session, email: str = "root@survey360.test") -> User:
    return create_user(db, email, role=SUPER_ADMIN, full_name="Super Admin")


def create_tenant_admin(db: Session, tenant: Tenant, email: str | None = None) -> User:
    return create_user(db, email or f"admin@{tenant.slug}.test", tenant=tenant, role=TENANT_ADMIN, full_name="Admin")


def create_employee(
    db: Session,
    tenant: Tenant,
    first_name: str,
    last_name: str,
    *,
    email: str | None = None,
    employee_number: str | None = None,
) -> Employee:
    e = Employee(
        tenant_id=tenant.id,
        employee_number=employee_number or f"E{uuid.uuid4().hex[:8]}",
        first_name=first_name,
        last_name=last_name,
        email=email or f"{first_name.lower()}.{last_name.lower()}@{tenant.slug}.test",
        is_active=True,
    )
    db.add(e)
    db.commit()
    db.refresh(e)
    return e


def _get_or_create_participant(db: Session, model, tenant: Tenant, employee: Employee):
    p = db.query(model).filter(model.tenant_id == tenant.id, model.employee_id == employee.id).one_or_none()
    if p:
        return p
    p = model(tenant_id=tenant.id, employee_id=employee.id, is_active=True)
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


def create_subject(db: Session, tenant: Tenant, employee: Employee) -> Subject:
    return _get_or_create_participant(db, Subject, tenant, employee)


def create_evaluator(db: Session, tenant: Tenant, employee: Employee) -> Evaluator:
    return _get_or_create_participant(db, Evaluator, tenant, employee)


def create_relationship(
    db: Session,
    tenant: Tenant,
    subject_employee: Employee,
    evaluator_employee: Employee,
    relationship: str = "Peer",
    is_active: bool = True,
) -> SubjectEvaluator:
    r = SubjectEvaluator(
        tenant_id=tenant.id,
        subject_id=create_subject(db, tenant, subject_employee).id,
        evaluator_id=create_evaluator(db, tenant, evaluator_employee).id,
        relationship_type=relationship,
        is_active=is_active,
    )
    db.add(r)
    db.commit()
    db.refresh(r)
    return r


def create_survey(
    db: Session,
    tenant: Tenant,
    title: str = "Annual 360",
    definition: dict | None = None,
    is_active: bool = True,
) -> Survey:
    s = Survey(
        tenant_id=tenant.id,
        title=title,
        definition=definition if definition is not None else DEFINITION,
        is_active=is_active,
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


def create_assignment(
    db: Session,
    pair: SubjectEvaluator,
    survey: Survey,
    *,
    age_days: int = 10,
    last_reminder_sent_at: datetime | None = None,
    is_active: bool = True,
) -> SurveyAssignment:
    a = SurveyAssignment(
        tenant_id=pair.tenant_id,
        subject_evaluator_id=pair.id,
        survey_id=survey.id,
        is_active=is_active,
        created_at=utcnow() - timedelta(days=age_days),
        last_reminder_sent_at=last_reminder_sent_at,
    )
    db.add(a)
    db.commit()
    db.refresh(a)
    return a


def create_submission(
    db: Session,
    assignment: SurveyAssignment,
    *,
    status: str = COMPLETED,
    response_data: dict | None = None,
) -> SurveySubmission:
    now = utcnow()
    pair = assignment.subject_evaluator
    s = SurveySubmission(
        tenant_id=assignment.tenant_id,
        assignment_id=assignment.id,
        evaluator_id=pair.evaluator_id,
        subject_id=pair.subject_id,
        survey_id=assignment.survey_id,
        status=status,
        response_data=response_data or {},
        started_at=now,
        completed_at=now if status == COMPLETED else None,
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


def create_report_template(db: Session, tenant: Tenant, body: str, name: str = "Summary") -> ReportTemplate:
    t = ReportTemplate(tenant_id=tenant.id, name=name, body=body, is_active=True)
    db.add(t)
    db.commit()
    db.refresh(t)
    return t


def create_participant_user(db: Session, tenant: Tenant, employee: Employee) -> User:
    return create_user(db, employee.email, tenant=tenant, role=PARTICIPANT, employee=employee, full_name=employee.full_name)


class RecordingSender:
    """Collects outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()

    def send_email(self, recipient: str, subject: str, html_body: str) -> bool:
        if recipient in self.raise_for:
            raise RuntimeError(f"SMTP exploded for {recipient}")
        if recipient in self.fail_for:
            return False
        self.sent.append({"to": recipient, "subject": subject, "html": html_body})
        return True

    def recipients(self) -> list[str]:
        return [m["to"] for m in self.sent]
