import threading
from datetime import timedelta

from fastapi.testclient import TestClient

from survey360.core import reminders
from survey360.core.reminders import (
    ReminderScheduler,
    build_reminder_batches,
    find_pending_assignments,
    run_reminder_sweep,
)
from survey360.db.base import utcnow
from survey360.db.session import SessionLocal
from survey360.main import app
from survey360.models.email_audit_log import FAILED, KIND_FORM, KIND_SWEEP, SENT, EmailAuditLog
from survey360.models.employee import Employee
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.survey_submission import COMPLETED, IN_PROGRESS
from tests.helpers import (
    RecordingSender,
    auth_headers,
    create_assignment,
    create_employee,
    create_participant_user,
    create_relationship,
    create_submission,
    create_survey,
    create_tenant,
    create_tenant_admin,
)

FRONTEND = "https://app.survey360.test"


class People:
    def __init__(self, db, tenant):
        self.alice = create_employee(db, tenant, "Alice", "Smith")
        self.carol = create_employee(db, tenant, "Carol", "White")
        self.bob = create_employee(db, tenant, "Bob", "Jones")
        self.dave = create_employee(db, tenant, "Dave", "Brown")


def test_one_consolidated_email_per_evaluator(db_session):
    tenant = create_tenant(db_session, "acme")
    p = People(db_session, tenant)
    survey = create_survey(db_session, tenant, title="Annual 360")
    bob_alice = create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.bob), survey)
    bob_carol = create_assignment(db_session, create_relationship(db_session, tenant, p.carol, p.bob), survey)
    dave_alice = create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.dave), survey)

    sender = RecordingSender()
    summary = run_reminder_sweep(db_session, sender=sender, frontend_url=FRONTEND)

    assert summary.evaluators_found == 2
    assert summary.emails_sent == 2
    assert summary.emails_failed == 0
    assert summary.assignments_stamped == 3
    assert sorted(sender.recipients()) == ["bob.jones@acme.test", "dave.brown@acme.test"]

    bob_mail = next(m for m in sender.sent if m["to"] == "bob.jones@acme.test")
    assert "Alice Smith" in bob_mail["html"]
    assert "Carol White" in bob_mail["html"]
    assert f"{FRONTEND}/acme/participant/forms/{bob_alice.id}" in bob_mail["html"]
    assert f"{FRONTEND}/acme/participant/forms/{bob_carol.id}" in bob_mail["html"]
    assert f"{FRONTEND}/acme/participant/dashboard" in bob_mail["html"]
    assert str(dave_alice.id) not in bob_mail["html"]

    dave_mail = next(m for m in sender.sent if m["to"] == "dave.brown@acme.test")
    assert "Carol White" not in dave_mail["html"]


def test_batch_lists_exactly_pending_items(db_session):
    tenant = create_tenant(db_session, "acme")
    p = People(db_session, tenant)
    survey = create_survey(db_session, tenant)
    pending = create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.bob), survey)
    done = create_assignment(db_session, create_relationship(db_session, tenant, p.carol, p.bob), survey)
    create_submission(db_session, done, status=COMPLETED)
    create_assignment(
        db_session,
        create_relationship(db_session, tenant, p.dave, p.bob),
        survey,
        last_reminder_sent_at=utcnow() - timedelta(days=1),
    )

    found = find_pending_assignments(db_session, now=utcnow(), threshold_days=7)
    batches = build_reminder_batches(found, frontend_url=FRONTEND)

    assert len(batches) == 1
    batch, group = batches[0]
    assert batch.evaluator_email == "bob.jones@acme.test"
    assert [i.assignment_id for i in batch.items] == [str(pending.id)]
    assert [a.id for a in group] == [pending.id]


def test_never_resends_to_reminded_assignment(db_session):
    tenant = create_tenant(db_session, "acme")
    p = People(db_session, tenant)
    survey = create_survey(db_session, tenant)
    reminded_at = utcnow() - timedelta(days=2)
    old = create_assignment(
        db_session,
        create_relationship(db_session, tenant, p.alice, p.bob),
        survey,
        last_reminder_sent_at=reminded_at,
    )
    fresh = create_assignment(db_session, create_relationship(db_session, tenant, p.carol, p.bob), survey)

    sender = RecordingSender()
    run_reminder_sweep(db_session, sender=sender, frontend_url=FRONTEND)
    assert len(sender.sent) == 1
    assert str(old.id) not in sender.sent[0]["html"]
    assert str(fresh.id) in sender.sent[0]["html"]

    # second sweep finds nothing: the first one stamped `fresh`
    second = run_reminder_sweep(db_session, sender=sender, frontend_url=FRONTEND)
    assert second.evaluators_found == 0
    assert len(sender.sent) == 1

    db_session.refresh(old)
    assert old.last_reminder_sent_at == reminded_at


def test_completed_submission_excluded_even_if_never_reminded(db_session):
    tenant = create_tenant(db_session, "acme")
    p = People(db_session, tenant)
    survey = create_survey(db_session, tenant)
    done = create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.bob), survey)
    create_submission(db_session, done, status=COMPLETED)
    draft = create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.dave), survey)
    create_submission(db_session, draft, status=IN_PROGRESS)

    sender = RecordingSender()
    summary = run_reminder_sweep(db_session, sender=sender, frontend_url=FRONTEND)

    assert sender.recipients() == ["dave.brown@acme.test"]
    assert summary.assignments_stamped == 1
    db_session.refresh(done)
    assert done.last_reminder_sent_at is None


def test_recent_and_inactive_assignments_are_not_reminded(db_session):
    tenant = create_tenant(db_session, "acme")
    p = People(db_session, tenant)
    survey = create_survey(db_session, tenant)
    create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.bob), survey, age_days=3)
    create_assignment(
        db_session, create_relationship(db_session, tenant, p.alice, p.dave), survey, is_active=False
    )

    sender = RecordingSender()
    summary = run_reminder_sweep(db_session, sender=sender, frontend_url=FRONTEND)
    assert summary.evaluators_found == 0
    assert sender.sent == []

    # a shorter threshold picks up the 3 day old one
    summary = run_reminder_sweep(db_session, sender=sender, threshold_days=2, frontend_url=FRONTEND)
    assert sender.recipients() == ["bob.jones@acme.test"]


def test_failed_group_is_not_stamped_and_does_not_block_others(db_session):
    tenant = create_tenant(db_session, "acme")
    p = People(db_session, tenant)
    survey = create_survey(db_session, tenant)
    bob_a = create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.bob), survey)
    dave_a = create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.dave), survey)
    carol_a = create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.carol), survey)

    sender = RecordingSender()
    sender.fail_for.add("bob.jones@acme.test")
    sender.raise_for.add("dave.brown@acme.test")
    now = utcnow()

    summary = run_reminder_sweep(db_session, sender=sender, now=now, frontend_url=FRONTEND)

    assert summary.evaluators_found == 3
    assert summary.emails_sent == 1
    assert summary.emails_failed == 2
    assert summary.assignments_stamped == 1
    assert sender.recipients() == ["carol.white@acme.test"]

    for a in (bob_a, dave_a, carol_a):
        db_session.refresh(a)
    assert bob_a.last_reminder_sent_at is None
    assert dave_a.last_reminder_sent_at is None
    assert carol_a.last_reminder_sent_at == now

    # failed groups are retried by the next sweep
    sender.fail_for.clear()
    sender.raise_for.clear()
    retry = run_reminder_sweep(db_session, sender=sender, frontend_url=FRONTEND)
    assert retry.emails_sent == 2


def test_sweep_can_be_restricted_to_one_tenant(db_session):
    acme = create_tenant(db_session, "acme")
    globex = create_tenant(db_session, "globex")
    pa = People(db_session, acme)
    pg = People(db_session, globex)
    create_assignment(
        db_session, create_relationship(db_session, acme, pa.alice, pa.bob), create_survey(db_session, acme)
    )
    globex_a = create_assignment(
        db_session, create_relationship(db_session, globex, pg.alice, pg.bob), create_survey(db_session, globex)
    )

    sender = RecordingSender()
    run_reminder_sweep(db_session, sender=sender, tenant_id=acme.id, frontend_url=FRONTEND)

    assert sender.recipients() == ["bob.jones@acme.test"]
    db_session.refresh(globex_a)
    assert globex_a.last_reminder_sent_at is None


def test_scheduler_run_once_uses_own_session(db_session):
    tenant = create_tenant(db_session, "acme")
    p = People(db_session, tenant)
    a = create_assignment(
        db_session, create_relationship(db_session, tenant, p.alice, p.bob), create_survey(db_session, tenant)
    )

    sender = RecordingSender()
    summary = ReminderScheduler(SessionLocal, sender).run_once()

    assert summary.emails_sent == 1
    db_session.expire_all()
    assert db_session.get(SurveyAssignment, a.id).last_reminder_sent_at is not None


def test_scheduler_run_once_swallows_errors(db_session, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(reminders, "run_reminder_sweep", boom)
    assert ReminderScheduler(SessionLocal, RecordingSender()).run_once() is None


def test_scheduler_thread_runs_immediately_and_stops(db_session, monkeypatch):
    ran = threading.Event()
    calls = []

    def fake_sweep(db, *, sender):
        calls.append(sender)
        ran.set()

    monkeypatch.setattr(reminders, "run_reminder_sweep", fake_sweep)
    scheduler = ReminderScheduler(SessionLocal, RecordingSender(), interval_hours=24)
    scheduler.start()
    assert ran.wait(5)
    scheduler.stop()

    assert len(calls) == 1
    assert scheduler._thread is None


def test_run_now_endpoint_uses_tenant_and_sender(db_session, outbox):
    acme = create_tenant(db_session, "acme")
    globex = create_tenant(db_session, "globex")
    admin = create_tenant_admin(db_session, acme)
    pa = People(db_session, acme)
    pg = People(db_session, globex)
    create_assignment(
        db_session, create_relationship(db_session, acme, pa.alice, pa.bob), create_survey(db_session, acme)
    )
    create_assignment(
        db_session, create_relationship(db_session, globex, pg.alice, pg.bob), create_survey(db_session, globex)
    )

    client = TestClient(app)
    headers = auth_headers(db_session, admin)

    r = client.get("/acme/api/reminders/pending", headers=headers)
    assert r.status_code == 200
    preview = r.json()
    assert [b["evaluator_email"] for b in preview] == ["bob.jones@acme.test"]
    assert preview[0]["items"][0]["link"].startswith("https://app.survey360.test/acme/participant/forms/")

    r = client.post("/acme/api/reminders/run", headers=headers)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["emails_sent"] == 1
    assert data["assignments_stamped"] == 1
    assert outbox.recipients() == ["bob.jones@acme.test"]

    r = client.get("/acme/api/reminders/pending", headers=headers)
    assert r.json() == []


def _overdue_assignment(db):
    tenant = create_tenant(db, "acme")
    p = People(db, tenant)
    survey = create_survey(db, tenant)
    pair = create_relationship(db, tenant, p.alice, p.bob)
    return tenant, survey, pair, create_assignment(db, pair, survey)


def _sweep_recipients(db) -> list[str]:
    sender = RecordingSender()
    run_reminder_sweep(db, sender=sender, frontend_url=FRONTEND)
    return sender.recipients()


def test_inactive_survey_is_not_reminded(db_session):
    _, survey, _, _ = _overdue_assignment(db_session)
    survey.is_active = False
    db_session.commit()
    assert _sweep_recipients(db_session) == []


def test_inactive_relationship_is_not_reminded(db_session):
    _, _, pair, _ = _overdue_assignment(db_session)
    pair.is_active = False
    db_session.commit()
    assert _sweep_recipients(db_session) == []


def test_inactive_evaluator_is_not_reminded(db_session):
    _, _, pair, _ = _overdue_assignment(db_session)
    pair.evaluator.is_active = False
    db_session.commit()
    assert _sweep_recipients(db_session) == []


def test_inactive_tenant_is_not_reminded(db_session):
    tenant, _, _, a = _overdue_assignment(db_session)
    tenant.is_active = False
    db_session.commit()
    assert _sweep_recipients(db_session) == []
    db_session.refresh(a)
    assert a.last_reminder_sent_at is None


def test_reminded_form_link_opens_for_evaluator(db_session):
    tenant, _, _, a = _overdue_assignment(db_session)
    bob = db_session.query(Employee).filter(Employee.email == "bob.jones@acme.test").one()
    user = create_participant_user(db_session, tenant, bob)

    assert _sweep_recipients(db_session) == ["bob.jones@acme.test"]
    r = TestClient(app).get(f"/acme/api/participant/assignments/{a.id}", headers=auth_headers(db_session, user))
    assert r.status_code == 200


def test_same_person_in_two_tenants_gets_one_email_per_tenant(db_session):
    acme = create_tenant(db_session, "acme")
    globex = create_tenant(db_session, "globex")
    shared = "sam.shared@example.test"
    for tenant in (acme, globex):
        subject = create_employee(db_session, tenant, "Alice", "Smith")
        sam = create_employee(db_session, tenant, "Sam", "Shared", email=shared)
        create_assignment(db_session, create_relationship(db_session, tenant, subject, sam), create_survey(db_session, tenant))

    sender = RecordingSender()
    summary = run_reminder_sweep(db_session, sender=sender, frontend_url=FRONTEND)

    assert summary.emails_sent == 2
    assert sender.recipients() == [shared, shared]
    bodies = [m["html"] for m in sender.sent]
    assert sum(f"{FRONTEND}/acme/participant/dashboard" in b for b in bodies) == 1
    assert sum(f"{FRONTEND}/globex/participant/dashboard" in b for b in bodies) == 1
    for body in bodies:
        # each email only links forms of its own tenant
        assert not ("/acme/participant/" in body and "/globex/participant/" in body)


def test_sweep_writes_email_log_per_attempt(db_session):
    tenant = create_tenant(db_session, "acme")
    p = People(db_session, tenant)
    survey = create_survey(db_session, tenant)
    create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.bob), survey)
    create_assignment(db_session, create_relationship(db_session, tenant, p.carol, p.bob), survey)
    create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.dave), survey)
    create_assignment(db_session, create_relationship(db_session, tenant, p.alice, p.carol), survey)

    sender = RecordingSender()
    sender.fail_for.add("dave.brown@acme.test")
    sender.raise_for.add("carol.white@acme.test")
    run_reminder_sweep(db_session, sender=sender, frontend_url=FRONTEND)

    logs = {row.email: row for row in db_session.query(EmailAuditLog).all()}
    assert set(logs) == {"bob.jones@acme.test", "dave.brown@acme.test", "carol.white@acme.test"}

    bob = logs["bob.jones@acme.test"]
    assert bob.status == SENT
    assert bob.kind == KIND_SWEEP
    assert bob.assignment_count == 2
    assert bob.sent_at is not None
    assert bob.tenant_id == tenant.id

    assert logs["dave.brown@acme.test"].status == FAILED
    assert logs["dave.brown@acme.test"].sent_at is None
    assert logs["carol.white@acme.test"].status == FAILED
    assert "SMTP exploded" in logs["carol.white@acme.test"].error_message


def test_scheduler_run_leaves_email_log(db_session):
    _overdue_assignment(db_session)
    ReminderScheduler(SessionLocal, RecordingSender()).run_once()

    db_session.expire_all()
    assert [r.email for r in db_session.query(EmailAuditLog).all()] == ["bob.jones@acme.test"]


def test_reminder_stamp_is_timezone_aware(db_session):
    _, _, _, a = _overdue_assignment(db_session)
    now = utcnow()
    run_reminder_sweep(db_session, sender=RecordingSender(), now=now, frontend_url=FRONTEND)

    db_session.expire_all()
    stamped = db_session.get(SurveyAssignment, a.id).last_reminder_sent_at
    assert stamped.tzinfo is not None
    assert stamped == now
    assert stamped.utcoffset() == timedelta(0)


def test_send_form_reminder_endpoint(db_session, outbox):
    tenant, _, _, a = _overdue_assignment(db_session)
    admin = create_tenant_admin(db_session, tenant)

    client = TestClient(app)
    r = client.post(
        "/acme/api/reminders/send-form-reminder",
        headers=auth_headers(db_session, admin),
        json={"assignment_id": str(a.id)},
    )
    assert r.status_code == 200, r.text
    assert r.json()["recipient"] == "bob.jones@acme.test"

    assert outbox.recipients() == ["bob.jones@acme.test"]
    mail = outbox.sent[0]
    assert "Annual 360" in mail["subject"]
    assert "Alice Smith" in mail["html"]
    assert f"/acme/participant/forms/{a.id}" in mail["html"]

    # on-demand reminders leave the sweep stamp alone
    db_session.refresh(a)
    assert a.last_reminder_sent_at is None
    log = db_session.query(EmailAuditLog).one()
    assert (log.kind, log.status) == (KIND_FORM, SENT)


def test_send_form_reminder_errors(db_session, outbox):
    tenant, survey, pair, a = _overdue_assignment(db_session)
    admin = create_tenant_admin(db_session, tenant)
    client = TestClient(app)
    headers = auth_headers(db_session, admin)
    url = "/acme/api/reminders/send-form-reminder"

    r = client.post(url, headers=headers, json={"assignment_id": "not-a-uuid"})
    assert r.status_code == 404

    other = create_tenant(db_session, "globex")
    po = People(db_session, other)
    foreign = create_assignment(
        db_session, create_relationship(db_session, other, po.alice, po.bob), create_survey(db_session, other)
    )
    r = client.post(url, headers=headers, json={"assignment_id": str(foreign.id)})
    assert r.status_code == 404

    submission = create_submission(db_session, a, status=COMPLETED)
    r = client.post(url, headers=headers, json={"assignment_id": str(a.id)})
    assert r.status_code == 400
    assert r.json()["detail"] == "Form has already been completed"

    db_session.delete(submission)
    a.is_active = False
    db_session.commit()
    r = client.post(url, headers=headers, json={"assignment_id": str(a.id)})
    assert r.status_code == 404
    assert outbox.sent == []


def test_send_form_reminder_failure_is_logged(db_session, outbox):
    tenant, _, _, a = _overdue_assignment(db_session)
    admin = create_tenant_admin(db_session, tenant)
    outbox.fail_for.add("bob.jones@acme.test")

    r = TestClient(app).post(
        "/acme/api/reminders/send-form-reminder",
        headers=auth_headers(db_session, admin),
        json={"assignment_id": str(a.id)},
    )
    assert r.status_code == 502

    log = db_session.query(EmailAuditLog).one()
    assert log.status == FAILED
    assert log.kind == KIND_FORM

    r = TestClient(app).get("/acme/api/reminders/email-log?status=Failed", headers=auth_headers(db_session, admin))
    assert [row["email"] for row in r.json()] == ["bob.jones@acme.test"]
