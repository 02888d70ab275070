import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from survey360.core.assignment import auto_assign_survey
from survey360.models.audit_event import AuditEvent
from survey360.models.survey_assignment import SurveyAssignment
from tests.helpers import (
    create_assignment,
    create_employee,
    create_relationship,
    create_survey,
    create_tenant,
)


def seed_pairs(db, tenant, count: int):
    subject = create_employee(db, tenant, "Sam", "Subject")
    pairs = []
    for i in range(count):
        evaluator = create_employee(db, tenant, f"Eve{i}", "Evaluator")
        pairs.append(create_relationship(db, tenant, subject, evaluator))
    return pairs


def assignment_rows(db, survey):
    return db.query(SurveyAssignment).filter(SurveyAssignment.survey_id == survey.id).all()


def test_assigns_every_active_pair(db_session):
    tenant = create_tenant(db_session, "acme")
    pairs = seed_pairs(db_session, tenant, 3)
    survey = create_survey(db_session, tenant)

    result = auto_assign_survey(db_session, tenant=tenant, survey_id=survey.id)
    db_session.commit()

    assert result.success is True
    assert result.assigned_count == 3
    assert result.skipped_count == 0
    rows = assignment_rows(db_session, survey)
    assert {r.subject_evaluator_id for r in rows} == {p.id for p in pairs}
    assert all(r.is_active and r.last_reminder_sent_at is None for r in rows)
    assert db_session.query(AuditEvent).filter(AuditEvent.action == "SURVEY_AUTO_ASSIGNED").count() == 1


def test_running_twice_never_duplicates(db_session):
    tenant = create_tenant(db_session, "acme")
    seed_pairs(db_session, tenant, 2)
    survey = create_survey(db_session, tenant)

    auto_assign_survey(db_session, tenant=tenant, survey_id=survey.id)
    db_session.commit()
    second = auto_assign_survey(db_session, tenant=tenant, survey_id=survey.id)
    db_session.commit()

    assert second.success is True
    assert second.assigned_count == 0
    assert second.skipped_count == 2
    assert "already assigned" in second.message
    assert len(assignment_rows(db_session, survey)) == 2


def test_only_new_pairs_are_added(db_session):
    tenant = create_tenant(db_session, "acme")
    first, second = seed_pairs(db_session, tenant, 2)
    survey = create_survey(db_session, tenant)
    create_assignment(db_session, first, survey)

    result = auto_assign_survey(db_session, tenant=tenant, survey_id=survey.id)

    assert result.assigned_count == 1
    assert result.skipped_count == 1
    rows = assignment_rows(db_session, survey)
    assert sorted(str(r.subject_evaluator_id) for r in rows) == sorted([str(first.id), str(second.id)])


def test_zero_relationships_is_success_with_zero(db_session):
    tenant = create_tenant(db_session, "acme")
    survey = create_survey(db_session, tenant)

    result = auto_assign_survey(db_session, tenant=tenant, survey_id=survey.id)

    assert result.success is True
    assert result.assigned_count == 0
    assert result.errors == []
    assert assignment_rows(db_session, survey) == []


def test_inactive_pairs_and_other_tenants_are_ignored(db_session):
    acme = create_tenant(db_session, "acme")
    globex = create_tenant(db_session, "globex")
    active, inactive = seed_pairs(db_session, acme, 2)
    inactive.is_active = False
    db_session.commit()
    seed_pairs(db_session, globex, 2)
    survey = create_survey(db_session, acme)

    result = auto_assign_survey(db_session, tenant=acme, survey_id=survey.id)

    assert result.assigned_count == 1
    assert [r.subject_evaluator_id for r in assignment_rows(db_session, survey)] == [active.id]


def test_deactivated_assignment_is_skipped_not_reactivated(db_session):
    tenant = create_tenant(db_session, "acme")
    (pair,) = seed_pairs(db_session, tenant, 1)
    survey = create_survey(db_session, tenant)
    old = create_assignment(db_session, pair, survey, is_active=False)

    result = auto_assign_survey(db_session, tenant=tenant, survey_id=survey.id)

    assert result.assigned_count == 0
    assert result.skipped_count == 1
    db_session.refresh(old)
    assert old.is_active is False


def test_unknown_inactive_or_foreign_survey_404(db_session):
    acme = create_tenant(db_session, "acme")
    globex = create_tenant(db_session, "globex")
    inactive = create_survey(db_session, acme, is_active=False)
    foreign = create_survey(db_session, globex)

    for survey_id in (inactive.id, foreign.id):
        with pytest.raises(HTTPException) as exc:
            auto_assign_survey(db_session, tenant=acme, survey_id=survey_id)
        assert exc.value.status_code == 404


def test_constraint_violation_rolls_back_and_reports(db_session, monkeypatch):
    tenant = create_tenant(db_session, "acme")
    seed_pairs(db_session, tenant, 2)
    survey = create_survey(db_session, tenant)

    def failing_flush(*args, **kwargs):
        raise IntegrityError("INSERT INTO subject_evaluator_surveys", {}, Exception("uq_assignment_pair_survey"))

    monkeypatch.setattr(db_session, "flush", failing_flush)
    result = auto_assign_survey(db_session, tenant=tenant, survey_id=survey.id)
    monkeypatch.undo()

    assert result.success is False
    assert result.assigned_count == 0
    assert result.error_count == 1
    assert "uq_assignment_pair_survey" in result.errors[0]
    assert assignment_rows(db_session, survey) == []
