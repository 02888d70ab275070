import csv
import io
import uuid

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from survey360.core.audit import log_event
from survey360.core.logger import get_logger
from survey360.db.base import utcnow
from survey360.models.employee import Employee
from survey360.models.evaluator import Evaluator
from survey360.models.subject import Subject
from survey360.models.subject_evaluator import RELATIONSHIP_TYPES, SubjectEvaluator
from survey360.models.survey import Survey
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.tenant import Tenant
from survey360.models.user import User
from survey360.schemas.assignment import AssignmentResult, CsvAssignmentRow

logger = get_logger(__name__)


def get_active_survey_or_404(db: Session, tenant: Tenant, survey_id) -> Survey:
    survey = (
        db.query(Survey)
        .filter(
            Survey.id == survey_id,
            Survey.tenant_id == tenant.id,
            Survey.is_active.is_(True),
        )
        .one_or_none()
    )
    if not survey:
        raise HTTPException(status_code=404, detail="Survey not found")
    return survey


def auto_assign_survey(
    db: Session,
    *,
    tenant: Tenant,
    survey_id,
    actor: User | None = None,
) -> AssignmentResult:
    """
    Assign a survey to every active subject-evaluator pair of the tenant.

    Pairs that already have an assignment row for this survey (active or
    not) are skipped. New rows are inserted in one batch; a constraint
    violation rolls the batch back and is reported as success=False.
    The caller commits.
    """
    survey = get_active_survey_or_404(db, tenant, survey_id)

    pair_ids = {
        row[0]
        for row in db.query(SubjectEvaluator.id)
        .filter(
            SubjectEvaluator.tenant_id == tenant.id,
            SubjectEvaluator.is_active.is_(True),
        )
        .all()
    }
    if not pair_ids:
        logger.info("Auto-assign survey %s (tenant %s): no active relationships", survey.id, tenant.slug)
        return AssignmentResult(
            success=True,
            message="No active subject-evaluator relationships found",
        )

    existing_ids = {
        row[0]
        for row in db.query(SurveyAssignment.subject_evaluator_id)
        .filter(SurveyAssignment.survey_id == survey.id)
        .all()
    }
    to_create = pair_ids - existing_ids
    skipped = len(pair_ids) - len(to_create)

    if not to_create:
        return AssignmentResult(
            success=True,
            message=f"All {len(pair_ids)} relationship(s) are already assigned to this survey",
            skipped_count=skipped,
        )

    now = utcnow()
    db.add_all(
        [
            SurveyAssignment(
                tenant_id=tenant.id,
                subject_evaluator_id=pair_id,
                survey_id=survey.id,
                is_active=True,
                created_at=now,
            )
            for pair_id in sorted(to_create, key=str)
        ]
    )
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(
            "Auto-assign survey %s (tenant %s) rolled back: %s", survey_id, tenant.slug, exc.orig
        )
        return AssignmentResult(
            success=False,
            message="Auto-assignment failed, no assignments were created",
            skipped_count=skipped,
            error_count=1,
            errors=[str(exc.orig)],
        )

    log_event(
        db=db,
        actor=actor,
        tenant=tenant,
        action="SURVEY_AUTO_ASSIGNED",
        entity_type="survey",
        entity_id=survey.id,
        metadata={"assigned": len(to_create), "skipped": skipped},
    )
    logger.info(
        "Auto-assigned survey %s to %d relationship(s) in tenant %s (%d skipped)",
        survey.id, len(to_create), tenant.slug, skipped,
    )
    return AssignmentResult(
        success=True,
        message=f"Successfully assigned {len(to_create)} relationship(s). {skipped} already assigned.",
        assigned_count=len(to_create),
        skipped_count=skipped,
    )


def _parse_ids(raw_ids: list[str], errors: list[str]) -> list[tuple[str, uuid.UUID]]:
    parsed = []
    for raw in raw_ids:
        try:
            parsed.append((raw, uuid.UUID(str(raw))))
        except ValueError:
            errors.append(f"Subject-Evaluator relationship {raw} not found")
    return parsed


def assign_survey_to_relationships(
    db: Session,
    *,
    tenant: Tenant,
    survey_id,
    relationship_ids: list[str],
    actor: User | None = None,
) -> AssignmentResult:
    """Assign a survey to an explicit list of pairs, reactivating old assignments."""
    survey = get_active_survey_or_404(db, tenant, survey_id)

    errors: list[str] = []
    assigned = 0
    now = utcnow()

    for raw, rel_id in _parse_ids(relationship_ids, errors):
        pair = db.get(SubjectEvaluator, rel_id)
        if not pair or pair.tenant_id != tenant.id or not pair.is_active:
            errors.append(f"Subject-Evaluator relationship {raw} not found")
            continue

        existing = (
            db.query(SurveyAssignment)
            .filter(
                SurveyAssignment.subject_evaluator_id == pair.id,
                SurveyAssignment.survey_id == survey.id,
            )
            .one_or_none()
        )
        if existing:
            if existing.is_active:
                errors.append(f"Relationship {raw} is already assigned to this survey")
                continue
            existing.is_active = True
            existing.updated_at = now
        else:
            db.add(
                SurveyAssignment(
                    tenant_id=tenant.id,
                    subject_evaluator_id=pair.id,
                    survey_id=survey.id,
                    is_active=True,
                    created_at=now,
                )
            )
        assigned += 1

    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Manual assign of survey %s rolled back: %s", survey_id, exc.orig)
        return AssignmentResult(
            success=False,
            message="An error occurred while assigning survey",
            error_count=len(errors) + 1,
            errors=errors + [str(exc.orig)],
        )

    if assigned:
        log_event(
            db=db,
            actor=actor,
            tenant=tenant,
            action="SURVEY_ASSIGNED",
            entity_type="survey",
            entity_id=survey.id,
            metadata={"assigned": assigned, "errors": len(errors)},
        )
    return AssignmentResult(
        success=True,
        message=f"Successfully assigned {assigned} relationship(s). {len(errors)} error(s) occurred.",
        assigned_count=assigned,
        error_count=len(errors),
        errors=errors,
    )


# header spellings accepted for each CSV column
CSV_COLUMNS = {
    "evaluator_employee_number": ("evaluator_employee_number", "evaluator_id", "evaluatorid", "evaluator"),
    "subject_employee_number": ("subject_employee_number", "subject_id", "subjectid", "subject"),
    "relationship": ("relationship", "relationship_type"),
}


def parse_assignment_csv(content: str) -> list[CsvAssignmentRow]:
    """Read an assignment CSV with a header row into rows; 400 on a bad header or no data."""
    reader = csv.DictReader(io.StringIO(content))
    if not reader.fieldnames:
        raise HTTPException(status_code=400, detail="CSV file is empty")

    normalized = {h: (h or "").strip().lower().replace(" ", "_") for h in reader.fieldnames}
    mapping = {}
    for field, spellings in CSV_COLUMNS.items():
        header = next((h for h, n in normalized.items() if n in spellings), None)
        if header is None:
            raise HTTPException(status_code=400, detail=f"CSV file is missing the '{field}' column")
        mapping[field] = header

    rows = [
        CsvAssignmentRow(**{field: (line.get(header) or "") for field, header in mapping.items()})
        for line in reader
    ]
    if not rows:
        raise HTTPException(status_code=400, detail="CSV file has no data rows")
    return rows


def assign_survey_from_csv_rows(
    db: Session,
    *,
    tenant: Tenant,
    survey_id,
    rows: list[CsvAssignmentRow],
    actor: User | None = None,
) -> AssignmentResult:
    """
    Assign a survey from (evaluator, subject, relationship) rows keyed by
    employee number.

    Missing subjects, evaluators and pairs are created, inactive ones are
    reactivated and a changed relationship label is updated. Pairs already
    actively assigned are counted as skipped. Bad rows are reported as
    "Row N: ..." with N counted from 2, the CSV header being row 1.
    The caller commits.
    """
    survey = get_active_survey_or_404(db, tenant, survey_id)

    errors: list[str] = []
    now = utcnow()
    processed = assigned = skipped = 0

    numbers = {
        n.strip()
        for r in rows
        for n in (r.subject_employee_number, r.evaluator_employee_number)
        if n and n.strip()
    }
    employees = {
        e.employee_number: e
        for e in db.query(Employee).filter(
            Employee.tenant_id == tenant.id,
            Employee.is_active.is_(True),
            Employee.employee_number.in_(numbers),
        )
    }
    employee_ids = [e.id for e in employees.values()]
    subjects = {
        s.employee_id: s
        for s in db.query(Subject).filter(Subject.tenant_id == tenant.id, Subject.employee_id.in_(employee_ids))
    }
    evaluators = {
        e.employee_id: e
        for e in db.query(Evaluator).filter(Evaluator.tenant_id == tenant.id, Evaluator.employee_id.in_(employee_ids))
    }
    pairs = {
        (p.subject_id, p.evaluator_id): p
        for p in db.query(SubjectEvaluator).filter(
            SubjectEvaluator.tenant_id == tenant.id,
            SubjectEvaluator.subject_id.in_([s.id for s in subjects.values()]),
        )
    }
    existing = {
        a.subject_evaluator_id: a
        for a in db.query(SurveyAssignment).filter(
            SurveyAssignment.survey_id == survey.id,
            SurveyAssignment.subject_evaluator_id.in_([p.id for p in pairs.values()]),
        )
    }

    for index, row in enumerate(rows):
        row_number = index + 2
        subject_number = row.subject_employee_number.strip()
        evaluator_number = row.evaluator_employee_number.strip()
        relationship_type = row.relationship.strip()

        if not subject_number or not evaluator_number or not relationship_type:
            errors.append(f"Row {row_number}: evaluator, subject and relationship are required")
            continue
        if relationship_type not in RELATIONSHIP_TYPES:
            errors.append(
                f"Row {row_number}: relationship must be one of: {list(RELATIONSHIP_TYPES)}"
            )
            continue

        subject_emp = employees.get(subject_number)
        if not subject_emp:
            errors.append(f"Row {row_number}: subject employee '{subject_number}' not found")
            continue
        evaluator_emp = employees.get(evaluator_number)
        if not evaluator_emp:
            errors.append(f"Row {row_number}: evaluator employee '{evaluator_number}' not found")
            continue

        subject = subjects.get(subject_emp.id)
        if subject is None:
            subject = Subject(id=uuid.uuid4(), tenant_id=tenant.id, employee_id=subject_emp.id, is_active=True)
            db.add(subject)
            subjects[subject_emp.id] = subject
        elif not subject.is_active:
            subject.is_active = True

        evaluator = evaluators.get(evaluator_emp.id)
        if evaluator is None:
            evaluator = Evaluator(id=uuid.uuid4(), tenant_id=tenant.id, employee_id=evaluator_emp.id, is_active=True)
            db.add(evaluator)
            evaluators[evaluator_emp.id] = evaluator
        elif not evaluator.is_active:
            evaluator.is_active = True

        pair = pairs.get((subject.id, evaluator.id))
        if pair is None:
            pair = SubjectEvaluator(
                id=uuid.uuid4(),
                tenant_id=tenant.id,
                subject_id=subject.id,
                evaluator_id=evaluator.id,
                relationship_type=relationship_type,
                is_active=True,
            )
            db.add(pair)
            pairs[(subject.id, evaluator.id)] = pair
        else:
            pair.is_active = True
            pair.relationship_type = relationship_type
        processed += 1

        assignment = existing.get(pair.id)
        if assignment is not None and assignment.is_active:
            skipped += 1
            continue
        if assignment is not None:
            assignment.is_active = True
            assignment.updated_at = now
        else:
            assignment = SurveyAssignment(
                tenant_id=tenant.id,
                subject_evaluator_id=pair.id,
                survey_id=survey.id,
                is_active=True,
                created_at=now,
            )
            db.add(assignment)
            existing[pair.id] = assignment
        assigned += 1

    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("CSV assign of survey %s rolled back: %s", survey_id, exc.orig)
        return AssignmentResult(
            success=False,
            message="CSV assignment failed, no changes were saved",
            error_count=len(errors) + 1,
            errors=errors + [str(exc.orig)],
        )

    logger.info(
        "CSV assign of survey %s: %d row(s), %d assigned, %d skipped, %d error(s)",
        survey.id, len(rows), assigned, skipped, len(errors),
    )
    if processed:
        log_event(
            db=db,
            actor=actor,
            tenant=tenant,
            action="SURVEY_ASSIGNED_CSV",
            entity_type="survey",
            entity_id=survey.id,
            metadata={"rows": len(rows), "assigned": assigned, "skipped": skipped, "errors": len(errors)},
        )

    if assigned:
        message = f"Successfully assigned {assigned} relationship(s) from CSV. {len(errors)} error(s) occurred."
    elif processed:
        message = (
            f"CSV processed: {processed} relationship(s) processed but all were already assigned. "
            f"{len(errors)} error(s) occurred."
        )
    else:
        message = f"No valid relationships processed. {len(errors)} error(s) occurred."

    return AssignmentResult(
        success=processed > 0,
        message=message,
        assigned_count=assigned,
        skipped_count=skipped,
        error_count=len(errors),
        errors=errors,
    )


def unassign_survey(
    db: Session,
    *,
    tenant: Tenant,
    survey_id,
    relationship_ids: list[str],
    actor: User | None = None,
) -> AssignmentResult:
    """Deactivate the active assignment of each listed pair."""
    survey = get_active_survey_or_404(db, tenant, survey_id)

    errors: list[str] = []
    unassigned = 0
    now = utcnow()

    for raw, rel_id in _parse_ids(relationship_ids, errors):
        assignment = (
            db.query(SurveyAssignment)
            .filter(
                SurveyAssignment.tenant_id == tenant.id,
                SurveyAssignment.subject_evaluator_id == rel_id,
                SurveyAssignment.survey_id == survey.id,
                SurveyAssignment.is_active.is_(True),
            )
            .one_or_none()
        )
        if not assignment:
            errors.append(f"Assignment for relationship {raw} not found")
            continue
        assignment.is_active = False
        assignment.updated_at = now
        unassigned += 1

    db.flush()
    if unassigned:
        log_event(
            db=db,
            actor=actor,
            tenant=tenant,
            action="SURVEY_UNASSIGNED",
            entity_type="survey",
            entity_id=survey.id,
            metadata={"unassigned": unassigned, "errors": len(errors)},
        )
    return AssignmentResult(
        success=True,
        message=f"Successfully unassigned {unassigned} relationship(s). {len(errors)} error(s) occurred.",
        unassigned_count=unassigned,
        error_count=len(errors),
        errors=errors,
    )


def _relationship_query(db: Session, tenant: Tenant, search: str | None, relationship: str | None):
    """Active pairs of the tenant joined to both people, with optional filters."""
    SubjectEmployee = aliased(Employee, name="subject_employee")
    EvaluatorEmployee = aliased(Employee, name="evaluator_employee")

    query = (
        db.query(SubjectEvaluator)
        .join(Subject, Subject.id == SubjectEvaluator.subject_id)
        .join(Evaluator, Evaluator.id == SubjectEvaluator.evaluator_id)
        .join(SubjectEmployee, SubjectEmployee.id == Subject.employee_id)
        .join(EvaluatorEmployee, EvaluatorEmployee.id == Evaluator.employee_id)
        .filter(
            SubjectEvaluator.tenant_id == tenant.id,
            SubjectEvaluator.is_active.is_(True),
        )
    )

    if relationship:
        query = query.filter(SubjectEvaluator.relationship_type == relationship)

    if search:
        term = f"%{search.lower()}%"
        query = query.filter(
            SubjectEmployee.first_name.ilike(term)
            | SubjectEmployee.last_name.ilike(term)
            | SubjectEmployee.email.ilike(term)
            | EvaluatorEmployee.first_name.ilike(term)
            | EvaluatorEmployee.last_name.ilike(term)
            | EvaluatorEmployee.email.ilike(term)
        )
    return query


def list_assigned(
    db: Session,
    *,
    tenant: Tenant,
    survey_id,
    search: str | None = None,
    relationship: str | None = None,
) -> list[SurveyAssignment]:
    survey = get_active_survey_or_404(db, tenant, survey_id)
    query = _relationship_query(db, tenant, search, relationship)
    pair_ids = [p.id for p in query.all()]
    if not pair_ids:
        return []
    return (
        db.query(SurveyAssignment)
        .filter(
            SurveyAssignment.survey_id == survey.id,
            SurveyAssignment.is_active.is_(True),
            SurveyAssignment.subject_evaluator_id.in_(pair_ids),
        )
        .order_by(SurveyAssignment.created_at.asc())
        .all()
    )


def list_available(
    db: Session,
    *,
    tenant: Tenant,
    survey_id,
    search: str | None = None,
    relationship: str | None = None,
) -> list[SubjectEvaluator]:
    """Active pairs that have no active assignment for the survey."""
    survey = get_active_survey_or_404(db, tenant, survey_id)
    assigned_ids = (
        select(SurveyAssignment.subject_evaluator_id)
        .where(
            SurveyAssignment.survey_id == survey.id,
            SurveyAssignment.is_active.is_(True),
        )
    )
    query = _relationship_query(db, tenant, search, relationship).filter(
        ~SubjectEvaluator.id.in_(assigned_ids)
    )
    return query.order_by(SubjectEvaluator.created_at.asc()).all()
