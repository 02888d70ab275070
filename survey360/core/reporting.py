import html
import re
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from survey360.core.logger import get_logger
from survey360.core.survey_definition import count_questions
from survey360.db.base import utcnow
from survey360.models.subject import Subject
from survey360.models.subject_evaluator import SubjectEvaluator
from survey360.models.survey import Survey
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.survey_submission import COMPLETED, SurveySubmission
from survey360.models.tenant import Tenant

logger = get_logger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    return str(value)


def replace_placeholders(template: str, context: dict[str, Any]) -> str:
    """
    Replace `{{key}}` markers with HTML-escaped values from `context`.
    Unknown keys are left as they are.
    """

    def _sub(match: re.Match) -> str:
        key = match.group(1).strip()
        if key not in context:
            return match.group(0)
        return html.escape(format_value(context[key]))

    return PLACEHOLDER_RE.sub(_sub, template)


def _numeric_answers(response_data: dict | None) -> list[float]:
    if not isinstance(response_data, dict):
        return []
    values = []
    for value in response_data.values():
        # bool is an int subclass; yes/no answers are not scores
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            values.append(float(value))
    return values


def build_report_context(
    db: Session,
    *,
    tenant: Tenant,
    subject: Subject,
    survey: Survey,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or utcnow()

    assignments = (
        db.query(SurveyAssignment)
        .join(SubjectEvaluator, SubjectEvaluator.id == SurveyAssignment.subject_evaluator_id)
        .filter(
            SurveyAssignment.tenant_id == tenant.id,
            SurveyAssignment.survey_id == survey.id,
            SurveyAssignment.is_active.is_(True),
            SubjectEvaluator.subject_id == subject.id,
        )
        .all()
    )
    # only submissions whose assignment is still active count, so completed
    # never exceeds evaluator_count
    completed = (
        db.query(SurveySubmission)
        .join(SurveyAssignment, SurveyAssignment.id == SurveySubmission.assignment_id)
        .filter(
            SurveySubmission.tenant_id == tenant.id,
            SurveySubmission.survey_id == survey.id,
            SurveySubmission.subject_id == subject.id,
            SurveySubmission.status == COMPLETED,
            SurveyAssignment.is_active.is_(True),
        )
        .all()
    )

    scores: list[float] = []
    for s in completed:
        scores.extend(_numeric_answers(s.response_data))

    evaluator_count = len(assignments)
    completed_count = len(completed)
    employee = subject.employee

    return {
        "tenant_name": tenant.name,
        "subject_name": employee.full_name,
        "subject_first_name": employee.first_name,
        "subject_last_name": employee.last_name,
        "subject_email": employee.email,
        "subject_employee_number": employee.employee_number,
        "subject_designation": employee.designation,
        "subject_department": employee.department,
        "survey_title": survey.title,
        "survey_description": survey.description,
        "question_count": count_questions(survey.definition),
        "is_self_evaluation": survey.is_self_evaluation,
        "evaluator_count": evaluator_count,
        "completed_count": completed_count,
        "pending_count": max(evaluator_count - completed_count, 0),
        "completion_rate": (completed_count / evaluator_count * 100.0) if evaluator_count else 0.0,
        "average_score": (sum(scores) / len(scores)) if scores else None,
        "generated_date": now.date(),
        "generated_time": now.strftime("%H:%M:%S"),
        "generated_datetime": now,
    }


def render_pdf(html_content: str) -> bytes:
    # WeasyPrint pulls in native libraries, only load it when a PDF is asked for
    from weasyprint import HTML

    return HTML(string=html_content).write_pdf()
