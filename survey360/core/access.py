from fastapi import HTTPException
from sqlalchemy.orm import Session

from survey360.models.evaluator import Evaluator
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.user import User


def get_evaluator_for_user(db: Session, user: User) -> Evaluator | None:
    if not user.employee_id or not user.tenant_id:
        return None
    return (
        db.query(Evaluator)
        .filter(
            Evaluator.tenant_id == user.tenant_id,
            Evaluator.employee_id == user.employee_id,
            Evaluator.is_active.is_(True),
        )
        .one_or_none()
    )


def assert_user_is_evaluator(db: Session, user: User, assignment: SurveyAssignment):
    evaluator = get_evaluator_for_user(db, user)
    if not evaluator or evaluator.id != assignment.subject_evaluator.evaluator_id:
        raise HTTPException(status_code=403, detail="Only the assigned evaluator can perform this action")
