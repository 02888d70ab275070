import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from survey360.db.base import Base, JSONType, UTCDateTime, utcnow

PENDING = "Pending"
IN_PROGRESS = "InProgress"
COMPLETED = "Completed"


class SurveySubmission(Base):
    __tablename__ = "survey_submissions"
    __table_args__ = (
        UniqueConstraint("assignment_id", name="uq_submission_assignment"),
        CheckConstraint(
            "status IN ('Pending','InProgress','Completed')",
            name="ck_survey_submissions_status",
        ),
        # Completed => completed_at is set
        CheckConstraint(
            "(status <> 'Completed') OR (completed_at IS NOT NULL)",
            name="ck_submission_completed_ts",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )

    assignment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subject_evaluator_surveys.id", ondelete="CASCADE"), nullable=False
    )
    evaluator_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("evaluators.id", ondelete="CASCADE"), nullable=False)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    survey_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)

    # answers keyed by question name
    response_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PENDING)

    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, onupdate=utcnow)
