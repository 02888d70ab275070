import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from survey360.db.base import Base, UTCDateTime, utcnow


class SurveyAssignment(Base):
    """One survey assigned to one subject-evaluator pair."""

    __tablename__ = "subject_evaluator_surveys"
    __table_args__ = (
        UniqueConstraint("subject_evaluator_id", "survey_id", name="uq_assignment_pair_survey"),
        Index(
            "ix_assignments_reminder_scan",
            "created_at",
            postgresql_where=text("is_active AND last_reminder_sent_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )

    subject_evaluator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subject_evaluators.id", ondelete="CASCADE"), nullable=False
    )
    survey_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # only written by the reminder sweep after a successful send
    last_reminder_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    subject_evaluator = relationship("SubjectEvaluator", lazy="selectin")
    survey = relationship("Survey", lazy="selectin")
    tenant = relationship("Tenant", lazy="selectin")
