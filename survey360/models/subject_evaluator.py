import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from survey360.db.base import Base, UTCDateTime, utcnow

RELATIONSHIP_TYPES = ("Self", "Manager", "DirectReport", "Peer", "Other")


class SubjectEvaluator(Base):
    __tablename__ = "subject_evaluators"
    __table_args__ = (
        UniqueConstraint("subject_id", "evaluator_id", name="uq_subject_evaluator_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )

    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    evaluator_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("evaluators.id", ondelete="CASCADE"), nullable=False)

    # Self, Manager, DirectReport, Peer, Other
    relationship_type: Mapped[str | None] = mapped_column("relationship", String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, onupdate=utcnow)

    subject = relationship("Subject", lazy="selectin")
    evaluator = relationship("Evaluator", lazy="selectin")
