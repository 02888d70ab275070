import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from survey360.db.base import Base, UTCDateTime, utcnow

SENT = "Sent"
FAILED = "Failed"

# reminder sweep vs. a single form reminder sent by an admin
KIND_SWEEP = "sweep"
KIND_FORM = "form"


class EmailAuditLog(Base):
    """One row per outgoing email attempt."""

    __tablename__ = "email_audit_logs"
    __table_args__ = (
        CheckConstraint(f"status IN ('{SENT}', '{FAILED}')", name="ck_email_audit_logs_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True, index=True
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default=KIND_SWEEP)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    assignment_count: Mapped[int] = mapped_column(nullable=False, default=0)

    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
