"""email audit logs

Revision ID: 9e4b7f2c1a63
Revises: 5c1d2e7a9b40
Create Date: 2026-10-19 14:03:27.518204
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "9e4b7f2c1a63"
down_revision: Union[str, None] = "5c1d2e7a9b40"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "email_audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, server_default="sweep"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("assignment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('Sent', 'Failed')", name="ck_email_audit_logs_status"),
    )
    op.create_index("ix_email_audit_logs_tenant_id", "email_audit_logs", ["tenant_id"])
    op.create_index("ix_email_audit_logs_email", "email_audit_logs", ["email"])


def downgrade() -> None:
    op.drop_index("ix_email_audit_logs_email", table_name="email_audit_logs")
    op.drop_index("ix_email_audit_logs_tenant_id", table_name="email_audit_logs")
    op.drop_table("email_audit_logs")
