"""create document jobs

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

JsonType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "document_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("config", JsonType, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("result_url", sa.String(), nullable=True),
        sa.Column("result_summary", sa.Text(), nullable=True),
        sa.Column("notify_target", sa.String(), nullable=True),
        sa.Column("claim_token", sa.Uuid(), nullable=True),
        sa.Column("claimed_by", sa.String(), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("requested_by", sa.String(), nullable=True),
        sa.Column("regenerated_from", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("attempts >= 0 AND attempts <= max_attempts", name="ck_document_jobs_attempts"),
        sa.CheckConstraint("(status = 'completed') = (result_url IS NOT NULL)", name="ck_document_jobs_result_url"),
    )
    op.create_index("ix_document_jobs_tenant_id", "document_jobs", ["tenant_id"])
    op.create_index("ix_document_jobs_subject_id", "document_jobs", ["subject_id"])
    op.create_index("ix_document_jobs_status", "document_jobs", ["status"])
    op.create_index(
        "ix_document_jobs_poll",
        "document_jobs",
        ["status", "available_at", "created_at"],
        postgresql_where=sa.text("status = 'queued'"),
    )
    op.create_index("ix_document_jobs_tenant_recent", "document_jobs", ["tenant_id", "created_at"])

    op.create_table(
        "document_job_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("document_jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meta", JsonType, nullable=False),
    )
    op.create_index("ix_document_job_events_job_id", "document_job_events", ["job_id"])


def downgrade() -> None:
    op.drop_index("ix_document_job_events_job_id", table_name="document_job_events")
    op.drop_table("document_job_events")
    op.drop_index("ix_document_jobs_tenant_recent", table_name="document_jobs")
    op.drop_index("ix_document_jobs_poll", table_name="document_jobs")
    op.drop_index("ix_document_jobs_status", table_name="document_jobs")
    op.drop_index("ix_document_jobs_subject_id", table_name="document_jobs")
    op.drop_index("ix_document_jobs_tenant_id", table_name="document_jobs")
    op.drop_table("document_jobs")
