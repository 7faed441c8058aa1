from datetime import datetime, timezone
from typing import Optional, Any
from uuid import UUID, uuid4

from sqlalchemy import String, Integer, DateTime, ForeignKey, Index, Text, JSON, Uuid, CheckConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import JSONB

from app.db.session import Base
from app.domain.states import JobStatus, JobEvent

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Job(Base):
    __tablename__ = "document_jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    subject_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)

    status: Mapped[JobStatus] = mapped_column(String, default=JobStatus.QUEUED, index=True)
    config: Mapped[dict[str, Any]] = mapped_column(JsonType, default=dict)

    # Retry logic
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Outcome
    result_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    result_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notify_target: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Ownership of the current processing attempt
    claim_token: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    claimed_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    requested_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    regenerated_from: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    events: Mapped[list["JobEventLog"]] = relationship("JobEventLog", back_populates="job", cascade="all, delete-orphan")

    __table_args__ = (
        # Optimization for the claim query: status=queued ordered by created_at
        Index("ix_document_jobs_poll", "status", "available_at", "created_at", postgresql_where=text("status = 'queued'")),
        Index("ix_document_jobs_tenant_recent", "tenant_id", "created_at"),
        CheckConstraint("attempts >= 0 AND attempts <= max_attempts", name="ck_document_jobs_attempts"),
        CheckConstraint("(status = 'completed') = (result_url IS NOT NULL)", name="ck_document_jobs_result_url"),
    )

class JobEventLog(Base):
    __tablename__ = "document_job_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("document_jobs.id", ondelete="CASCADE"), index=True)

    event_type: Mapped[JobEvent] = mapped_column(String, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Context (e.g. worker_id, error message, attempt number)
    meta: Mapped[dict[str, Any]] = mapped_column(JsonType, default=dict)

    job: Mapped["Job"] = relationship("Job", back_populates="events")
