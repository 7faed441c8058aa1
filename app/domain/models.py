from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.domain.states import JobStatus, PROGRESS

class JobConfig(BaseModel):
    """
    What to generate. Stored verbatim on the job; unknown keys are kept
    so renderers can grow options without a schema change here.
    """
    model_config = ConfigDict(extra="allow")

    sections: list[str] = Field(min_length=1)
    options: dict[str, Any] = Field(default_factory=dict)
    title: Optional[str] = None

    @field_validator("sections")
    @classmethod
    def sections_not_blank(cls, value: list[str]) -> list[str]:
        cleaned = [s.strip() for s in value]
        if any(not s for s in cleaned):
            raise ValueError("section names must be non-empty")
        return cleaned

@dataclass
class JobStatusView:
    status: JobStatus
    result_url: Optional[str]
    last_error: Optional[str]
    attempts: int
    progress: int

    @classmethod
    def from_job(cls, job) -> "JobStatusView":
        status = JobStatus(job.status)
        return cls(
            status=status,
            result_url=job.result_url,
            last_error=job.last_error,
            attempts=job.attempts,
            progress=PROGRESS[status],
        )

@dataclass
class JobSummary:
    id: UUID
    tenant_id: str
    subject_id: str
    kind: str
    status: JobStatus
    attempts: int
    max_attempts: int
    last_error: Optional[str]
    result_url: Optional[str]
    created_at: datetime
    completed_at: Optional[datetime]

    @classmethod
    def from_job(cls, job) -> "JobSummary":
        return cls(
            id=job.id,
            tenant_id=job.tenant_id,
            subject_id=job.subject_id,
            kind=job.kind,
            status=JobStatus(job.status),
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            last_error=job.last_error,
            result_url=job.result_url,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )
