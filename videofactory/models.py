#Tablolar (ORM modelleri) – Job ve PublishResult tabloları burada

import enum
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field, UniqueConstraint


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)


# pending -> failed covers a run cancelled or rejected before it started
ALLOWED_TRANSITIONS = {
    JobStatus.pending: {JobStatus.processing, JobStatus.failed},
    JobStatus.processing: {JobStatus.completed, JobStatus.failed},
    JobStatus.completed: set(),
    JobStatus.failed: set(),
}


class Job(SQLModel, table=True):
    id: str = Field(primary_key=True, index=True)
    title: str
    idea: str
    style: str = Field(default="cinematic")
    status: JobStatus = Field(default=JobStatus.pending, index=True)
    reference_url: Optional[str] = None
    media_url: Optional[str] = None
    raw_media_url: Optional[str] = None
    prompt: Optional[str] = None
    task_id: Optional[str] = None
    error: Optional[str] = None
    retry_of: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    started_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


class PublishResult(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("job_id", "platform"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    job_id: str = Field(foreign_key="job.id", index=True)
    platform: str
    configured: bool = True
    success: bool = False
    external_post_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
