# API'nin dışarı döndüğü Pydantic şemaları

from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime

from .models import Job, JobStatus, PublishResult


# POST /api/jobs gövdesi
class JobCreate(BaseModel):
    title: str = Field(min_length=1)
    idea: str = Field(min_length=1)
    style: str = "cinematic"
    reference_url: Optional[str] = None


# JobOut'un API yanıtı için şeması (örneğin /api/jobs/{job_id})
class JobOut(BaseModel):
    job_id: str
    status: JobStatus
    title: str
    idea: str
    style: str
    reference_url: Optional[str] = None
    media_url: Optional[str] = None
    prompt: Optional[str] = None
    error: Optional[str] = None
    retry_of: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobOut":
        return cls(
            job_id=job.id,
            status=job.status,
            title=job.title,
            idea=job.idea,
            style=job.style,
            reference_url=job.reference_url,
            media_url=job.media_url,
            prompt=job.prompt,
            error=job.error,
            retry_of=job.retry_of,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


# JobListItem'ın API yanıtı için şeması (örneğin /api/jobs listesi)
class JobListItem(BaseModel):
    job_id: str
    status: JobStatus
    title: str
    style: str
    media_url: Optional[str] = None
    created_at: datetime


class PublishResultOut(BaseModel):
    platform: str
    configured: bool
    success: bool
    external_post_id: Optional[str] = None
    error: Optional[str] = None


class PublishFailure(BaseModel):
    platform: str
    error: str


class PublishReportOut(BaseModel):
    job_id: str
    configured_count: int
    success_count: int
    skipped_count: int
    failures: List[PublishFailure]
    results: List[PublishResultOut]

    @classmethod
    def from_rows(cls, job_id: str, rows: List[PublishResult]) -> "PublishReportOut":
        results = [
            PublishResultOut(
                platform=r.platform,
                configured=r.configured,
                success=r.success,
                external_post_id=r.external_post_id,
                error=r.error,
            )
            for r in rows
        ]
        return cls(
            job_id=job_id,
            configured_count=sum(1 for r in results if r.configured),
            success_count=sum(1 for r in results if r.success),
            skipped_count=sum(1 for r in results if not r.configured),
            failures=[
                PublishFailure(platform=r.platform, error=r.error or "unknown error")
                for r in results
                if r.configured and not r.success
            ],
            results=results,
        )


# "Bekleyen istek" oturumları
class PendingCreate(BaseModel):
    title: str = Field(min_length=1)
    idea: str = Field(min_length=1)
    style: str = "cinematic"


class PendingOut(BaseModel):
    session: str
    title: str
    style: str
    expires_in: float


class ReferenceMedia(BaseModel):
    reference_url: str = Field(min_length=1)
