"""SQLModel-backed persistence for job records and publish outcomes.

Every method opens its own short-lived session. Status changes are checked
against ``ALLOWED_TRANSITIONS``; an out-of-order change raises
``InvalidTransition`` instead of overwriting the row. Database failures are
re-raised as ``PersistenceError`` so callers can decide whether bookkeeping
is fatal (the pipeline decides it is not).
"""

from typing import Iterable, List, Optional
from uuid import uuid4

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .errors import InvalidTransition, JobNotFound, PersistenceError
from .log import get_logger
from .models import ALLOWED_TRANSITIONS, Job, JobStatus, PublishResult, utcnow

logger = get_logger(__name__)


class JobStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ── Create / read ────────────────────────────────────────────────

    def create(
        self,
        title: str,
        idea: str,
        style: str,
        reference_url: Optional[str] = None,
        retry_of: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> str:
        job = Job(
            id=job_id or uuid4().hex,
            title=title,
            idea=idea,
            style=style,
            reference_url=reference_url,
            retry_of=retry_of,
        )
        try:
            with Session(self.engine) as session:
                session.add(job)
                session.commit()
                return job.id
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not create job: {e}") from e

    def get(self, job_id: str) -> Job:
        try:
            with Session(self.engine) as session:
                job = session.get(Job, job_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not read job {job_id}: {e}") from e
        if job is None:
            raise JobNotFound(job_id)
        return job

    def list(self, limit: int = 50, status: Optional[JobStatus] = None) -> List[Job]:
        stmt = select(Job).order_by(Job.created_at.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(Job.status == status)
        try:
            with Session(self.engine) as session:
                return list(session.exec(stmt).all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not list jobs: {e}") from e

    # ── Transitions ──────────────────────────────────────────────────

    def mark_processing(self, job_id: str) -> Job:
        return self._transition(job_id, JobStatus.processing, started_at=utcnow())

    def mark_completed(
        self,
        job_id: str,
        media_url: str,
        prompt: Optional[str],
        raw_media_url: Optional[str] = None,
    ) -> Job:
        if not media_url:
            raise InvalidTransition(f"job {job_id}: completed requires a media_url")
        return self._transition(
            job_id,
            JobStatus.completed,
            media_url=media_url,
            prompt=prompt,
            raw_media_url=raw_media_url,
            completed_at=utcnow(),
        )

    def mark_failed(self, job_id: str, error: str, prompt: Optional[str] = None) -> Job:
        fields = {"error": error or "unknown error", "completed_at": utcnow()}
        if prompt is not None:
            fields["prompt"] = prompt
        return self._transition(job_id, JobStatus.failed, **fields)

    def set_task(self, job_id: str, task_id: str, prompt: str) -> None:
        """Record the backend task handle while the job is processing."""
        try:
            with Session(self.engine) as session:
                job = session.get(Job, job_id)
                if job is None:
                    raise JobNotFound(job_id)
                if job.status != JobStatus.processing:
                    raise InvalidTransition(
                        f"job {job_id}: task can only be set while processing (is {job.status.value})"
                    )
                job.task_id = task_id
                job.prompt = prompt
                session.add(job)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not update job {job_id}: {e}") from e

    def _transition(self, job_id: str, target: JobStatus, **fields) -> Job:
        try:
            with Session(self.engine) as session:
                job = session.get(Job, job_id)
                if job is None:
                    raise JobNotFound(job_id)
                current = JobStatus(job.status)
                if target not in ALLOWED_TRANSITIONS[current]:
                    raise InvalidTransition(
                        f"job {job_id}: {current.value} -> {target.value} is not allowed"
                    )
                job.status = target
                for key, value in fields.items():
                    setattr(job, key, value)
                session.add(job)
                session.commit()
                session.refresh(job)
                logger.info("job %s: %s -> %s", job_id, current.value, target.value)
                return job
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not update job {job_id}: {e}") from e

    # ── Publish results ──────────────────────────────────────────────

    def add_publish_results(self, job_id: str, outcomes: Iterable) -> None:
        """Append one row per publish outcome. Rows are never updated once written.

        ``outcomes`` are objects carrying ``platform``, ``configured``,
        ``success``, ``external_post_id`` and ``error`` (see ``publish.PlatformOutcome``).
        """
        try:
            with Session(self.engine) as session:
                job = session.get(Job, job_id)
                if job is None:
                    raise JobNotFound(job_id)
                if job.status != JobStatus.completed or not job.media_url:
                    raise InvalidTransition(
                        f"job {job_id}: publish results need a completed job with media"
                    )
                for outcome in outcomes:
                    session.add(
                        PublishResult(
                            job_id=job_id,
                            platform=outcome.platform,
                            configured=outcome.configured,
                            success=outcome.success,
                            external_post_id=outcome.external_post_id,
                            error=outcome.error,
                        )
                    )
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not store publish results for {job_id}: {e}") from e

    def publish_results(self, job_id: str) -> List[PublishResult]:
        stmt = (
            select(PublishResult)
            .where(PublishResult.job_id == job_id)
            .order_by(PublishResult.platform)
        )
        try:
            with Session(self.engine) as session:
                return list(session.exec(stmt).all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not read publish results for {job_id}: {e}") from e
