"""
Per-job workflow and the fire-and-forget entry points.

    create -> processing -> compose -> submit -> poll -> post-process
           -> completed | failed -> captions -> publish fan-out -> notify

Stages run strictly in order inside one asyncio task per job. Only the
publish fan-out runs calls in parallel. Publishing starts after the job is
completed and its outcome never changes the job's status.

Cancelling a run (``JobRunner.cancel`` or ``shutdown``) marks the job failed.
The task already submitted to the generation backend is not cancelled there
and may still finish remotely; nothing collects it.
"""

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import Dict, List, Optional, Sequence

from sqlalchemy.engine import Engine

from .config import Settings, settings as default_settings
from .errors import (
    InvalidTransition,
    JobAlreadyRunning,
    JobNotRetryable,
    PersistenceError,
    PipelineError,
)
from .generation import GenerationTaskClient
from .log import get_logger, job_ctx
from .models import Job, JobStatus, utcnow
from .narration import NarrationClient
from .notify import LoggingSink, NotificationSink, WhapiSink
from .poller import TaskPoller
from .postprocess import MediaPostProcessor
from .prompts import build_captions, compose
from .publish import BlotatoPublisher, PublishFanOut, PublishReport, PublishTarget, targets_from_settings
from .storage import MediaStorage
from .store import JobStore
from .upscale import ReferenceUpscaler

logger = get_logger(__name__)


@dataclass
class JobRequest:
    title: str
    idea: str
    style: str
    reference_url: Optional[str] = None


@dataclass
class RunOutcome:
    job_id: str
    status: JobStatus
    media_url: Optional[str] = None
    prompt: Optional[str] = None
    error: Optional[str] = None
    report: Optional[PublishReport] = None


class JobPipeline:
    def __init__(
        self,
        store: JobStore,
        client: GenerationTaskClient,
        poller: TaskPoller,
        postprocessor: MediaPostProcessor,
        fanout: PublishFanOut,
        targets: Sequence[PublishTarget],
        sinks: Sequence[NotificationSink] = (),
        cfg: Settings = default_settings,
        upscaler: Optional[ReferenceUpscaler] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.poller = poller
        self.postprocessor = postprocessor
        self.fanout = fanout
        self.targets = list(targets)
        self.sinks = list(sinks)
        self.cfg = cfg
        self.upscaler = upscaler

    async def _bookkeep(self, fn, *args, tolerate_transition: bool = False, **kwargs):
        """Run a blocking store call off the loop. Store outages are logged, not raised.

        ``tolerate_transition`` treats ``InvalidTransition`` the same way. It is
        set when an earlier write of this run did not persist, so the row can
        lag behind the run.
        """
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except PersistenceError as e:
            logger.error("bookkeeping failed in %s: %s", fn.__name__, e)
        except InvalidTransition as e:
            if not tolerate_transition:
                raise
            logger.error("bookkeeping skipped in %s, row is behind the run: %s", fn.__name__, e)
        return None

    async def _mark_processing(self, job_id: str) -> bool:
        """Move the row to processing; False when the store could not be written."""
        write = asyncio.ensure_future(asyncio.to_thread(self.store.mark_processing, job_id))
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            # the cancel handler writes the terminal state; this write must land first
            await asyncio.gather(write, return_exceptions=True)
            raise
        except PersistenceError as e:
            logger.error("bookkeeping failed in mark_processing: %s", e)
            return False
        return True

    async def run(self, job_id: str, request: JobRequest) -> RunOutcome:
        with job_ctx(job_id):
            return await self._run(job_id, request)

    async def _run(self, job_id: str, request: JobRequest) -> RunOutcome:
        logger.info("starting job: %s (style=%s)", request.title, request.style)

        started = False
        prompt: Optional[str] = None
        raw_url: Optional[str] = None
        try:
            started = await self._mark_processing(job_id)

            reference_url = request.reference_url
            if reference_url and self.upscaler is not None:
                reference_url = await self.upscaler.upscale(reference_url)

            prompt = compose(
                request.title,
                request.idea,
                request.style,
                has_reference=bool(request.reference_url),
                cfg=self.cfg,
            )
            task_id = await self.client.submit(prompt, reference_url)

            # set_task is only valid while processing
            started = started or await self._mark_processing(job_id)
            if started:
                await self._bookkeep(self.store.set_task, job_id, task_id, prompt)

            result = await self.poller.wait(task_id)
            raw_url = result.url

            processed = await self.postprocessor.process(
                job_id, result.url, request.title, request.idea, request.style
            )
            started = started or await self._mark_processing(job_id)
        except asyncio.CancelledError as e:
            reason = str(e) or "run was cancelled"
            logger.warning("job cancelled: %s", reason)
            await self._bookkeep(
                self.store.mark_failed, job_id, f"cancelled: {reason}", prompt, tolerate_transition=True
            )
            raise
        except InvalidTransition:
            raise
        except PipelineError as e:
            return await self._fail(job_id, request, f"{type(e).__name__}: {e}", prompt)
        except Exception as e:
            logger.exception("unexpected error in job")
            return await self._fail(job_id, request, f"unexpected error: {e}", prompt)

        job = await self._bookkeep(
            self.store.mark_completed,
            job_id,
            processed.url,
            prompt,
            raw_media_url=raw_url,
            tolerate_transition=not started,
        )
        if processed.degraded:
            logger.warning("job completed with unaugmented media: %s", processed.error)
        logger.info("job completed: %s", processed.url)

        report = await self.fanout.run(
            self.targets,
            processed.url,
            build_captions(request.title, request.idea, self.cfg),
            request.title,
        )
        if job is not None:
            await self._bookkeep(self.store.add_publish_results, job_id, report.results)
        else:
            logger.error("publish results not stored: completion of job %s was not recorded", job_id)
        logger.info(
            "publish report: %d configured, %d succeeded, %d failed, %d skipped",
            report.configured_count,
            report.success_count,
            len(report.failures),
            report.skipped_count,
        )

        if job is None:
            job = self._snapshot(job_id, request, JobStatus.completed, media_url=processed.url, prompt=prompt)
        await self._notify(job, report)
        return RunOutcome(job_id, JobStatus.completed, media_url=processed.url, prompt=prompt, report=report)

    async def _fail(self, job_id: str, request: JobRequest, error: str, prompt: Optional[str]) -> RunOutcome:
        logger.error("job failed: %s", error)
        job = await self._bookkeep(self.store.mark_failed, job_id, error, prompt)
        if job is None:
            job = self._snapshot(job_id, request, JobStatus.failed, error=error, prompt=prompt)
        await self._notify(job, None)
        return RunOutcome(job_id, JobStatus.failed, prompt=prompt, error=error)

    @staticmethod
    def _snapshot(job_id: str, request: JobRequest, status: JobStatus, **fields) -> Job:
        # in-memory stand-in for the row when the store could not be written
        return Job(
            id=job_id,
            title=request.title,
            idea=request.idea,
            style=request.style,
            reference_url=request.reference_url,
            status=status,
            completed_at=utcnow(),
            **fields,
        )

    async def _notify(self, job: Job, report: Optional[PublishReport]) -> None:
        for sink in self.sinks:
            try:
                await sink.notify(job, report)
            except Exception:
                logger.exception("notification sink %s failed", type(sink).__name__)


class JobRunner:
    """Owns the asyncio task of every in-flight job; one task per job id."""

    def __init__(self, store: JobStore, pipeline: JobPipeline, client: GenerationTaskClient) -> None:
        self.store = store
        self.pipeline = pipeline
        self.client = client
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def active_jobs(self) -> List[str]:
        return list(self._tasks)

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    async def create_job(
        self,
        title: str,
        idea: str,
        style: str = "cinematic",
        reference_url: Optional[str] = None,
    ) -> str:
        """Persist a pending job, start its run in the background, return its id."""
        self.client.ensure_configured()
        job_id = await asyncio.to_thread(self.store.create, title, idea, style, reference_url)
        self._start(job_id, JobRequest(title, idea, style, reference_url))
        return job_id

    async def get_job_status(self, job_id: str) -> Job:
        return await asyncio.to_thread(self.store.get, job_id)

    async def retry_job(self, job_id: str) -> str:
        """Start a new job with the inputs of a failed one. The failed job is left as is."""
        old = await self.get_job_status(job_id)
        if old.status != JobStatus.failed:
            raise JobNotRetryable(f"job {job_id} is {old.status.value}; only failed jobs can be retried")
        self.client.ensure_configured()
        new_id = await asyncio.to_thread(
            self.store.create, old.title, old.idea, old.style, old.reference_url, old.id
        )
        logger.info("retrying job %s as %s", job_id, new_id)
        self._start(new_id, JobRequest(old.title, old.idea, old.style, old.reference_url))
        return new_id

    def _start(self, job_id: str, request: JobRequest) -> None:
        if self.is_running(job_id):
            raise JobAlreadyRunning(job_id)
        task = asyncio.create_task(self.pipeline.run(job_id, request), name=f"job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(partial(self._finished, job_id))

    def _finished(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("job %s run crashed: %s", job_id, exc, exc_info=exc)

    async def join(self, job_id: str) -> Optional[RunOutcome]:
        """Wait for the in-flight run of ``job_id``, if any."""
        task = self._tasks.get(job_id)
        if task is None:
            return None
        return await asyncio.shield(task)

    async def cancel(self, job_id: str, reason: str = "cancelled by request") -> bool:
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        task.cancel(reason)
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel("shutdown")
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def build_runner(
    cfg: Settings = default_settings,
    engine: Optional[Engine] = None,
    sinks: Optional[Sequence[NotificationSink]] = None,
) -> JobRunner:
    """Wire the default components from settings."""
    if engine is None:
        from .db import engine as default_engine

        engine = default_engine

    store = JobStore(engine)
    client = GenerationTaskClient(cfg)
    poller = TaskPoller(client, interval=cfg.POLL_INTERVAL, max_attempts=cfg.POLL_MAX_ATTEMPTS)
    postprocessor = MediaPostProcessor(MediaStorage(cfg), NarrationClient(cfg), cfg)
    fanout = PublishFanOut(BlotatoPublisher(cfg), timeout=cfg.PUBLISH_TIMEOUT)
    if sinks is None:
        sinks = [LoggingSink(), WhapiSink(cfg)]
    pipeline = JobPipeline(
        store,
        client,
        poller,
        postprocessor,
        fanout,
        targets_from_settings(cfg),
        sinks,
        cfg,
        upscaler=ReferenceUpscaler(cfg),
    )
    return JobRunner(store, pipeline, client)
