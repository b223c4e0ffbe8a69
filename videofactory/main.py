# videofactory/main.py
# FastAPI uygulamasının giriş noktası

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from .config import Settings, settings
from .db import engine, init_db, make_engine
from .errors import (
    ConfigurationError,
    JobAlreadyRunning,
    JobNotFound,
    JobNotRetryable,
    PersistenceError,
)
from .log import configure_logging, get_logger
from .models import JobStatus, utcnow
from .pipeline import JobRunner, build_runner
from .schemas import (
    JobCreate,
    JobListItem,
    JobOut,
    PendingCreate,
    PendingOut,
    PublishReportOut,
    ReferenceMedia,
)
from .sessions import PendingRequestStore
from .storage import STATIC_DIR

logger = get_logger(__name__)

STATIC_DIR.mkdir(exist_ok=True, parents=True)

router = APIRouter()


# -------------------------------------------------------------------
# Bağımlılıklar
# -------------------------------------------------------------------
def get_runner(request: Request) -> JobRunner:
    return request.app.state.runner


def get_pending(request: Request) -> PendingRequestStore:
    return request.app.state.pending


# -------------------------------------------------------------------
# Routes
# -------------------------------------------------------------------
@router.get("/health")
def health(runner: JobRunner = Depends(get_runner)):
    return {"ok": True, "time": utcnow().isoformat(), "active_jobs": len(runner.active_jobs)}


# Job oluşturma endpointi: hemen döner, üretim arka planda sürer
@router.post("/api/jobs", response_model=JobOut)
async def create_job(body: JobCreate, runner: JobRunner = Depends(get_runner)):
    job_id = await runner.create_job(body.title, body.idea, body.style, body.reference_url)
    return JobOut.from_job(await runner.get_job_status(job_id))


@router.get("/api/jobs", response_model=List[JobListItem])
def list_jobs(
    status: Optional[JobStatus] = None,
    limit: int = Query(50, ge=1, le=500),
    runner: JobRunner = Depends(get_runner),
):
    jobs = runner.store.list(limit=limit, status=status)
    return [
        JobListItem(
            job_id=j.id, status=j.status, title=j.title, style=j.style,
            media_url=j.media_url, created_at=j.created_at,
        )
        for j in jobs
    ]


@router.get("/api/jobs/{job_id}", response_model=JobOut)
def get_job(job_id: str, runner: JobRunner = Depends(get_runner)):
    return JobOut.from_job(runner.store.get(job_id))


@router.get("/api/jobs/{job_id}/publish", response_model=PublishReportOut)
def get_publish_report(job_id: str, runner: JobRunner = Depends(get_runner)):
    runner.store.get(job_id)
    return PublishReportOut.from_rows(job_id, runner.store.publish_results(job_id))


# Başarısız job'u yeni bir id ile tekrar dener
@router.post("/api/jobs/{job_id}/retry", response_model=JobOut)
async def retry_job(job_id: str, runner: JobRunner = Depends(get_runner)):
    new_id = await runner.retry_job(job_id)
    return JobOut.from_job(await runner.get_job_status(new_id))


@router.post("/api/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, runner: JobRunner = Depends(get_runner)):
    await runner.get_job_status(job_id)
    cancelled = await runner.cancel(job_id)
    return {"job_id": job_id, "cancelled": cancelled}


# Sonuç dosyasını indirme endpointi (redirect veya local dosya)
@router.get("/api/jobs/{job_id}/download")
def download_job_result(job_id: str, request: Request, runner: JobRunner = Depends(get_runner)):
    job = runner.store.get(job_id)
    if not job.media_url:
        raise HTTPException(status_code=400, detail="Job has no result yet")

    ru = job.media_url
    # tam URL ise
    if ru.startswith("http://") or ru.startswith("https://"):
        return RedirectResponse(url=ru)

    prefix = request.app.state.settings.STATIC_URL_PREFIX.rstrip("/") + "/"
    if ru.startswith(prefix):
        filename = ru[len(prefix):]
        path = STATIC_DIR / filename
        if not path.is_file():
            raise HTTPException(status_code=404, detail="Result file not found")
        return FileResponse(path, filename=filename, media_type="application/octet-stream")

    return RedirectResponse(url=ru)


# Referans görseli bekleyen istekler
@router.post("/api/sessions/{session}/pending", response_model=PendingOut)
def put_pending(session: str, body: PendingCreate, pending: PendingRequestStore = Depends(get_pending)):
    req = pending.put(session, body.title, body.idea, body.style)
    return PendingOut(session=session, title=req.title, style=req.style, expires_in=pending.ttl)


@router.post("/api/sessions/{session}/media", response_model=JobOut)
async def attach_media(
    session: str,
    body: ReferenceMedia,
    runner: JobRunner = Depends(get_runner),
    pending: PendingRequestStore = Depends(get_pending),
):
    req = pending.pop(session)
    if req is None:
        raise HTTPException(status_code=404, detail="No pending request for this session")
    job_id = await runner.create_job(req.title, req.idea, req.style, body.reference_url)
    return JobOut.from_job(await runner.get_job_status(job_id))


# -------------------------------------------------------------------
# Hata eşlemeleri
# -------------------------------------------------------------------
def _error(status_code: int):
    async def handler(request: Request, exc: Exception):
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


async def _not_found(request: Request, exc: JobNotFound):
    return JSONResponse(status_code=404, content={"detail": "Job not found"})


# -------------------------------------------------------------------
# FastAPI & CORS
# -------------------------------------------------------------------
def create_app(
    cfg: Settings = settings,
    runner: Optional[JobRunner] = None,
    pending: Optional[PendingRequestStore] = None,
) -> FastAPI:
    app = FastAPI(title="Video Factory", version="1.0.0")

    origins = [o.strip() for o in cfg.ALLOWED_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount(cfg.STATIC_URL_PREFIX, StaticFiles(directory=STATIC_DIR), name="static")
    app.include_router(router)

    app.add_exception_handler(JobNotFound, _not_found)
    app.add_exception_handler(JobNotRetryable, _error(409))
    app.add_exception_handler(JobAlreadyRunning, _error(409))
    app.add_exception_handler(ConfigurationError, _error(503))
    app.add_exception_handler(PersistenceError, _error(503))

    app.state.settings = cfg
    app.state.runner = runner
    app.state.pending = pending if pending is not None else PendingRequestStore(ttl=cfg.PENDING_REQUEST_TTL)

    @app.on_event("startup")
    async def on_startup():
        configure_logging(cfg.LOG_LEVEL)
        if app.state.runner is None:
            eng = engine if cfg.DATABASE_URL == settings.DATABASE_URL else make_engine(cfg.DATABASE_URL)
            init_db(eng)
            app.state.runner = build_runner(cfg, eng)
        app.state.sweeper = asyncio.create_task(
            app.state.pending.run_sweeper(cfg.PENDING_SWEEP_INTERVAL)
        )
        logger.info("[KIE] endpoint: %s  poll: %gs x %d", cfg.KIE_ENDPOINT, cfg.POLL_INTERVAL, cfg.POLL_MAX_ATTEMPTS)

    @app.on_event("shutdown")
    async def on_shutdown():
        app.state.sweeper.cancel()
        await asyncio.gather(app.state.sweeper, return_exceptions=True)
        await app.state.runner.shutdown()

    return app


app = create_app()
