"""
Logging setup for videofactory.

Every module gets its logger with ``get_logger(__name__)``. The job id of
the pipeline run currently executing is carried in a ContextVar, so poller,
post-processor and publisher lines are tagged without passing ids around:

    with job_ctx(job_id):
        logger.info("submitting task")

Format: ``time [LEVEL] [job_id] module:line - message``
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator

_job_id_var: ContextVar[str] = ContextVar("job_id", default="-")

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(job_id)s] %(name)s:%(lineno)d - %(message)s"


def get_job_id() -> str:
    return _job_id_var.get()


@contextmanager
def job_ctx(job_id: str) -> Generator[str, None, None]:
    """Tag every log record emitted inside the block with ``job_id``."""
    token = _job_id_var.set(job_id)
    try:
        yield job_id
    finally:
        _job_id_var.reset(token)


class JobIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = _job_id_var.get()
        return True


_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a single root handler; calling it again only changes the level."""
    global _configured
    root = logging.getLogger()
    root.setLevel(level.upper())
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(JobIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    # httpx logs every request at INFO; the poller already logs each attempt
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
