"""Shared fixtures: throwaway SQLite store, test settings, fake backends."""
import asyncio
import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from videofactory.config import Settings
from videofactory.db import init_db, make_engine
from videofactory.errors import ConfigurationError, PublishError
from videofactory.generation import TaskStatus
from videofactory.store import JobStore

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def payloads() -> Dict[str, dict]:
    return json.loads((FIXTURES / "payloads.json").read_text(encoding="utf-8"))


@pytest.fixture
def cfg() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        KIE_API_KEY="kie-test",
        KIE_ENDPOINT="https://kie.test",
        POLL_INTERVAL=5.0,
        POLL_MAX_ATTEMPTS=120,
        BLOTATO_API_KEY="blotato-test",
        BLOTATO_ENDPOINT="https://blotato.test/v2/posts",
        BLOTATO_TIKTOK_ID="tt-1",
        BLOTATO_INSTAGRAM_ID="ig-1",
        BLOTATO_YOUTUBE_ID="yt-1",
        BLOTATO_TWITTER_ID=None,
        BLOTATO_FACEBOOK_ID=None,
        OPENAI_API_KEY="openai-test",
        WHAPI_TOKEN=None,
        OWNER_PHONE=None,
    )


@pytest.fixture
def engine(tmp_path):
    # file-backed so concurrent runs get their own connections
    eng = make_engine(f"sqlite:///{tmp_path / 'jobs.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> JobStore:
    return JobStore(engine)


class FakeSleep:
    """Records requested sleeps instead of waiting."""

    def __init__(self):
        self.calls: List[float] = []

    @property
    def total(self) -> float:
        return sum(self.calls)

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


class ScriptedClient:
    """Generation client double: fixed task id, scripted status sequence."""

    def __init__(self, statuses=(), task_id: str = "task-1", submit_error: Optional[Exception] = None):
        self.statuses = list(statuses)
        self.task_id = task_id
        self.submit_error = submit_error
        self.submitted: List[tuple] = []
        self.polls = 0
        self.configured = True

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("KIE_API_KEY is missing in .env")

    async def submit(self, prompt, reference_url=None, params=None) -> str:
        self.submitted.append((prompt, reference_url))
        if self.submit_error is not None:
            raise self.submit_error
        return self.task_id

    async def get_status(self, task_id: str) -> TaskStatus:
        self.polls += 1
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        return item


def success(url: str = "https://cdn.test/video.mp4") -> TaskStatus:
    return TaskStatus("success", {"state": "success", "resultJson": json.dumps({"resultUrls": [url]})})


def running() -> TaskStatus:
    return TaskStatus("generating", {"state": "generating"})


def failed(message: str = "content policy") -> TaskStatus:
    return TaskStatus("fail", {"state": "fail", "failMsg": message}, error_message=message)


class FakePublisher:
    """Publisher double; platforms listed in ``failing`` raise PublishError."""

    def __init__(self, failing=(), hanging=(), api_key: bool = True):
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.api_key = api_key
        self.calls: List[tuple] = []

    def is_configured(self, target) -> bool:
        return self.api_key and target.configured

    async def publish(self, target, media_url, caption, title=""):
        self.calls.append((target.platform, media_url, caption))
        if target.platform in self.hanging:
            await asyncio.sleep(3600)
        if target.platform in self.failing:
            raise PublishError(f"{target.platform}: 500 upstream error")
        return f"post-{target.platform}"


class RecordingSink:
    def __init__(self):
        self.notified = []

    async def notify(self, job, report):
        self.notified.append((job, report))
