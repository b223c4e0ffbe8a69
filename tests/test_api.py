"""HTTP surface, with the runner wired to test doubles."""
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakePublisher, ScriptedClient, failed, success
from videofactory.main import create_app
from videofactory.narration import NarrationClient
from videofactory.pipeline import JobPipeline, JobRunner
from videofactory.poller import TaskPoller
from videofactory.postprocess import MediaPostProcessor
from videofactory.publish import PublishFanOut, targets_from_settings
from videofactory.sessions import PendingRequestStore
from videofactory.storage import MediaStorage

VIDEO = "https://cdn.test/video.mp4"


@pytest.fixture
def gen_client():
    return ScriptedClient([success(VIDEO)])


@pytest.fixture
def api(store, cfg, tmp_path, gen_client):
    transport = httpx.MockTransport(lambda r: httpx.Response(200, content=b"bytes"))
    pipeline = JobPipeline(
        store,
        gen_client,
        TaskPoller(gen_client, interval=0.01, max_attempts=10),
        MediaPostProcessor(
            MediaStorage(cfg, static_dir=tmp_path / "static", transport=transport),
            NarrationClient(cfg, transport=transport),
            cfg,
        ),
        PublishFanOut(FakePublisher(), timeout=1.0),
        targets_from_settings(cfg),
        [],
        cfg,
    )
    runner = JobRunner(store, pipeline, gen_client)
    app = create_app(cfg, runner=runner, pending=PendingRequestStore(ttl=60))
    with TestClient(app) as client:
        yield client


def _wait_for(api, job_id, status, attempts=200):
    for _ in range(attempts):
        body = api.get(f"/api/jobs/{job_id}").json()
        if body["status"] == status:
            return body
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} never reached {status}: {body}")


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_create_job_runs_in_background(api):
    r = api.post("/api/jobs", json={"title": "Key demo", "idea": "technician shows fob", "style": "pass-through"})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] in ("pending", "processing", "completed")
    assert body["title"] == "Key demo"

    done = _wait_for(api, body["job_id"], "completed")
    assert done["media_url"] == VIDEO
    assert done["prompt"]

    report = api.get(f"/api/jobs/{body['job_id']}/publish").json()
    assert report["configured_count"] == 3
    assert report["success_count"] == 3
    assert report["skipped_count"] == 2


def test_create_job_validates_body(api):
    assert api.post("/api/jobs", json={"title": "", "idea": "x"}).status_code == 422
    assert api.post("/api/jobs", json={"idea": "x"}).status_code == 422


def test_unknown_job_is_404(api):
    assert api.get("/api/jobs/missing").status_code == 404
    assert api.get("/api/jobs/missing/publish").status_code == 404
    assert api.post("/api/jobs/missing/retry").status_code == 404


def test_missing_credentials_is_503(api, gen_client):
    gen_client.configured = False
    r = api.post("/api/jobs", json={"title": "t", "idea": "i"})
    assert r.status_code == 503
    assert "KIE_API_KEY" in r.json()["detail"]


def test_list_jobs(api):
    for i in range(2):
        job_id = api.post("/api/jobs", json={"title": f"t{i}", "idea": "i", "style": "raw"}).json()["job_id"]
        _wait_for(api, job_id, "completed")
    jobs = api.get("/api/jobs", params={"status": "completed"}).json()
    assert len(jobs) == 2
    assert api.get("/api/jobs", params={"status": "failed"}).json() == []


def test_retry_only_failed_jobs(api, gen_client):
    gen_client.statuses = [failed("content rejected")]
    job_id = api.post("/api/jobs", json={"title": "t", "idea": "i", "style": "raw"}).json()["job_id"]
    assert "content rejected" in _wait_for(api, job_id, "failed")["error"]

    gen_client.statuses = [success(VIDEO)]
    r = api.post(f"/api/jobs/{job_id}/retry")
    assert r.status_code == 200
    new_id = r.json()["job_id"]
    assert r.json()["retry_of"] == job_id
    _wait_for(api, new_id, "completed")

    assert api.post(f"/api/jobs/{new_id}/retry").status_code == 409


def test_download_redirects_to_remote_media(api):
    job_id = api.post("/api/jobs", json={"title": "t", "idea": "i", "style": "raw"}).json()["job_id"]
    _wait_for(api, job_id, "completed")
    r = api.get(f"/api/jobs/{job_id}/download", follow_redirects=False)
    assert r.status_code in (302, 307)
    assert r.headers["location"] == VIDEO


def test_pending_request_waits_for_reference_media(api, gen_client):
    r = api.post("/api/sessions/chat-1/pending", json={"title": "Selfie", "idea": "holding the key", "style": "raw"})
    assert r.status_code == 200
    assert r.json()["expires_in"] == 60

    r = api.post("/api/sessions/chat-1/media", json={"reference_url": "https://img.test/key.jpg"})
    assert r.status_code == 200
    body = r.json()
    assert body["reference_url"] == "https://img.test/key.jpg"
    _wait_for(api, body["job_id"], "completed")
    assert gen_client.submitted[-1][1] == "https://img.test/key.jpg"

    # consumed
    assert api.post("/api/sessions/chat-1/media", json={"reference_url": "https://img.test/key.jpg"}).status_code == 404


def test_injected_pending_store_is_kept(cfg):
    # an empty store is falsy; it must still be the one the app uses
    pending = PendingRequestStore(ttl=5)
    assert len(pending) == 0
    app = create_app(cfg, runner=None, pending=pending)
    assert app.state.pending is pending
