"""Reference image upscaling against a mocked Replicate API."""
import json

import httpx
import pytest

from conftest import FakeSleep
from videofactory.upscale import ReferenceUpscaler

IMAGE = "https://img.test/key.jpg"
UPSCALED = "https://replicate.test/out/key-4x.png"


@pytest.fixture
def upscale_cfg(cfg):
    cfg.REPLICATE_API_TOKEN = "r8-test"
    cfg.REPLICATE_ENDPOINT = "https://replicate.test/v1"
    cfg.UPSCALE_MAX_POLLS = 5
    return cfg


def _upscaler(cfg, handler, sleep=None):
    return ReferenceUpscaler(cfg, transport=httpx.MockTransport(handler), sleep=sleep or FakeSleep())


@pytest.mark.asyncio
async def test_without_token_returns_original_and_sends_nothing(cfg):
    cfg.REPLICATE_API_TOKEN = None
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    upscaler = _upscaler(cfg, handler)
    assert upscaler.available is False
    assert await upscaler.upscale(IMAGE) == IMAGE
    assert calls == []


@pytest.mark.asyncio
async def test_prediction_is_polled_until_it_succeeds(upscale_cfg):
    seen = []
    states = iter(["processing", "succeeded"])

    def handler(request):
        seen.append((request.method, str(request.url), request.headers["authorization"]))
        if request.method == "POST":
            body = json.loads(request.content)
            assert body["version"] == upscale_cfg.UPSCALE_MODEL_VERSION
            assert body["input"] == {"image": IMAGE, "scale": 4, "face_enhance": True}
            return httpx.Response(201, json={"id": "pred-1", "status": "starting"})
        status = next(states)
        output = UPSCALED if status == "succeeded" else None
        return httpx.Response(200, json={"id": "pred-1", "status": status, "output": output})

    sleep = FakeSleep()
    assert await _upscaler(upscale_cfg, handler, sleep).upscale(IMAGE) == UPSCALED
    assert [m for m, _, _ in seen] == ["POST", "GET", "GET"]
    assert seen[0][1] == "https://replicate.test/v1/predictions"
    assert seen[1][1] == "https://replicate.test/v1/predictions/pred-1"
    assert all(auth == "Bearer r8-test" for _, _, auth in seen)
    assert sleep.calls == [upscale_cfg.UPSCALE_POLL_INTERVAL] * 2


@pytest.mark.asyncio
async def test_list_output_takes_first_url(upscale_cfg):
    def handler(request):
        return httpx.Response(201, json={"id": "pred-1", "status": "succeeded", "output": [UPSCALED, "x"]})

    assert await _upscaler(upscale_cfg, handler).upscale(IMAGE) == UPSCALED


@pytest.mark.asyncio
async def test_failed_prediction_falls_back_to_original(upscale_cfg):
    def handler(request):
        if request.method == "POST":
            return httpx.Response(201, json={"id": "pred-1", "status": "starting"})
        return httpx.Response(200, json={"id": "pred-1", "status": "failed", "error": "CUDA out of memory"})

    assert await _upscaler(upscale_cfg, handler).upscale(IMAGE) == IMAGE


@pytest.mark.asyncio
async def test_rejected_token_falls_back_to_original(upscale_cfg):
    def handler(request):
        return httpx.Response(401, json={"detail": "Invalid token."})

    assert await _upscaler(upscale_cfg, handler).upscale(IMAGE) == IMAGE


@pytest.mark.asyncio
async def test_missing_prediction_id_falls_back_to_original(upscale_cfg):
    def handler(request):
        return httpx.Response(201, json={"status": "starting"})

    assert await _upscaler(upscale_cfg, handler).upscale(IMAGE) == IMAGE


@pytest.mark.asyncio
async def test_poll_budget_is_bounded(upscale_cfg):
    polls = []

    def handler(request):
        if request.method == "GET":
            polls.append(request)
        return httpx.Response(200, json={"id": "pred-1", "status": "processing"})

    assert await _upscaler(upscale_cfg, handler).upscale(IMAGE) == IMAGE
    assert len(polls) == upscale_cfg.UPSCALE_MAX_POLLS
