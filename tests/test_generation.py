"""kie.ai task client against a mocked transport."""
import json

import httpx
import pytest

from videofactory.errors import ConfigurationError, SubmissionError, TransientError
from videofactory.generation import GenerationTaskClient


def _client(cfg, handler):
    return GenerationTaskClient(cfg, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_missing_key_fails_before_any_request(cfg):
    cfg.KIE_API_KEY = None
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(cfg, handler)
    with pytest.raises(ConfigurationError):
        await client.submit("prompt")
    with pytest.raises(ConfigurationError):
        await client.get_status("task")
    assert calls == []


@pytest.mark.asyncio
async def test_submit_text_to_video(cfg):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"code": 200, "data": {"taskId": "abc123"}})

    task_id = await _client(cfg, handler).submit("a prompt")
    assert task_id == "abc123"
    assert seen["url"] == "https://kie.test/api/v1/jobs/createTask"
    assert seen["auth"] == "Bearer kie-test"
    assert seen["body"]["model"] == cfg.KIE_TEXT_MODEL
    assert seen["body"]["input"]["prompt"] == "a prompt"
    assert "image_urls" not in seen["body"]["input"]


@pytest.mark.asyncio
async def test_submit_with_reference_uses_image_model(cfg):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"code": 200, "data": {"taskId": "abc123"}})

    await _client(cfg, handler).submit("p", reference_url="https://img.test/key.jpg")
    assert seen["body"]["model"] == cfg.KIE_IMAGE_MODEL
    assert seen["body"]["input"]["image_urls"] == ["https://img.test/key.jpg"]


@pytest.mark.asyncio
async def test_submit_4xx_is_submission_error(cfg):
    client = _client(cfg, lambda r: httpx.Response(401, text="bad key"))
    with pytest.raises(SubmissionError):
        await client.submit("p")


@pytest.mark.asyncio
async def test_submit_body_code_is_submission_error(cfg):
    client = _client(cfg, lambda r: httpx.Response(200, json={"code": 422, "msg": "prompt too long"}))
    with pytest.raises(SubmissionError, match="prompt too long"):
        await client.submit("p")


@pytest.mark.asyncio
async def test_submit_without_task_id_is_submission_error(cfg):
    client = _client(cfg, lambda r: httpx.Response(200, json={"code": 200, "data": {}}))
    with pytest.raises(SubmissionError):
        await client.submit("p")


@pytest.mark.asyncio
async def test_submit_5xx_is_transient(cfg):
    client = _client(cfg, lambda r: httpx.Response(503, text="busy"))
    with pytest.raises(TransientError):
        await client.submit("p")


@pytest.mark.asyncio
async def test_get_status_reads_state(cfg):
    def handler(request):
        assert request.url.params["taskId"] == "abc"
        return httpx.Response(
            200, json={"code": 200, "data": {"state": "fail", "failMsg": "content policy"}}
        )

    status = await _client(cfg, handler).get_status("abc")
    assert status.state == "fail"
    assert status.is_terminal
    assert status.error_message == "content policy"


@pytest.mark.asyncio
async def test_get_status_unknown_state(cfg):
    client = _client(cfg, lambda r: httpx.Response(200, json={"data": {"state": "weird"}}))
    status = await client.get_status("abc")
    assert status.state == "unknown"
    assert not status.is_terminal


@pytest.mark.asyncio
async def test_get_status_transport_error_is_transient(cfg):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientError):
        await _client(cfg, handler).get_status("abc")
