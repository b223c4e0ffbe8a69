"""
Bounded polling of a generation task and normalization of its result.

The backend's result payload has no stable schema. The output URL has been
seen as a JSON string under ``resultJson``, as an already-decoded object
under the same key, as a direct ``videoUrl``/``video_url`` field, and nested
under ``result`` or ``output``. Each shape has one extractor below; they
are tried in order and the first non-empty URL wins. When a new shape shows
up, add an extractor and a fixture in ``tests/fixtures/payloads.json``.

Terminal failures (``fail``, or ``success`` with nothing extractable) stop
polling at once. Non-terminal states and transient query errors sleep one
interval and consume one attempt from the same budget.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from .errors import GenerationTimeout, TerminalGenerationFailure, TransientError
from .generation import GenerationTaskClient
from .log import get_logger

logger = get_logger(__name__)


@dataclass
class Result:
    url: str
    urls: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)


# ── Extractors ───────────────────────────────────────────────────────


def _first_url(value: Any) -> Optional[str]:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, (list, tuple)):
        for item in value:
            url = _first_url(item)
            if url:
                return url
    if isinstance(value, dict):
        return _first_url(value.get("url"))
    return None


def _all_urls(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [u for u in (_first_url(v) for v in value) if u]
    url = _first_url(value)
    return [url] if url else []


def _decode(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            decoded = json.loads(value)
        except ValueError as e:
            logger.warning("could not decode result payload string: %s", e)
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


def from_result_json(payload: Dict[str, Any]) -> List[str]:
    """``resultJson`` as an object or a JSON-encoded string holding ``resultUrls``."""
    for key in ("resultJson", "result_json"):
        decoded = _decode(payload.get(key))
        if decoded is None:
            continue
        for urls_key in ("resultUrls", "result_urls", "urls"):
            urls = _all_urls(decoded.get(urls_key))
            if urls:
                return urls
    return []


def from_direct_fields(payload: Dict[str, Any]) -> List[str]:
    for key in ("videoUrl", "video_url", "url"):
        urls = _all_urls(payload.get(key))
        if urls:
            return urls
    return []


def from_nested_result(payload: Dict[str, Any]) -> List[str]:
    result = payload.get("result")
    if not isinstance(result, dict):
        return []
    for key in ("videoUrl", "video_url", "url"):
        urls = _all_urls(result.get(key))
        if urls:
            return urls
    return []


def from_nested_output(payload: Dict[str, Any]) -> List[str]:
    output = payload.get("output")
    if not isinstance(output, dict):
        return []
    for key in ("video", "url"):
        urls = _all_urls(output.get(key))
        if urls:
            return urls
    return []


def from_result_urls(payload: Dict[str, Any]) -> List[str]:
    return _all_urls(payload.get("resultUrls"))


EXTRACTORS: Tuple[Callable[[Dict[str, Any]], List[str]], ...] = (
    from_result_json,
    from_direct_fields,
    from_nested_result,
    from_nested_output,
    from_result_urls,
)


def extract_result(payload: Optional[Dict[str, Any]]) -> Optional[Result]:
    if not isinstance(payload, dict):
        return None
    for extractor in EXTRACTORS:
        urls = extractor(payload)
        if urls:
            return Result(url=urls[0], urls=urls, raw=payload)
    return None


# ── Poller ───────────────────────────────────────────────────────────


class TaskPoller:
    def __init__(
        self,
        client: GenerationTaskClient,
        interval: float = 5.0,
        max_attempts: int = 120,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    @property
    def budget_seconds(self) -> float:
        return self.interval * self.max_attempts

    async def wait(self, task_id: str) -> Result:
        """Poll ``task_id`` until it succeeds, fails, or the budget runs out."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                status = await self.client.get_status(task_id)
            except (TransientError, httpx.HTTPError) as e:
                logger.warning("poll %d/%d: transient error: %s", attempt, self.max_attempts, e)
            else:
                logger.info("poll %d/%d: state=%s", attempt, self.max_attempts, status.state)

                if status.state == "success":
                    result = extract_result(status.payload)
                    if result is None:
                        raise TerminalGenerationFailure(
                            f"task {task_id} reported success but no result URL was found"
                        )
                    logger.info("task %s result: %s", task_id, result.url[:80])
                    return result

                if status.state == "fail":
                    message = status.error_message or "unknown"
                    raise TerminalGenerationFailure(f"generation failed: {message}")

            await self._sleep(self.interval)

        raise GenerationTimeout(
            f"timeout waiting for task {task_id} "
            f"({self.max_attempts} attempts, {self.budget_seconds:g}s)"
        )
