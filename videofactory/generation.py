"""
Client for the kie.ai task API (Sora 2 image-to-video / text-to-video).

    submit:  POST {endpoint}/api/v1/jobs/createTask  -> {"data": {"taskId": ...}}
    status:  GET  {endpoint}/api/v1/jobs/recordInfo?taskId=...
             -> {"data": {"state": ..., "resultJson": ..., "failMsg": ...}}

The client never interprets task ids or result payloads; that is the
poller's job.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from .config import Settings, settings as default_settings
from .errors import ConfigurationError, SubmissionError, TransientError
from .log import get_logger

logger = get_logger(__name__)

KNOWN_STATES = {"waiting", "queuing", "generating", "success", "fail"}


@dataclass
class TaskStatus:
    state: str
    payload: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in ("success", "fail")


class GenerationTaskClient:
    def __init__(
        self,
        cfg: Settings = default_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cfg = cfg
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.cfg.KIE_TIMEOUT, transport=self._transport)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.cfg.KIE_API_KEY}",
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.cfg.KIE_ENDPOINT.rstrip('/')}/{path.lstrip('/')}"

    def ensure_configured(self) -> None:
        if not self.cfg.KIE_API_KEY:
            raise ConfigurationError("KIE_API_KEY is missing in .env")

    async def submit(
        self,
        prompt: str,
        reference_url: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create a generation task and return its opaque id."""
        self.ensure_configured()

        task_input: Dict[str, Any] = {
            "prompt": prompt,
            "aspect_ratio": self.cfg.KIE_ASPECT_RATIO,
            "n_frames": self.cfg.KIE_N_FRAMES,
            "size": self.cfg.KIE_SIZE,
            "remove_watermark": True,
        }
        if reference_url:
            model = self.cfg.KIE_IMAGE_MODEL
            task_input["image_urls"] = [reference_url]
        else:
            model = self.cfg.KIE_TEXT_MODEL
        task_input.update(params or {})

        body = {"model": model, "input": task_input}
        logger.info("submitting %s task (%d chars of prompt)", model, len(prompt))

        try:
            async with self._client() as client:
                r = await client.post(self._url("/api/v1/jobs/createTask"), headers=self._headers(), json=body)
        except httpx.TransportError as e:
            raise TransientError(f"createTask transport error: {e}") from e

        if r.status_code >= 500:
            raise TransientError(f"createTask {r.status_code}: {r.text[:300]}")
        if r.status_code >= 400:
            raise SubmissionError(f"createTask rejected {r.status_code}: {r.text[:300]}")

        try:
            data = r.json()
        except ValueError as e:
            raise SubmissionError(f"createTask returned non-JSON: {r.text[:300]}") from e

        # kie answers 200 with its own code/msg for validation errors
        code = data.get("code") if isinstance(data, dict) else None
        if code not in (None, 200):
            raise SubmissionError(f"createTask code {code}: {data.get('msg') or data}")

        task_id = ((data.get("data") or {}) if isinstance(data, dict) else {}).get("taskId")
        if not task_id:
            raise SubmissionError(f"no taskId in createTask response: {str(data)[:300]}")

        logger.info("task created: %s", task_id)
        return str(task_id)

    async def get_status(self, task_id: str) -> TaskStatus:
        self.ensure_configured()
        try:
            async with self._client() as client:
                r = await client.get(
                    self._url("/api/v1/jobs/recordInfo"),
                    params={"taskId": task_id},
                    headers={"Authorization": f"Bearer {self.cfg.KIE_API_KEY}"},
                )
        except httpx.TransportError as e:
            raise TransientError(f"recordInfo transport error: {e}") from e

        if r.status_code != 200:
            raise TransientError(f"recordInfo {r.status_code}: {r.text[:300]}")
        try:
            body = r.json()
        except ValueError as e:
            raise TransientError(f"recordInfo returned non-JSON: {r.text[:300]}") from e

        data = body.get("data") if isinstance(body, dict) and isinstance(body.get("data"), dict) else body
        if not isinstance(data, dict):
            return TaskStatus(state="unknown")

        state = str(data.get("state") or "unknown").lower()
        if state not in KNOWN_STATES:
            state = "unknown"
        return TaskStatus(state=state, payload=data, error_message=data.get("failMsg"))
