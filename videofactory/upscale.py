"""
Reference image upscaling before image-to-video submission.

Runs Real-ESRGAN through the Replicate predictions API:

    POST {endpoint}/predictions          -> {"id": ..., "status": "starting"}
    GET  {endpoint}/predictions/{id}     -> {"status": "succeeded", "output": "<url>"}

The step is advisory. Without ``REPLICATE_API_TOKEN`` it is skipped, and any
failure returns the original image URL.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .config import Settings, settings as default_settings
from .errors import PipelineError, UpscaleError
from .log import get_logger

logger = get_logger(__name__)


def _output_url(output: Any) -> Optional[str]:
    if isinstance(output, str) and output.strip():
        return output.strip()
    if isinstance(output, list):
        for item in output:
            url = _output_url(item)
            if url:
                return url
    return None


class ReferenceUpscaler:
    def __init__(
        self,
        cfg: Settings = default_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.cfg = cfg
        self._transport = transport
        self._sleep = sleep

    @property
    def available(self) -> bool:
        return bool(self.cfg.REPLICATE_API_TOKEN)

    async def upscale(self, image_url: str) -> str:
        """Return the upscaled image URL, or ``image_url`` when upscaling is off or fails."""
        if not self.available:
            logger.info("upscaling not available (no REPLICATE_API_TOKEN)")
            return image_url
        try:
            url = await self._predict(image_url)
        except (PipelineError, httpx.HTTPError, ValueError) as e:
            logger.warning("upscale failed, using original image: %s", e)
            return image_url
        logger.info("reference image upscaled: %s", url[:80])
        return url

    async def _predict(self, image_url: str) -> str:
        cfg = self.cfg
        base = cfg.REPLICATE_ENDPOINT.rstrip("/")
        headers = {"Authorization": f"Bearer {cfg.REPLICATE_API_TOKEN}"}
        body = {
            "version": cfg.UPSCALE_MODEL_VERSION,
            "input": {
                "image": image_url,
                "scale": cfg.UPSCALE_SCALE,
                "face_enhance": cfg.UPSCALE_FACE_ENHANCE,
            },
        }

        async with httpx.AsyncClient(timeout=cfg.MEDIA_TIMEOUT, transport=self._transport) as client:
            r = await client.post(f"{base}/predictions", headers=headers, json=body)
            r.raise_for_status()
            prediction: Dict[str, Any] = r.json()
            prediction_id = prediction.get("id")
            if not prediction_id:
                raise UpscaleError(f"no prediction id in response: {str(prediction)[:200]}")

            for _ in range(cfg.UPSCALE_MAX_POLLS):
                status = prediction.get("status")
                if status == "succeeded":
                    url = _output_url(prediction.get("output"))
                    if not url:
                        raise UpscaleError("prediction succeeded without an output URL")
                    return url
                if status in ("failed", "canceled"):
                    raise UpscaleError(f"prediction {status}: {prediction.get('error') or 'unknown'}")

                await self._sleep(cfg.UPSCALE_POLL_INTERVAL)
                r = await client.get(f"{base}/predictions/{prediction_id}", headers=headers)
                r.raise_for_status()
                prediction = r.json()

        raise UpscaleError(f"prediction {prediction_id} did not finish after {cfg.UPSCALE_MAX_POLLS} polls")
