"""Text-to-speech voice-over for narrated styles (OpenAI speech endpoint)."""

from pathlib import Path
from typing import Optional

import httpx

from .config import Settings, settings as default_settings
from .errors import ConfigurationError, TransientError
from .log import get_logger

logger = get_logger(__name__)


class NarrationClient:
    def __init__(
        self,
        cfg: Settings = default_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cfg = cfg
        self._transport = transport

    async def synthesize(self, text: str, out_path: Path) -> Path:
        if not self.cfg.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY is missing in .env")

        url = f"{self.cfg.OPENAI_ENDPOINT.rstrip('/')}/audio/speech"
        payload = {"model": self.cfg.TTS_MODEL, "voice": self.cfg.TTS_VOICE, "input": text}
        try:
            async with httpx.AsyncClient(timeout=self.cfg.MEDIA_TIMEOUT, transport=self._transport) as client:
                r = await client.post(
                    url,
                    headers={"Authorization": f"Bearer {self.cfg.OPENAI_API_KEY}"},
                    json=payload,
                )
                r.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientError(f"tts request failed: {e}") from e

        out_path = Path(out_path)
        out_path.write_bytes(r.content)
        logger.info("tts audio saved: %s (%d bytes)", out_path.name, len(r.content))
        return out_path
