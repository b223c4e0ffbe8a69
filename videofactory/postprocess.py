"""
Style-dependent post-processing of generated media.

Each style has one explicit policy: what to do (``mode``) and what a failure
means (``failure``).

    mode        passthrough  keep the backend URL (re-host it if REHOST_MEDIA)
                watermark    burn the brand watermark, keep the original audio
                narrated     watermark + title + a generated voice-over track
    failure     required     the job fails with PostProcessError
                advisory     log it and fall back to the unaugmented media

Temporary files live in one directory per job that is removed on every
exit path.
"""

import asyncio
import enum
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Sequence

from .config import Settings, settings as default_settings
from .errors import PipelineError, PostProcessError
from .log import get_logger
from .narration import NarrationClient
from .prompts import narration_script
from .storage import MediaStorage

logger = get_logger(__name__)


class Mode(str, enum.Enum):
    passthrough = "passthrough"
    watermark = "watermark"
    narrated = "narrated"


class FailurePolicy(str, enum.Enum):
    required = "required"
    advisory = "advisory"


@dataclass(frozen=True)
class StylePolicy:
    mode: Mode
    failure: FailurePolicy


PASSTHROUGH = StylePolicy(Mode.passthrough, FailurePolicy.advisory)
WATERMARK_ADVISORY = StylePolicy(Mode.watermark, FailurePolicy.advisory)
NARRATED_REQUIRED = StylePolicy(Mode.narrated, FailurePolicy.required)

STYLE_POLICIES: Dict[str, StylePolicy] = {
    "pass-through": PASSTHROUGH,
    "passthrough": PASSTHROUGH,
    "raw": PASSTHROUGH,
    # selfie/UGC keep the generated speech; the watermark is an enhancement
    "ugc": WATERMARK_ADVISORY,
    "selfie": WATERMARK_ADVISORY,
    "viral": WATERMARK_ADVISORY,
}

DEFAULT_POLICY = NARRATED_REQUIRED


@dataclass
class ProcessedMedia:
    url: str
    augmented: bool = False
    degraded: bool = False
    error: Optional[str] = None


CommandRunner = Callable[[Sequence[str]], Awaitable[None]]


async def run_command(cmd: Sequence[str]) -> None:
    """Run an external tool without blocking the loop; non-zero exit raises."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise PostProcessError(f"{cmd[0]} not found") from e
    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        tail = (stderr or b"").decode("utf-8", "replace")[-500:]
        raise PostProcessError(f"{Path(cmd[0]).name} exited {proc.returncode}: {tail}")


def _escape_drawtext(text: str) -> str:
    return (text or "").replace("\\", "\\\\").replace(":", "\\:").replace("'", "")


class MediaPostProcessor:
    def __init__(
        self,
        storage: MediaStorage,
        narrator: NarrationClient,
        cfg: Settings = default_settings,
        runner: CommandRunner = run_command,
        policies: Optional[Dict[str, StylePolicy]] = None,
        temp_root: Optional[Path] = None,
    ) -> None:
        self.storage = storage
        self.narrator = narrator
        self.cfg = cfg
        self._run = runner
        self.policies = policies if policies is not None else STYLE_POLICIES
        self.temp_root = temp_root

    def policy_for(self, style: Optional[str]) -> StylePolicy:
        return self.policies.get((style or "").strip().lower(), DEFAULT_POLICY)

    async def process(
        self,
        job_id: str,
        media_url: str,
        title: str,
        idea: str,
        style: Optional[str],
    ) -> ProcessedMedia:
        policy = self.policy_for(style)
        logger.info("post-processing style=%s mode=%s failure=%s", style, policy.mode.value, policy.failure.value)

        try:
            with tempfile.TemporaryDirectory(prefix=f"vf_{job_id}_", dir=self.temp_root) as tmp:
                work_dir = Path(tmp)
                if policy.mode == Mode.passthrough:
                    return await self._passthrough(job_id, media_url, work_dir)
                if policy.mode == Mode.watermark:
                    url = await self._watermark(job_id, media_url, work_dir)
                else:
                    url = await self._narrated(job_id, media_url, title, idea, work_dir)
                return ProcessedMedia(url=url, augmented=True)
        except (PipelineError, OSError) as e:
            if policy.failure == FailurePolicy.required:
                if isinstance(e, PostProcessError):
                    raise
                raise PostProcessError(f"{policy.mode.value} post-processing failed: {e}") from e
            logger.warning("%s post-processing failed, keeping original media: %s", policy.mode.value, e)
            return ProcessedMedia(url=media_url, augmented=False, degraded=True, error=str(e))

    async def _passthrough(self, job_id: str, media_url: str, work_dir: Path) -> ProcessedMedia:
        if not self.cfg.REHOST_MEDIA:
            return ProcessedMedia(url=media_url)
        url = await self.storage.rehost(media_url, f"{job_id}.mp4", work_dir)
        return ProcessedMedia(url=url)

    async def _watermark(self, job_id: str, media_url: str, work_dir: Path) -> str:
        video = await self.storage.download(media_url, work_dir / "source.mp4")
        out = work_dir / f"{job_id}_final.mp4"
        # keep original audio (-c:a copy), only the video stream is re-encoded
        await self._run([
            self.cfg.FFMPEG_BIN, "-i", str(video),
            "-c:v", "libx264", "-preset", "fast", "-crf", "23",
            "-vf", self.watermark_filter(),
            "-c:a", "copy", "-y", str(out),
        ])
        return await self.storage.store_file(out, out.name)

    async def _narrated(self, job_id: str, media_url: str, title: str, idea: str, work_dir: Path) -> str:
        video = await self.storage.download(media_url, work_dir / "source.mp4")
        audio = await self.narrator.synthesize(narration_script(title, idea, self.cfg), work_dir / "voice.mp3")
        out = work_dir / f"{job_id}_final.mp4"
        await self._run([
            self.cfg.FFMPEG_BIN, "-i", str(video), "-i", str(audio),
            "-c:v", "libx264", "-preset", "fast", "-crf", "23",
            "-vf", f"{self.watermark_filter()},{self.title_filter(title)}",
            "-c:a", "aac", "-map", "0:v:0", "-map", "1:a:0", "-shortest",
            "-y", str(out),
        ])
        return await self.storage.store_file(out, out.name)

    def _font(self) -> str:
        if not self.cfg.WATERMARK_FONT:
            return ""
        font = self.cfg.WATERMARK_FONT.replace("\\", "/").replace(":", "\\:")
        return f"fontfile='{font}':"

    def watermark_filter(self) -> str:
        # floating text that drifts around the frame so it cannot be cropped out
        text = _escape_drawtext(self.cfg.WATERMARK_TEXT)
        return (
            f"drawtext={self._font()}text='{text}':fontcolor=white@0.8:fontsize=24:"
            "x='(w-text_w)/2+sin(t/1.5)*100':y='(h-text_h)/2+cos(t/1.8)*150':"
            "box=1:boxcolor=black@0.5:boxborderw=5"
        )

    def title_filter(self, title: str) -> str:
        text = _escape_drawtext(title)
        return (
            f"drawtext={self._font()}text='{text}':fontcolor=yellow:fontsize=48:"
            "x=(w-text_w)/2:y=100:box=1:boxcolor=black@0.6:boxborderw=10:shadowx=2:shadowy=2"
        )
