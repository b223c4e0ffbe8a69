"""
Concurrent publishing of one finished video to every configured platform.

Targets without an account id (or a publisher without an API key) are
recorded as ``configured=False`` and never touched. Every other target is
published concurrently with its own timeout; an error from one target is
captured in its outcome and never reaches the others or the caller.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from .config import Settings, settings as default_settings
from .errors import PublishError
from .log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PublishTarget:
    platform: str
    account_id: Optional[str]
    target_type: str
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return bool(self.account_id)


def targets_from_settings(cfg: Settings = default_settings) -> List[PublishTarget]:
    known = {
        "tiktok": PublishTarget(
            platform="tiktok",
            account_id=cfg.BLOTATO_TIKTOK_ID,
            target_type="tiktok",
            options={
                "privacyLevel": "PUBLIC_TO_EVERYONE",
                "disabledComments": False,
                "disabledDuet": False,
                "disabledStitch": False,
                "isYourBrand": False,
                "isAiGenerated": True,
                "isBrandedContent": False,
            },
        ),
        "instagram": PublishTarget("instagram", cfg.BLOTATO_INSTAGRAM_ID, "instagram"),
        "youtube": PublishTarget(
            "youtube",
            cfg.BLOTATO_YOUTUBE_ID,
            "youtube",
            {"privacyStatus": "public", "shouldNotifySubscribers": True},
        ),
        "twitter": PublishTarget("twitter", cfg.BLOTATO_TWITTER_ID, "twitter"),
        "facebook": PublishTarget(
            "facebook",
            cfg.BLOTATO_FACEBOOK_ID,
            "facebook",
            {"pageId": cfg.BLOTATO_FACEBOOK_PAGE_ID} if cfg.BLOTATO_FACEBOOK_PAGE_ID else {},
        ),
    }
    targets = []
    seen = set()
    for name in cfg.publish_platforms:
        if name in seen:
            continue
        seen.add(name)
        if name in known:
            targets.append(known[name])
        else:
            logger.warning("unknown publish platform %r ignored", name)
    return targets


@dataclass
class PlatformOutcome:
    platform: str
    configured: bool
    success: bool = False
    external_post_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PublishReport:
    results: List[PlatformOutcome] = field(default_factory=list)

    @property
    def configured_count(self) -> int:
        return sum(1 for r in self.results if r.configured)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if not r.configured)

    @property
    def failures(self) -> List[Dict[str, str]]:
        return [
            {"platform": r.platform, "error": r.error or "unknown error"}
            for r in self.results
            if r.configured and not r.success
        ]

    @property
    def successful_platforms(self) -> List[str]:
        return [r.platform for r in self.results if r.success]


class Publisher(Protocol):
    def is_configured(self, target: PublishTarget) -> bool: ...

    async def publish(self, target: PublishTarget, media_url: str, caption: str, title: str = "") -> Optional[str]: ...


class BlotatoPublisher:
    def __init__(
        self,
        cfg: Settings = default_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cfg = cfg
        self._transport = transport

    def is_configured(self, target: PublishTarget) -> bool:
        return bool(self.cfg.BLOTATO_API_KEY) and target.configured

    async def publish(self, target: PublishTarget, media_url: str, caption: str, title: str = "") -> Optional[str]:
        target_payload: Dict[str, Any] = {
            "targetType": target.target_type,
            "platform": target.target_type,
            **target.options,
        }
        if target.platform == "youtube" and title:
            target_payload["title"] = title

        body = {
            "post": {
                "accountId": target.account_id,
                "content": {
                    "text": caption,
                    "mediaUrls": [media_url],
                    "platform": target.target_type,
                },
                "target": target_payload,
            }
        }
        headers = {
            "Content-Type": "application/json",
            "blotato-api-key": self.cfg.BLOTATO_API_KEY or "",
        }

        try:
            async with httpx.AsyncClient(timeout=self.cfg.PUBLISH_TIMEOUT, transport=self._transport) as client:
                r = await client.post(self.cfg.BLOTATO_ENDPOINT, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise PublishError(f"{target.platform}: {e}") from e

        if r.status_code >= 400:
            raise PublishError(f"{target.platform}: {r.status_code} {r.text[:300]}")
        try:
            data = r.json()
        except ValueError:
            data = {}
        post_id = (data.get("id") or data.get("postSubmissionId")) if isinstance(data, dict) else None
        return str(post_id) if post_id else None


class PublishFanOut:
    def __init__(self, publisher: Publisher, timeout: float = 60.0) -> None:
        self.publisher = publisher
        self.timeout = timeout

    async def run(
        self,
        targets: Sequence[PublishTarget],
        media_url: str,
        captions: Dict[str, str],
        title: str = "",
    ) -> PublishReport:
        if not media_url:
            raise ValueError("media_url is required before publishing")

        live: Dict[int, PublishTarget] = {}
        broken: Dict[int, str] = {}
        for i, t in enumerate(targets):
            try:
                if self.publisher.is_configured(t):
                    live[i] = t
            except Exception as e:
                broken[i] = f"configuration check failed: {e}"
                logger.warning("publish to %s failed: %s", t.platform, broken[i])
        logger.info("publishing to %d of %d targets", len(live), len(targets))

        calls = [
            asyncio.wait_for(
                self.publisher.publish(t, media_url, self._caption(t, captions, title), title),
                timeout=self.timeout,
            )
            for t in live.values()
        ]
        returned = dict(zip(live.keys(), await asyncio.gather(*calls, return_exceptions=True)))

        report = PublishReport()
        for i, target in enumerate(targets):
            if i in broken:
                report.results.append(PlatformOutcome(target.platform, True, False, error=broken[i]))
                continue
            if i not in returned:
                report.results.append(PlatformOutcome(platform=target.platform, configured=False))
                continue
            value = returned[i]
            if isinstance(value, BaseException):
                if isinstance(value, asyncio.TimeoutError):
                    message = f"timed out after {self.timeout:g}s"
                else:
                    message = str(value) or type(value).__name__
                logger.warning("publish to %s failed: %s", target.platform, message)
                report.results.append(PlatformOutcome(target.platform, True, False, error=message))
            else:
                logger.info("published to %s: %s", target.platform, value or "OK")
                report.results.append(PlatformOutcome(target.platform, True, True, external_post_id=value))
        return report

    @staticmethod
    def _caption(target: PublishTarget, captions: Dict[str, str], title: str) -> str:
        return captions.get(target.platform) or captions.get("tiktok") or title
