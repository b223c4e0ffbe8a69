"""
Re-hosting of finished media.

- local: writes under ``static/`` and returns ``/static/<file>``
- s3: uploads to the configured bucket and returns a public URL
"""

import asyncio
import mimetypes
from pathlib import Path
from typing import Optional

import httpx

from .config import BASE_DIR, Settings, settings as default_settings
from .errors import ConfigurationError, TransientError
from .log import get_logger

logger = get_logger(__name__)

STATIC_DIR = BASE_DIR / "static"


class MediaStorage:
    def __init__(
        self,
        cfg: Settings = default_settings,
        static_dir: Path = STATIC_DIR,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cfg = cfg
        self.static_dir = Path(static_dir)
        self._transport = transport

    @property
    def backend(self) -> str:
        return (self.cfg.STORAGE_BACKEND or "local").lower()

    async def download(self, url: str, out_path: Path) -> Path:
        """Stream ``url`` into ``out_path``."""
        try:
            async with httpx.AsyncClient(timeout=self.cfg.MEDIA_TIMEOUT, transport=self._transport) as client:
                async with client.stream("GET", url, follow_redirects=True) as rr:
                    rr.raise_for_status()
                    with out_path.open("wb") as f:
                        async for chunk in rr.aiter_bytes():
                            f.write(chunk)
        except httpx.HTTPError as e:
            raise TransientError(f"download failed for {url[:80]}: {e}") from e
        return out_path

    async def rehost(self, url: str, filename: str, work_dir: Path) -> str:
        """Download ``url`` and store it unchanged under ``filename``."""
        local = await self.download(url, Path(work_dir) / filename)
        return await self.store_file(local, filename)

    async def store_file(self, path: Path, filename: str) -> str:
        if self.backend == "s3":
            return await asyncio.to_thread(self._put_s3, Path(path), filename)
        return await asyncio.to_thread(self._put_local, Path(path), filename)

    def _put_local(self, path: Path, filename: str) -> str:
        self.static_dir.mkdir(parents=True, exist_ok=True)
        out_path = self.static_dir / filename
        out_path.write_bytes(path.read_bytes())
        logger.info("stored %s locally (%d bytes)", filename, out_path.stat().st_size)
        return f"{self.cfg.STATIC_URL_PREFIX.rstrip('/')}/{filename}"

    def _put_s3(self, path: Path, filename: str) -> str:
        # Lazy import to avoid hard dependency in local dev
        try:
            import boto3  # type: ignore
        except ImportError as e:
            raise ConfigurationError("boto3 is required for S3 storage; install and set STORAGE_BACKEND=s3") from e

        cfg = self.cfg
        if not cfg.S3_BUCKET:
            raise ConfigurationError("S3_BUCKET is required when STORAGE_BACKEND=s3")

        key = f"results/{filename}"
        session_kwargs = {}
        if cfg.S3_REGION:
            session_kwargs["region_name"] = cfg.S3_REGION
        s3_session = boto3.session.Session(**session_kwargs)
        client_kwargs = {}
        if cfg.S3_ENDPOINT:
            client_kwargs["endpoint_url"] = cfg.S3_ENDPOINT
        if cfg.S3_ACCESS_KEY_ID and cfg.S3_SECRET_ACCESS_KEY:
            client_kwargs["aws_access_key_id"] = cfg.S3_ACCESS_KEY_ID
            client_kwargs["aws_secret_access_key"] = cfg.S3_SECRET_ACCESS_KEY
        s3 = s3_session.client("s3", **client_kwargs)
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        with path.open("rb") as body:
            s3.put_object(Bucket=cfg.S3_BUCKET, Key=key, Body=body, ContentType=content_type)
        logger.info("uploaded %s to s3://%s/%s", filename, cfg.S3_BUCKET, key)
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        cfg = self.cfg
        if cfg.S3_PUBLIC_BASE_URL:
            return f"{cfg.S3_PUBLIC_BASE_URL.rstrip('/')}/{key}"
        # Fallback to standard AWS S3 URL if region known
        if cfg.S3_REGION:
            return f"https://{cfg.S3_BUCKET}.s3.{cfg.S3_REGION}.amazonaws.com/{key}"
        if cfg.S3_ENDPOINT:
            return f"{cfg.S3_ENDPOINT.rstrip('/')}/{cfg.S3_BUCKET}/{key}"
        raise ConfigurationError("Unable to construct S3 public URL; set S3_PUBLIC_BASE_URL or REGION/ENDPOINT")
