"""Owner notifications sent once a job run has finished."""

from typing import Optional, Protocol

import httpx

from .config import Settings, settings as default_settings
from .log import get_logger
from .models import Job, JobStatus
from .publish import PublishReport

logger = get_logger(__name__)


def format_summary(job: Job, report: Optional[PublishReport] = None) -> str:
    if job.status != JobStatus.completed:
        return (
            f"❌ *Video #{job.id} falló*\n\n"
            f"Error: {job.error or 'desconocido'}\n\n"
            f"Revisa los logs para más detalles."
        )

    lines = [f"🎬 *Video #{job.id} completado!*", "", f"📹 {job.media_url}"]
    if report is not None:
        published = ", ".join(report.successful_platforms) or "Ninguna"
        lines += ["", f"✅ Publicado en: {published}"]
        if report.failures:
            failed = ", ".join(f["platform"] for f in report.failures)
            lines.append(f"❌ Falló en: {failed}")
        if report.skipped_count:
            skipped = ", ".join(r.platform for r in report.results if not r.configured)
            lines.append(f"⏭️ Sin configurar: {skipped}")
    return "\n".join(lines)


class NotificationSink(Protocol):
    async def notify(self, job: Job, report: Optional[PublishReport]) -> None: ...


class LoggingSink:
    async def notify(self, job: Job, report: Optional[PublishReport]) -> None:
        logger.info("job summary:\n%s", format_summary(job, report))


class WhapiSink:
    """Sends the summary to the owner's WhatsApp. Never raises."""

    def __init__(
        self,
        cfg: Settings = default_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cfg = cfg
        self._transport = transport

    async def notify(self, job: Job, report: Optional[PublishReport]) -> None:
        if not self.cfg.WHAPI_TOKEN or not self.cfg.OWNER_PHONE:
            logger.warning("WHAPI_TOKEN/OWNER_PHONE not configured; owner notification skipped")
            return
        try:
            async with httpx.AsyncClient(timeout=30, transport=self._transport) as client:
                r = await client.post(
                    self.cfg.WHAPI_ENDPOINT,
                    headers={"Authorization": f"Bearer {self.cfg.WHAPI_TOKEN}"},
                    json={"to": self.cfg.OWNER_PHONE, "body": format_summary(job, report)},
                )
                r.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("error sending owner notification: %s", e)
            return
        logger.info("owner notification sent")
