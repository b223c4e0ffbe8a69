"""
Requests waiting for more input, keyed by chat session.

A command can start a video request and wait for the reference image to
arrive in a later message. The pending request is kept here with an expiry
time; one periodic sweep evicts whatever has expired.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .log import get_logger

logger = get_logger(__name__)


@dataclass
class PendingRequest:
    title: str
    idea: str
    style: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class PendingRequestStore:
    def __init__(self, ttl: float = 600.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._pending: Dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def put(self, session: str, title: str, idea: str, style: str) -> PendingRequest:
        """Store (or replace) the pending request for ``session``."""
        req = PendingRequest(title=title, idea=idea, style=style, expires_at=self._clock() + self.ttl)
        self._pending[session] = req
        return req

    def get(self, session: str) -> Optional[PendingRequest]:
        req = self._pending.get(session)
        if req is None or req.expired(self._clock()):
            return None
        return req

    def pop(self, session: str) -> Optional[PendingRequest]:
        """Take the pending request for ``session``; expired ones count as missing."""
        req = self._pending.pop(session, None)
        if req is None or req.expired(self._clock()):
            return None
        return req

    def sweep(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        expired = [key for key, req in self._pending.items() if req.expired(now)]
        for key in expired:
            del self._pending[key]
        if expired:
            logger.info("evicted %d expired pending requests", len(expired))
        return len(expired)

    async def run_sweeper(self, interval: float = 30.0) -> None:
        """Sweep forever; cancel the task to stop it."""
        while True:
            await asyncio.sleep(interval)
            self.sweep()
