"""
Self-ping keep-alive.

Free hosting tiers put idle web services to sleep. When the relay knows
its own public URL it requests it periodically so it stays awake for
clients that connect later.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)


class SelfPinger:
    """Periodically GETs the service's own external URL."""

    def __init__(self, url: str, interval: float = 600.0, timeout: float = 10.0):
        self.url = url
        self.interval = interval
        self.timeout = timeout
        self.last_status: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        self._task = asyncio.create_task(self._run())
        logger.info(f"Self-ping enabled for {self.url} every {self.interval:.0f}s")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._session:
            await self._session.close()
            self._session = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.ping_once()

    async def ping_once(self) -> Optional[int]:
        """Request the URL once. Returns the HTTP status, or None on failure."""
        if self._session is None:
            return None
        try:
            async with self._session.get(self.url) as resp:
                self.last_status = resp.status
                logger.info(f"Self-ping to {self.url}: {resp.status}")
                return resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Self-ping failed: {e}")
            return None
