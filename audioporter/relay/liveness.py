"""
Liveness monitor.

A repeating task, independent of message handling, that pings every open
connection at the protocol level. A connection that has not answered
(pong or any inbound frame) for ``missed_probes_allowed`` cycles is
force-closed and goes through the normal disconnect cleanup. A ping that
is not written within ``ping_timeout`` is abandoned for that cycle.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

Terminator = Callable[[Connection], Awaitable[None]]


class LivenessMonitor:
    """Periodic probe-and-reap loop over the connection registry."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        terminate: Terminator,
        interval: float = 30.0,
        missed_probes_allowed: int = 1,
        ping_timeout: float = 5.0,
    ):
        self.registry = registry
        self.terminate = terminate
        self.interval = interval
        self.missed_probes_allowed = missed_probes_allowed
        self.ping_timeout = ping_timeout
        self.reaped = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())
            logger.debug(f"Liveness monitor started (interval={self.interval}s)")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.probe_once()
            except Exception as e:
                logger.error(f"Liveness cycle failed: {e}", exc_info=True)

    async def probe_once(self) -> List[str]:
        """
        Run one probe cycle. Returns the ids of connections that were closed.

        Pings go out concurrently, each bounded by ``ping_timeout``, and
        reaping only waits on cleanup, never on the peer, so one stalled
        socket cannot hold up the rest of the cycle.
        """
        reaped: List[Connection] = []
        probes: List[Connection] = []
        for conn in self.registry:
            if conn.is_alive:
                conn.is_alive = False
                conn.missed_probes = 0
            else:
                conn.missed_probes += 1
                if conn.missed_probes >= self.missed_probes_allowed:
                    reaped.append(conn)
                    continue
            probes.append(conn)

        for conn in reaped:
            logger.info(f"Closing unresponsive connection {conn.id}")
            await self.terminate(conn)

        if probes:
            await asyncio.gather(*(self._ping(conn) for conn in probes))

        self.reaped += len(reaped)
        return [conn.id for conn in reaped]

    async def _ping(self, conn: Connection) -> None:
        try:
            await asyncio.wait_for(conn.ping(), timeout=self.ping_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Ping to {conn.id} timed out")
        except Exception as e:
            logger.debug(f"Ping to {conn.id} failed: {e}")
