"""HeartbeatScheduler - periodic liveness signal to the coordinator."""

import asyncio
import logging
import time
from typing import Any

from .session import ConnectionSession
from .types import AgentEvents, utc_timestamp

logger = logging.getLogger(__name__)


class HeartbeatScheduler:
    """Emits a heartbeat every interval seconds while connected.

    Ticks that fall into a disconnected period are skipped, not queued.
    An interval of zero disables the scheduler.
    """

    def __init__(
        self,
        session: ConnectionSession,
        agent_name: str,
        interval: float,
        started_at: float | None = None,
    ):
        """Initialize HeartbeatScheduler.

        Args:
            session: Coordinator session
            agent_name: Name reported in each heartbeat
            interval: Seconds between heartbeats (0 disables)
            started_at: Monotonic start time used for uptime
        """
        self.session = session
        self.agent_name = agent_name
        self.interval = interval
        self._started_at = started_at if started_at is not None else time.monotonic()
        self._running = False

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    def payload(self) -> dict[str, Any]:
        return {
            "agent": self.agent_name,
            "timestamp": utc_timestamp(),
            "uptimeSeconds": round(time.monotonic() - self._started_at, 2),
        }

    async def beat(self) -> bool:
        """Send one heartbeat if connected."""
        if not self.session.is_connected:
            return False
        return await self.session.emit(AgentEvents.HEARTBEAT, self.payload())

    async def run(self) -> None:
        """Run heartbeats until stopped or cancelled."""
        if not self.enabled:
            logger.debug("Heartbeat disabled")
            return

        self._running = True
        logger.info(f"Starting heartbeat (interval: {self.interval}s)")

        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            try:
                await self.beat()
            except Exception as e:
                logger.warning(f"Heartbeat failed: {e}")

    def stop(self) -> None:
        """Stop the heartbeat loop after the current tick."""
        self._running = False
        logger.debug("Heartbeat stopped")
