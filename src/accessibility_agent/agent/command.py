"""Agent execution entry point.

Provides run_agent, called by the CLI for both daemon and foreground modes.
"""

import asyncio
import logging
import signal

from ..errors import AgentError
from .runner import AgentRunner
from .types import AgentOptions

logger = logging.getLogger(__name__)


def run_agent(options: AgentOptions) -> int:
    """Run the agent until SIGINT/SIGTERM or a fatal error.

    Args:
        options: Validated agent configuration

    Returns:
        Process exit code (0 on clean shutdown, 1 on fatal error)
    """

    async def _run() -> None:
        shutdown = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown.set)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform; Ctrl+C still cancels asyncio.run
                pass

        runner = AgentRunner(options)
        await runner.run(shutdown)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Interrupted, agent stopped")
    except AgentError as e:
        logger.error(f"Agent terminated with error: {e}")
        print(f"Agent terminated with error: {e}")
        return 1
    return 0
