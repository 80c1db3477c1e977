"""AgentRunner - wires the agent together and owns its lifecycle.

Handles:
- Session, registrar, heartbeat and executor wiring
- Parsing job-request messages
- The single-job execution gate (accepted/result pairs never interleave)
- Shutdown through a stop signal, with cancellation of in-flight work
"""

import asyncio
import time
import traceback
from datetime import datetime, timezone
from functools import partial
from typing import Any

from .. import __version__
from ..shared.logging import get_logger
from .credentials import CredentialStore
from .executor import JobExecutor
from .heartbeat import HeartbeatScheduler
from .registrar import Registrar
from .session import ConnectionSession, ReconnectPolicy, TransportFactory
from .transport import WebSocketTransport
from .types import AgentEvents, AgentOptions, Job, JobResult, utc_timestamp

logger = get_logger(__name__)

JOB_CANCELLED = "Job cancelled"


def _scalar(node: dict[str, Any], *names: str) -> str | None:
    """First alias holding a string or number, as text."""
    for name in names:
        value = node.get(name)
        if isinstance(value, bool):
            continue
        if isinstance(value, str):
            return value
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return str(int(value)) if value.is_integer() else str(value)
    return None


def parse_job(message: Any) -> Job | None:
    """Parse a job-request message.

    The message must be an object, optionally wrapping the job under "job".
    The id comes from "id" or "jobId", the type from "type" or "command".

    Returns:
        Job, or None if the message is malformed (logged)
    """
    if not isinstance(message, dict):
        logger.warning("job_rejected", reason="payload is not a JSON object")
        return None

    node = message
    if isinstance(node.get("job"), dict):
        node = node["job"]

    job_id = _scalar(node, "id", "jobId")
    job_type = _scalar(node, "type", "command")
    if not job_id or not job_id.strip() or not job_type or not job_type.strip():
        logger.warning("job_rejected", reason="missing id or type")
        return None

    return Job(
        id=job_id,
        type=job_type,
        payload=node.get("payload"),
        metadata=node.get("metadata"),
    )


class AgentRunner:
    """Runs the agent: connect, register, heartbeat, execute jobs one at a time."""

    def __init__(
        self,
        options: AgentOptions,
        executor: JobExecutor | None = None,
        transport_factory: TransportFactory | None = None,
        credential_store: CredentialStore | None = None,
        version: str = __version__,
    ):
        """Initialize AgentRunner.

        Args:
            options: Validated agent configuration
            executor: Job executor (defaults to real network checks)
            transport_factory: Transport factory (defaults to WebSocket)
            credential_store: Store for bootstrapped tokens
            version: Version announced on registration
        """
        self.options = options
        self.executor = executor or JobExecutor()

        if transport_factory is None:
            transport_factory = partial(
                WebSocketTransport, options.server_url, options.token, options.agent_name
            )
        self.session = ConnectionSession(transport_factory, ReconnectPolicy.from_options(options))
        self.registrar = Registrar(
            self.session,
            options,
            credential_store or CredentialStore(options.credential_file_path),
            version=version,
            started_at=datetime.now(timezone.utc),
        )
        self._started_monotonic = time.monotonic()

        self._gate = asyncio.Semaphore(1)
        self._terminating = asyncio.Event()
        self._job_tasks: set[asyncio.Task] = set()

        self.session.on(AgentEvents.JOB_REQUEST, self._on_job_request)
        self.session.on_connected(self.registrar.on_connected)

    @property
    def is_terminating(self) -> bool:
        return self._terminating.is_set()

    @property
    def active_jobs(self) -> int:
        """Number of job tasks running or waiting on the gate."""
        return len(self._job_tasks)

    def stop(self) -> None:
        """Request shutdown; run() returns once cleanup is done."""
        self._terminating.set()

    async def run(self, shutdown: asyncio.Event | None = None) -> None:
        """Run until stop() is called or shutdown is set.

        Args:
            shutdown: Optional external shutdown signal

        Raises:
            ReconnectExhaustedError: If the reconnect budget is used up
        """
        log = logger.bind(agent=self.options.agent_name)
        log.info("agent_starting", server=self.options.server_url)

        heartbeat = HeartbeatScheduler(
            self.session,
            self.options.agent_name,
            self.options.heartbeat_interval,
            started_at=self._started_monotonic,
        )
        session_task = asyncio.create_task(self.session.run())
        heartbeat_task = asyncio.create_task(heartbeat.run())
        waiters = [asyncio.create_task(self._terminating.wait())]
        if shutdown is not None:
            waiters.append(asyncio.create_task(shutdown.wait()))

        try:
            done, _ = await asyncio.wait(
                {session_task, *waiters}, return_when=asyncio.FIRST_COMPLETED
            )
            if session_task in done:
                session_task.result()
        finally:
            self._terminating.set()
            heartbeat.stop()
            for waiter in waiters:
                waiter.cancel()
            await self._shutdown(session_task, heartbeat_task)
            log.info("agent_stopped")

    async def _shutdown(self, session_task: asyncio.Task, heartbeat_task: asyncio.Task) -> None:
        heartbeat_task.cancel()
        if self.active_jobs:
            logger.info("cancelling_jobs", count=self.active_jobs)
        jobs = list(self._job_tasks)
        for task in jobs:
            task.cancel()
        await asyncio.gather(heartbeat_task, *jobs, return_exceptions=True)

        await self.session.close()
        if not session_task.done():
            await asyncio.gather(session_task, return_exceptions=True)

    async def _on_job_request(self, message: Any) -> None:
        if self.is_terminating:
            return

        job = parse_job(message)
        if job is None:
            return

        logger.info("job_received", job_id=job.id, job_type=job.type)
        task = asyncio.create_task(self.process_job(job))
        self._job_tasks.add(task)
        task.add_done_callback(self._job_tasks.discard)

    async def process_job(self, job: Job) -> None:
        """Accept, execute and report one job under the execution gate."""
        async with self._gate:
            try:
                await self.session.emit(AgentEvents.JOB_ACCEPTED, self._accepted_payload(job))
                result = await self.executor.execute(job)
            except asyncio.CancelledError:
                logger.warning("job_cancelled", job_id=job.id)
                if not self.is_terminating:
                    await self._emit_result(job, JobResult.failed(job.id, JOB_CANCELLED))
                raise
            except Exception as e:
                logger.error("job_failed", job_id=job.id, error=str(e))
                result = JobResult.failed(job.id, str(e), traceback.format_exc())

            await self._emit_result(job, result)

        logger.info("job_completed", job_id=job.id, success=result.success)

    async def _emit_result(self, job: Job, result: JobResult) -> bool:
        return await self.session.emit(AgentEvents.JOB_RESULT, self._result_payload(job, result))

    def _accepted_payload(self, job: Job) -> dict[str, Any]:
        return {
            "jobId": job.id,
            "agent": self.options.agent_name,
            "type": job.type,
            "receivedAt": utc_timestamp(),
            "metadata": job.metadata,
        }

    def _result_payload(self, job: Job, result: JobResult) -> dict[str, Any]:
        return {
            "jobId": result.job_id,
            "agent": self.options.agent_name,
            "success": result.success,
            "error": result.error,
            "errorDetails": result.error_details,
            "completedAt": utc_timestamp(),
            "checks": [check.to_dict() for check in result.checks],
            "metadata": job.metadata,
        }
