"""Shared test fixtures for accessibility-agent tests.

This module provides in-memory stand-ins for the agent's collaborators:
- FakeTransport: EventTransport backed by an asyncio.Queue
- FakeTransportFactory: hands out prepared transports, one per connect
- RecordingCheckRunner: CheckRunner that records calls instead of probing
"""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

from accessibility_agent.agent.types import AgentOptions
from accessibility_agent.checks.models import CheckResult
from accessibility_agent.errors import TransportError

# =============================================================================
# Fake transport
# =============================================================================


class FakeTransport:
    """EventTransport that keeps everything in memory.

    Inbound frames are pushed with push_event/push_result; drop() ends the
    frame stream the way a closed socket would.
    """

    def __init__(
        self,
        fail_connect: bool = False,
        responder: Callable[[str, Any], Any] | None = None,
    ):
        self.fail_connect = fail_connect
        self.responder = responder
        self.connect_calls = 0
        self.connected = False
        self.closed = False
        self.sent_events: list[tuple[str, Any]] = []
        self.sent_invokes: list[tuple[str, str, Any]] = []
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise TransportError(message="connection refused")
        self.connected = True

    async def send_event(self, event: str, data: Any) -> None:
        if self.closed:
            raise TransportError(message="closed")
        self.sent_events.append((event, data))

    async def send_invoke(self, invocation_id: str, method: str, data: Any) -> None:
        self.sent_invokes.append((invocation_id, method, data))
        if self.responder is not None:
            self.push_result(invocation_id, self.responder(method, data))

    async def frames(self):
        while True:
            frame = await self._inbound.get()
            if frame is None:
                return
            if isinstance(frame, Exception):
                raise frame
            yield frame

    async def close(self) -> None:
        self.closed = True
        self.connected = False

    def push_event(self, event: str, data: Any) -> None:
        self._inbound.put_nowait({"type": "event", "event": event, "data": data})

    def push_result(self, invocation_id: str, data: Any = None, error: str | None = None) -> None:
        self._inbound.put_nowait({"type": "result", "id": invocation_id, "data": data, "error": error})

    def drop(self) -> None:
        """Simulate the coordinator closing the connection."""
        self._inbound.put_nowait(None)

    def fail(self, message: str = "connection reset", error: Exception | None = None) -> None:
        """Simulate the connection breaking, optionally with an unexpected error."""
        self._inbound.put_nowait(error or TransportError(message=message))

    def events_named(self, name: str) -> list[Any]:
        return [data for event, data in self.sent_events if event == name]


class FakeTransportFactory:
    """Returns prepared transports in order, then failing ones."""

    def __init__(self, *transports: FakeTransport):
        self.transports = list(transports)
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = self.transports.pop(0) if self.transports else FakeTransport(fail_connect=True)
        self.created.append(transport)
        return transport


# =============================================================================
# Recording check runner
# =============================================================================


class RecordingCheckRunner:
    """CheckRunner that records each call and returns canned results.

    Args:
        results: Success flag per check kind (default True)
        delay: Seconds each check takes
        error: Exception raised by every check
    """

    def __init__(
        self,
        results: dict[str, bool] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ):
        self.results = results or {}
        self.delay = delay
        self.error = error
        self.calls: list[tuple[Any, ...]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _record(self, kind: str, check: str, *args: Any) -> CheckResult:
        self.calls.append((kind, *args))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            success = self.results.get(kind, True)
            return CheckResult(
                check=check,
                success=success,
                message="ok" if success else "failed",
                duration_ms=1.0,
            )
        finally:
            self.in_flight -= 1

    async def ping(self, host: str, timeout_ms: int) -> CheckResult:
        return await self._record("ping", f"ping:{host}", host, timeout_ms)

    async def dns(self, host: str, timeout_ms: int) -> CheckResult:
        return await self._record("dns", f"dns:{host}", host, timeout_ms)

    async def tcp(self, host: str, port: int, timeout_ms: int) -> CheckResult:
        return await self._record("tcp", f"tcp:{host}:{port}", host, port, timeout_ms)

    async def udp(
        self, host: str, port: int, payload: str, timeout_ms: int, expect_response: bool
    ) -> CheckResult:
        return await self._record(
            "udp", f"udp:{host}:{port}", host, port, payload, timeout_ms, expect_response
        )

    async def http(
        self,
        url: str,
        method: str,
        timeout_ms: int,
        body: str | None,
        content_type: str,
        headers: list[str],
    ) -> CheckResult:
        return await self._record(
            "http", f"http:{url}", url, method, timeout_ms, body, content_type, headers
        )

    def kinds(self) -> list[str]:
        return [call[0] for call in self.calls]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def check_runner() -> RecordingCheckRunner:
    return RecordingCheckRunner()


@pytest.fixture
def credential_path(tmp_path: Path) -> Path:
    return tmp_path / "config" / "accessibilityagent" / "agent.json"


@pytest.fixture
def agent_options(credential_path: Path) -> AgentOptions:
    """Fast-reconnecting options with heartbeats and token bootstrap disabled."""
    return AgentOptions(
        server_url="http://coordinator.test",
        token="shared-token",
        agent_name="agent-1",
        reconnect_delay=0.01,
        reconnect_delay_max=0.05,
        heartbeat_interval=0,
        metadata={"site": "lab"},
        credential_file_path=credential_path,
        auto_issue_personal_token=False,
    )


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Wait until a predicate holds, failing after a timeout."""

    async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)

    return _eventually


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from the real config directory and AA_* variables."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in ("AA_SERVER_URL", "AA_AGENT_TOKEN", "AA_AGENT_NAME", "AA_AGENT_CREDENTIAL_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("accessibility_agent.config.CONFIG_FILE", tmp_path / "config.yaml")
