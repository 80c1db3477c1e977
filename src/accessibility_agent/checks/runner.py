"""Check execution interface used by the job executor."""

from typing import Protocol

from . import network
from .models import CheckResult


class CheckRunner(Protocol):
    """Runs individual reachability checks.

    Abstraction over the network probes so the agent pipeline can be tested
    with a recording fake.
    """

    async def ping(self, host: str, timeout_ms: int) -> CheckResult: ...

    async def dns(self, host: str, timeout_ms: int) -> CheckResult: ...

    async def tcp(self, host: str, port: int, timeout_ms: int) -> CheckResult: ...

    async def udp(
        self,
        host: str,
        port: int,
        payload: str,
        timeout_ms: int,
        expect_response: bool,
    ) -> CheckResult: ...

    async def http(
        self,
        url: str,
        method: str,
        timeout_ms: int,
        body: str | None,
        content_type: str,
        headers: list[str],
    ) -> CheckResult: ...


class NetworkCheckRunner:
    """CheckRunner that delegates to the real network probes."""

    async def ping(self, host: str, timeout_ms: int) -> CheckResult:
        return await network.ping(host, timeout_ms)

    async def dns(self, host: str, timeout_ms: int) -> CheckResult:
        return await network.dns(host, timeout_ms)

    async def tcp(self, host: str, port: int, timeout_ms: int) -> CheckResult:
        return await network.tcp(host, port, timeout_ms)

    async def udp(
        self,
        host: str,
        port: int,
        payload: str,
        timeout_ms: int,
        expect_response: bool,
    ) -> CheckResult:
        return await network.udp(host, port, payload, timeout_ms, expect_response)

    async def http(
        self,
        url: str,
        method: str,
        timeout_ms: int,
        body: str | None,
        content_type: str,
        headers: list[str],
    ) -> CheckResult:
        return await network.http(url, method, timeout_ms, body, content_type, headers)
