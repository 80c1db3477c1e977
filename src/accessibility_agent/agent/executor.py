"""Job executor for handling job-request messages.

Handles:
- Mapping a job type to one or more reachability checks
- Payload validation (required fields, port ranges, timeouts, URLs)
- Concurrent fan-out of composite "check" jobs
- Converting validation failures and probe faults into failed results
"""

import asyncio
import logging
import traceback
from collections.abc import Awaitable, Callable
from functools import partial
from urllib.parse import urlparse

from ..checks.models import CheckDefaults, CheckResult
from ..checks.runner import CheckRunner, NetworkCheckRunner
from ..errors import JobValidationError
from .fields import PayloadReader
from .types import Job, JobResult

logger = logging.getLogger(__name__)

PlannedCheck = Callable[[], Awaitable[CheckResult]]


def _require(value: str | None, name: str, job_type: str) -> str:
    if value is None or not value.strip():
        raise JobValidationError(
            message=f"Job '{job_type}' is missing required property '{name}'."
        )
    return value


def _host(value: str | None, name: str, job_type: str) -> str:
    host = _require(value, name, job_type)
    # ping receives the host as a bare argument
    if host.strip().startswith("-"):
        raise JobValidationError(message=f"Invalid host '{host}'.")
    return host


def _port(port: int | None, name: str) -> int:
    if port is None:
        raise JobValidationError(message=f"Port property '{name}' is required.")
    if not 1 <= port <= 65_535:
        raise JobValidationError(
            message=f"Port '{port}' in '{name}' is out of range (1-65535)."
        )
    return port


def _timeout(timeout: int | None, name: str) -> int | None:
    if timeout is None:
        return None
    if timeout <= 0:
        raise JobValidationError(
            message=f"Timeout '{name}' must be greater than zero when specified."
        )
    return timeout


def _is_absolute_url(url: str) -> bool:
    parsed = urlparse(url.strip())
    return bool(parsed.scheme and parsed.netloc)


def build_url(host: str, port: int | None, path: str, use_https: bool) -> str:
    """Build an http(s) URL from host, optional port and path."""
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    path = path.strip() if path and path.strip() else "/"
    if not path.startswith("/"):
        path = "/" + path
    netloc = f"{host}:{port}" if port is not None else host
    return f"{'https' if use_https else 'http'}://{netloc}{path}"


class JobExecutor:
    """Executes coordinator jobs against a CheckRunner.

    Single-check jobs (ping, dns, tcp, udp, http) run one probe; "check"
    jobs expand into several probes that run concurrently.
    """

    def __init__(self, check_runner: CheckRunner | None = None):
        """Initialize job executor.

        Args:
            check_runner: Probe implementation (defaults to real network checks)
        """
        self._checks = check_runner or NetworkCheckRunner()

    async def execute(self, job: Job) -> JobResult:
        """Execute a job and aggregate its checks.

        Never raises for validation errors or probe faults; task
        cancellation propagates to the caller.

        Args:
            job: Parsed job request

        Returns:
            JobResult whose success is the AND over all checks
        """
        try:
            checks = await self._execute_internal(job)
        except JobValidationError as e:
            logger.warning(f"Job '{job.id}' rejected: {e.message}")
            return JobResult.failed(job.id, e.message)
        except Exception as e:
            logger.error(f"Job '{job.id}' execution failed: {e}")
            return JobResult.failed(job.id, str(e), traceback.format_exc())

        return JobResult.from_checks(job.id, checks)

    async def _execute_internal(self, job: Job) -> list[CheckResult]:
        if not job.type or not job.type.strip():
            raise JobValidationError(message="Job type is missing.")

        job_type = job.type.strip().lower()
        reader = PayloadReader(job.payload)

        if job_type == "check":
            return await self._run_all(self._plan_composite(reader, job.type))

        planners = {
            "ping": self._plan_ping,
            "dns": self._plan_dns,
            "tcp": self._plan_tcp,
            "udp": self._plan_udp,
            "http": self._plan_http,
        }
        planner = planners.get(job_type)
        if planner is None:
            raise JobValidationError(message=f"Unsupported job type '{job.type}'.")

        return [await planner(reader, job.type)()]

    async def _run_all(self, planned: list[PlannedCheck]) -> list[CheckResult]:
        """Run planned checks concurrently, keeping submission order."""
        if not planned:
            return []

        results = await asyncio.gather(*(check() for check in planned), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    # -- single-check jobs -------------------------------------------------

    def _plan_ping(self, reader: PayloadReader, job_type: str) -> PlannedCheck:
        host = _host(reader.get_str("host"), "host", job_type)
        timeout = (
            _timeout(reader.get_int("timeoutMs", "timeout"), "timeoutMs")
            or CheckDefaults.PING_TIMEOUT_MS
        )
        return partial(self._checks.ping, host, timeout)

    def _plan_dns(self, reader: PayloadReader, job_type: str) -> PlannedCheck:
        host = _host(reader.get_str("host"), "host", job_type)
        timeout = (
            _timeout(reader.get_int("timeoutMs", "timeout"), "timeoutMs")
            or CheckDefaults.DNS_TIMEOUT_MS
        )
        return partial(self._checks.dns, host, timeout)

    def _plan_tcp(self, reader: PayloadReader, job_type: str) -> PlannedCheck:
        host = _host(reader.get_str("host"), "host", job_type)
        port = _port(reader.get_int("port"), "port")
        timeout = (
            _timeout(reader.get_int("timeoutMs", "timeout"), "timeoutMs")
            or CheckDefaults.TCP_TIMEOUT_MS
        )
        return partial(self._checks.tcp, host, port, timeout)

    def _plan_udp(self, reader: PayloadReader, job_type: str) -> PlannedCheck:
        host = _host(reader.get_str("host"), "host", job_type)
        port = _port(reader.get_int("port"), "port")
        timeout = (
            _timeout(reader.get_int("timeoutMs", "timeout"), "timeoutMs")
            or CheckDefaults.UDP_TIMEOUT_MS
        )
        payload = reader.get_str("payload") or ""
        expect_response = reader.get_bool("expectResponse") or False
        return partial(self._checks.udp, host, port, payload, timeout, expect_response)

    def _plan_http(self, reader: PayloadReader, job_type: str) -> PlannedCheck:
        url = _require(reader.get_str("url", "uri"), "url", job_type)
        if not _is_absolute_url(url):
            raise JobValidationError(message=f"Invalid URL '{url}'.")

        method = (reader.get_str("method") or "GET").strip().upper() or "GET"
        timeout = (
            _timeout(reader.get_int("timeoutMs", "timeout"), "timeoutMs")
            or CheckDefaults.HTTP_TIMEOUT_MS
        )
        body = reader.get_str("body", "data")
        content_type = reader.get_str("contentType", "content-type") or "text/plain"
        headers = reader.get_str_list("headers", "header")
        return partial(self._checks.http, url.strip(), method, timeout, body, content_type, headers)

    # -- composite job -----------------------------------------------------

    def _plan_composite(self, reader: PayloadReader, job_type: str) -> list[PlannedCheck]:
        """Validate a composite payload and plan its sub-checks.

        Everything is validated before any sub-check starts.
        """
        host = _host(reader.get_str("host"), "host", job_type)
        overall = _timeout(reader.get_int("timeoutMs", "timeout"), "timeoutMs")
        planned: list[PlannedCheck] = []

        if not reader.get_bool("skipPing", "noPing", "skip_ping"):
            timeout = (
                _timeout(reader.get_int("pingTimeoutMs", "pingTimeout"), "pingTimeoutMs")
                or overall
                or CheckDefaults.PING_TIMEOUT_MS
            )
            planned.append(partial(self._checks.ping, host, timeout))

        if not reader.get_bool("skipDns", "noDns", "skip_dns"):
            dns_host = reader.get_str("dnsHost") or host
            timeout = (
                _timeout(reader.get_int("dnsTimeoutMs", "dnsTimeout"), "dnsTimeoutMs")
                or overall
                or CheckDefaults.DNS_TIMEOUT_MS
            )
            planned.append(partial(self._checks.dns, dns_host, timeout))

        tcp_ports = reader.get_int_list("tcpPorts", "tcpPort", "tcp")
        if tcp_ports:
            timeout = (
                _timeout(reader.get_int("tcpTimeoutMs", "tcpTimeout"), "tcpTimeoutMs")
                or overall
                or CheckDefaults.TCP_TIMEOUT_MS
            )
            for value in tcp_ports:
                port = _port(value, "tcpPorts")
                planned.append(partial(self._checks.tcp, host, port, timeout))

        udp_ports = reader.get_int_list("udpPorts", "udpPort", "udp")
        if udp_ports:
            udp_payload = reader.get_str("udpPayload", "payload") or ""
            expect_response = reader.get_bool("udpExpectResponse", "udpExpectresponse") or False
            timeout = (
                _timeout(reader.get_int("udpTimeoutMs", "udpTimeout"), "udpTimeoutMs")
                or overall
                or CheckDefaults.UDP_TIMEOUT_MS
            )
            for value in udp_ports:
                port = _port(value, "udpPorts")
                planned.append(
                    partial(self._checks.udp, host, port, udp_payload, timeout, expect_response)
                )

        urls = self._composite_urls(host, reader)
        if urls:
            method = (reader.get_str("httpMethod", "method") or "GET").strip().upper() or "GET"
            timeout = (
                _timeout(reader.get_int("httpTimeoutMs", "httpTimeout"), "httpTimeoutMs")
                or overall
                or CheckDefaults.HTTP_TIMEOUT_MS
            )
            body = reader.get_str("httpBody", "body")
            content_type = (
                reader.get_str("httpContentType", "contentType", "content-type") or "text/plain"
            )
            headers = reader.get_str_list("httpHeaders", "headers", "header")
            for url in urls:
                planned.append(
                    partial(self._checks.http, url, method, timeout, body, content_type, headers)
                )

        return planned

    def _composite_urls(self, host: str, reader: PayloadReader) -> list[str]:
        """Explicit httpUrls win; otherwise synthesize from host and ports."""
        urls: list[str] = []
        for url in reader.get_str_list("httpUrls", "httpUrl"):
            if not url.strip():
                continue
            if not _is_absolute_url(url):
                raise JobValidationError(message=f"Invalid HTTP URL '{url}'.")
            urls.append(url.strip())

        if urls:
            return urls

        http_ports = reader.get_int_list("httpPorts", "httpPort")
        http_flag = reader.get_bool("http") or False
        use_https = reader.get_bool("https") or False
        path = reader.get_str("httpPath") or "/"

        if not (http_flag or http_ports):
            return urls

        if not http_ports:
            return [build_url(host, None, path, use_https)]

        return [build_url(host, _port(value, "httpPorts"), path, use_https) for value in http_ports]
