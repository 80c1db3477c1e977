"""Network reachability probes.

Each probe returns a CheckResult and never raises for network conditions:
- ping: ICMP echo through the system ping binary
- dns: name resolution through the event loop resolver
- tcp: TCP handshake
- udp: datagram send with optional response wait
- http: HTTP request through httpx
"""

import asyncio
import re
import socket
import sys
import time

import httpx

from .models import CheckResult, build_metadata

_PING_ADDRESS_RE = re.compile(r"from ([0-9a-fA-F:.]+)")
_PING_TIME_RE = re.compile(r"time[=<]([0-9.]+)\s*ms")


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _ping_command(host: str, timeout_ms: int) -> list[str]:
    """Build the platform-specific ping command line."""
    if sys.platform.startswith("win"):
        return ["ping", "-n", "1", "-w", str(timeout_ms), host]
    if sys.platform == "darwin":
        # macOS takes -W in milliseconds
        return ["ping", "-c", "1", "-W", str(timeout_ms), host]
    seconds = max(1, -(-timeout_ms // 1000))
    return ["ping", "-c", "1", "-W", str(seconds), host]


async def ping(host: str, timeout_ms: int) -> CheckResult:
    """Send one ICMP echo request to a host.

    Args:
        host: Host name or IP address
        timeout_ms: Reply timeout in milliseconds

    Returns:
        CheckResult with reply address and round-trip time when available
    """
    check = f"ping:{host}"
    started = time.perf_counter()

    try:
        process = await asyncio.create_subprocess_exec(
            *_ping_command(host, timeout_ms),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout_ms / 1000 + 1.0
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return CheckResult(
                check=check,
                success=False,
                message=f"Ping timed out after {timeout_ms} ms",
                duration_ms=_elapsed_ms(started),
            )
    except OSError as e:
        return CheckResult(
            check=check,
            success=False,
            message=f"Ping error: {e}",
            duration_ms=_elapsed_ms(started),
        )

    duration = _elapsed_ms(started)
    output = stdout.decode("utf-8", errors="replace")
    address_match = _PING_ADDRESS_RE.search(output)
    time_match = _PING_TIME_RE.search(output)
    address = address_match.group(1).rstrip(":") if address_match else None

    if process.returncode == 0:
        rtt = time_match.group(1) if time_match else None
        message = (
            f"Reply from {address or host} in {rtt} ms"
            if rtt
            else f"Reply from {address or host} (no roundtrip time reported)"
        )
        return CheckResult(
            check=check,
            success=True,
            message=message,
            duration_ms=duration,
            data=build_metadata(
                ("status", "Success"),
                ("address", address),
                ("roundtripTimeMs", rtt),
            ),
        )

    detail = stderr.decode("utf-8", errors="replace").strip()
    return CheckResult(
        check=check,
        success=False,
        message=f"Ping failed: {detail}" if detail else f"Ping failed with exit code {process.returncode}",
        duration_ms=duration,
        data=build_metadata(("exitCode", str(process.returncode)), ("address", address)),
    )


async def dns(host: str, timeout_ms: int) -> CheckResult:
    """Resolve a host name.

    Args:
        host: Host name to resolve
        timeout_ms: Resolution timeout in milliseconds

    Returns:
        CheckResult listing the resolved addresses
    """
    check = f"dns:{host}"
    started = time.perf_counter()
    loop = asyncio.get_running_loop()

    try:
        infos = await asyncio.wait_for(
            loop.getaddrinfo(host, None, type=socket.SOCK_STREAM),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        return CheckResult(
            check=check,
            success=False,
            message=f"DNS resolution timed out after {timeout_ms} ms",
            duration_ms=_elapsed_ms(started),
        )
    except socket.gaierror as e:
        return CheckResult(
            check=check,
            success=False,
            message=f"DNS error: {e.strerror or e}",
            duration_ms=_elapsed_ms(started),
            data=build_metadata(("socketError", str(e.errno))),
        )
    except Exception as e:
        return CheckResult(
            check=check,
            success=False,
            message=f"DNS error: {e}",
            duration_ms=_elapsed_ms(started),
        )

    duration = _elapsed_ms(started)
    addresses = list(dict.fromkeys(info[4][0] for info in infos))
    if not addresses:
        return CheckResult(
            check=check,
            success=False,
            message="DNS resolution returned no addresses",
            duration_ms=duration,
        )

    return CheckResult(
        check=check,
        success=True,
        message=f"Resolved {len(addresses)} address(es)",
        duration_ms=duration,
        data=build_metadata(("addresses", ", ".join(addresses))),
    )


async def tcp(host: str, port: int, timeout_ms: int) -> CheckResult:
    """Attempt a TCP handshake with host:port.

    Args:
        host: Host name or IP address
        port: Remote port
        timeout_ms: Connect timeout in milliseconds

    Returns:
        CheckResult with the remote endpoint on success
    """
    check = f"tcp:{host}:{port}"
    started = time.perf_counter()

    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        return CheckResult(
            check=check,
            success=False,
            message=f"TCP connect timeout after {timeout_ms} ms",
            duration_ms=_elapsed_ms(started),
        )
    except Exception as e:
        return CheckResult(
            check=check,
            success=False,
            message=f"TCP error: {e}",
            duration_ms=_elapsed_ms(started),
        )

    duration = _elapsed_ms(started)
    peer = writer.get_extra_info("peername")
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass  # Peer reset after handshake

    remote = f"{peer[0]}:{peer[1]}" if peer else None
    return CheckResult(
        check=check,
        success=True,
        message="TCP handshake successful",
        duration_ms=duration,
        data=build_metadata(("remoteEndPoint", remote)),
    )


class _UdpProbeProtocol(asyncio.DatagramProtocol):
    """Datagram protocol that resolves a future with the first reply."""

    def __init__(self) -> None:
        self.reply: asyncio.Future[tuple[bytes, tuple]] = (
            asyncio.get_running_loop().create_future()
        )

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        if not self.reply.done():
            self.reply.set_result((data, addr))

    def error_received(self, exc: Exception) -> None:
        if not self.reply.done():
            self.reply.set_exception(exc)


async def udp(
    host: str,
    port: int,
    payload: str,
    timeout_ms: int,
    expect_response: bool,
) -> CheckResult:
    """Send a UDP datagram and optionally wait for a reply.

    Args:
        host: Host name or IP address
        port: Remote port
        payload: UTF-8 datagram body (may be empty)
        timeout_ms: Reply timeout in milliseconds
        expect_response: Wait for one datagram back

    Returns:
        CheckResult with byte counts and the replying endpoint
    """
    check = f"udp:{host}:{port}"
    started = time.perf_counter()
    loop = asyncio.get_running_loop()
    buffer = (payload or "").encode("utf-8")
    transport = None

    try:
        transport, protocol = await loop.create_datagram_endpoint(
            _UdpProbeProtocol, remote_addr=(host, port)
        )
        transport.sendto(buffer)

        if not expect_response:
            return CheckResult(
                check=check,
                success=True,
                message=f"UDP datagram ({len(buffer)} bytes) sent" if buffer else "UDP datagram sent",
                duration_ms=_elapsed_ms(started),
                data=build_metadata(("bytesSent", str(len(buffer)))),
            )

        try:
            data, addr = await asyncio.wait_for(
                asyncio.shield(protocol.reply), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            return CheckResult(
                check=check,
                success=False,
                message=f"No UDP response within {timeout_ms} ms",
                duration_ms=_elapsed_ms(started),
                data=build_metadata(("bytesSent", str(len(buffer)))),
            )

        return CheckResult(
            check=check,
            success=True,
            message=f"Received UDP response ({len(data)} bytes)",
            duration_ms=_elapsed_ms(started),
            data=build_metadata(
                ("bytesSent", str(len(buffer))),
                ("bytesReceived", str(len(data))),
                ("remoteEndPoint", f"{addr[0]}:{addr[1]}"),
            ),
        )
    except Exception as e:
        return CheckResult(
            check=check,
            success=False,
            message=f"UDP error: {e}",
            duration_ms=_elapsed_ms(started),
        )
    finally:
        if transport is not None:
            transport.close()


def parse_header(raw: str) -> tuple[str, str]:
    """Split a `key=value` or `key:value` header string.

    Raises:
        ValueError: If the header has no key
    """
    separator = raw.find("=")
    if separator < 0:
        separator = raw.find(":")
    if separator <= 0:
        raise ValueError(f"Invalid header format '{raw}'. Use key=value.")
    return raw[:separator].strip(), raw[separator + 1 :].strip()


async def http(
    url: str,
    method: str,
    timeout_ms: int,
    body: str | None,
    content_type: str,
    headers: list[str],
) -> CheckResult:
    """Perform an HTTP request and report the status.

    Args:
        url: Absolute URL
        method: HTTP method (case-insensitive)
        timeout_ms: Request timeout in milliseconds
        body: Optional request body
        content_type: Content type used when a body is sent
        headers: Headers as `key=value` or `key:value` strings

    Returns:
        CheckResult, successful for 2xx responses
    """
    check = f"http:{url}"
    started = time.perf_counter()

    try:
        request_headers: dict[str, str] = {}
        for raw in headers:
            if not raw or not raw.strip():
                continue
            key, value = parse_header(raw)
            request_headers[key] = value

        content: bytes | None = None
        if body is not None:
            content = body.encode("utf-8")
            request_headers.setdefault("Content-Type", content_type)

        async with httpx.AsyncClient(timeout=timeout_ms / 1000) as client:
            response = await client.request(
                method.upper(),
                url,
                headers=request_headers,
                content=content,
            )
    except httpx.TimeoutException:
        return CheckResult(
            check=check,
            success=False,
            message=f"HTTP request timed out after {timeout_ms} ms",
            duration_ms=_elapsed_ms(started),
        )
    except Exception as e:
        return CheckResult(
            check=check,
            success=False,
            message=f"HTTP error: {e}",
            duration_ms=_elapsed_ms(started),
        )

    duration = _elapsed_ms(started)
    header_summary = "; ".join(f"{k}: {v}" for k, v in response.headers.items())
    return CheckResult(
        check=check,
        success=response.is_success,
        message=f"HTTP {response.status_code} {response.reason_phrase}".rstrip(),
        duration_ms=duration,
        data=build_metadata(
            ("statusCode", str(response.status_code)),
            ("reasonPhrase", response.reason_phrase),
            ("headers", header_summary),
        ),
    )
