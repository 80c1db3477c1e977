"""Unit tests for the network probes against local endpoints."""

import asyncio
import socket
from unittest.mock import patch

import httpx
import pytest

from accessibility_agent.agent.executor import JobExecutor
from accessibility_agent.agent.types import Job
from accessibility_agent.checks import network
from accessibility_agent.checks.models import CheckResult, build_metadata
from accessibility_agent.checks.network import parse_header
from accessibility_agent.checks.runner import NetworkCheckRunner


def closed_port() -> int:
    """Return a local TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestBuildMetadata:
    """Tests for check metadata building."""

    def test_blank_values_are_dropped(self):
        assert build_metadata(("a", "1"), ("b", None), ("c", "  ")) == {"a": "1"}

    def test_nothing_left_is_none(self):
        assert build_metadata(("a", None)) is None

    def test_case_insensitive_keys_last_value_wins(self):
        assert build_metadata(("Status", "1"), ("status", "2")) == {"Status": "2"}


class TestParseHeader:
    """Tests for header string parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("X-Trace=abc", ("X-Trace", "abc")),
            ("Accept: text/html", ("Accept", "text/html")),
            ("Authorization=Bearer a:b", ("Authorization", "Bearer a:b")),
        ],
    )
    def test_valid_headers(self, raw, expected):
        assert parse_header(raw) == expected

    @pytest.mark.parametrize("raw", ["no-separator", "=value", ":value"])
    def test_missing_key_rejected(self, raw):
        with pytest.raises(ValueError):
            parse_header(raw)


class TestTcp:
    """Tests for the TCP probe."""

    @pytest.mark.asyncio
    async def test_open_port(self):
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]

        async with server:
            result = await network.tcp("127.0.0.1", port, 1000)

        assert result.success is True
        assert result.check == f"tcp:127.0.0.1:{port}"
        assert result.data == {"remoteEndPoint": f"127.0.0.1:{port}"}
        assert result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_closed_port_fails_without_raising(self):
        port = closed_port()

        result = await network.tcp("127.0.0.1", port, 1000)

        assert result.success is False
        assert result.check == f"tcp:127.0.0.1:{port}"
        assert result.message


class TestUdp:
    """Tests for the UDP probe."""

    @pytest.mark.asyncio
    async def test_send_without_response(self):
        result = await network.udp("127.0.0.1", closed_port(), "", 200, expect_response=False)

        assert result.success is True
        assert result.message == "UDP datagram sent"
        assert result.data is None

    @pytest.mark.asyncio
    async def test_echo_response(self):
        loop = asyncio.get_running_loop()

        class Echo(asyncio.DatagramProtocol):
            def connection_made(self, transport):
                self.transport = transport

            def datagram_received(self, data, addr):
                self.transport.sendto(data.upper(), addr)

        transport, _ = await loop.create_datagram_endpoint(
            Echo, local_addr=("127.0.0.1", 0)
        )
        port = transport.get_extra_info("sockname")[1]
        try:
            result = await network.udp("127.0.0.1", port, "ping", 1000, expect_response=True)
        finally:
            transport.close()

        assert result.success is True
        assert result.data["bytesSent"] == "4"
        assert result.data["bytesReceived"] == "4"
        assert result.data["remoteEndPoint"] == f"127.0.0.1:{port}"


class TestHttp:
    """Tests for the HTTP probe with a mocked transport."""

    @pytest.fixture
    def requests(self):
        return []

    @pytest.fixture
    def mock_client(self, requests):
        real_client = httpx.AsyncClient

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            status = 503 if request.url.path == "/down" else 200
            return httpx.Response(status, headers={"X-Served-By": "test"})

        def factory(**kwargs):
            return real_client(transport=httpx.MockTransport(handler), **kwargs)

        with patch("accessibility_agent.checks.network.httpx.AsyncClient", side_effect=factory):
            yield

    @pytest.mark.asyncio
    async def test_success_status(self, mock_client, requests):
        result = await network.http(
            "http://svc.test/health", "get", 1000, None, "text/plain", ["X-Trace=1"]
        )

        assert result.success is True
        assert result.check == "http:http://svc.test/health"
        assert result.message == "HTTP 200 OK"
        assert result.data["statusCode"] == "200"
        assert requests[0].method == "GET"
        assert requests[0].headers["X-Trace"] == "1"

    @pytest.mark.asyncio
    async def test_error_status_is_failure(self, mock_client):
        result = await network.http("http://svc.test/down", "GET", 1000, None, "text/plain", [])

        assert result.success is False
        assert result.data["statusCode"] == "503"

    @pytest.mark.asyncio
    async def test_body_sets_content_type(self, mock_client, requests):
        await network.http(
            "http://svc.test/submit", "POST", 1000, '{"a": 1}', "application/json", []
        )

        assert requests[0].content == b'{"a": 1}'
        assert requests[0].headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_invalid_header_is_reported(self, mock_client, requests):
        result = await network.http("http://svc.test/", "GET", 1000, None, "text/plain", ["bad"])

        assert result.success is False
        assert result.message.startswith("HTTP error:")
        assert requests == []


class TestNetworkCheckRunner:
    """Tests for jobs executed against real sockets."""

    @pytest.mark.asyncio
    async def test_tcp_job_against_closed_port(self):
        port = closed_port()
        executor = JobExecutor(NetworkCheckRunner())

        result = await executor.execute(
            Job(id="j1", type="tcp", payload={"host": "127.0.0.1", "port": port, "timeoutMs": 500})
        )

        assert result.success is False
        assert len(result.checks) == 1
        assert isinstance(result.checks[0], CheckResult)
        assert result.checks[0].check == f"tcp:127.0.0.1:{port}"
        assert result.checks[0].success is False
