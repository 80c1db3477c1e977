"""Event transport for the coordinator connection.

The session only needs a persistent bidirectional channel that can send named
events, send correlated invocations and yield inbound frames. Frames are JSON
objects:

- event: {"type": "event", "event": <name>, "data": <payload>}
- invocation: {"type": "invoke", "id": <id>, "method": <name>, "data": <payload>}
- completion: {"type": "result", "id": <id>, "data": <response>, "error": <str|null>}
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol
from urllib.parse import urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from ..errors import TransportError

logger = logging.getLogger(__name__)

# Default timeouts (seconds)
DEFAULT_OPEN_TIMEOUT = 20.0
DEFAULT_PING_INTERVAL = 20.0

AGENT_PATH = "agent"


class EventTransport(Protocol):
    """One connection epoch to the coordinator."""

    async def connect(self) -> None: ...

    async def send_event(self, event: str, data: Any) -> None: ...

    async def send_invoke(self, invocation_id: str, method: str, data: Any) -> None: ...

    def frames(self) -> AsyncIterator[dict[str, Any]]: ...

    async def close(self) -> None: ...


def build_agent_url(server_url: str, token: str, agent_name: str) -> str:
    """Build the WebSocket URL of the agent endpoint.

    http(s) schemes are mapped to ws(s); the token and agent name travel as
    query parameters.
    """
    parts = urlsplit(server_url.strip())
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme.lower(), parts.scheme.lower())
    if scheme not in ("ws", "wss"):
        raise TransportError(message=f"Unsupported server URL scheme: {server_url}")

    path = parts.path.rstrip("/") + "/" + AGENT_PATH
    query = urlencode({"token": token, "agent": agent_name})
    return urlunsplit((scheme, parts.netloc, path, query, ""))


class WebSocketTransport:
    """EventTransport over a WebSocket connection."""

    def __init__(
        self,
        server_url: str,
        token: str,
        agent_name: str,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        ping_interval: float = DEFAULT_PING_INTERVAL,
    ):
        self.url = build_agent_url(server_url, token, agent_name)
        self._token = token
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._ws: ClientConnection | None = None

    async def connect(self) -> None:
        """Open the WebSocket connection.

        Raises:
            TransportError: If the handshake fails
        """
        try:
            self._ws = await connect(
                self.url,
                additional_headers={"Authorization": f"Bearer {self._token}"},
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
            )
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as e:
            raise TransportError(message=f"Failed to connect to {self.url}: {e}") from e

        logger.debug(f"WebSocket connected to {self.url}")

    async def send_event(self, event: str, data: Any) -> None:
        await self._send({"type": "event", "event": event, "data": data})

    async def send_invoke(self, invocation_id: str, method: str, data: Any) -> None:
        await self._send({"type": "invoke", "id": invocation_id, "method": method, "data": data})

    async def _send(self, frame: dict[str, Any]) -> None:
        if self._ws is None:
            raise TransportError(message="Transport is not connected")
        try:
            await self._ws.send(json.dumps(frame, default=str))
        except ConnectionClosed as e:
            raise TransportError(message=f"Connection closed: {e}") from e

    async def frames(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded frames until the connection closes.

        Undecodable frames are logged and skipped.
        """
        if self._ws is None:
            raise TransportError(message="Transport is not connected")

        try:
            async for raw in self._ws:
                try:
                    frame = json.loads(raw)
                except ValueError:
                    logger.warning("Discarding malformed frame from coordinator")
                    continue
                if not isinstance(frame, dict):
                    logger.warning("Discarding non-object frame from coordinator")
                    continue
                yield frame
        except ConnectionClosed as e:
            raise TransportError(message=f"Connection closed: {e}") from e

    async def close(self) -> None:
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()
