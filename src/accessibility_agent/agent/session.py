"""ConnectionSession - persistent coordinator connection with reconnect.

Handles:
- Connection handshake through a pluggable transport
- Reconnect with a linear, capped backoff
- Serial dispatch of inbound events to registered handlers
- Request/response invocations correlated by id
- Best-effort outbound events
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from ..errors import InvocationError, InvokeTimeoutError, ReconnectExhaustedError, TransportError
from .transport import EventTransport
from .types import AgentOptions, ConnectionState

logger = logging.getLogger(__name__)

DEFAULT_INVOKE_TIMEOUT = 30.0

TransportFactory = Callable[[], EventTransport]
EventHandler = Callable[[Any], Awaitable[None]]
LifecycleHook = Callable[[], Awaitable[None]]


class ReconnectPolicy:
    """Linear backoff: the n-th retry waits min(max_delay, initial_delay * (n + 1)).

    The retry counter is zero-based and restarts after every successful
    connect. Once it reaches max_attempts, no further delay is given.
    """

    def __init__(
        self,
        initial_delay: float = 2.0,
        max_delay: float = 30.0,
        max_attempts: int | None = None,
    ):
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts

    @classmethod
    def from_options(cls, options: AgentOptions) -> "ReconnectPolicy":
        return cls(
            initial_delay=options.reconnect_delay,
            max_delay=options.reconnect_delay_max,
            max_attempts=options.max_reconnect_attempts,
        )

    def next_delay(self, retry_count: int) -> float | None:
        """Delay in seconds before retry number retry_count, or None to give up."""
        if self.max_attempts is not None and retry_count >= self.max_attempts:
            return None
        return min(self.max_delay, self.initial_delay * (retry_count + 1))


class ConnectionSession:
    """Owns the coordinator connection and its event dispatch.

    Each successful connect starts one connection epoch with two tasks: a
    reader that decodes frames and a dispatcher that runs the on-connected
    hook and then delivers queued events one at a time.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        policy: ReconnectPolicy | None = None,
    ):
        """Initialize session.

        Args:
            transport_factory: Creates a fresh transport for each connect
            policy: Reconnect policy (defaults to 2s/30s, unlimited attempts)
        """
        self._transport_factory = transport_factory
        self._policy = policy or ReconnectPolicy()

        self._state = ConnectionState.DISCONNECTED
        self._transport: EventTransport | None = None
        self._handlers: dict[str, EventHandler] = {}
        self._on_connected: LifecycleHook | None = None
        self._on_disconnected: LifecycleHook | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._reader_task: asyncio.Task | None = None
        self._dispatch_task: asyncio.Task | None = None
        self._epoch_tasks: set[asyncio.Task] = set()
        self._closing = False
        self._closed = asyncio.Event()

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def on(self, event: str, handler: EventHandler) -> None:
        """Register the handler for an inbound event, replacing any previous one."""
        self._handlers[event] = handler

    def on_connected(self, hook: LifecycleHook) -> None:
        self._on_connected = hook

    def on_disconnected(self, hook: LifecycleHook) -> None:
        self._on_disconnected = hook

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run coro alongside event dispatch; it is cancelled when the connection ends."""
        task = asyncio.create_task(coro)
        self._epoch_tasks.add(task)
        task.add_done_callback(self._epoch_tasks.discard)
        return task

    async def connect(self) -> bool:
        """Open a connection and start a new epoch.

        Returns:
            True if connected, False if the attempt failed or the session is closing
        """
        if self._closing:
            return False
        if self._state is not ConnectionState.DISCONNECTED:
            return self.is_connected

        self._state = ConnectionState.CONNECTING
        try:
            transport = self._transport_factory()
            await transport.connect()
        except TransportError as e:
            self._state = ConnectionState.DISCONNECTED
            logger.warning(f"Connection attempt failed: {e}")
            return False

        if self._closing:
            self._state = ConnectionState.DISCONNECTED
            await self._close_transport(transport)
            return False

        self._transport = transport
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to coordinator")

        events: asyncio.Queue = asyncio.Queue()
        self._dispatch_task = asyncio.create_task(self._dispatch(events))
        self._reader_task = asyncio.create_task(self._read_frames(transport, events))
        return True

    async def run(self) -> None:
        """Keep the session connected until close().

        Raises:
            ReconnectExhaustedError: If the configured attempt count runs out
        """
        retries = 0
        while not self._closing:
            if await self.connect():
                retries = 0
                reader = self._reader_task
                if reader is not None:
                    await asyncio.wait({reader})

            if self._closing:
                break

            delay = self._policy.next_delay(retries)
            if delay is None:
                raise ReconnectExhaustedError(
                    message=f"Gave up reconnecting after {retries} attempts",
                    attempts=retries,
                )
            retries += 1
            logger.info(f"Reconnecting in {delay:.1f}s (attempt {retries})")
            await self._wait_closed(delay)

        logger.debug("Session run loop finished")

    async def close(self) -> None:
        """Stop reconnecting and tear down the current connection."""
        self._closing = True
        self._closed.set()

        reader, self._reader_task = self._reader_task, None
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)

        if self._transport is not None:
            await self._teardown(self._transport, notify=False)
        self._state = ConnectionState.DISCONNECTED

    async def emit(self, event: str, payload: Any) -> bool:
        """Send an event if connected.

        Never raises; nothing is buffered while disconnected.

        Returns:
            True if the event was handed to the transport
        """
        transport = self._transport
        if not self.is_connected or transport is None:
            logger.debug(f"Not connected; dropping '{event}' event")
            return False

        try:
            await transport.send_event(event, payload)
        except Exception as e:
            logger.warning(f"Failed to send '{event}' event: {e}")
            return False
        return True

    async def invoke(
        self, method: str, payload: Any, timeout: float = DEFAULT_INVOKE_TIMEOUT
    ) -> Any:
        """Call a coordinator method and wait for its response.

        Raises:
            TransportError: If not connected or the connection drops
            InvokeTimeoutError: If no response arrives within timeout seconds
            InvocationError: If the coordinator reports an error
        """
        transport = self._transport
        if not self.is_connected or transport is None:
            raise TransportError(message=f"Cannot invoke '{method}': not connected")

        invocation_id = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[invocation_id] = future
        try:
            await transport.send_invoke(invocation_id, method, payload)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise InvokeTimeoutError(
                message=f"Invocation '{method}' timed out after {timeout}s"
            ) from None
        finally:
            self._pending.pop(invocation_id, None)

    async def _read_frames(self, transport: EventTransport, events: asyncio.Queue) -> None:
        try:
            async for frame in transport.frames():
                kind = frame.get("type")
                if kind == "result":
                    self._complete_invocation(frame)
                elif kind == "event" and isinstance(frame.get("event"), str):
                    events.put_nowait((frame["event"], frame.get("data")))
                else:
                    logger.debug(f"Ignoring frame of type {kind!r}")
            logger.warning("Connection closed by coordinator")
        except TransportError as e:
            logger.warning(f"Connection lost: {e}")
        except Exception as e:
            logger.exception(f"Reading from coordinator failed: {e}")
        finally:
            await self._teardown(transport, notify=not self._closing)

    async def _dispatch(self, events: asyncio.Queue) -> None:
        if self._on_connected is not None:
            try:
                await self._on_connected()
            except Exception as e:
                logger.exception(f"On-connected hook failed: {e}")

        # A cancel can be swallowed by wait_for on Python < 3.12; teardown
        # detaches this task first, so detachment also means the epoch is over
        while self._dispatch_task is asyncio.current_task():
            event, data = await events.get()
            handler = self._handlers.get(event)
            if handler is None:
                logger.debug(f"No handler for event '{event}'")
                continue
            try:
                await handler(data)
            except Exception as e:
                logger.exception(f"Handler for '{event}' failed: {e}")

    def _complete_invocation(self, frame: dict[str, Any]) -> None:
        future = self._pending.get(str(frame.get("id")))
        if future is None or future.done():
            logger.debug(f"Discarding result for unknown invocation {frame.get('id')!r}")
            return

        error = frame.get("error")
        if error:
            future.set_exception(InvocationError(message=str(error)))
        else:
            future.set_result(frame.get("data"))

    async def _teardown(self, transport: EventTransport, notify: bool) -> None:
        """End the epoch owned by transport; a stale transport is ignored."""
        if self._transport is not transport:
            return

        self._transport = None
        self._state = ConnectionState.DISCONNECTED

        # Cancel before failing pending invocations so a waiter sees the
        # cancellation rather than a TransportError it would log and survive
        dispatch, self._dispatch_task = self._dispatch_task, None
        tasks = [t for t in (dispatch, *self._epoch_tasks) if t is not None and not t.done()]
        tasks = [t for t in tasks if t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(message="Connection lost"))

        await self._close_transport(transport)

        if notify and self._on_disconnected is not None:
            try:
                await self._on_disconnected()
            except Exception as e:
                logger.exception(f"On-disconnected hook failed: {e}")

    async def _close_transport(self, transport: EventTransport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"Error closing transport: {e}")

    async def _wait_closed(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
