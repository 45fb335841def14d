from __future__ import annotations
import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol, Union

import aiohttp

log = logging.getLogger(__name__)

Frame = Union[str, bytes]
RecordHandler = Callable[[Dict[str, Any]], None]
StateListener = Callable[["TransportState", "TransportState"], None]


class TransportState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_PENDING = "reconnect_pending"


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential reconnect delay in seconds.

    delay(attempt) = min(base * 2 ** attempt, maximum)

    attempt counts consecutive failures and goes back to 0 once a
    connection is established, so the delay grows while the source is down.
    """

    base: float = 1.0
    maximum: float = 30.0

    def delay(self, attempt: int) -> float:
        # 2 ** 64 is far past any sane maximum, stop growing there
        return min(self.base * (2 ** min(attempt, 64)), self.maximum)


class FlowStream(Protocol):
    """
    One physical connection to the flow source.

    The manager creates a fresh stream per attempt via a factory, so tests
    can inject a fake without touching the network.
    """

    async def open(self) -> None:
        ...

    def messages(self) -> AsyncIterator[Frame]:
        """
        Yield raw frames until the peer closes. Raise on stream errors.
        """
        ...

    async def close(self) -> None:
        ...


class WebSocketStream:
    """
    aiohttp WebSocket client stream.

    TEXT and BINARY frames are passed through. An ERROR frame raises
    ConnectionError, a CLOSE frame ends iteration.
    """

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat: Optional[float] = 30.0,
    ):
        self.url = url
        self.heartbeat = heartbeat
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    async def open(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        self._ws = await self._session.ws_connect(self.url, heartbeat=self.heartbeat)

    async def messages(self) -> AsyncIterator[Frame]:
        if self._ws is None:
            raise ConnectionError("websocket is not open")

        async for msg in self._ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise ConnectionError(f"websocket error: {self._ws.exception()}")

    async def close(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None


def decode_frame(frame: Frame) -> Optional[List[Dict[str, Any]]]:
    """
    Decode one frame into raw flow dicts.

    A JSON object is one record, a JSON array is a batch. Non object
    items in a batch are skipped. Returns None when the frame is not JSON
    or has no usable shape, including bytes that are not valid UTF-8
    and nesting too deep to parse.
    """
    try:
        if isinstance(frame, bytes):
            frame = frame.decode("utf-8")
        obj = json.loads(frame.strip())
    except (ValueError, RecursionError):
        return None

    if isinstance(obj, dict):
        return [obj]
    if isinstance(obj, list):
        return [item for item in obj if isinstance(item, dict)]
    return None


class TransportManager:
    """
    Owns one logical connection to the flow source.

    States:
      disconnected -> connecting -> connected
      connecting / connected -> reconnect_pending on any error or close
      reconnect_pending -> connecting when the backoff timer fires
      any -> disconnected on close()

    Invariants:
      at most one connection task is alive
      at most one reconnect timer is pending, a new one always cancels the old
      close() cancels the timer synchronously, nothing reconnects afterwards

    Retries never give up while the owner has not called close().
    """

    def __init__(
        self,
        stream_factory: Callable[[], FlowStream],
        backoff: Optional[BackoffPolicy] = None,
        name: str = "flow stream",
    ):
        self._stream_factory = stream_factory
        self.backoff = backoff or BackoffPolicy()
        self.name = name

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._state = TransportState.DISCONNECTED
        self._closed = True
        self._attempt = 0
        self._on_record: Optional[RecordHandler] = None
        self._task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None

        self._state_listeners: List[StateListener] = []
        self._connected_listeners: List[Callable[[], None]] = []

        self._received = 0
        self._dropped = 0
        self._connects = 0
        self._last_delay: Optional[float] = None

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def has_pending_reconnect(self) -> bool:
        return self._reconnect_handle is not None

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_connected_listener(self, listener: Callable[[], None]) -> None:
        """
        Called every time the connection is (re)established.
        """
        self._connected_listeners.append(listener)

    def connect(self, on_record: RecordHandler) -> None:
        """
        Start streaming into on_record. Must run inside an event loop.

        Any previous connection and its reconnect timer are torn down first.
        """
        loop = asyncio.get_running_loop()
        self._teardown()

        self._loop = loop
        self._on_record = on_record
        self._closed = False
        self._attempt = 0
        self._start_attempt()

    def close(self) -> None:
        self._closed = True
        self._teardown()
        self._set_state(TransportState.DISCONNECTED)

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "attempt": self._attempt,
            "reconnect_pending": self.has_pending_reconnect,
            "last_delay_seconds": self._last_delay,
            "connects": self._connects,
            "frames_received": self._received,
            "frames_dropped": self._dropped,
        }

    def _teardown(self) -> None:
        self._cancel_reconnect()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _start_attempt(self) -> None:
        self._reconnect_handle = None
        if self._closed or self._loop is None:
            return
        self._set_state(TransportState.CONNECTING)
        self._task = self._loop.create_task(self._run())

    async def _run(self) -> None:
        me = asyncio.current_task()
        stream = self._stream_factory()
        try:
            await stream.open()
            self._attempt = 0
            self._connects += 1
            self._set_state(TransportState.CONNECTED)
            self._notify_connected()

            async for frame in stream.messages():
                self._dispatch(frame)
            reason = "closed by peer"
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
        finally:
            try:
                await stream.close()
            except Exception:
                log.exception("%s: error while closing stream", self.name)

        if self._task is me:
            self._task = None
            self._handle_failure(reason)

    def _dispatch(self, frame: Frame) -> None:
        self._received += 1
        records = decode_frame(frame)
        if records is None:
            self._dropped += 1
            log.warning("%s: dropping undecodable frame", self.name)
            return

        if self._on_record is None:
            return
        for record in records:
            try:
                self._on_record(record)
            except Exception:
                log.exception("%s: record handler failed", self.name)

    def _handle_failure(self, reason: str) -> None:
        if self._closed:
            return
        log.warning("%s: connection lost (%s)", self.name, reason)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        if self._loop is None:
            return

        delay = self.backoff.delay(self._attempt)
        self._attempt += 1
        self._last_delay = delay
        self._set_state(TransportState.RECONNECT_PENDING)
        log.info("%s: reconnecting in %.1fs (attempt %d)", self.name, delay, self._attempt)
        self._reconnect_handle = self._loop.call_later(delay, self._start_attempt)

    def _notify_connected(self) -> None:
        for listener in list(self._connected_listeners):
            try:
                listener()
            except Exception:
                log.exception("%s: connected listener failed", self.name)

    def _set_state(self, new: TransportState) -> None:
        previous = self._state
        if new == previous:
            return
        self._state = new
        log.info("%s: %s -> %s", self.name, previous.value, new.value)
        for listener in list(self._state_listeners):
            try:
                listener(new, previous)
            except Exception:
                log.exception("%s: state listener failed", self.name)
