from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from functools import partial
from typing import Any, Callable, Iterable, Iterator, Optional, Protocol

import requests

from .api import create_session
from .config import HTTP_TIMEOUT, RECONNECT_DELAY
from .errors import MalformedEventError, StreamError
from .events import Event, decode_event

logger = logging.getLogger("hn_reader")

FrameHandler = Callable[[str], None]
ErrorHandler = Callable[[BaseException], None]


class StreamHandle(Protocol):
    def close(self) -> None: ...


# factory(on_frame, on_error) -> handle; the handle delivers callbacks on the event loop
TransportFactory = Callable[[FrameHandler, ErrorHandler], StreamHandle]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    ERROR = "error"


def iter_sse_data(lines: Iterable[Optional[str]]) -> Iterator[str]:
    """Yield the ``data`` payload of each Server-Sent Event in ``lines``."""
    data_lines = []
    for line in lines:
        if line is None:
            continue
        if line == "":
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)


class SSETransport:
    """Reads an SSE response on a daemon thread and posts frames to ``loop``."""

    def __init__(
        self,
        url: str,
        loop: asyncio.AbstractEventLoop,
        on_frame: FrameHandler,
        on_error: ErrorHandler,
        session: Optional[requests.Session] = None,
        connect_timeout: float = HTTP_TIMEOUT,
    ):
        self.url = url
        self.loop = loop
        self.on_frame = on_frame
        self.on_error = on_error
        self.session = session or create_session(retries=0)
        self.connect_timeout = connect_timeout
        self._closed = threading.Event()
        self._response: Optional[requests.Response] = None
        self._thread = threading.Thread(target=self._run, name="sse-reader", daemon=True)

    def start(self) -> "SSETransport":
        self._thread.start()
        return self

    def _run(self) -> None:
        try:
            with self.session.get(
                self.url,
                stream=True,
                timeout=(self.connect_timeout, None),
                headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            ) as resp:
                resp.raise_for_status()
                resp.encoding = "utf-8"
                self._response = resp
                # close() may have run before the response was visible to it
                if self._closed.is_set():
                    return
                logger.debug("SSE response open from %s", self.url)
                lines = resp.iter_lines(chunk_size=None, decode_unicode=True)
                for frame in iter_sse_data(lines):
                    if self._closed.is_set():
                        return
                    self._post(self.on_frame, frame)
            if not self._closed.is_set():
                raise StreamError("event stream ended")
        except Exception as e:
            # after close() the reader is torn down under us; that is not an error
            if not self._closed.is_set():
                self._post(self.on_error, e)

    def _post(self, callback: Callable[[Any], None], arg: Any) -> None:
        try:
            self.loop.call_soon_threadsafe(callback, arg)
        except RuntimeError:
            logger.debug("Event loop closed; dropping SSE callback")

    def close(self) -> None:
        self._closed.set()
        resp = self._response
        if resp is not None:
            resp.close()


def sse_transport_factory(
    url: str,
    loop: asyncio.AbstractEventLoop,
    session: Optional[requests.Session] = None,
) -> TransportFactory:
    def factory(on_frame: FrameHandler, on_error: ErrorHandler) -> SSETransport:
        return SSETransport(url, loop, on_frame, on_error, session=session).start()

    return factory


class EventStreamClient:
    """Owns the single push connection and its reconnection timer.

    A failed or ended connection is closed and discarded, and exactly one
    reconnection is scheduled ``reconnect_delay`` seconds later, forever.
    Callbacks from a discarded connection are ignored. After ``close()``
    nothing reconnects.
    """

    def __init__(
        self,
        factory: TransportFactory,
        dispatch: Callable[[Event], None],
        call_later: Callable[[float, Callable[[], None]], Any],
        reconnect_delay: float = RECONNECT_DELAY,
    ):
        self.factory = factory
        self.dispatch = dispatch
        self.call_later = call_later
        self.reconnect_delay = reconnect_delay
        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self._handle: Optional[StreamHandle] = None
        self._timer: Any = None
        self._conn_id = 0
        self._closed = False

    @property
    def reconnect_pending(self) -> bool:
        return self._timer is not None

    def connect(self) -> None:
        if self._closed:
            logger.debug("Event stream client is closed; not connecting")
            return
        if self._handle is not None or self._timer is not None:
            return
        self._open()

    def _open(self) -> None:
        self._conn_id += 1
        conn_id = self._conn_id
        self.state = ConnectionState.CONNECTING
        self.attempts += 1
        logger.info("Connecting event stream (attempt %d)", self.attempts)
        try:
            handle = self.factory(
                partial(self._on_frame, conn_id), partial(self._on_error, conn_id)
            )
        except Exception as e:
            self._fail(e)
            return
        if conn_id == self._conn_id:
            self._handle = handle
        else:
            # failed (or closed) before the factory returned
            handle.close()

    def _on_frame(self, conn_id: int, frame: str) -> None:
        if conn_id != self._conn_id or self._closed:
            return
        if self.state is ConnectionState.CONNECTING:
            self.state = ConnectionState.OPEN
            logger.info("Event stream open")
        try:
            event = decode_event(frame)
        except MalformedEventError as e:
            logger.warning("Dropping malformed event: %s", e)
            return
        try:
            self.dispatch(event)
        except Exception:
            logger.exception("Failed to apply %s event", event.type)

    def _on_error(self, conn_id: int, error: BaseException) -> None:
        if conn_id != self._conn_id or self._closed:
            return
        self._fail(error)

    def _fail(self, error: BaseException) -> None:
        logger.warning(
            "Event stream error: %s; reconnecting in %.1fs", error, self.reconnect_delay
        )
        self._conn_id += 1
        self._close_handle()
        self.state = ConnectionState.ERROR
        if self._timer is None:
            self._timer = self.call_later(self.reconnect_delay, self._reconnect)

    def _reconnect(self) -> None:
        self._timer = None
        if self._closed:
            return
        self._open()

    def _close_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    def close(self) -> None:
        self._closed = True
        self._conn_id += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._close_handle()
        self.state = ConnectionState.DISCONNECTED
        logger.info("Event stream closed")
