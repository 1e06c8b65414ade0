from __future__ import annotations

import asyncio
import logging
import socket
import time
from collections.abc import Callable
from typing import Any, Dict, Optional

from liveproto import FrameBuffer, ProtocolError

from monitor.config import merged
from monitor.events import EventSink
from monitor.features.interpreters import NoticeInterpreter

from .dispatcher import MessageDispatcher
from .heartbeat import HeartbeatController
from .signals import ConnectionState, ConnEvent, EventKind

logger = logging.getLogger(__name__)


class RoomConnection:
    """
    One long-lived TCP connection to the broadcast server for a single room.

    Socket activity and timer ticks are queued as `ConnEvent`s and handled one
    at a time by `_run`. Every close that the caller did not ask for leads to
    a new connection attempt; a caller close resolves the future returned by
    `connect()` with the room id.
    """

    def __init__(
        self,
        room_id: int,
        uid: int,
        interpreter: Optional[NoticeInterpreter] = None,
        emitter: Optional[EventSink] = None,
        config: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = merged(config)
        self.host: str = self.config["server_host"]
        self.port: int = int(self.config["server_port"])
        self.room_id = room_id
        self.uid = uid
        self.interpreter = interpreter or NoticeInterpreter()
        self.emitter = emitter

        self.state = ConnectionState.DISCONNECTED
        self.closed_by_caller = False
        self.attempts = 0
        self.buffer = FrameBuffer(int(self.config["max_frame_size"]))
        self.heartbeat = HeartbeatController(
            room_id,
            uid,
            self._post,
            interval=float(self.config["heartbeat_interval"]),
            check_interval=float(self.config["health_check_interval"]),
            read_timeout=float(self.config["read_timeout"]),
            clock=clock,
        )
        self.dispatcher = MessageDispatcher(self, self.heartbeat, self.interpreter)

        self._events: Optional[asyncio.Queue[ConnEvent]] = None
        self._epoch = 0
        self._closed_epoch = -1
        self._writer: Optional[asyncio.StreamWriter] = None
        self._socket_task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._done: Optional[asyncio.Future] = None

    def connect(self) -> asyncio.Future:
        """Start the connection; the returned future resolves only on caller close."""
        if self._done is not None and not self._done.done():
            return self._done
        self._done = asyncio.get_running_loop().create_future()
        self._events = asyncio.Queue()
        self.closed_by_caller = False
        self._open()
        self._loop_task = asyncio.create_task(self._run(), name=f"room-{self.room_id}")
        return self._done

    def close(self, by_caller: bool = True) -> None:
        """Tear down socket and timers. Safe to call repeatedly and from any handler."""
        self.closed_by_caller = self.closed_by_caller or by_caller
        if self._done is None or self._done.done():
            return
        self._teardown()
        self.state = ConnectionState.CLOSING
        self._post(ConnEvent(EventKind.CLOSED, self._epoch))

    def emit(self, event: str, payload: Any) -> None:
        if self.emitter is not None:
            self.emitter.emit(event, payload)

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def _post(self, event: ConnEvent) -> None:
        if self._events is None:
            return
        if event.kind is EventKind.CLOSED:
            # exactly one close per socket generation
            if event.epoch == self._closed_epoch:
                return
            self._closed_epoch = event.epoch
        self._events.put_nowait(event)

    def _open(self) -> None:
        self._epoch += 1
        self.attempts += 1
        self.state = ConnectionState.CONNECTING
        self.buffer.reset()
        delay = float(self.config["reconnect_delay"]) if self.attempts > 1 else 0.0
        self._socket_task = asyncio.create_task(
            self._pump(self._epoch, delay), name=f"room-{self.room_id}-socket-{self._epoch}"
        )

    async def _pump(self, epoch: int, delay: float) -> None:
        """Turn one socket's lifetime into connected/data/error/closed events."""
        try:
            if delay:
                await asyncio.sleep(delay)
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except (OSError, asyncio.TimeoutError) as exc:
            self._post(ConnEvent(EventKind.ERROR, epoch, exc))
            self._post(ConnEvent(EventKind.CLOSED, epoch))
            return
        _enable_keepalive(writer)
        self._post(ConnEvent(EventKind.CONNECTED, epoch, writer))
        try:
            while True:
                data = await reader.read(int(self.config["read_chunk_size"]))
                if not data:
                    break
                self._post(ConnEvent(EventKind.DATA, epoch, data))
        except (ConnectionError, OSError) as exc:
            self._post(ConnEvent(EventKind.ERROR, epoch, exc))
        self._post(ConnEvent(EventKind.CLOSED, epoch))

    async def _run(self) -> None:
        assert self._events is not None and self._done is not None
        while not self._done.done():
            event = await self._events.get()
            if event.epoch != self._epoch:
                if event.kind is EventKind.CONNECTED:
                    _close_writer(event.data)
                continue
            try:
                self._handle(event)
            except Exception as exc:
                logger.exception("Room %s failed handling %s: %s", self.room_id, event.kind.value, exc)
                self.close(by_caller=False)

    def _handle(self, event: ConnEvent) -> None:
        if event.kind is EventKind.CONNECTED:
            self._on_connected(event.data)
        elif event.kind is EventKind.DATA:
            self._on_data(event.data)
        elif event.kind is EventKind.ERROR:
            logger.warning("Room %s observed an error: %s", self.room_id, event.data)
        elif event.kind is EventKind.CLOSED:
            self._on_closed()
        elif event.kind is EventKind.WATCHDOG_TICK:
            if self.connected and self.heartbeat.is_stale():
                logger.warning("Room %s silent for over %ss, reconnecting", self.room_id, self.heartbeat.read_timeout)
                self.close(by_caller=False)
        elif event.kind is EventKind.HEARTBEAT_TICK:
            if self.connected:
                self.heartbeat.beat()

    def _on_connected(self, writer: asyncio.StreamWriter) -> None:
        if self.state is not ConnectionState.CONNECTING:
            _close_writer(writer)
            return
        self._writer = writer
        self.state = ConnectionState.CONNECTED
        logger.info("Room %s connected to %s:%s", self.room_id, self.host, self.port)
        self.heartbeat.start(writer, self._epoch)

    def _on_data(self, data: bytes) -> None:
        if not self.connected:
            return
        self.heartbeat.touch()
        self.buffer.feed(data)
        logger.debug("Room %s buffer %s bytes, next frame %s", self.room_id, len(self.buffer), self.buffer.total_length)
        try:
            for frame in self.buffer.frames():
                self.dispatcher.dispatch(frame)
                if not self.connected:
                    # frames behind a close belong to a socket that is already gone
                    break
        except ProtocolError as exc:
            logger.error("Room %s frame decode failed, restarting connection: %s", self.room_id, exc)
            self.close(by_caller=False)

    def _on_closed(self) -> None:
        assert self._done is not None
        self._teardown()
        self.state = ConnectionState.DISCONNECTED
        if self.closed_by_caller:
            logger.info("Room %s closed", self.room_id)
            if not self._done.done():
                self._done.set_result(self.room_id)
            return
        logger.warning("Room %s lost connection, reconnecting", self.room_id)
        self._open()

    def _teardown(self) -> None:
        self.heartbeat.stop()
        if self._socket_task is not None and not self._socket_task.done():
            self._socket_task.cancel()
        self._socket_task = None
        if self._writer is not None:
            _close_writer(self._writer)
            self._writer = None


def _enable_keepalive(writer: asyncio.StreamWriter) -> None:
    sock = writer.get_extra_info("socket")
    if sock is None:
        return
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    except OSError as exc:
        logger.debug("Could not enable keepalive: %s", exc)


def _close_writer(writer: asyncio.StreamWriter) -> None:
    try:
        writer.close()
    except Exception as e:
        logger.debug("Error during writer cleanup: %s", e)


__all__ = ["RoomConnection"]
