from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Optional

from liveproto import HandshakeBody, Operation, encode_frame, encode_json_frame, validate_handshake

from .signals import ConnEvent, EventKind

logger = logging.getLogger(__name__)


class HeartbeatController:
    """
    Handshake, keepalive and liveness watchdog for one room connection.

    Both timers only post tick events back to the owning connection; the
    connection decides what a tick means in its current state.
    """

    def __init__(
        self,
        room_id: int,
        uid: int,
        post: Callable[[ConnEvent], None],
        interval: float = 30.0,
        check_interval: float = 45.0,
        read_timeout: float = 35.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.room_id = room_id
        self.interval = interval
        self.check_interval = check_interval
        self.read_timeout = read_timeout
        self.clock = clock
        self.last_read: float = 0.0
        self.popularity: Optional[int] = None
        self._post = post
        self._epoch = 0
        self._writer: Optional[asyncio.StreamWriter] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._beat_task: Optional[asyncio.Task] = None

        body = HandshakeBody(roomid=room_id, uid=uid).model_dump()
        validate_handshake(body)
        self.handshake: bytes = encode_json_frame(Operation.HANDSHAKE, body)
        self.heartbeat: bytes = encode_frame(Operation.HEARTBEAT)

    @property
    def beating(self) -> bool:
        return self._beat_task is not None

    @property
    def watching(self) -> bool:
        return self._watchdog_task is not None

    def start(self, writer: asyncio.StreamWriter, epoch: int) -> None:
        """Send the handshake and arm the watchdog for a freshly opened socket."""
        self.stop()
        self._writer = writer
        self._epoch = epoch
        self.touch()
        writer.write(self.handshake)
        self._watchdog_task = asyncio.create_task(
            self._tick(self.check_interval, EventKind.WATCHDOG_TICK, epoch), name=f"watchdog-{self.room_id}"
        )

    def on_ack(self, body: bytes = b"") -> bool:
        """Handle a heartbeat acknowledgement; returns True if this started the heartbeat timer."""
        if len(body) == 4:
            self.popularity = int.from_bytes(body, "big")
            logger.debug("Room %s popularity %s", self.room_id, self.popularity)
        if self._beat_task is not None or self._writer is None:
            return False
        self._beat_task = asyncio.create_task(
            self._tick(self.interval, EventKind.HEARTBEAT_TICK, self._epoch), name=f"heartbeat-{self.room_id}"
        )
        logger.debug("Room %s heartbeat every %ss", self.room_id, self.interval)
        return True

    def beat(self) -> None:
        if self._writer is not None:
            self._writer.write(self.heartbeat)

    def touch(self) -> None:
        self.last_read = self.clock()

    def is_stale(self) -> bool:
        return self.clock() - self.last_read > self.read_timeout

    def stop(self) -> None:
        for task in (self._watchdog_task, self._beat_task):
            if task is not None:
                task.cancel()
        self._watchdog_task = None
        self._beat_task = None
        self._writer = None

    async def _tick(self, period: float, kind: EventKind, epoch: int) -> None:
        while True:
            await asyncio.sleep(period)
            self._post(ConnEvent(kind, epoch))


__all__ = ["HeartbeatController"]
