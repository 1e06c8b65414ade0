from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from liveproto import ErrorCode, Frame, Operation, ProtocolError, parse_notification, unwrap_envelope
from liveproto import validator

from .heartbeat import HeartbeatController

if TYPE_CHECKING:
    from monitor.features.interpreters import NoticeInterpreter, RoomHandle

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """Routes decoded frames by operation code."""

    def __init__(self, conn: "RoomHandle", heartbeat: HeartbeatController, interpreter: "NoticeInterpreter") -> None:
        self.conn = conn
        self.heartbeat = heartbeat
        self.interpreter = interpreter

    def dispatch(self, frame: Frame) -> None:
        if frame.operation == Operation.NOTIFICATION:
            self._on_notification(frame)
        elif frame.operation == Operation.HEARTBEAT_ACK:
            self.heartbeat.on_ack(frame.body)
        else:
            logger.debug("Room %s ignoring operation %s", self.conn.room_id, frame.operation)

    def _on_notification(self, frame: Frame) -> None:
        # a bad payload only costs this frame; the stream itself is still aligned
        try:
            raw = frame.json()
            if not isinstance(raw, dict):
                raise ProtocolError(ErrorCode.SCHEMA_MISMATCH, f"Expected an object, got {type(raw).__name__}")
            data = unwrap_envelope(raw)
            validator.validate_notification(data)
            msg = parse_notification(data)
        except ProtocolError as exc:
            logger.warning("Room %s dropped notification: %s", self.conn.room_id, exc)
            return
        try:
            self.interpreter.handle(msg, self.conn)
        except Exception as exc:
            logger.exception("Interpreter error for %s in room %s: %s", msg.cmd_text, self.conn.room_id, exc)


__all__ = ["MessageDispatcher"]
