"""
Wire protocol of the live broadcast TCP channel: operation codes, binary
framing, notification models and validation shared by every monitor.
"""

from .commands import NoticeCmd, Operation, normalize_cmd
from .constants import ENCODING, HEADER_LENGTH, MAX_FRAME_SIZE, PROTOCOL_VERSION, SCENE_KEY, SEQUENCE
from .errors import ErrorCode, ProtocolError
from .framing import Frame, FrameBuffer, decode_frame, decode_stream, encode_frame, encode_json_frame
from .messages import (
    HandshakeBody,
    NoticeMsg,
    NotificationMsg,
    PreparingMsg,
    RoomChangeData,
    RoomChangeMsg,
    parse_notification,
    unwrap_envelope,
)
from .validator import load_schema, validate_handshake, validate_notification

__all__ = [
    "NoticeCmd",
    "Operation",
    "normalize_cmd",
    "ENCODING",
    "HEADER_LENGTH",
    "MAX_FRAME_SIZE",
    "PROTOCOL_VERSION",
    "SCENE_KEY",
    "SEQUENCE",
    "ErrorCode",
    "ProtocolError",
    "Frame",
    "FrameBuffer",
    "decode_frame",
    "decode_stream",
    "encode_frame",
    "encode_json_frame",
    "HandshakeBody",
    "NoticeMsg",
    "NotificationMsg",
    "PreparingMsg",
    "RoomChangeData",
    "RoomChangeMsg",
    "parse_notification",
    "unwrap_envelope",
    "load_schema",
    "validate_handshake",
    "validate_notification",
]
