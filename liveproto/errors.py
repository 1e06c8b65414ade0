from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    """Failure classes raised while reading or writing the broadcast channel."""

    LENGTH_OUT_OF_RANGE = 1001
    HEADER_INVALID = 1002
    FRAME_TRUNCATED = 1003
    PAYLOAD_UNDECODABLE = 1004
    SCHEMA_MISMATCH = 1005
    ENCODE_FAILED = 1006


class ProtocolError(Exception):
    """Structured protocol exception carrying an error code + message."""

    def __init__(self, code: ErrorCode, message: str = "") -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code.name} ({int(code)}): {message}")


__all__ = ["ErrorCode", "ProtocolError"]
