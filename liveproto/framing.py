from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from typing import Any, Iterator, List, Union

from .constants import ENCODING, HEADER_LENGTH, LENGTH_FIELD_SIZE, MAX_FRAME_SIZE, PROTOCOL_VERSION, SEQUENCE
from .errors import ErrorCode, ProtocolError

# total length, header length, protocol version, operation, sequence
_HEADER = struct.Struct(">IHHII")


@dataclass(frozen=True)
class Frame:
    """One length-prefixed protocol unit."""

    operation: int
    body: bytes = b""
    header_length: int = HEADER_LENGTH
    version: int = PROTOCOL_VERSION
    sequence: int = SEQUENCE

    @property
    def total_length(self) -> int:
        return self.header_length + len(self.body)

    def text(self) -> str:
        try:
            return self.body.decode(ENCODING)
        except UnicodeDecodeError as exc:
            raise ProtocolError(ErrorCode.PAYLOAD_UNDECODABLE, f"Body is not {ENCODING}: {exc}") from exc

    def json(self) -> Any:
        try:
            return json.loads(self.text())
        except json.JSONDecodeError as exc:
            raise ProtocolError(ErrorCode.PAYLOAD_UNDECODABLE, f"Body is not JSON: {exc}") from exc


def encode_frame(operation: int, body: Union[str, bytes] = b"") -> bytes:
    """Encode one frame: 16 byte big-endian header followed by the UTF-8 body."""
    data = body.encode(ENCODING) if isinstance(body, str) else bytes(body)
    total_length = HEADER_LENGTH + len(data)
    try:
        header = _HEADER.pack(total_length, HEADER_LENGTH, PROTOCOL_VERSION, int(operation), SEQUENCE)
    except struct.error as exc:
        raise ProtocolError(ErrorCode.ENCODE_FAILED, f"Header out of range: {exc}") from exc
    return header + data


def encode_json_frame(operation: int, payload: Any) -> bytes:
    """Encode a frame whose body is `payload` serialized as compact JSON."""
    try:
        json_str = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise ProtocolError(ErrorCode.ENCODE_FAILED, f"Encode failed: {exc}") from exc
    return encode_frame(operation, json_str)


def decode_frame(data: bytes) -> Frame:
    """Decode exactly one complete frame."""
    if len(data) < HEADER_LENGTH:
        raise ProtocolError(ErrorCode.FRAME_TRUNCATED, f"Need {HEADER_LENGTH} header bytes, got {len(data)}")
    total_length, header_length, version, operation, sequence = _HEADER.unpack_from(data, 0)
    if total_length != len(data):
        raise ProtocolError(
            ErrorCode.FRAME_TRUNCATED, f"Frame declares {total_length} bytes but {len(data)} were given"
        )
    if header_length < HEADER_LENGTH or header_length > total_length:
        raise ProtocolError(ErrorCode.HEADER_INVALID, f"Bad header length {header_length} for frame of {total_length}")
    return Frame(
        operation=operation,
        body=bytes(data[header_length:total_length]),
        header_length=header_length,
        version=version,
        sequence=sequence,
    )


class FrameBuffer:
    """
    Accumulates raw socket bytes and cuts them into complete frames.

    `total_length` is the length cursor of the frame at the buffer front; it is
    only meaningful while at least four bytes are buffered and is 0 otherwise.
    """

    def __init__(self, max_frame_size: int = MAX_FRAME_SIZE) -> None:
        self.max_frame_size = max_frame_size
        self.total_length = 0
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self.total_length = 0

    def feed(self, data: bytes) -> None:
        self._buffer.extend(data)

    def frames(self) -> Iterator[Frame]:
        """Yield every complete frame currently buffered, in arrival order."""
        while self._read_length() and len(self._buffer) >= self.total_length:
            raw = bytes(self._buffer[: self.total_length])
            del self._buffer[: self.total_length]
            yield decode_frame(raw)

    def _read_length(self) -> bool:
        if len(self._buffer) < LENGTH_FIELD_SIZE:
            self.total_length = 0
            return False
        length = int.from_bytes(self._buffer[:LENGTH_FIELD_SIZE], "big")
        if length < HEADER_LENGTH or length > self.max_frame_size:
            raise ProtocolError(ErrorCode.LENGTH_OUT_OF_RANGE, f"Frame length {length} out of range")
        self.total_length = length
        return True


def decode_stream(data: bytes, max_frame_size: int = MAX_FRAME_SIZE) -> List[Frame]:
    """Decode a byte string holding zero or more whole frames."""
    buffer = FrameBuffer(max_frame_size)
    buffer.feed(data)
    frames = list(buffer.frames())
    if len(buffer):
        raise ProtocolError(ErrorCode.FRAME_TRUNCATED, f"{len(buffer)} trailing bytes after last frame")
    return frames


__all__ = ["Frame", "FrameBuffer", "encode_frame", "encode_json_frame", "decode_frame", "decode_stream"]
