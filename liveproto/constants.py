"""Protocol-wide constants for the broadcast TCP channel."""

HEADER_LENGTH = 16
PROTOCOL_VERSION = 1
SEQUENCE = 1
ENCODING = "utf-8"
LENGTH_FIELD_SIZE = 4
MAX_FRAME_SIZE = 8 * 1024 * 1024  # sanity bound for a single frame
SCENE_KEY = "scene_key"

__all__ = [
    "HEADER_LENGTH",
    "PROTOCOL_VERSION",
    "SEQUENCE",
    "ENCODING",
    "LENGTH_FIELD_SIZE",
    "MAX_FRAME_SIZE",
    "SCENE_KEY",
]
