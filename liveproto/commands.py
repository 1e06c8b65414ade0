from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Union


class Operation(IntEnum):
    """Operation codes carried in the frame header."""

    HEARTBEAT = 2
    NOTIFICATION = 5
    HANDSHAKE = 7
    HEARTBEAT_ACK = 8


class NoticeCmd(StrEnum):
    """
    Values of the `cmd` field inside a notification payload.
    Only the commands a monitor reacts to (or explicitly skips) are listed.
    """

    NOTICE_MSG = "NOTICE_MSG"
    PREPARING = "PREPARING"
    ROOM_CHANGE = "ROOM_CHANGE"
    DANMU_MSG = "DANMU_MSG"


def normalize_cmd(cmd: Union[str, NoticeCmd]) -> str:
    """Convert enum/string into canonical command text."""
    return cmd.value if isinstance(cmd, NoticeCmd) else str(cmd)


__all__ = ["Operation", "NoticeCmd", "normalize_cmd"]
