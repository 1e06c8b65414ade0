from __future__ import annotations

import logging
from typing import Any, FrozenSet, Protocol

from liveproto import NoticeCmd, NoticeMsg, NotificationMsg, PreparingMsg, RoomChangeMsg

from monitor.events import GIFT_EVENT

logger = logging.getLogger(__name__)


class RoomHandle(Protocol):
    """What an interpreter may touch on the connection it runs inside."""

    room_id: int

    def emit(self, event: str, payload: Any) -> None: ...

    def close(self, by_caller: bool = True) -> None: ...


class NoticeInterpreter:
    """Routes notifications by `cmd`; every hook is a no-op here."""

    def handle(self, msg: NotificationMsg, conn: RoomHandle) -> None:
        cmd = msg.cmd_text
        if cmd == NoticeCmd.NOTICE_MSG:
            logger.debug("Room %s notice: %s", conn.room_id, getattr(msg, "msg_common", ""))
            self.on_notice(msg, conn)
        elif cmd == NoticeCmd.PREPARING:
            self.on_preparing(msg, conn)
        elif cmd == NoticeCmd.ROOM_CHANGE:
            self.on_room_change(msg, conn)

    def on_notice(self, msg: NoticeMsg, conn: RoomHandle) -> None:
        pass

    def on_preparing(self, msg: PreparingMsg, conn: RoomHandle) -> None:
        pass

    def on_room_change(self, msg: RoomChangeMsg, conn: RoomHandle) -> None:
        pass


class GuardInterpreter(NoticeInterpreter):
    """Reports guard purchases made in the watched room itself."""

    GUARD_MSG_TYPE = 3

    def on_notice(self, msg: NoticeMsg, conn: RoomHandle) -> None:
        if msg.msg_type == self.GUARD_MSG_TYPE and msg.real_roomid == conn.room_id:
            logger.info("%s - %s", conn.room_id, msg.msg_common)
            conn.emit(GIFT_EVENT, msg.real_roomid)


class RaffleInterpreter(NoticeInterpreter):
    """
    Reports platform-wide raffle notices and, when scoped to a category,
    gives up on the room once it goes offline or leaves that category.

    The gift payload is the room named by the notice, which is usually not
    the room this connection is watching.
    """

    RAFFLE_MSG_TYPES: FrozenSet[int] = frozenset({2, 6, 8})

    def __init__(self, area_id: int = 0) -> None:
        self.area_id = area_id

    @property
    def scoped(self) -> bool:
        return self.area_id != 0

    def on_notice(self, msg: NoticeMsg, conn: RoomHandle) -> None:
        if msg.msg_type in self.RAFFLE_MSG_TYPES:
            logger.info("%s - %s - %s", conn.room_id, msg.msg_common, msg.msg_type)
            conn.emit(GIFT_EVENT, msg.real_roomid)

    def on_preparing(self, msg: PreparingMsg, conn: RoomHandle) -> None:
        if self.scoped:
            logger.info("Room %s went offline, leaving", conn.room_id)
            conn.close()

    def on_room_change(self, msg: RoomChangeMsg, conn: RoomHandle) -> None:
        new_area_id = msg.data.parent_area_id
        if self.scoped and new_area_id != self.area_id:
            logger.info("Room %s moved to area %s (watching %s), leaving", conn.room_id, new_area_id, self.area_id)
            conn.close()


__all__ = ["RoomHandle", "NoticeInterpreter", "GuardInterpreter", "RaffleInterpreter"]
