from __future__ import annotations

from typing import Any, Dict, Optional

from monitor.core import RoomConnection
from monitor.events import EventSink
from monitor.features import GuardInterpreter, RaffleInterpreter


def guard_monitor(
    room_id: int, uid: int, emitter: EventSink, config: Optional[Dict[str, Any]] = None
) -> RoomConnection:
    return RoomConnection(room_id, uid, GuardInterpreter(), emitter, config)


def raffle_monitor(
    room_id: int,
    uid: int,
    emitter: EventSink,
    area_id: int = 0,
    config: Optional[Dict[str, Any]] = None,
) -> RoomConnection:
    """Watch a room for raffles; `area_id` 0 means any category."""
    return RoomConnection(room_id, uid, RaffleInterpreter(area_id), emitter, config)


__all__ = ["guard_monitor", "raffle_monitor"]
