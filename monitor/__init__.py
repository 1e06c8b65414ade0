"""
Room monitors: keep one broadcast connection per live room alive and report
gift opportunities to an event sink.
"""

from .core import ConnectionState, RoomConnection
from .events import GIFT_EVENT, EventBus, EventSink
from .features import GuardInterpreter, NoticeInterpreter, RaffleInterpreter
from .monitors import guard_monitor, raffle_monitor

__all__ = [
    "ConnectionState",
    "RoomConnection",
    "GIFT_EVENT",
    "EventBus",
    "EventSink",
    "GuardInterpreter",
    "NoticeInterpreter",
    "RaffleInterpreter",
    "guard_monitor",
    "raffle_monitor",
]
