from .interpreters import GuardInterpreter, NoticeInterpreter, RaffleInterpreter, RoomHandle

__all__ = ["NoticeInterpreter", "GuardInterpreter", "RaffleInterpreter", "RoomHandle"]
