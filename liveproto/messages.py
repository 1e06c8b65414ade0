from __future__ import annotations

from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .commands import NoticeCmd, normalize_cmd
from .constants import SCENE_KEY
from .errors import ErrorCode, ProtocolError


class NotificationMsg(BaseModel):
    """Base shape of every server-pushed notification (operation 5)."""

    model_config = ConfigDict(extra="allow")

    cmd: Union[NoticeCmd, str] = Field(..., description="Notification command such as NOTICE_MSG")

    @property
    def cmd_text(self) -> str:
        return normalize_cmd(self.cmd)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationMsg":
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ProtocolError(ErrorCode.SCHEMA_MISMATCH, f"Notification validation failed: {exc}") from exc


class NoticeMsg(NotificationMsg):
    cmd: NoticeCmd = Field(default=NoticeCmd.NOTICE_MSG, frozen=True)
    msg_type: int = Field(0, description="Notice sub-type")
    real_roomid: int = Field(0, description="Room the notice concerns")
    msg_common: str = ""


class PreparingMsg(NotificationMsg):
    cmd: NoticeCmd = Field(default=NoticeCmd.PREPARING, frozen=True)
    roomid: Optional[Union[int, str]] = None


class RoomChangeData(BaseModel):
    model_config = ConfigDict(extra="allow")

    parent_area_id: int = 0
    area_id: int = 0
    title: str = ""


class RoomChangeMsg(NotificationMsg):
    cmd: NoticeCmd = Field(default=NoticeCmd.ROOM_CHANGE, frozen=True)
    data: RoomChangeData = Field(default_factory=RoomChangeData)


class HandshakeBody(BaseModel):
    """Body of the operation 7 frame sent right after connecting."""

    roomid: int
    uid: int


MODEL_REGISTRY: Dict[str, Type[NotificationMsg]] = {
    NoticeCmd.NOTICE_MSG.value: NoticeMsg,
    NoticeCmd.PREPARING.value: PreparingMsg,
    NoticeCmd.ROOM_CHANGE.value: RoomChangeMsg,
}


def unwrap_envelope(data: Dict[str, Any]) -> Dict[str, Any]:
    """Some notifications arrive wrapped as {"scene_key": ..., "msg": {...}}."""
    if data.get(SCENE_KEY):
        inner = data.get("msg")
        if not isinstance(inner, dict):
            raise ProtocolError(ErrorCode.SCHEMA_MISMATCH, "Envelope carries no message object")
        return inner
    return data


def parse_notification(data: Dict[str, Any]) -> NotificationMsg:
    """Build the typed model matching the `cmd` of an unwrapped notification."""
    model = MODEL_REGISTRY.get(str(data.get("cmd", "")), NotificationMsg)
    return model.from_dict(data)


__all__ = [
    "NotificationMsg",
    "NoticeMsg",
    "PreparingMsg",
    "RoomChangeData",
    "RoomChangeMsg",
    "HandshakeBody",
    "MODEL_REGISTRY",
    "unwrap_envelope",
    "parse_notification",
]
