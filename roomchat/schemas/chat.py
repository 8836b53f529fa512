"""
roomchat.schemas.chat
~~~~~~~~~~~~~~~~~~~~~

聊天领域模型与 WebSocket 事件的 Pydantic 定义。

客户端帧: ``{"event": "join-room", "data": {...}}``
服务端帧: ``{"event": "message" | "room-list" | "error", "data": ...}``
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SYSTEM_USERNAME = "System"

ServerEventName = Literal["message", "room-list", "error"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ── 领域模型 ──────────────────────────────────────────────────────────

class Room(BaseModel):
    """一个聊天房间，按名称全局唯一。"""

    id: str = Field(default_factory=_new_id, description="房间唯一标识")
    name: str = Field(..., description="房间名（已去除首尾空白）")
    created_at: datetime = Field(default_factory=_utcnow, description="创建时间（UTC）")


class ChatMessage(BaseModel):
    """一条聊天消息或系统通知，创建后不可变。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id, description="消息唯一标识")
    text: str = Field(..., description="消息正文")
    username: str = Field(..., description="发送者")
    room: str = Field(..., description="所属房间名")
    timestamp: datetime = Field(default_factory=_utcnow, description="服务端受理时间")

    @classmethod
    def system_notice(cls, room: str, text: str, timestamp: datetime) -> ChatMessage:
        """构造一条以 ``System`` 身份发出的通知。"""
        return cls(text=text, username=SYSTEM_USERNAME, room=room, timestamp=timestamp)


# ── 客户端请求 ────────────────────────────────────────────────────────

class ClientEvent(BaseModel):
    """客户端发来的事件信封，``data`` 由具体事件的请求模型再次校验。"""

    event: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class _RoomRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class JoinRoomRequest(_RoomRequest):
    """``join-room`` 事件载荷。"""

    username: str = Field(..., min_length=1, description="显示名")
    room: str = Field(..., min_length=1, description="目标房间名")


class LeaveRoomRequest(_RoomRequest):
    """``leave-room`` 事件载荷。"""

    username: str = Field(..., min_length=1)
    room: str = Field(..., min_length=1)


class SendMessageRequest(BaseModel):
    """``send-message`` 事件载荷。

    正文保留原样，只拒绝空白；``username`` 与 ``room`` 和 ``join-room`` 一样去除首尾空白，
    保证消息发往连接实际加入的分组。
    """

    text: str
    username: str = Field(..., min_length=1)
    room: str = Field(..., min_length=1)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("username", "room")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class CreateRoomRequest(_RoomRequest):
    """``create-room`` 事件载荷。"""

    name: str = Field(..., min_length=1, description="新房间名")


# ── 服务端事件 ────────────────────────────────────────────────────────

class EventError(BaseModel):
    """``error`` 事件数据，只发给出错的发送方。"""

    event: str | None = Field(default=None, description="触发错误的客户端事件名")
    code: str = Field(..., description="错误码")
    detail: str = Field(..., description="可读的错误说明")


class ServerEvent(BaseModel):
    """服务端推送给客户端的事件。"""

    event: ServerEventName
    data: Any = None

    @classmethod
    def message(cls, payload: ChatMessage | list[ChatMessage]) -> ServerEvent:
        """单条消息（广播 / 系统通知）或一批消息（历史回放）。"""
        return cls(event="message", data=payload)

    @classmethod
    def room_list(cls, rooms: list[Room]) -> ServerEvent:
        return cls(event="room-list", data=rooms)

    @classmethod
    def error(cls, code: str, detail: str, event: str | None = None) -> ServerEvent:
        return cls(event="error", data=EventError(event=event, code=code, detail=detail))

    def to_frame(self) -> dict[str, Any]:
        """序列化为可直接 ``send_json`` 的字典（datetime → ISO 字符串）。"""
        return self.model_dump(mode="json")
