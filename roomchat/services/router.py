"""
roomchat.services.router
~~~~~~~~~~~~~~~~~~~~~~~~

消息路由 —— 校验、打时间戳、广播、派发持久化。

``send`` 是同步的：时间戳分配与广播派发在同一步完成，中间不让出事件循环，
因此同一房间内的广播顺序严格等于 ``send`` 的受理顺序。持久化作为后台任务
派发，写库的快慢与成败都不会影响已经派发的广播。
"""
from __future__ import annotations

from datetime import datetime, timezone

from roomchat.core.exceptions import InvalidMessage
from roomchat.core.logging import get_logger
from roomchat.db.chat_store import ChatStore
from roomchat.schemas.chat import ChatMessage, ServerEvent
from roomchat.services.background import BackgroundWriter
from roomchat.services.hub import ConnectionHub

logger = get_logger(__name__)


class RoomClock:
    """按房间分配时间戳，保证同一房间内单调不减（防止系统时钟回拨）。"""

    def __init__(self) -> None:
        self._last: dict[str, datetime] = {}

    def now(self, room: str) -> datetime:
        stamp = datetime.now(timezone.utc)
        last = self._last.get(room)
        if last is not None and stamp < last:
            stamp = last
        self._last[room] = stamp
        return stamp


class MessageRouter:
    """聊天消息路由。

    Attributes:
        store: 持久化网关。
        hub: 传输层连接中枢。
        writer: 后台持久化任务管理。
        clock: 房间时间戳分配器（与系统通知共用）。
    """

    def __init__(
        self,
        store: ChatStore,
        hub: ConnectionHub,
        writer: BackgroundWriter,
        clock: RoomClock | None = None,
    ) -> None:
        self.store = store
        self.hub = hub
        self.writer = writer
        self.clock = clock or RoomClock()

    def send(self, text: str, username: str, room: str) -> ChatMessage:
        """受理一条消息并广播给房间内所有连接（含发送者）。

        Raises:
            InvalidMessage: 正文为空白、缺少发送者或房间。此时既不广播也不写库。
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidMessage("消息正文不能为空")
        if not isinstance(username, str) or not username.strip():
            raise InvalidMessage("缺少发送者 username")
        if not isinstance(room, str) or not room.strip():
            raise InvalidMessage("缺少目标房间 room")
        # 与加入房间时的名称规范一致
        username, room = username.strip(), room.strip()

        message = ChatMessage(
            text=text,
            username=username,
            room=room,
            timestamp=self.clock.now(room),
        )
        delivered = self.hub.emit_to_group(room, ServerEvent.message(message))
        self.writer.submit(
            self.store.insert_message(message),
            f"保存消息 id={message.id} room={room}",
        )
        logger.info("消息已广播 | room=%s | user=%s | 接收方: %d", room, username, delivered)
        return message
