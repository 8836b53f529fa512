"""
roomchat.services.chat_system
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

聊天系统 —— 进程内唯一的服务容器，把各组件按引用串起来。

在 FastAPI lifespan 中创建并挂载到 ``app.state.chat_system``:
  - ``init()``     → 加载房间目录、保证默认房间存在
  - ``teardown()`` → 等待未完成的持久化任务、停止所有写协程
"""
from __future__ import annotations

from fastapi import WebSocket

from roomchat.core.config import Settings, settings as default_settings
from roomchat.core.logging import get_logger
from roomchat.db.chat_store import ChatStore
from roomchat.schemas.chat import Room, ServerEvent
from roomchat.services.background import BackgroundWriter
from roomchat.services.directory import RoomDirectory
from roomchat.services.hub import ConnectionHub
from roomchat.services.presence import PresenceCoordinator
from roomchat.services.registry import ConnectionRegistry
from roomchat.services.router import MessageRouter, RoomClock

logger = get_logger(__name__)


class ChatSystem:
    """聊天系统服务容器。

    Attributes:
        store: 持久化网关。
        hub: 传输层连接中枢。
        registry: 连接登记表。
        writer: 后台持久化任务管理。
        directory: 房间目录。
        router: 消息路由。
        presence: 在线状态协调。
    """

    def __init__(
        self,
        store: ChatStore,
        hub: ConnectionHub | None = None,
        settings: Settings = default_settings,
    ) -> None:
        self.store = store
        self.hub = hub or ConnectionHub()
        self.registry = ConnectionRegistry()
        self.writer = BackgroundWriter()
        clock = RoomClock()
        self.directory = RoomDirectory(
            store, on_change=self._push_room_list, default_room=settings.DEFAULT_ROOM,
        )
        self.router = MessageRouter(store, self.hub, self.writer, clock)
        self.presence = PresenceCoordinator(
            self.registry,
            self.hub,
            store,
            self.writer,
            clock,
            history_limit=settings.HISTORY_LIMIT,
        )

    async def init(self) -> None:
        await self.directory.bootstrap()
        logger.info("聊天系统已就绪 | rooms=%d", len(self.directory))

    async def teardown(self) -> None:
        pending = self.writer.pending_count
        await self.writer.flush()
        self.hub.close()
        logger.info("聊天系统已关闭 | 收尾持久化任务: %d", pending)

    def attach(
        self, connection_id: str, websocket: WebSocket, display_name: str | None = None,
    ) -> None:
        """登记新连接并推送当前房间列表。"""
        self.registry.register(connection_id, display_name)
        self.hub.attach(connection_id, websocket)
        self.hub.emit(connection_id, ServerEvent.room_list(self.directory.list()))

    def detach(self, connection_id: str) -> None:
        self.presence.disconnect(connection_id)

    def _push_room_list(self, rooms: list[Room]) -> None:
        self.hub.emit_to_all(ServerEvent.room_list(rooms))
