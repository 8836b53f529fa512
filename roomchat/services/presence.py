"""
roomchat.services.presence
~~~~~~~~~~~~~~~~~~~~~~~~~~

在线状态协调 —— 处理加入 / 离开 / 断线，发送系统通知并回放历史。

每个连接是一个显式状态机: ``UNJOINED`` ⇄ ``JOINED(room)``。
已在其他房间时 ``join`` 会先替调用方完成离开，不依赖客户端先发 ``leave-room``。
"""
from __future__ import annotations

from roomchat.core.exceptions import PersistenceFailure
from roomchat.core.logging import get_logger
from roomchat.db.chat_store import ChatStore
from roomchat.schemas.chat import ChatMessage, ServerEvent
from roomchat.services.background import BackgroundWriter
from roomchat.services.hub import ConnectionHub
from roomchat.services.registry import ConnectionRegistry
from roomchat.services.router import RoomClock

logger = get_logger(__name__)


class PresenceCoordinator:
    """加入 / 离开房间的协调者。所有操作对调用方都不会失败。

    Attributes:
        registry: 连接登记表。
        hub: 传输层连接中枢。
        store: 持久化网关（用户登记、历史查询）。
        writer: 后台持久化任务管理。
        history_limit: 加入时回放的最近消息条数上限。
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        hub: ConnectionHub,
        store: ChatStore,
        writer: BackgroundWriter,
        clock: RoomClock,
        history_limit: int = 50,
    ) -> None:
        self.registry = registry
        self.hub = hub
        self.store = store
        self.writer = writer
        self.clock = clock
        self.history_limit = history_limit

    async def join(self, connection_id: str, username: str, room: str) -> None:
        """加入房间。

        1. 已在其他房间时先离开（发离开通知）
        2. 更新登记表并加入传输分组
        3. 后台登记用户
        4. 最近的历史消息作为一个批次只发给加入者（存储故障时为空批次）
        5. 向房间内其他成员发加入通知（重复加入同一房间时不再通知）
        """
        connection = self.registry.get(connection_id)
        if connection is None:
            logger.debug("忽略未知连接的加入请求 | room=%s", room)
            return

        rejoin = connection.current_room == room
        if connection.current_room is not None and not rejoin:
            self.leave(connection_id, username, connection.current_room)

        self.registry.claim_name(connection_id, username)
        # 通知统一使用连接的显示名（连接时或首次加入时确定）
        display_name = connection.display_name or username
        self.registry.set_room(connection_id, room)
        self.hub.join_group(connection_id, room)
        logger.info("%s 加入房间 %s", display_name, room)

        self.writer.submit(self.store.upsert_user(username), f"登记用户 {username}")

        history = await self._load_history(room)
        self.hub.emit(connection_id, ServerEvent.message(history))

        # 等待历史期间连接可能已断开或切换了房间
        connection = self.registry.get(connection_id)
        if rejoin or connection is None or connection.current_room != room:
            return
        notice = ChatMessage.system_notice(
            room, f"{display_name} has joined the room", self.clock.now(room),
        )
        self.hub.emit_to_group(room, ServerEvent.message(notice), exclude=connection_id)

    def leave(self, connection_id: str, username: str, room: str) -> None:
        """离开房间并通知剩余成员。连接不在该房间时什么都不做。"""
        connection = self.registry.get(connection_id)
        if connection is None or connection.current_room != room:
            logger.debug("忽略离开请求：连接不在房间 %s", room)
            return

        display_name = connection.display_name or username
        self.hub.leave_group(connection_id, room)
        self.registry.set_room(connection_id, None)
        logger.info("%s 离开房间 %s", display_name, room)

        notice = ChatMessage.system_notice(
            room, f"{display_name} has left the room", self.clock.now(room),
        )
        self.hub.emit_to_group(room, ServerEvent.message(notice))

    def disconnect(self, connection_id: str) -> None:
        """连接断开：若在房间内则按离开处理，然后注销并移出传输层。"""
        connection = self.registry.get(connection_id)
        if connection is not None and connection.current_room is not None:
            self.leave(
                connection_id,
                connection.display_name or connection_id,
                connection.current_room,
            )
        self.registry.unregister(connection_id)
        self.hub.detach(connection_id)

    async def _load_history(self, room: str) -> list[ChatMessage]:
        try:
            return await self.store.recent_messages(room, limit=self.history_limit)
        except PersistenceFailure as e:
            logger.warning("历史消息加载失败，按空历史处理 | room=%s | %s", room, e)
            return []
