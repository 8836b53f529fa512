"""
roomchat.services.directory
~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间目录 —— 房间名的权威集合。

- ``bootstrap()`` 启动时加载已持久化的房间，并保证默认房间存在
- ``create(name)`` 幂等：同名房间已存在时直接返回，不写库也不推送
- 新房间写库成功后触发 ``on_change``，把完整列表推给所有连接
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable

from roomchat.core.exceptions import InvalidRoomName
from roomchat.core.logging import get_logger
from roomchat.db.chat_store import ChatStore
from roomchat.schemas.chat import Room

logger = get_logger(__name__)


class RoomDirectory:
    """房间目录。

    内存中的 ``_rooms`` 保持插入顺序，即持久化的创建顺序。

    Attributes:
        store: 持久化网关。
        default_room: 启动时保证存在的房间名。
    """

    def __init__(
        self,
        store: ChatStore,
        on_change: Callable[[list[Room]], None] | None = None,
        default_room: str = "general",
    ) -> None:
        self.store = store
        self.default_room = default_room
        self._on_change = on_change
        self._rooms: dict[str, Room] = {}
        # 串行化同名创建：检查与写库之间会让出事件循环
        self._create_lock = asyncio.Lock()

    def list(self) -> list[Room]:
        return list(self._rooms.values())

    def get(self, name: str) -> Room | None:
        return self._rooms.get(name.strip())

    def __len__(self) -> int:
        return len(self._rooms)

    async def bootstrap(self) -> None:
        """加载已有房间，默认房间不存在时创建（按名称判断，幂等）。"""
        for room in await self.store.list_rooms():
            self._rooms.setdefault(room.name, room)

        if self.default_room in self._rooms:
            logger.info("房间目录已加载 | %d 个房间", len(self._rooms))
            return

        room = await self._persist(Room(name=self.default_room))
        self._rooms[room.name] = room
        logger.info("已创建默认房间 %r | 共 %d 个房间", room.name, len(self._rooms))

    async def create(self, name: str) -> Room:
        """创建房间，同名时返回已有房间。

        Args:
            name: 房间名，会先去除首尾空白。

        Returns:
            新建或已存在的 ``Room``。

        Raises:
            InvalidRoomName: 去除空白后名称为空。
            PersistenceFailure: 写库失败，目录保持不变，可安全重试。
        """
        name = (name or "").strip()
        if not name:
            raise InvalidRoomName("房间名不能为空")

        async with self._create_lock:
            existing = self.get(name)
            if existing is not None:
                logger.debug("房间已存在，忽略创建 | name=%r", name)
                return existing

            room = await self._persist(Room(name=name))
            self._rooms[name] = room

        logger.info("房间已创建 | name=%r | 共 %d 个房间", name, len(self._rooms))
        if self._on_change is not None:
            self._on_change(self.list())
        return room

    async def _persist(self, room: Room) -> Room:
        """写库；唯一索引冲突（其他进程抢先创建）时采用库中已有的记录。"""
        if await self.store.insert_room(room):
            return room
        stored = await self.store.find_room(room.name)
        return stored if stored is not None else room
