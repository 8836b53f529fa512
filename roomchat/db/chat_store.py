"""
roomchat.db.chat_store
~~~~~~~~~~~~~~~~~~~~~~

持久化网关 —— 封装 ``users`` / ``rooms`` / ``messages`` 三个集合。

所有驱动异常（``PyMongoError``）统一转换为 ``PersistenceFailure``，
调用方只需要处理这一种存储错误。索引在首次操作时惰性创建。
"""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from roomchat.core.exceptions import PersistenceFailure
from roomchat.core.logging import get_logger
from roomchat.schemas.chat import ChatMessage, Room

logger = get_logger(__name__)

USERS = "users"
ROOMS = "rooms"
MESSAGES = "messages"

# 只取业务字段，不把 Mongo 的 _id 暴露出去
_ROOM_PROJECTION = {"_id": 0, "id": 1, "name": 1, "created_at": 1}
_MESSAGE_PROJECTION = {"_id": 0, "id": 1, "text": 1, "username": 1, "room": 1, "timestamp": 1}


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """把驱动异常包装为 ``PersistenceFailure``。"""
    try:
        yield
    except PyMongoError as e:
        raise PersistenceFailure(f"{operation} 失败: {e}") from e


class ChatStore:
    """聊天数据持久化仓库。

    Attributes:
        db: MongoDB 数据库实例。
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self._users = db[USERS]
        self._rooms = db[ROOMS]
        self._messages = db[MESSAGES]
        self._indexes_created = False

    async def _ensure_indexes(self) -> None:
        """确保索引已创建（惰性，首次操作时执行一次）。"""
        if self._indexes_created:
            return
        with _store_errors("创建索引"):
            await self._users.create_index("username", unique=True, name="uniq_username")
            await self._rooms.create_index("name", unique=True, name="uniq_room_name")
            await self._rooms.create_index("id", unique=True, name="uniq_room_id")
            await self._messages.create_index("id", unique=True, name="uniq_message_id")
            # 复合索引：按房间分区 + 按时间排序
            await self._messages.create_index(
                [("room", ASCENDING), ("timestamp", ASCENDING)],
                name="idx_room_time",
            )
        self._indexes_created = True
        logger.debug("集合索引已就绪")

    # ── 用户 ──────────────────────────────────────────────────────────

    async def upsert_user(self, username: str) -> None:
        """用户不存在时插入，已存在则不做任何修改。"""
        await self._ensure_indexes()
        with _store_errors("保存用户"):
            await self._users.update_one(
                {"username": username},
                {"$setOnInsert": {
                    "username": username,
                    "created_at": datetime.now(timezone.utc),
                }},
                upsert=True,
            )

    # ── 房间 ──────────────────────────────────────────────────────────

    async def list_rooms(self) -> list[Room]:
        """按创建顺序返回全部房间。"""
        await self._ensure_indexes()
        with _store_errors("查询房间列表"):
            cursor = self._rooms.find({}, _ROOM_PROJECTION).sort("created_at", ASCENDING)
            docs = await cursor.to_list(length=None)
        return [Room.model_validate(doc) for doc in docs]

    async def find_room(self, name: str) -> Room | None:
        await self._ensure_indexes()
        with _store_errors("查询房间"):
            doc = await self._rooms.find_one({"name": name}, _ROOM_PROJECTION)
        return Room.model_validate(doc) if doc else None

    async def insert_room(self, room: Room) -> bool:
        """插入新房间。

        Returns:
            ``False`` 表示唯一索引拒绝了写入（同名房间已被其他进程创建）。
        """
        await self._ensure_indexes()
        try:
            with _store_errors("创建房间"):
                await self._rooms.insert_one(room.model_dump())
        except PersistenceFailure as e:
            if isinstance(e.__cause__, DuplicateKeyError):
                return False
            raise
        return True

    # ── 消息 ──────────────────────────────────────────────────────────

    async def insert_message(self, message: ChatMessage) -> None:
        await self._ensure_indexes()
        with _store_errors("保存消息"):
            await self._messages.insert_one(message.model_dump())

    async def recent_messages(self, room: str, limit: int = 50) -> list[ChatMessage]:
        """获取指定房间最近 ``limit`` 条消息（按时间正序）。

        Args:
            room: 房间名。
            limit: 最大返回条数。

        Returns:
            ``ChatMessage`` 列表，最早的在前。
        """
        await self._ensure_indexes()
        # 先按时间倒序取最近 N 条，再反转为正序
        with _store_errors("查询历史消息"):
            cursor = (
                self._messages
                .find({"room": room}, _MESSAGE_PROJECTION)
                .sort([("timestamp", DESCENDING), ("_id", DESCENDING)])
                .limit(limit)
            )
            docs = await cursor.to_list(length=limit)
        docs.reverse()
        return [ChatMessage.model_validate(doc) for doc in docs]
