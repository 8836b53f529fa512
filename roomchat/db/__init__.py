"""
roomchat.db
~~~~~~~~~~~

聊天数据所在的 MongoDB。

进程内共用一个 ``AsyncIOMotorClient``：

- ``connect_mongo()`` 在 lifespan 启动时建立连接并 ping 一次，存储不可达时
  抛出 ``PersistenceFailure``，进程拒绝启动；
- ``ping_mongo()`` 在运行期检查存储是否仍可达（``/health`` 使用），从不抛出；
- ``get_database()`` 返回 ``ChatStore`` 使用的数据库；
- ``close_mongo()`` 在 lifespan 关闭时释放连接。

客户端以 ``tz_aware=True`` 创建，读回的时间戳带 UTC 时区，可以直接与新消息的
时间戳比较。
"""
from __future__ import annotations

from urllib.parse import urlparse, urlunparse

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from roomchat.core.config import settings
from roomchat.core.exceptions import PersistenceFailure
from roomchat.core.logging import get_logger

logger = get_logger(__name__)

_client: AsyncIOMotorClient | None = None


def _mask_uri(uri: str) -> str:
    """隐藏连接串里的密码，只用于日志。"""
    parsed = urlparse(uri)
    if not parsed.password:
        return uri
    host = parsed.hostname or ""
    if parsed.port:
        host = f"{host}:{parsed.port}"
    return urlunparse(parsed._replace(netloc=f"{parsed.username}:***@{host}"))


async def connect_mongo() -> None:
    """连接聊天存储并确认可达。

    Raises:
        PersistenceFailure: 在 ``MONGO_TIMEOUT_MS`` 内 ping 不通。
    """
    global _client
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.MONGO_TIMEOUT_MS,
        appname=settings.PROJECT_NAME,
    )
    try:
        await client[settings.MONGO_DB_NAME].command("ping")
    except PyMongoError as e:
        client.close()
        logger.error("聊天存储不可达 | uri=%s | %s", _mask_uri(settings.MONGO_URI), e)
        raise PersistenceFailure(f"无法连接 MongoDB: {e}") from e

    _client = client
    logger.info(
        "聊天存储已连接 | uri=%s | db=%s",
        _mask_uri(settings.MONGO_URI),
        settings.MONGO_DB_NAME,
    )


async def ping_mongo() -> bool:
    """存储当前是否可达；尚未连接时返回 ``False``。"""
    if _client is None:
        return False
    try:
        await _client[settings.MONGO_DB_NAME].command("ping")
    except PyMongoError as e:
        logger.warning("聊天存储 ping 失败: %s", e)
        return False
    return True


async def close_mongo() -> None:
    global _client
    if _client is None:
        return
    _client.close()
    _client = None
    logger.info("聊天存储连接已关闭")


def get_database() -> AsyncIOMotorDatabase:
    """``ChatStore`` 使用的数据库。

    Raises:
        RuntimeError: 在 ``connect_mongo()`` 之前调用。
    """
    if _client is None:
        raise RuntimeError("聊天存储尚未连接，请先调用 connect_mongo()")
    return _client[settings.MONGO_DB_NAME]
