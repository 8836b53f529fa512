"""
roomchat.services.registry
~~~~~~~~~~~~~~~~~~~~~~~~~~

连接登记表 —— 每个连接的显示名与当前所在房间，纯内存、进程内有效。

断线与事件处理之间存在竞态，所以对未知连接 ID 的任何操作都是空操作。
"""
from __future__ import annotations

import enum

from roomchat.core.logging import get_logger

logger = get_logger(__name__)


class ConnectionState(enum.Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"


class Connection:
    """一个在线会话。

    Attributes:
        connection_id: 传输层分配的连接标识。
        display_name: 显示名，连接时或首次加入房间时确定，之后不再改变。
        current_room: 当前所在房间名，未加入任何房间时为 ``None``。
    """

    def __init__(self, connection_id: str, display_name: str | None = None) -> None:
        self.connection_id = connection_id
        self.display_name = display_name
        self.current_room: str | None = None

    @property
    def state(self) -> ConnectionState:
        if self.current_room is None:
            return ConnectionState.UNJOINED
        return ConnectionState.JOINED

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.connection_id!r}, name={self.display_name!r}, "
            f"room={self.current_room!r})"
        )


class ConnectionRegistry:
    """连接 ID → ``Connection`` 的登记表。"""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}

    def register(self, connection_id: str, display_name: str | None = None) -> Connection:
        """登记一个新连接（尚未加入任何房间）。"""
        connection = Connection(connection_id, display_name or None)
        self._connections[connection_id] = connection
        logger.info("连接已登记 | 在线: %d", len(self._connections))
        return connection

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def claim_name(self, connection_id: str, username: str) -> None:
        """连接还没有显示名时采用 ``username``。"""
        connection = self._connections.get(connection_id)
        if connection is not None and connection.display_name is None:
            connection.display_name = username

    def set_room(self, connection_id: str, room: str | None) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.current_room = room

    def unregister(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is not None:
            logger.info("连接已注销 | 在线: %d", len(self._connections))

    def __len__(self) -> int:
        return len(self._connections)
