"""
roomchat.services.hub
~~~~~~~~~~~~~~~~~~~~~

WebSocket 连接中枢 —— 提供按连接发送、按房间分组广播、全员推送三种能力。

所有 ``emit*`` 方法都是同步的：它们只把事件放进每个连接自己的发件箱
（FIFO 队列），由该连接独占的写协程按顺序发送。因此事件被受理的顺序
就是每个连接收到的顺序，慢连接也不会拖住广播方。
"""
from __future__ import annotations

import asyncio
from typing import Any

from fastapi import WebSocket

from roomchat.core.logging import get_logger
from roomchat.schemas.chat import ServerEvent

logger = get_logger(__name__)


class _Peer:
    """单个连接的发送端：WebSocket + 发件箱 + 写协程。"""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.writer: asyncio.Task[None] | None = None
        self.closed = False


class ConnectionHub:
    """WebSocket 连接中枢（即传输层的分组原语）。

    Attributes:
        groups: 房间名 → 该房间内的连接 ID 集合。
    """

    def __init__(self) -> None:
        self._peers: dict[str, _Peer] = {}
        self.groups: dict[str, set[str]] = {}

    # ── 连接 ──────────────────────────────────────────────────────────

    def attach(self, connection_id: str, websocket: WebSocket) -> None:
        """登记一个已 accept 的 WebSocket，并启动它的写协程。"""
        peer = _Peer(websocket)
        peer.writer = asyncio.create_task(self._write_loop(connection_id, peer))
        self._peers[connection_id] = peer

    def detach(self, connection_id: str) -> None:
        """移除连接：退出所有分组并停止写协程。未知 ID 直接忽略。"""
        peer = self._peers.pop(connection_id, None)
        for group in list(self.groups):
            self._discard(group, connection_id)
        if peer is not None and peer.writer is not None:
            peer.writer.cancel()

    def is_attached(self, connection_id: str) -> bool:
        return connection_id in self._peers

    @property
    def online_count(self) -> int:
        return len(self._peers)

    # ── 分组 ──────────────────────────────────────────────────────────

    def join_group(self, connection_id: str, group: str) -> None:
        if connection_id not in self._peers:
            return
        self.groups.setdefault(group, set()).add(connection_id)

    def leave_group(self, connection_id: str, group: str) -> None:
        self._discard(group, connection_id)

    def members(self, group: str) -> set[str]:
        return set(self.groups.get(group, ()))

    def _discard(self, group: str, connection_id: str) -> None:
        members = self.groups.get(group)
        if members is None:
            return
        members.discard(connection_id)
        # 清理空分组
        if not members:
            del self.groups[group]

    # ── 发送 ──────────────────────────────────────────────────────────

    def emit(self, connection_id: str, event: ServerEvent) -> None:
        """只发给一个连接。"""
        self._enqueue(connection_id, event.to_frame())

    def emit_to_group(
        self, group: str, event: ServerEvent, exclude: str | None = None,
    ) -> int:
        """发给分组内的所有连接（可排除一个），返回投递的连接数。"""
        frame = event.to_frame()
        delivered = 0
        for connection_id in list(self.groups.get(group, ())):
            if connection_id == exclude:
                continue
            if self._enqueue(connection_id, frame):
                delivered += 1
        logger.debug("广播 %s → room=%s | %d 个连接", event.event, group, delivered)
        return delivered

    def emit_to_all(self, event: ServerEvent) -> None:
        """发给所有在线连接（房间列表变更等）。"""
        frame = event.to_frame()
        for connection_id in list(self._peers):
            self._enqueue(connection_id, frame)

    def _enqueue(self, connection_id: str, frame: dict[str, Any]) -> bool:
        peer = self._peers.get(connection_id)
        if peer is None or peer.closed:
            return False
        peer.outbox.put_nowait(frame)
        return True

    async def _write_loop(self, connection_id: str, peer: _Peer) -> None:
        """按入队顺序逐条发送；发送失败后标记连接关闭，后续事件直接丢弃。"""
        while True:
            frame = await peer.outbox.get()
            try:
                if not peer.closed:
                    await peer.websocket.send_json(frame)
            except Exception as e:
                peer.closed = True
                logger.warning("发送失败，连接已断开 | connection=%s | %s", connection_id, e)
            finally:
                peer.outbox.task_done()

    # ── 生命周期 ──────────────────────────────────────────────────────

    async def drain(self) -> None:
        """等待所有连接的发件箱清空。"""
        await asyncio.gather(*(peer.outbox.join() for peer in list(self._peers.values())))

    def close(self) -> None:
        """停止所有写协程（进程关闭时调用）。"""
        for connection_id in list(self._peers):
            self.detach(connection_id)
