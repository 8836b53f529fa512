"""
roomchat.services.background
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

后台持久化任务 —— 存储写入以独立任务的形式派发，不阻塞、也不影响实时投递。

任务失败只记录日志，不会重试，也不会回传给发起方。
"""
from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from functools import partial
from typing import Any

from roomchat.core.exceptions import PersistenceFailure
from roomchat.core.logging import get_logger

logger = get_logger(__name__)


class BackgroundWriter:
    """跟踪所有未完成的持久化任务，关闭时可统一等待。"""

    def __init__(self) -> None:
        self._pending: set[asyncio.Task[Any]] = set()

    def submit(self, coro: Coroutine[Any, Any, Any], description: str) -> asyncio.Task[Any]:
        """派发一个后台任务。

        Args:
            coro: 要执行的存储协程。
            description: 写进日志的简短描述，例如 ``"保存消息 id=..."``。
        """
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(partial(self._on_done, description))
        return task

    def _on_done(self, description: str, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.debug("后台任务已取消 | %s", description)
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, PersistenceFailure):
            logger.warning("持久化失败 | %s | %s", description, exc)
        else:
            logger.error("后台任务异常 | %s | %s", description, exc, exc_info=exc)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def flush(self) -> None:
        """等待所有已派发的任务结束（含执行期间新派发的任务）。"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
