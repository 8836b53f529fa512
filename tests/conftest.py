"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用内存实现替换 MongoDB 和 WebSocket，
使单元测试可在无数据库、无网络环境下快速运行。
"""
from __future__ import annotations

import os
from collections.abc import Callable

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")

from roomchat.services.chat_system import ChatSystem  # noqa: E402
from fakes import FakeWebSocket, InMemoryStore  # noqa: E402


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def system(store: InMemoryStore) -> ChatSystem:
    """未 bootstrap 的聊天系统；需要默认房间的测试自行 ``await system.init()``。"""
    return ChatSystem(store)  # type: ignore[arg-type]


@pytest.fixture()
def connect(system: ChatSystem) -> Callable[..., FakeWebSocket]:
    """返回一个工厂：登记新连接并返回它的假 WebSocket（需在事件循环内调用）。"""

    def _connect(connection_id: str, display_name: str | None = None) -> FakeWebSocket:
        websocket = FakeWebSocket()
        system.attach(connection_id, websocket, display_name)  # type: ignore[arg-type]
        return websocket

    return _connect
