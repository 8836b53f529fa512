"""
tests.test_background
~~~~~~~~~~~~~~~~~~~~~

BackgroundWriter 单元测试 —— 失败只记日志，不向外抛出。
"""
from __future__ import annotations

import asyncio
import logging

import pytest

from roomchat.core.exceptions import PersistenceFailure
from roomchat.services.background import BackgroundWriter


class TestBackgroundWriter:

    @pytest.mark.asyncio
    async def test_flush_waits_for_pending_tasks(self) -> None:
        writer = BackgroundWriter()
        done: list[int] = []

        async def slow_write(value: int) -> None:
            await asyncio.sleep(0.01)
            done.append(value)

        writer.submit(slow_write(1), "write 1")
        writer.submit(slow_write(2), "write 2")
        assert writer.pending_count == 2

        await writer.flush()

        assert sorted(done) == [1, 2]
        assert writer.pending_count == 0

    @pytest.mark.asyncio
    async def test_persistence_failure_is_logged_not_raised(
        self, caplog: pytest.LogCaptureFixture,
    ) -> None:
        writer = BackgroundWriter()

        async def failing_write() -> None:
            raise PersistenceFailure("mongo down")

        with caplog.at_level(logging.WARNING, logger="roomchat.services.background"):
            writer.submit(failing_write(), "保存消息 id=1")
            await writer.flush()

        assert "持久化失败" in caplog.text
        assert "mongo down" in caplog.text
        assert writer.pending_count == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged_as_error(
        self, caplog: pytest.LogCaptureFixture,
    ) -> None:
        writer = BackgroundWriter()

        async def broken() -> None:
            raise KeyError("boom")

        with caplog.at_level(logging.ERROR, logger="roomchat.services.background"):
            writer.submit(broken(), "broken task")
            await writer.flush()

        assert any(record.levelno == logging.ERROR for record in caplog.records)
