"""
tests.test_directory
~~~~~~~~~~~~~~~~~~~~

RoomDirectory 单元测试 —— 启动引导、幂等创建、唯一性与变更推送。
"""
from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from roomchat.core.exceptions import InvalidRoomName, PersistenceFailure
from roomchat.schemas.chat import Room
from roomchat.services.directory import RoomDirectory
from fakes import InMemoryStore


class TestBootstrap:
    """测试启动引导。"""

    @pytest.mark.asyncio
    async def test_bootstrap_creates_general(self) -> None:
        store = InMemoryStore()
        directory = RoomDirectory(store)

        await directory.bootstrap()

        assert [room.name for room in directory.list()] == ["general"]
        assert [room.name for room in store.rooms] == ["general"]

    @pytest.mark.asyncio
    async def test_bootstrap_is_idempotent(self) -> None:
        """默认房间已存在时不重复创建。"""
        store = InMemoryStore()
        await RoomDirectory(store).bootstrap()

        directory = RoomDirectory(store)
        await directory.bootstrap()

        assert len(store.rooms) == 1
        assert len(directory) == 1

    @pytest.mark.asyncio
    async def test_bootstrap_keeps_persisted_order(self) -> None:
        store = InMemoryStore()
        store.rooms = [Room(name="general"), Room(name="random"), Room(name="dev")]

        directory = RoomDirectory(store)
        await directory.bootstrap()

        assert [room.name for room in directory.list()] == ["general", "random", "dev"]
        assert store.insert_room_calls == 0

    @pytest.mark.asyncio
    async def test_bootstrap_does_not_notify(self) -> None:
        on_change = MagicMock()
        directory = RoomDirectory(InMemoryStore(), on_change=on_change)

        await directory.bootstrap()

        on_change.assert_not_called()


class TestCreate:
    """测试房间创建。"""

    def setup_method(self) -> None:
        self.store = InMemoryStore()
        self.on_change = MagicMock()
        self.directory = RoomDirectory(self.store, on_change=self.on_change)

    @pytest.mark.asyncio
    async def test_create_new_room_persists_and_notifies(self) -> None:
        await self.directory.bootstrap()

        room = await self.directory.create("random")

        assert room.name == "random"
        assert [r.name for r in self.directory.list()] == ["general", "random"]
        assert [r.name for r in self.store.rooms] == ["general", "random"]
        self.on_change.assert_called_once()
        pushed = self.on_change.call_args[0][0]
        assert [r.name for r in pushed] == ["general", "random"]

    @pytest.mark.asyncio
    async def test_create_trims_name(self) -> None:
        room = await self.directory.create("  random \t")

        assert room.name == "random"
        assert self.directory.get("random") is not None

    @pytest.mark.asyncio
    async def test_create_existing_returns_same_room_without_side_effects(self) -> None:
        """重名创建返回已有房间，不写库、不推送。"""
        await self.directory.bootstrap()
        general = self.directory.get("general")

        room = await self.directory.create("general")

        assert room is general
        assert len(self.directory) == 1
        assert len(self.store.rooms) == 1
        assert self.store.insert_room_calls == 1  # 只有 bootstrap 那一次
        self.on_change.assert_not_called()

    @pytest.mark.asyncio
    async def test_repeated_creates_keep_size(self) -> None:
        first = await self.directory.create("x")
        for _ in range(5):
            assert await self.directory.create("x") is first

        assert len(self.directory) == 1
        assert self.on_change.call_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_creates_insert_once(self) -> None:
        """并发创建同名房间只写入一条记录。"""
        rooms = await asyncio.gather(*(self.directory.create("lobby") for _ in range(5)))

        assert len({room.id for room in rooms}) == 1
        assert len(self.store.rooms) == 1
        assert self.on_change.call_count == 1

    @pytest.mark.asyncio
    async def test_names_stay_unique_across_mixed_sequence(self) -> None:
        for name in ["a", "b", " a", "c", "b ", "a"]:
            await self.directory.create(name)

        names = [room.name for room in self.directory.list()]
        assert names == ["a", "b", "c"]
        assert len(names) == len(set(names))

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self) -> None:
        with pytest.raises(InvalidRoomName):
            await self.directory.create("   ")
        assert self.store.insert_room_calls == 0

    @pytest.mark.asyncio
    async def test_persistence_failure_is_reported_and_retry_is_safe(self) -> None:
        self.store.unavailable = True
        with pytest.raises(PersistenceFailure):
            await self.directory.create("random")

        assert self.directory.get("random") is None
        self.on_change.assert_not_called()

        self.store.unavailable = False
        room = await self.directory.create("random")

        assert room.name == "random"
        assert len(self.store.rooms) == 1
        self.on_change.assert_called_once()

    @pytest.mark.asyncio
    async def test_room_created_elsewhere_is_adopted(self) -> None:
        """其他进程已写入同名房间时，采用库中的记录。"""
        existing = Room(name="random")
        self.store.rooms.append(existing)

        room = await self.directory.create("random")

        assert room.id == existing.id
        assert len(self.store.rooms) == 1
