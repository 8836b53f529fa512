"""
tests.test_registry
~~~~~~~~~~~~~~~~~~~

ConnectionRegistry 单元测试。
"""
from __future__ import annotations

from roomchat.services.registry import ConnectionRegistry, ConnectionState


class TestConnectionRegistry:
    """测试连接登记表的基本操作与未知 ID 的容错。"""

    def test_register_starts_unjoined(self) -> None:
        """新登记的连接没有房间，状态为 UNJOINED。"""
        registry = ConnectionRegistry()
        connection = registry.register("c1", "alice")

        assert registry.get("c1") is connection
        assert connection.display_name == "alice"
        assert connection.current_room is None
        assert connection.state is ConnectionState.UNJOINED

    def test_set_room_moves_to_joined(self) -> None:
        registry = ConnectionRegistry()
        registry.register("c1")

        registry.set_room("c1", "general")

        assert registry.get("c1").current_room == "general"
        assert registry.get("c1").state is ConnectionState.JOINED

    def test_claim_name_only_once(self) -> None:
        """显示名一旦确定就不再改变。"""
        registry = ConnectionRegistry()
        registry.register("c1")

        registry.claim_name("c1", "alice")
        registry.claim_name("c1", "mallory")

        assert registry.get("c1").display_name == "alice"

    def test_empty_display_name_is_unset(self) -> None:
        registry = ConnectionRegistry()
        assert registry.register("c1", "").display_name is None

    def test_unknown_ids_are_noops(self) -> None:
        """断线竞态下对未知 ID 的操作不应抛出。"""
        registry = ConnectionRegistry()

        registry.set_room("ghost", "general")
        registry.claim_name("ghost", "alice")
        registry.unregister("ghost")

        assert registry.get("ghost") is None
        assert len(registry) == 0

    def test_unregister_removes_connection(self) -> None:
        registry = ConnectionRegistry()
        registry.register("c1")
        registry.register("c2")

        registry.unregister("c1")

        assert registry.get("c1") is None
        assert len(registry) == 1
