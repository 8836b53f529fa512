"""
roomchat.api.events
~~~~~~~~~~~~~~~~~~~

WebSocket 实时事件接口。

提供 ``/ws`` 端点（可选 ``?username=`` 作为连接时的显示名）。每一帧都是
``{"event": ..., "data": {...}}`` 形式的 JSON。

客户端 → 服务端:
  - ``join-room``    ``{username, room}``
  - ``leave-room``   ``{username, room}``
  - ``send-message`` ``{text, username, room}``
  - ``create-room``  ``{name}``

服务端 → 客户端:
  - ``message``   单条消息 / 历史批次 / 系统通知
  - ``room-list`` 房间列表（连接时、新房间创建后）
  - ``error``     仅发给出错的发送方，连接保持打开
"""
from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from roomchat.core.exceptions import InvalidMessage, InvalidRoomName, PersistenceFailure
from roomchat.core.logging import connection_id_ctx_var, get_logger
from roomchat.schemas.chat import (
    ClientEvent,
    CreateRoomRequest,
    JoinRoomRequest,
    LeaveRoomRequest,
    SendMessageRequest,
    ServerEvent,
)
from roomchat.services.chat_system import ChatSystem

logger = get_logger(__name__)

router: APIRouter = APIRouter()

EventHandler = Callable[[ChatSystem, str, dict[str, Any]], Awaitable[None]]


# ── 事件处理 ──────────────────────────────────────────────────────────

async def _on_join_room(system: ChatSystem, connection_id: str, data: dict[str, Any]) -> None:
    request = JoinRoomRequest.model_validate(data)
    await system.presence.join(connection_id, request.username, request.room)


async def _on_leave_room(system: ChatSystem, connection_id: str, data: dict[str, Any]) -> None:
    request = LeaveRoomRequest.model_validate(data)
    system.presence.leave(connection_id, request.username, request.room)


async def _on_send_message(system: ChatSystem, connection_id: str, data: dict[str, Any]) -> None:
    request = SendMessageRequest.model_validate(data)
    system.router.send(request.text, request.username, request.room)


async def _on_create_room(system: ChatSystem, connection_id: str, data: dict[str, Any]) -> None:
    request = CreateRoomRequest.model_validate(data)
    await system.directory.create(request.name)


_HANDLERS: dict[str, EventHandler] = {
    "join-room": _on_join_room,
    "leave-room": _on_leave_room,
    "send-message": _on_send_message,
    "create-room": _on_create_room,
}


def _error(system: ChatSystem, connection_id: str, code: str, detail: str, event: str | None) -> None:
    logger.info("事件被拒绝 | event=%s | code=%s | %s", event, code, detail)
    system.hub.emit(connection_id, ServerEvent.error(code, detail, event=event))


async def dispatch_event(system: ChatSystem, connection_id: str, raw: str) -> None:
    """解析一帧客户端消息并交给对应的处理函数。

    所有可预期的错误都转换为发给该连接的 ``error`` 事件，不会抛出。
    """
    try:
        envelope = ClientEvent.model_validate_json(raw)
    except ValidationError as e:
        _error(system, connection_id, "invalid_payload", _describe(e), None)
        return

    handler = _HANDLERS.get(envelope.event)
    if handler is None:
        _error(system, connection_id, "unknown_event", f"未知事件 {envelope.event!r}", envelope.event)
        return

    try:
        await handler(system, connection_id, envelope.data)
    except ValidationError as e:
        code = "invalid_message" if envelope.event == "send-message" else "invalid_payload"
        _error(system, connection_id, code, _describe(e), envelope.event)
    except InvalidMessage as e:
        _error(system, connection_id, "invalid_message", str(e), envelope.event)
    except InvalidRoomName as e:
        _error(system, connection_id, "invalid_payload", str(e), envelope.event)
    except PersistenceFailure as e:
        logger.warning("事件处理时存储失败 | event=%s | %s", envelope.event, e)
        _error(system, connection_id, "persistence_failure", "存储暂不可用，请稍后重试", envelope.event)


def _describe(error: ValidationError) -> str:
    """把 pydantic 校验错误压成一行：``field: msg; field: msg``。"""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "payload"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


# ── WebSocket 端点 ────────────────────────────────────────────────────

@router.websocket("/ws")
async def websocket_chat_endpoint(websocket: WebSocket, username: str | None = None) -> None:
    """WebSocket 聊天端点。

    连接建立后立即推送房间列表；之后逐帧读取客户端事件并顺序处理，
    同一连接的事件不会并发执行。

    Args:
        websocket: FastAPI WebSocket 连接对象。
        username: 可选的显示名（查询参数）。
    """
    connection_id = uuid.uuid4().hex[:12]
    token = connection_id_ctx_var.set(connection_id)
    system: ChatSystem = websocket.app.state.chat_system

    try:
        await websocket.accept()
        system.attach(connection_id, websocket, display_name=(username or "").strip() or None)
        logger.info("新连接已建立 | username=%s | 在线: %d", username, system.hub.online_count)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw: str | None = message.get("text")
                if raw is None:
                    # 二进制帧：回复错误，连接保持
                    _error(system, connection_id, "invalid_payload", "仅支持文本帧", None)
                    continue
                await dispatch_event(system, connection_id, raw)
        except WebSocketDisconnect:
            pass  # 正常断开
        except Exception as e:
            logger.error("WebSocket 处理异常: %s", e, exc_info=True)
        finally:
            system.detach(connection_id)
            logger.info("连接已断开")
    finally:
        connection_id_ctx_var.reset(token)
