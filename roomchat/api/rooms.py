"""
roomchat.api.rooms
~~~~~~~~~~~~~~~~~~

只读 REST 接口 —— 供客户端轮询房间与消息。

端点:
  - ``GET /rooms``             → 房间列表（创建顺序）
  - ``GET /messages/{room}``   → 最近的消息（时间正序）
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from roomchat.api.deps import get_chat_system
from roomchat.schemas.api_response import ApiResponse
from roomchat.schemas.chat import ChatMessage, Room
from roomchat.services.chat_system import ChatSystem

router: APIRouter = APIRouter()


@router.get("/rooms", summary="获取房间列表", response_model=ApiResponse[list[Room]])
async def list_rooms(system: ChatSystem = Depends(get_chat_system)) -> ApiResponse[list[Room]]:
    return ApiResponse.ok(data=system.directory.list())


@router.get(
    "/messages/{room}",
    summary="获取房间最近消息",
    response_model=ApiResponse[list[ChatMessage]],
)
async def list_messages(
    room: str, system: ChatSystem = Depends(get_chat_system),
) -> ApiResponse[list[ChatMessage]]:
    """返回指定房间最近的消息（按时间正序，最多 ``HISTORY_LIMIT`` 条）。

    存储不可用时抛出 ``PersistenceFailure``，由全局处理器转为 503。
    """
    messages = await system.store.recent_messages(
        room, limit=system.presence.history_limit,
    )
    return ApiResponse.ok(data=messages)
