"""
roomchat.schemas
~~~~~~~~~~~~~~~~
Pydantic models for the chat domain, the WebSocket events and the HTTP API.
"""
from roomchat.schemas.api_response import ApiResponse
from roomchat.schemas.chat import (
    SYSTEM_USERNAME,
    ChatMessage,
    ClientEvent,
    CreateRoomRequest,
    EventError,
    JoinRoomRequest,
    LeaveRoomRequest,
    Room,
    SendMessageRequest,
    ServerEvent,
)

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
