"""
roomchat.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

HTTP 只读接口的统一应答体：``{"code": 200, "data": ..., "msg": "success"}``。
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 JSON 应答体。

    Attributes:
        code: 业务状态码，200 表示成功，其余与 HTTP 状态码一致。
        data: 实际业务数据（房间列表、消息列表等）。
        msg: 人类可读的状态消息。
    """

    code: int = Field(default=200, description="业务状态码")
    data: T = Field(..., description="业务数据")
    msg: str = Field(default="success", description="状态消息")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str, code: int, data: Any = None) -> ApiResponse[Any]:
        return cls(code=code, data=data, msg=msg)
