"""
chatroom.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

REST 接口的统一应答体。聊天本身走 WebSocket 纯文本，不使用此结构。
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 JSON 应答体: ``{"code": 200, "data": {...}, "msg": "success"}``。

    Attributes:
        code: 业务状态码，200 表示成功。
        data: 实际业务数据。
        msg: 人类可读的状态消息。
    """

    code: int = Field(default=200, description="业务状态码")
    data: T = Field(..., description="业务数据")
    msg: str = Field(default="success", description="状态消息")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str = "error", code: int = 500) -> ApiResponse[Any]:
        """构造失败响应，``data`` 固定为 ``None``。"""
        return cls(code=code, data=None, msg=msg)
