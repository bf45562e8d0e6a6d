"""
chatroom.schemas.room
~~~~~~~~~~~~~~~~~~~~~

聊天室相关的 Pydantic 响应模型。
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class RoomInfoData(BaseModel):
    """房间摘要信息数据类型"""

    online_count: int = Field(..., description="当前在线成员数")
    members: list[str] = Field(..., description="在线成员名（按加入顺序）")
    pending_messages: int = Field(..., description="等待下一次广播的消息条数")
