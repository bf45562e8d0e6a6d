"""
chatroom.api.room
~~~~~~~~~~~~~~~~~

聊天室 REST 接口 —— 只读查询。

端点:
  - ``GET /room`` → 获取在线成员与待广播消息数
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from chatroom.api.deps import get_chat_room
from chatroom.schemas.api_response import ApiResponse
from chatroom.schemas.room import RoomInfoData
from chatroom.services.chat_room import ChatRoom

router: APIRouter = APIRouter()


@router.get("/room", summary="获取聊天室概况")
async def room_info(
    room: ChatRoom = Depends(get_chat_room),
) -> ApiResponse[RoomInfoData]:
    """返回当前在线人数、成员名单以及尚未广播的消息条数。"""
    return ApiResponse.ok(data=room.info())
