"""
chatroom.services.client
~~~~~~~~~~~~~~~~~~~~~~~~

聊天室成员 —— 一个已成功加入的连接。

``Client`` 只持有所属 ``ChatRoom`` 的弱引用：发言和退出都经由房间完成，
从不直接访问消息队列。
"""
from __future__ import annotations

import weakref
from typing import TYPE_CHECKING

from fastapi import WebSocket

if TYPE_CHECKING:
    from chatroom.services.chat_room import ChatRoom


def format_chat_line(name: str, text: str) -> str:
    """组装带署名的聊天行。"""
    return f"<B>{name}:</B> {text}"


class Client:
    """一个在线成员。

    Attributes:
        name: 加入时确定的显示名，之后不可变。
        transport: 该成员独占的 WebSocket 连接。
    """

    def __init__(self, name: str, transport: WebSocket, room: ChatRoom) -> None:
        self._name = name
        self.transport = transport
        self._room_ref: weakref.ref[ChatRoom] = weakref.ref(room)

    def __repr__(self) -> str:
        return f"Client(name={self._name!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def room(self) -> ChatRoom:
        """所属房间；房间已被回收时抛出 ``RuntimeError``。"""
        room = self._room_ref()
        if room is None:
            raise RuntimeError(f"成员 {self._name} 所属的聊天室已不存在")
        return room

    async def new_msg(self, text: str) -> None:
        """把一条发言署名后交给房间排队广播。"""
        await self.room.post(format_chat_line(self._name, text))

    async def exit(self) -> None:
        """退出房间。重复调用是安全的。"""
        await self.room.leave(self._name, self)

    async def send(self, block: str) -> None:
        """把广播块原样写入连接，传输异常直接抛给调用方。"""
        await self.transport.send_text(block)
