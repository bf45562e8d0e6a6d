from fastapi import Request

from chatroom.services.chat_room import ChatRoom


def get_chat_room(request: Request) -> ChatRoom:
    return request.app.state.chat_room
