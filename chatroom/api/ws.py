"""
chatroom.api.ws
~~~~~~~~~~~~~~~

WebSocket 聊天接口。

连接协议:
  - 连接建立后收到的第一条消息即为显示名（原样使用，不做校验）
  - 名字已被占用时服务端以 1008 关闭连接
  - 之后每条消息都署名为 ``<B>name:</B> text`` 进入广播队列
  - 服务端按固定周期推送合并后的广播块，块内各行以 ``<BR>`` 分隔
"""
from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from chatroom.core.logging import get_logger
from chatroom.services.chat_room import ChatRoom

logger = get_logger(__name__)

router: APIRouter = APIRouter()


async def _receive_message(websocket: WebSocket) -> str:
    """读取下一条消息，文本帧与二进制帧（按 UTF-8 解码）一视同仁。

    Raises:
        WebSocketDisconnect: 对端已断开。
    """
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(
            code=message.get("code", status.WS_1000_NORMAL_CLOSURE),
            reason=message.get("reason"),
        )
    text = message.get("text")
    if text is not None:
        return text
    return (message.get("bytes") or b"").decode("utf-8", errors="replace")


@router.websocket("/ws")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket 聊天端点。

    任何接收失败都视为对端断开：报名阶段关闭连接后结束，在线阶段则退出聊天室。

    Args:
        websocket: FastAPI WebSocket 连接对象。
    """
    room: ChatRoom = websocket.app.state.chat_room
    await websocket.accept()

    # 阶段 1: 等待显示名
    try:
        name: str = await _receive_message(websocket)
    except WebSocketDisconnect:
        logger.debug("连接在报名前断开")
        return
    except Exception as e:
        logger.error("WebSocket 报名阶段异常: %s", e, exc_info=True)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    client = await room.join(name, websocket)
    if client is None:
        await websocket.close(
            code=status.WS_1008_POLICY_VIOLATION,
            reason="name already taken",
        )
        return

    # 阶段 2: 转发发言，直到连接断开
    try:
        while True:
            text: str = await _receive_message(websocket)
            await client.new_msg(text)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket 接收异常: %s | name=%s", e, name, exc_info=True)
    finally:
        await client.exit()
