"""
chatroom.services.chat_room
~~~~~~~~~~~~~~~~~~~~~~~~~~~

聊天室领域模型 —— 成员注册表 + 待广播消息队列 + 广播循环。

- ``join(name, transport)`` → 登记新成员（重名返回 ``None``）
- ``leave(name)``           → 注销成员，重复调用安全
- ``post(text)``            → 追加一条待广播消息（队列满时挂起）
- ``broadcast()``           → 取空队列，合并成一个块群发给所有成员

整个进程只创建一个 ``ChatRoom``，在 FastAPI lifespan 中初始化并挂载于 ``app.state``。
"""
from __future__ import annotations

import asyncio

from fastapi import WebSocket

from chatroom.core.logging import get_logger
from chatroom.schemas.room import RoomInfoData
from chatroom.services.broadcast_loop import BroadcastLoop
from chatroom.services.client import Client
from chatroom.services.message_queue import MessageQueue

logger = get_logger(__name__)


def join_notice(name: str) -> str:
    return f"<B>{name}</B> has joined the chat."


def leave_notice(name: str) -> str:
    return f"<B>{name}</B> has left the chat."


class ChatRoom:
    """进程内唯一的聊天室。

    注册表的增、删和广播前的快照都在同一把 ``asyncio.Lock`` 下完成；
    实际发送在释放锁之后进行，慢连接不会阻塞加入/退出。

    Attributes:
        queue: 待广播消息队列。
        line_break: 同一广播块内消息之间的分隔符。
        loop: 驱动 ``broadcast`` 的周期任务。
    """

    def __init__(
        self,
        queue_capacity: int = 5,
        broadcast_interval: float = 0.1,
        line_break: str = "<BR>",
    ) -> None:
        self.queue = MessageQueue(queue_capacity)
        self.line_break = line_break
        self.loop = BroadcastLoop(self.broadcast, broadcast_interval)
        self._clients: dict[str, Client] = {}
        self._lock = asyncio.Lock()
        self._stopped = False

    # ── 生命周期 ──────────────────────────────────────────────────────

    async def start(self) -> None:
        """启动广播循环。只能调用一次，且须在任何 join/post 之前。"""
        self.loop.start()
        logger.info(
            "聊天室已启动 | queue_capacity=%d | interval=%.3fs",
            self.queue.capacity, self.loop.interval,
        )

    async def stop(self) -> None:
        """停止广播循环（应用关闭时调用）。

        停止后队列不再有消费者：丢弃剩余消息以唤醒仍在等待空位的发送方，
        之后的 ``post`` 改为不等待，队列满时直接丢弃。
        """
        await self.loop.stop()
        self._stopped = True
        dropped = self.queue.drain()
        if dropped:
            logger.warning("聊天室已停止，丢弃 %d 条未广播消息", len(dropped))

    # ── 成员管理 ──────────────────────────────────────────────────────

    async def join(self, name: str, transport: WebSocket) -> Client | None:
        """登记新成员并广播加入通知。

        Args:
            name: 期望的显示名，原样使用，不做任何校验。
            transport: 该成员的 WebSocket 连接。

        Returns:
            新建的 ``Client``；名字已被占用时返回 ``None``，调用方负责关闭连接。
        """
        async with self._lock:
            if name in self._clients:
                logger.info("加入失败，名字已被占用 | name=%s", name)
                return None
            client = Client(name=name, transport=transport, room=self)
            self._clients[name] = client
            online = len(self._clients)

        logger.info("成员加入聊天室 | name=%s | 在线: %d", name, online)
        await self.post(join_notice(name))
        return client

    async def leave(self, name: str, client: Client | None = None) -> None:
        """注销成员并广播退出通知。

        名字不在注册表中时什么也不做；传入 ``client`` 时，只有注册表里登记的
        正是这个对象才会被移除，避免旧连接误删同名的新成员。
        """
        async with self._lock:
            current = self._clients.get(name)
            if current is None or (client is not None and current is not client):
                return
            del self._clients[name]
            online = len(self._clients)

        logger.info("成员退出聊天室 | name=%s | 在线: %d", name, online)
        await self.post(leave_notice(name))

    # ── 消息 ──────────────────────────────────────────────────────────

    async def post(self, text: str) -> None:
        """追加一条待广播消息。队列已满时挂起，直到下一次广播腾出空间。"""
        if self._stopped:
            if not self.queue.offer(text):
                logger.warning("聊天室已停止且队列已满，丢弃消息: %s", text)
            return
        if self.queue.full():
            logger.debug("消息队列已满，等待下一次广播腾出空间")
        await self.queue.put(text)

    async def broadcast(self) -> None:
        """取空队列，把所有消息合并成一个块发给当前全部成员。

        单个成员发送失败只记录日志，不影响其他成员；该成员由其自身的
        读循环在检测到断开后调用 ``leave`` 注销。
        """
        fragments = self.queue.drain()
        if not fragments:
            return
        block = self.line_break.join(fragments)

        async with self._lock:
            clients = list(self._clients.values())

        logger.debug("广播 %d 条消息 -> %d 位成员", len(fragments), len(clients))
        results = await asyncio.gather(
            *(client.send(block) for client in clients),
            return_exceptions=True,
        )
        for client, result in zip(clients, results):
            if isinstance(result, Exception):
                logger.warning("广播失败 | name=%s | error=%s", client.name, result)

    # ── 查询 ──────────────────────────────────────────────────────────

    @property
    def online_count(self) -> int:
        """当前在线成员数。"""
        return len(self._clients)

    def member_names(self) -> list[str]:
        """当前在线成员名（按加入顺序）。"""
        return list(self._clients)

    def info(self) -> RoomInfoData:
        """返回房间摘要信息。"""
        return RoomInfoData(
            online_count=self.online_count,
            members=self.member_names(),
            pending_messages=self.queue.qsize(),
        )
