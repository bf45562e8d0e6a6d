"""
chatroom.services.message_queue
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

待广播消息队列 —— 有界 FIFO，多个连接写入，广播循环独占读取。

队列满时 ``put`` 会挂起调用方，直到广播循环下一次 ``drain`` 腾出空间。
"""
from __future__ import annotations

import asyncio


class MessageQueue:
    """有界的待广播消息队列。

    Attributes:
        capacity: 队列最多容纳的消息条数。
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"队列容量必须为正整数，收到 {capacity}")
        self.capacity = capacity
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=capacity)

    async def put(self, fragment: str) -> None:
        """追加一条消息；队列已满时挂起，直到有空位。"""
        await self._queue.put(fragment)

    def offer(self, fragment: str) -> bool:
        """不等待地追加一条消息；队列已满时放弃并返回 ``False``。"""
        try:
            self._queue.put_nowait(fragment)
        except asyncio.QueueFull:
            return False
        return True

    def drain(self) -> list[str]:
        """取走当前已在队列中的全部消息（不等待新消息到达）。

        Returns:
            按入队顺序排列的消息列表，队列为空时返回空列表。
        """
        fragments: list[str] = []
        while True:
            try:
                fragments.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        return fragments

    def qsize(self) -> int:
        """当前排队中的消息条数。"""
        return self._queue.qsize()

    def full(self) -> bool:
        return self._queue.full()
