"""
chatroom.services.broadcast_loop
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

广播心跳 —— 按固定周期反复执行一次"取队列 + 群发"。

周期是延迟与合并效率之间的折中，可通过 ``BROADCAST_INTERVAL_MS`` 调整。
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from chatroom.core.logging import get_logger

logger = get_logger(__name__)


class BroadcastLoop:
    """周期性执行 ``tick`` 的后台任务。

    单次 ``tick`` 抛出的异常只记录日志，不会终止循环。

    Attributes:
        interval: 两次 ``tick`` 之间的休眠秒数，必须大于 0。
    """

    def __init__(self, tick: Callable[[], Awaitable[None]], interval: float) -> None:
        if interval <= 0:
            raise ValueError(f"广播周期必须大于 0，收到 {interval}")
        self._tick = tick
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """后台任务是否仍在运行。"""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """在当前事件循环中启动后台任务。"""
        if self._task is not None:
            raise RuntimeError("广播循环已经启动过")
        self._task = asyncio.create_task(self._run(), name="chatroom-broadcast")
        logger.debug("广播循环已启动 | interval=%.3fs", self.interval)

    async def stop(self) -> None:
        """取消后台任务并等待其退出。"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.debug("广播循环已停止")

    async def _run(self) -> None:
        while True:
            try:
                await self._tick()
            except Exception as e:
                logger.error("广播周期执行失败: %s", e, exc_info=True)
            await asyncio.sleep(self.interval)
