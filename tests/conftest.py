"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用 ``AsyncMock`` 模拟 WebSocket 连接，
使聊天室核心逻辑可在无网络环境下快速测试。
"""
from __future__ import annotations

import os
from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置


@pytest.fixture()
def fake_websocket() -> Callable[[], AsyncMock]:
    """WebSocket mock 工厂，同一测试中可创建多个独立连接。"""

    def _make() -> AsyncMock:
        return AsyncMock(spec=WebSocket)

    return _make


@pytest.fixture()
def sent_blocks() -> Callable[[AsyncMock], list[str]]:
    """取出某个 mock 连接通过 ``send_text`` 收到的全部广播块。"""

    def _collect(websocket: AsyncMock) -> list[str]:
        return [call.args[0] for call in websocket.send_text.call_args_list]

    return _collect
