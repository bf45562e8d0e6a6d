"""
tests.test_chat_room
~~~~~~~~~~~~~~~~~~~~

ChatRoom 业务层单元测试。

验证：
- 名字唯一性（含并发加入）
- 加入 / 退出通知与重复退出的安全性
- 广播块的 FIFO 合并与分隔符
- 单个成员发送失败不影响其他成员
- 队列满时的背压

WebSocket 连接全部用 ``AsyncMock`` 替代，广播由测试手动触发（不启动广播循环）。
"""
from __future__ import annotations

import asyncio

import pytest

from chatroom.services.chat_room import ChatRoom, join_notice, leave_notice


# ── 加入 / 退出 ───────────────────────────────────────────────────────

class TestJoinLeave:
    """测试成员注册表。"""

    @pytest.mark.asyncio
    async def test_join_registers_client_and_queues_notice(self, fake_websocket) -> None:
        room = ChatRoom()
        transport = fake_websocket()

        client = await room.join("alice", transport)

        assert client is not None
        assert client.name == "alice"
        assert client.transport is transport
        assert client.room is room
        assert room._clients.get("alice") is client
        assert room.queue.drain() == ["<B>alice</B> has joined the chat."]

    @pytest.mark.asyncio
    async def test_join_with_taken_name_fails_without_side_effects(self, fake_websocket) -> None:
        room = ChatRoom()
        first = await room.join("alice", fake_websocket())
        room.queue.drain()

        second = await room.join("alice", fake_websocket())

        assert second is None
        assert room._clients.get("alice") is first
        assert room.online_count == 1
        assert room.queue.drain() == []

    @pytest.mark.asyncio
    async def test_concurrent_joins_with_same_name_only_one_succeeds(self, fake_websocket) -> None:
        room = ChatRoom()

        results = await asyncio.gather(
            *(room.join("alice", fake_websocket()) for _ in range(10)),
        )

        winners = [client for client in results if client is not None]
        assert len(winners) == 1
        assert room._clients.get("alice") is winners[0]
        assert room.queue.drain() == [join_notice("alice")]

    @pytest.mark.asyncio
    async def test_names_are_accepted_verbatim(self, fake_websocket) -> None:
        """名字不做裁剪或校验，首尾空格不同即视为不同名字。"""
        room = ChatRoom()

        assert await room.join("alice", fake_websocket()) is not None
        assert await room.join(" alice ", fake_websocket()) is not None
        assert room.member_names() == ["alice", " alice "]

    @pytest.mark.asyncio
    async def test_leave_removes_client_and_queues_notice(self, fake_websocket) -> None:
        room = ChatRoom()
        await room.join("alice", fake_websocket())
        room.queue.drain()

        await room.leave("alice")

        assert room._clients.get("alice") is None
        assert room.queue.drain() == ["<B>alice</B> has left the chat."]

    @pytest.mark.asyncio
    async def test_leave_twice_is_safe(self, fake_websocket) -> None:
        """重复退出不破坏注册表，也不会重复发送退出通知。"""
        room = ChatRoom()
        await room.join("alice", fake_websocket())
        await room.join("bob", fake_websocket())
        room.queue.drain()

        await asyncio.gather(room.leave("bob"), room.leave("bob"))

        assert room.member_names() == ["alice"]
        assert room.queue.drain() == [leave_notice("bob")]

    @pytest.mark.asyncio
    async def test_stale_client_exit_does_not_evict_new_owner(self, fake_websocket) -> None:
        """旧连接晚到的 exit 不能把同名的新成员踢掉。"""
        room = ChatRoom()
        old = await room.join("alice", fake_websocket())
        await old.exit()
        new = await room.join("alice", fake_websocket())
        room.queue.drain()

        await old.exit()

        assert room._clients.get("alice") is new
        assert room.queue.drain() == []

    @pytest.mark.asyncio
    async def test_name_can_be_reused_after_leave(self, fake_websocket) -> None:
        room = ChatRoom()
        await room.join("alice", fake_websocket())
        await room.leave("alice")

        assert await room.join("alice", fake_websocket()) is not None


# ── 广播 ──────────────────────────────────────────────────────────────

class TestBroadcast:
    """测试取队列 + 群发。"""

    @pytest.mark.asyncio
    async def test_block_joins_fragments_in_post_order(self, fake_websocket, sent_blocks) -> None:
        room = ChatRoom()
        alice_ws, bob_ws = fake_websocket(), fake_websocket()
        await room.join("alice", alice_ws)
        await room.join("bob", bob_ws)
        room.queue.drain()

        for fragment in ("A", "B", "C"):
            await room.post(fragment)
        await room.broadcast()

        assert sent_blocks(alice_ws) == ["A<BR>B<BR>C"]
        assert sent_blocks(bob_ws) == ["A<BR>B<BR>C"]

    @pytest.mark.asyncio
    async def test_custom_line_break(self, fake_websocket, sent_blocks) -> None:
        room = ChatRoom(line_break="\n")
        transport = fake_websocket()
        await room.join("alice", transport)
        await room.post("hello")

        await room.broadcast()

        assert sent_blocks(transport) == [f"{join_notice('alice')}\nhello"]

    @pytest.mark.asyncio
    async def test_empty_queue_sends_nothing(self, fake_websocket) -> None:
        room = ChatRoom()
        transport = fake_websocket()
        await room.join("alice", transport)
        room.queue.drain()

        await room.broadcast()

        transport.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcast_without_members_still_drains(self) -> None:
        room = ChatRoom()
        await room.post("nobody listens")

        await room.broadcast()

        assert room.queue.qsize() == 0

    @pytest.mark.asyncio
    async def test_send_failure_is_isolated(self, fake_websocket, sent_blocks) -> None:
        """bob 发送失败不影响 alice 收到同一个块，也不会抛出。"""
        room = ChatRoom()
        alice_ws, bob_ws, carol_ws = fake_websocket(), fake_websocket(), fake_websocket()
        await room.join("alice", alice_ws)
        await room.join("bob", bob_ws)
        await room.join("carol", carol_ws)
        room.queue.drain()
        bob_ws.send_text.side_effect = RuntimeError("connection closed")

        await room.post("hello")
        await room.broadcast()

        assert sent_blocks(alice_ws) == ["hello"]
        assert sent_blocks(carol_ws) == ["hello"]
        # 发送失败的成员由其自身读循环负责退出
        assert room._clients.get("bob") is not None

    @pytest.mark.asyncio
    async def test_leave_during_fan_out_does_not_deadlock(self, fake_websocket, sent_blocks) -> None:
        """发送期间不持有注册表锁：成员在群发途中退出不会卡死。"""
        room = ChatRoom()
        alice_ws, bob_ws = fake_websocket(), fake_websocket()
        await room.join("alice", alice_ws)
        await room.join("bob", bob_ws)
        room.queue.drain()

        async def bob_drops(block: str) -> None:
            await room.leave("bob")
            raise RuntimeError("connection closed")

        bob_ws.send_text.side_effect = bob_drops

        await room.post("hello")
        await asyncio.wait_for(room.broadcast(), timeout=1.0)

        assert sent_blocks(alice_ws) == ["hello"]
        assert room.member_names() == ["alice"]
        assert room.queue.drain() == [leave_notice("bob")]

    @pytest.mark.asyncio
    async def test_fragments_posted_after_drain_go_to_next_block(self, fake_websocket, sent_blocks) -> None:
        room = ChatRoom()
        transport = fake_websocket()
        await room.join("alice", transport)

        await room.broadcast()
        await room.post("later")
        await room.broadcast()

        assert sent_blocks(transport) == [join_notice("alice"), "later"]


# ── 背压 ──────────────────────────────────────────────────────────────

class TestBackpressure:
    """测试队列满时发送方被挂起。"""

    @pytest.mark.asyncio
    async def test_post_blocks_until_broadcast_drains(self, fake_websocket, sent_blocks) -> None:
        room = ChatRoom(queue_capacity=2)
        transport = fake_websocket()
        client = await room.join("alice", transport)
        await client.new_msg("one")

        blocked = asyncio.create_task(client.new_msg("two"))
        await asyncio.sleep(0.01)
        assert not blocked.done()

        await room.broadcast()
        await asyncio.wait_for(blocked, timeout=1.0)
        await room.broadcast()

        assert sent_blocks(transport) == [
            f"{join_notice('alice')}<BR><B>alice:</B> one",
            "<B>alice:</B> two",
        ]

    @pytest.mark.asyncio
    async def test_flood_is_delivered_in_order_with_running_loop(self, fake_websocket, sent_blocks) -> None:
        """广播循环运行时，大量发言被节流但不丢失、不乱序。"""
        room = ChatRoom(queue_capacity=3, broadcast_interval=0.005)
        transport = fake_websocket()
        await room.start()
        try:
            client = await room.join("alice", transport)
            for i in range(20):
                await asyncio.wait_for(client.new_msg(str(i)), timeout=1.0)
            await asyncio.sleep(0.05)
        finally:
            await room.stop()

        lines = "<BR>".join(sent_blocks(transport)).split("<BR>")
        assert lines == [join_notice("alice")] + [f"<B>alice:</B> {i}" for i in range(20)]
        assert all(block.count("<BR>") < 3 for block in sent_blocks(transport))


# ── 生命周期 / 查询 ───────────────────────────────────────────────────

class TestLifecycle:
    """测试启动、停止与房间概况。"""

    @pytest.mark.asyncio
    async def test_start_twice_raises(self) -> None:
        room = ChatRoom()
        await room.start()
        try:
            with pytest.raises(RuntimeError):
                await room.start()
        finally:
            await room.stop()

    @pytest.mark.asyncio
    async def test_running_loop_delivers_join_notice(self, fake_websocket, sent_blocks) -> None:
        room = ChatRoom(broadcast_interval=0.01)
        transport = fake_websocket()
        await room.start()
        try:
            await room.join("alice", transport)
            await asyncio.sleep(0.05)
        finally:
            await room.stop()

        assert sent_blocks(transport) == [join_notice("alice")]

    @pytest.mark.asyncio
    async def test_stop_releases_blocked_poster(self, fake_websocket) -> None:
        """停止时仍在等待空位的发送方会被唤醒，不会永久挂起。"""
        room = ChatRoom(queue_capacity=1)
        client = await room.join("alice", fake_websocket())

        blocked = asyncio.create_task(client.new_msg("stuck"))
        await asyncio.sleep(0.01)
        assert not blocked.done()

        await room.stop()

        await asyncio.wait_for(blocked, timeout=1.0)

    @pytest.mark.asyncio
    async def test_exit_after_stop_with_full_queue_does_not_block(self, fake_websocket) -> None:
        """关闭期间连接退出：队列已满也立即返回，成员照常注销。"""
        room = ChatRoom(queue_capacity=1, broadcast_interval=0.01)
        await room.start()
        client = await room.join("alice", fake_websocket())
        await room.stop()
        await room.post("fills the queue")

        await asyncio.wait_for(client.exit(), timeout=1.0)

        assert room.member_names() == []
        assert room.queue.drain() == ["fills the queue"]

    @pytest.mark.asyncio
    async def test_info(self, fake_websocket) -> None:
        room = ChatRoom()
        await room.join("alice", fake_websocket())
        await room.join("bob", fake_websocket())

        info = room.info()

        assert info.online_count == 2
        assert info.members == ["alice", "bob"]
        assert info.pending_messages == 2


# ── 端到端场景 ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_alice_and_bob_scenario(fake_websocket, sent_blocks) -> None:
    """alice 加入 → bob 加入 → alice 发言 → bob 掉线。"""
    room = ChatRoom()
    alice_ws, bob_ws = fake_websocket(), fake_websocket()

    alice = await room.join("alice", alice_ws)
    await room.broadcast()
    assert sent_blocks(alice_ws) == ["<B>alice</B> has joined the chat."]

    bob = await room.join("bob", bob_ws)
    await room.broadcast()
    assert sent_blocks(alice_ws)[-1] == "<B>bob</B> has joined the chat."
    assert sent_blocks(bob_ws) == ["<B>bob</B> has joined the chat."]

    await alice.new_msg("hi")
    await room.broadcast()
    assert sent_blocks(alice_ws)[-1] == "<B>alice:</B> hi"
    assert sent_blocks(bob_ws)[-1] == "<B>alice:</B> hi"

    bob_ws.send_text.side_effect = RuntimeError("connection closed")
    await bob.exit()
    await room.broadcast()
    assert sent_blocks(alice_ws)[-1] == "<B>bob</B> has left the chat."
    assert len(sent_blocks(bob_ws)) == 2
