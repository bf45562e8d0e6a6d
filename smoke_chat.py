import asyncio

import httpx
from websockets.asyncio.client import connect

BASE_URL = 'http://127.0.0.1:8000'
WS_URL = 'ws://127.0.0.1:8000/ws'


async def recv_block(websocket, timeout: float = 2.0) -> str | None:
    try:
        return await asyncio.wait_for(websocket.recv(), timeout=timeout)
    except asyncio.TimeoutError:
        return None


async def check_room_info():
    print("="*50)
    print(" 验证 REST 聊天室概况 ")
    print("="*50)

    async with httpx.AsyncClient() as client:
        try:
            resp = await client.get(f'{BASE_URL}/api/room')
            print(f"状态码: {resp.status_code} | 返回: {resp.json()}")
        except Exception as e:
            print(f"请求失败: {e}")


async def check_chat_flow():
    print("\n" + "="*50)
    print(" 验证加入 / 发言 / 重名 / 退出 ")
    print("="*50)

    try:
        async with connect(WS_URL) as alice:
            await alice.send('alice')
            print(f" alice 收到: {await recv_block(alice)}")

            async with connect(WS_URL) as bob:
                await bob.send('bob')
                print(f" alice 收到: {await recv_block(alice)}")
                print(f" bob   收到: {await recv_block(bob)}")

                await alice.send('hi')
                print(f" alice 收到: {await recv_block(alice)}")
                print(f" bob   收到: {await recv_block(bob)}")

                async with connect(WS_URL) as imposter:
                    await imposter.send('alice')
                    await imposter.wait_closed()
                    print(f"✅ 重名连接已被关闭 | code={imposter.close_code}")

            print(f" alice 收到: {await recv_block(alice)}")

    except Exception as e:
        print(f"WebSocket 遇到了错误，请确认服务已启动: {e}")


async def main():
    print("🟢 开始执行聊天室冒烟验证...\n")
    print("要求: 在运行本脚本前，请确保主程序服务已经在 http://127.0.0.1:8000 运行。\n")

    await check_room_info()
    await check_chat_flow()

    print("\n🏁 验证结束。")

if __name__ == '__main__':
    asyncio.run(main())
