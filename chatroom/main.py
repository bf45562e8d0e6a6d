"""
chatroom.main
~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载静态页面、定义生命周期。
"""
from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from chatroom.api import room, ws
from chatroom.core.config import settings
from chatroom.core.logging import get_logger, setup_logging
from chatroom.core.network import client_urls
from chatroom.schemas.api_response import ApiResponse
from chatroom.services.chat_room import ChatRoom

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


def _resolve_static_dir() -> str:
    """解析静态页面目录的绝对路径（相对路径以项目根目录为基准）。"""
    if os.path.isabs(settings.STATIC_DIR):
        return settings.STATIC_DIR
    base_dir: str = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(base_dir, settings.STATIC_DIR)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子：聊天室必须在第一个请求之前就绪。"""
    # ── 启动 ──
    chat_room = ChatRoom(
        queue_capacity=settings.QUEUE_CAPACITY,
        broadcast_interval=settings.broadcast_interval_seconds,
        line_break=settings.LINE_BREAK,
    )
    await chat_room.start()
    app.state.chat_room = chat_room

    logger.info(
        "🚀 应用已启动 | env=%s | debug=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
    )
    for url in client_urls(settings.PORT):
        logger.info("聊天客户端可通过此地址连接: %s", url)
    yield
    # ── 关闭 ──
    await chat_room.stop()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="实时多人聊天室后端",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

if settings.allow_cors_all_origins:
    # dev / test 环境：允许所有来源，方便本地调试
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[],
        allow_methods=["GET"],
        allow_headers=["*"],
    )


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "服务器内部错误"
    response = ApiResponse.fail(msg=detail, code=500)
    return JSONResponse(
        status_code=500,
        content=response.model_dump(),
    )


@app.get("/health", tags=["System"])
async def health_check(request: Request) -> JSONResponse:
    """验证服务是否正常运行。"""
    chat_room: ChatRoom = request.app.state.chat_room
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "broadcasting": chat_room.loop.running,
            "online_count": chat_room.online_count,
        },
    )


# ── 路由挂载（静态页面最后挂载，兜底所有其他路径）─────────────────────
app.include_router(room.router, prefix="/api", tags=["Room"])
app.include_router(ws.router, tags=["WebSocket Chat"])
app.mount(
    "/",
    StaticFiles(directory=_resolve_static_dir(), html=True, check_dir=False),
    name="static",
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chatroom.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )
