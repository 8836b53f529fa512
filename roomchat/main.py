"""
roomchat.main
~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roomchat.api import events, rooms
from roomchat.core.config import settings
from roomchat.core.exceptions import PersistenceFailure
from roomchat.core.logging import get_logger, setup_logging
from roomchat.db import close_mongo, connect_mongo, get_database, ping_mongo
from roomchat.db.chat_store import ChatStore
from roomchat.schemas.api_response import ApiResponse
from roomchat.services.chat_system import ChatSystem

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子：连接存储 → 初始化聊天系统；关闭时反向收尾。"""
    await connect_mongo()
    system = ChatSystem(ChatStore(get_database()))
    await system.init()
    app.state.chat_system = system
    logger.info(
        "🚀 应用已启动 | env=%s | debug=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
    )
    yield
    await system.teardown()
    await close_mongo()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="房间聊天实时消息后端",
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
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(rooms.router, prefix="/api", tags=["Rooms & Messages"])
app.include_router(events.router, tags=["WebSocket Chat"])


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure) -> JSONResponse:
    """存储不可用 → 503，客户端可稍后重试。"""
    logger.warning("存储不可用: %s %s -> %s", request.method, request.url, exc)
    response = ApiResponse.fail(msg="存储暂不可用", code=503)
    return JSONResponse(status_code=503, content=response.model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "服务器内部错误"
    response = ApiResponse.fail(msg=detail, code=500)
    return JSONResponse(status_code=500, content=response.model_dump())


@app.get("/health", tags=["System"])
async def health_check() -> JSONResponse:
    """存活检查；存储不可达时进程仍然存活，只在 ``store`` 中标明。"""
    return JSONResponse(
        content={
            "status": "ok",
            "store": "ok" if await ping_mongo() else "unavailable",
            "environment": settings.ENVIRONMENT,
            "version": settings.VERSION,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "roomchat.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,
        log_level=settings.effective_log_level.lower(),
    )
