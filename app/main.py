"""
app.main
~~~~~~~~

协调服务入口 —— 组装 FastAPI 应用。

启动::

    python -m app.main

每个 worker 持有一个独立的 ``Coordinator``，在线状态只存在于进程内存中，
不跨重启、不跨 worker 共享。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api import live_endpoints, ws
from app.core.logging import get_logger, setup_logging
from app.core.rate_limit import limiter
from app.core.settings import settings
from app.schemas.api_response import ApiResponse
from app.services.coordinator import Coordinator
from app.services.moderation import ModerationService

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """创建协调器与审核服务并挂到 ``app.state``。"""
    app.state.moderation = ModerationService.from_settings()
    app.state.coordinator = Coordinator(moderation=app.state.moderation)
    logger.info(
        "🚀 协调服务已启动 | env=%s | policy=%s | ai_moderation=%s | enforce=%s",
        settings.ENVIRONMENT,
        settings.REPEAT_PARTNER_POLICY,
        settings.ai_moderation_enabled,
        settings.MODERATION_ENFORCE,
    )
    yield
    stats = app.state.coordinator.stats()
    logger.info("👋 协调服务已关闭 | 关闭时在线: %d | 直播: %d", stats.online_count, stats.stream_count)


app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="随机聊天与直播的在线状态 / 匹配协调服务",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

# slowapi 从 app.state.limiter 读取限流器
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=not settings.is_prod,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(live_endpoints.router, prefix="/api", tags=["Streams & Moderation"])
app.include_router(ws.router, tags=["WebSocket"])


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    """REST 接口未处理异常统一包装为 ``ApiResponse.fail()``。"""
    logger.error("未捕获异常 | %s %s | %s", request.method, request.url.path, exc, exc_info=True)
    msg = "服务器内部错误" if settings.is_prod else f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content=ApiResponse.fail(msg=msg).model_dump())


@app.get("/health", tags=["System"])
async def health_check(request: Request) -> dict[str, object]:
    """存活检查，附带当前在线人数。"""
    coordinator: Coordinator = request.app.state.coordinator
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "online": coordinator.registry.online_count,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,
        log_level=settings.effective_log_level.lower(),
    )
