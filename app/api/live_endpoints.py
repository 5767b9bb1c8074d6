"""
app.api.live_endpoints
~~~~~~~~~~~~~~~~~~~~~~

协调服务 REST 接口 —— 直播列表、聚合状态与内容审核。

路由前缀 ``/api``。

端点:
  - ``GET  /streams``           → 获取活跃直播列表（与 ``active_streams`` 负载一致）
  - ``GET  /stats``             → 在线人数 / 排队人数 / 会话数
  - ``POST /moderation/check``  → 客户端发送聊天消息前调用的审核接口
"""
from fastapi import APIRouter, Depends, Request

from app.api.deps import get_coordinator, get_moderation_service
from app.core.rate_limit import limiter
from app.schemas.api_response import ApiResponse
from app.schemas.events import StreamInfoData
from app.schemas.live_interactions import (
    ModerationCheckRequest,
    ModerationVerdictData,
    StatsData,
)
from app.services.coordinator import Coordinator
from app.services.moderation import ModerationService

router: APIRouter = APIRouter()


# ── 直播与状态端点 ────────────────────────────────────────────────────


@router.get("/streams", summary="获取活跃直播列表", response_model=ApiResponse[list[StreamInfoData]])
@limiter.limit("10/second")
async def list_streams(request: Request, coordinator: Coordinator = Depends(get_coordinator)):
    """返回所有进行中的直播（按开播顺序）。"""
    return ApiResponse.ok(data=coordinator.list_streams())


@router.get("/stats", summary="获取在线状态", response_model=ApiResponse[StatsData])
@limiter.limit("10/second")
async def get_stats(request: Request, coordinator: Coordinator = Depends(get_coordinator)):
    """返回在线连接数、匹配队列长度、进行中的会话与直播数。"""
    return ApiResponse.ok(data=coordinator.stats())


# ── 审核端点 ──────────────────────────────────────────────────────────

@router.post(
    "/moderation/check",
    summary="审核聊天文本",
    response_model=ApiResponse[ModerationVerdictData],
)
@limiter.limit("5/second")
async def check_message(
    request: Request,
    check_request: ModerationCheckRequest,
    moderation: ModerationService = Depends(get_moderation_service),
):
    """对一段聊天文本做安全判定。

    分类器出错时放行（``source=fallback``），客户端不应因此阻塞发送。

    Args:
        request: FastAPI Request 对象（用于限流判断）。
        check_request: 包含待审核文本的请求体。
    """
    verdict = await moderation.check(check_request.text)
    return ApiResponse.ok(data=verdict)
