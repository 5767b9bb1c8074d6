"""
app.api.ws
~~~~~~~~~~

WebSocket 实时交互接口 —— 随机聊天（1:1）与直播（1:N）共用同一条连接。

帧格式为 ``{"event": "<事件名>", "data": <负载>}``。每条连接运行两个协程：

- ``receive_loop``：读取上行帧、限流、交给 ``Coordinator.dispatch()``；
- ``send_loop``：把协调器投递到连接 ``outbox`` 的下行消息依次写回客户端。

传输层断开一律视为一次隐式的断开事件，由 ``Coordinator.disconnect()`` 完成级联清理。
"""
from __future__ import annotations

import asyncio
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app.core.logging import connection_id_ctx_var, get_logger
from app.core.rate_limit import WebSocketRateLimiter
from app.core.settings import settings
from app.schemas.events import CHAT_EVENTS, InboundEnvelope
from app.services.coordinator import Coordinator

logger = get_logger(__name__)

router: APIRouter = APIRouter()


def parse_frame(raw: str) -> InboundEnvelope | None:
    """解析上行帧；格式错误返回 ``None``。"""
    try:
        return InboundEnvelope.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("上行帧格式错误，已丢弃: %s", e.errors(include_url=False))
        return None


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """随机聊天 / 直播的 WebSocket 端点。

    接入后立即收到 ``active_streams`` 快照与 ``online_stats``。
    聊天事件（``send_random_message`` / ``send_live_message``）按连接限流，
    过快时丢弃并回送 ``system_notice``。

    Args:
        websocket: FastAPI WebSocket 连接对象。
    """
    connection_id = uuid.uuid4().hex
    token = connection_id_ctx_var.set(connection_id)

    try:
        coordinator: Coordinator = websocket.app.state.coordinator
        await websocket.accept()
        connection = await coordinator.connect(connection_id)

        ws_limiter = WebSocketRateLimiter(interval_seconds=settings.WS_RATE_LIMIT_INTERVAL)

        async def receive_loop() -> None:
            try:
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        raise WebSocketDisconnect(message.get("code", 1000))
                    raw = message.get("text")
                    if raw is None:
                        logger.warning("收到二进制帧，已丢弃")
                        continue

                    frame = parse_frame(raw)
                    if frame is None:
                        continue
                    if frame.event in CHAT_EVENTS and not ws_limiter.is_allowed(connection_id):
                        coordinator.notify(connection_id, "rate_limited", "消息发送过快，请稍后再试")
                        continue
                    await coordinator.dispatch(connection_id, frame.event, frame.data)
            except WebSocketDisconnect:
                pass  # 正常断开
            except Exception as e:
                logger.error("WebSocket 接收异常: %s", e, exc_info=True)
            finally:
                # 断开即清理；同时关闭 outbox，让发送协程退出
                await coordinator.disconnect(connection_id)

        async def send_loop() -> None:
            try:
                while True:
                    outbound = await connection.outbox.get()
                    if outbound is None:
                        break
                    await websocket.send_json(outbound)
            except Exception as e:
                logger.debug("WebSocket 发送失败，等待接收端感知断开: %s", e)

        try:
            await asyncio.gather(receive_loop(), send_loop())
        finally:
            ws_limiter.remove_client(connection_id)
    finally:
        connection_id_ctx_var.reset(token)
