"""
app.services.coordinator
~~~~~~~~~~~~~~~~~~~~~~~~

事件调度器 —— 在线状态与匹配的唯一串行化点。

所有对匹配队列和房间目录的“读-改-写”都在 ``self._lock`` 内作为不可分割的单元执行；
单元内部只做同步操作（通知也只是投递到各连接的 ``outbox``），因此不会因为
某个慢客户端而阻塞其他连接的事件。

在 FastAPI lifespan 中创建并挂载到 ``app.state.coordinator``。
"""
from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from app.core.exceptions import AlreadyPairedError, CoordinatorError
from app.core.logging import get_logger
from app.core.settings import RepeatPartnerPolicy, settings
from app.schemas.events import (
    ACTIVE_STREAMS,
    CHAT_EVENTS,
    JOIN_LIVE_ROOM,
    JOIN_QUEUE,
    LEAVE_LIVE_ROOM,
    LEAVE_MATCH,
    ONLINE_STATS,
    SEND_LIVE_MESSAGE,
    SEND_RANDOM_MESSAGE,
    START_STREAM,
    STOP_STREAM,
    SYSTEM_NOTICE,
    JoinQueuePayload,
    LiveMessagePayload,
    SessionRefPayload,
    StartStreamPayload,
    StreamInfoData,
    SystemNoticeData,
    TextPayload,
    envelope,
)
from app.schemas.live_interactions import StatsData
from app.services.matchmaking import MatchmakingQueue
from app.services.moderation import ModerationService
from app.services.registry import Connection, ConnectionRegistry
from app.services.room_directory import RoomDirectory

logger = get_logger(__name__)

Handler = Callable[[Connection, Any], None]


class Coordinator:
    """在线状态与匹配协调器（每个 worker 一个实例）。

    - ``connect()``    → 注册新连接，下发直播列表，广播在线人数
    - ``dispatch()``   → 校验并处理一条上行事件
    - ``disconnect()`` → 原子地级联清理该连接的全部派生状态

    Attributes:
        registry: 在线连接表。
        queue: 1:1 匹配队列。
        directory: 会话目录。
        moderation: 可选的审核服务（仅在 ``enforce_moderation`` 时使用）。
    """

    def __init__(
        self,
        policy: RepeatPartnerPolicy | None = None,
        moderation: ModerationService | None = None,
        enforce_moderation: bool | None = None,
        outbox_maxsize: int | None = None,
    ) -> None:
        self.registry = ConnectionRegistry()
        self.queue = MatchmakingQueue(policy or settings.REPEAT_PARTNER_POLICY)
        self.directory = RoomDirectory(self.registry)
        self.moderation = moderation
        self.enforce_moderation: bool = (
            settings.MODERATION_ENFORCE if enforce_moderation is None else enforce_moderation
        )
        self._outbox_maxsize: int = outbox_maxsize or settings.OUTBOX_MAXSIZE
        self._lock = asyncio.Lock()
        self._handlers: dict[str, tuple[type[BaseModel] | None, Handler]] = {
            JOIN_QUEUE: (JoinQueuePayload, self._on_join_queue),
            LEAVE_MATCH: (None, self._on_leave_match),
            SEND_RANDOM_MESSAGE: (TextPayload, self._on_random_message),
            START_STREAM: (StartStreamPayload, self._on_start_stream),
            JOIN_LIVE_ROOM: (SessionRefPayload, self._on_join_live_room),
            LEAVE_LIVE_ROOM: (SessionRefPayload, self._on_leave_live_room),
            SEND_LIVE_MESSAGE: (LiveMessagePayload, self._on_live_message),
            STOP_STREAM: (None, self._on_stop_stream),
        }

    # ── 连接生命周期 ──────────────────────────────────────────────────

    async def connect(self, connection_id: str | None = None) -> Connection:
        """注册一条新连接。"""
        connection = Connection(connection_id or uuid.uuid4().hex, self._outbox_maxsize)
        async with self._lock:
            self.registry.add(connection)
            connection.send(self._streams_message())
            self._publish_online_stats()
        logger.info("连接接入 | 在线: %d", self.registry.online_count)
        return connection

    async def disconnect(self, connection_id: str) -> bool:
        """传输层断开：在一个串行化单元内完成全部级联清理。

        1. 排队中 → 出队；
        2. 会话中 → 通知对方并销毁会话；
        3. 主持直播 → 下播并通知全部观众；
        4. 观看直播 → 离开观众组（不通知主播）；
        5. 重新发布在线人数与直播列表。

        重复调用为 no-op。
        """
        async with self._lock:
            connection = self.registry.get(connection_id)
            if connection is None:
                return False
            self.queue.remove(connection_id)
            self.directory.close_pair(connection)
            self.directory.stop_broadcast(connection)
            if connection.viewing_session_id is not None:
                self.directory.leave_broadcast(connection, connection.viewing_session_id)
            connection.last_partner_id = None
            self.registry.remove(connection_id)

            self._publish_streams()
            self._publish_online_stats()

        connection.close_outbox()
        logger.info("连接断开 | 在线: %d", self.registry.online_count)
        return True

    # ── 事件调度 ──────────────────────────────────────────────────────

    async def dispatch(self, connection_id: str, event: str, data: Any = None) -> bool:
        """处理一条上行事件。

        负载在进入串行化区之前完成校验；格式错误、未知事件、
        已断开的连接都会被记录并丢弃，绝不影响共享状态。

        Args:
            connection_id: 发送事件的连接 ID。
            event: 事件名。
            data: 原始负载。

        Returns:
            事件是否被接受并执行。
        """
        spec = self._handlers.get(event)
        if spec is None:
            logger.warning("未知事件，已丢弃 | event=%s", event)
            return False
        model, handler = spec

        payload: BaseModel | None = None
        if model is not None:
            try:
                payload = model.model_validate(data)
            except ValidationError as e:
                logger.warning("负载格式错误，已丢弃 | event=%s | %s", event, e.errors(include_url=False))
                return False

        if self.enforce_moderation and self.moderation is not None and event in CHAT_EVENTS:
            verdict = await self.moderation.check(payload.text)  # type: ignore[union-attr]
            if not verdict.safe:
                logger.info("消息未通过审核，已拦截 | event=%s | source=%s", event, verdict.source)
                self.notify(connection_id, "message_blocked", "消息未通过内容审核")
                return False

        async with self._lock:
            connection = self.registry.get(connection_id)
            if connection is None:
                logger.debug("连接已断开，忽略事件 | event=%s", event)
                return False
            try:
                handler(connection, payload)
            except CoordinatorError as e:
                logger.warning("事件被拒绝 | event=%s | %s", event, e.message)
                connection.send(envelope(SYSTEM_NOTICE, SystemNoticeData(code=e.code, message=e.message).wire()))
                return False
        return True

    def notify(self, connection_id: str, code: str, message: str) -> None:
        """向单个连接投递 ``system_notice``。"""
        self.registry.send_to(
            connection_id,
            envelope(SYSTEM_NOTICE, SystemNoticeData(code=code, message=message).wire()),
        )

    # ── 事件处理（均在串行化区内调用） ────────────────────────────────

    def _on_join_queue(self, connection: Connection, payload: JoinQueuePayload) -> None:
        if connection.is_paired:
            raise AlreadyPairedError("已在会话中，请先离开当前会话")
        connection.negotiation_id = payload.negotiation_id
        connection.identity_tag = payload.identity_tag
        connection.preference_filter = payload.preference_filter

        partner = self.queue.enqueue(connection)
        if partner is not None:
            self.directory.open_pair(connection, partner)

    def _on_leave_match(self, connection: Connection, _: None) -> None:
        self.directory.close_pair(connection)
        self.queue.remove(connection.connection_id)

    def _on_random_message(self, connection: Connection, payload: TextPayload) -> None:
        self.directory.relay_pair(connection, payload.text)

    def _on_start_stream(self, connection: Connection, payload: StartStreamPayload) -> None:
        self.directory.start_broadcast(
            connection,
            session_id=payload.negotiation_id,
            title=payload.title,
            tag=payload.tag,
            streamer_name=payload.streamer_name,
        )
        self._publish_streams()

    def _on_join_live_room(self, connection: Connection, payload: SessionRefPayload) -> None:
        if self.directory.join_broadcast(connection, payload.session_id):
            self._publish_streams()

    def _on_leave_live_room(self, connection: Connection, payload: SessionRefPayload) -> None:
        if self.directory.leave_broadcast(connection, payload.session_id):
            self._publish_streams()

    def _on_live_message(self, connection: Connection, payload: LiveMessagePayload) -> None:
        self.directory.relay_broadcast(connection, payload.session_id, payload.text)

    def _on_stop_stream(self, connection: Connection, _: None) -> None:
        if self.directory.stop_broadcast(connection) is not None:
            self._publish_streams()

    # ── 聚合状态 ──────────────────────────────────────────────────────

    def _streams_message(self) -> dict[str, Any]:
        return envelope(
            ACTIVE_STREAMS,
            {"streams": [stream.wire() for stream in self.directory.active_streams()]},
        )

    def _publish_streams(self) -> None:
        self.registry.broadcast(self._streams_message())

    def _publish_online_stats(self) -> None:
        self.registry.broadcast(envelope(ONLINE_STATS, {"count": self.registry.online_count}))

    def list_streams(self) -> list[StreamInfoData]:
        """当前活跃直播列表。"""
        return self.directory.active_streams()

    def stats(self) -> StatsData:
        """聚合状态快照。"""
        return StatsData(
            online_count=self.registry.online_count,
            waiting_count=len(self.queue),
            pair_count=self.directory.pair_count,
            stream_count=self.directory.stream_count,
        )
