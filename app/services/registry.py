"""
app.services.registry
~~~~~~~~~~~~~~~~~~~~~

连接注册表 —— 每个在线客户端对应一条 ``Connection`` 记录。

``Connection`` 持有身份标签、偏好过滤、当前房间，以及一个有界的下行消息队列
（``outbox``）。协调器只往 ``outbox`` 里投递消息，真正的网络发送由
WebSocket 端点的发送协程完成，因此任何通知都不会阻塞协调器。
"""
from __future__ import annotations

import asyncio
from collections.abc import Iterator
from typing import Any

from app.core.logging import get_logger

logger = get_logger(__name__)


class Connection:
    """一条在线连接的记录。

    Attributes:
        connection_id: 连接唯一标识（接入时分配）。
        negotiation_id: 交给外部点对点协商库的不透明标识（客户端提供）。
        identity_tag: 自报的身份标签。
        preference_filter: 可接受的对方身份标签集合，空集表示不限。
        current_room_id: 所在 1:1 会话的房间 ID。
        last_partner_id: 上一任搭档的连接 ID（用于回避重复匹配）。
        hosting_session_id: 正在主持的直播会话 ID。
        viewing_session_id: 正在观看的直播会话 ID。
        outbox: 有界下行消息队列。
    """

    def __init__(self, connection_id: str, outbox_maxsize: int = 256) -> None:
        self.connection_id = connection_id
        self.negotiation_id: str | None = None
        self.identity_tag: str | None = None
        self.preference_filter: frozenset[str] = frozenset()
        self.current_room_id: str | None = None
        self.last_partner_id: str | None = None
        self.hosting_session_id: str | None = None
        self.viewing_session_id: str | None = None
        self.outbox: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(maxsize=outbox_maxsize)

    @property
    def is_paired(self) -> bool:
        return self.current_room_id is not None

    def send(self, message: dict[str, Any], critical: bool = False) -> bool:
        """投递一条下行消息（不等待）。

        队列已满时普通消息被丢弃并返回 False；``critical`` 消息（会话结束类通知）
        改为挤掉最旧的一条，保证一定送达。
        """
        try:
            self.outbox.put_nowait(message)
            return True
        except asyncio.QueueFull:
            if critical:
                self._evict_oldest()
                self.outbox.put_nowait(message)
                return True
            logger.warning(
                "下行队列已满，丢弃消息 | conn=%s | event=%s",
                self.connection_id, message.get("event"),
            )
            return False

    def close_outbox(self) -> None:
        """通知发送协程退出。

        队列已满时先丢掉最旧的一条，保证结束信号一定能放进去。
        """
        if self.outbox.full():
            self._evict_oldest()
        self.outbox.put_nowait(None)

    def _evict_oldest(self) -> None:
        evicted = self.outbox.get_nowait()
        logger.warning(
            "下行队列已满，挤掉最旧消息 | conn=%s | event=%s",
            self.connection_id, evicted.get("event") if evicted else None,
        )

    def __repr__(self) -> str:
        return f"Connection({self.connection_id!r}, tag={self.identity_tag!r}, room={self.current_room_id!r})"


class ConnectionRegistry:
    """在线连接表。只由 ``Coordinator`` 在串行化区内修改。"""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}

    def add(self, connection: Connection) -> None:
        self._connections[connection.connection_id] = connection

    def remove(self, connection_id: str) -> Connection | None:
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def online_count(self) -> int:
        """当前在线连接数。"""
        return len(self._connections)

    def send_to(self, connection_id: str, message: dict[str, Any]) -> bool:
        """向指定连接投递消息；连接不存在时静默丢弃。"""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return connection.send(message)

    def broadcast(self, message: dict[str, Any]) -> None:
        """向所有在线连接投递同一条消息。"""
        for connection in self._connections.values():
            connection.send(message)
