"""
app.services.matchmaking
~~~~~~~~~~~~~~~~~~~~~~~~

1:1 随机匹配队列。

按到达顺序扫描等待列表，第一个双向兼容的候选者即刻成交（FIFO，而非最优匹配）。
兼容条件：

1. 不是同一个连接；
2. 请求方偏好为空，或包含候选者的身份标签；
3. 候选者偏好为空，或包含请求方的身份标签。

上一任搭档回避策略（``REPEAT_PARTNER_POLICY``）：

- ``off``：不回避；
- ``strict``：上一任搭档在紧接着的一轮匹配中不可选；这一轮因此落空后回避即解除，
  两人在下一轮仍可再次匹配，回避永远不会无限期阻塞；
- ``soft``：第一轮跳过上一任搭档，若再无其他兼容候选者则仍与其匹配。

队列不负责创建会话；``enqueue()`` 返回被选中的搭档，
由 ``Coordinator`` 在同一个串行化区内建立 ``PairSession``。
"""
from __future__ import annotations

import time

from app.core.exceptions import AlreadyPairedError
from app.core.logging import get_logger
from app.core.settings import RepeatPartnerPolicy
from app.services.registry import Connection

logger = get_logger(__name__)


class QueueEntry:
    """等待匹配的连接。

    Attributes:
        connection: 等待中的连接记录。
        enqueued_at: 入队时间（单调时钟）。
    """

    def __init__(self, connection: Connection) -> None:
        self.connection = connection
        self.enqueued_at: float = time.monotonic()

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id


def is_compatible(requester: Connection, candidate: Connection) -> bool:
    """双向偏好检查。"""
    if requester.connection_id == candidate.connection_id:
        return False
    if requester.preference_filter and candidate.identity_tag not in requester.preference_filter:
        return False
    if candidate.preference_filter and requester.identity_tag not in candidate.preference_filter:
        return False
    return True


def is_repeat_partner(requester: Connection, candidate: Connection) -> bool:
    return (
        requester.last_partner_id == candidate.connection_id
        or candidate.last_partner_id == requester.connection_id
    )


class MatchmakingQueue:
    """等待匹配的连接队列（每个连接最多一个条目）。"""

    def __init__(self, policy: RepeatPartnerPolicy = "soft") -> None:
        self.policy: RepeatPartnerPolicy = policy
        # dict 保持插入顺序，即到达顺序
        self._waiting: dict[str, QueueEntry] = {}

    def enqueue(self, connection: Connection) -> Connection | None:
        """尝试立即匹配；无候选者时排到队尾。

        重复入队会替换旧条目（重新排到队尾），绝不产生重复条目。

        Args:
            connection: 已填好身份标签和偏好的连接。

        Returns:
            匹配到的搭档（已移出队列），或 ``None`` 表示已进入等待。

        Raises:
            AlreadyPairedError: 连接已处于 1:1 会话中。
        """
        if connection.is_paired:
            raise AlreadyPairedError("已在会话中，请先离开当前会话")

        self._waiting.pop(connection.connection_id, None)

        entry, blocked = self._find_partner(connection)
        if entry is not None:
            del self._waiting[entry.connection_id]
            return entry.connection
        for former in blocked:
            # strict 只回避一轮：本轮因回避而错过后解除限制
            former.last_partner_id = None
            connection.last_partner_id = None
            logger.debug("解除上一任搭档回避 | conn=%s | former=%s", connection.connection_id, former.connection_id)

        self._waiting[connection.connection_id] = QueueEntry(connection)
        logger.debug(
            "进入匹配队列 | conn=%s | tag=%s | 等待: %d",
            connection.connection_id, connection.identity_tag, len(self._waiting),
        )
        return None

    def _find_partner(self, requester: Connection) -> tuple[QueueEntry | None, list[Connection]]:
        """返回 (首个可匹配条目, 仅因回避被跳过的候选者)。"""
        fallback: QueueEntry | None = None
        blocked: list[Connection] = []
        for entry in self._waiting.values():
            candidate = entry.connection
            if not is_compatible(requester, candidate):
                continue
            if self.policy != "off" and is_repeat_partner(requester, candidate):
                if self.policy == "soft" and fallback is None:
                    fallback = entry
                blocked.append(candidate)
                continue
            return entry, []
        return fallback, blocked

    def remove(self, connection_id: str) -> bool:
        """移出队列；不在队列中时为 no-op。"""
        return self._waiting.pop(connection_id, None) is not None

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._waiting

    def __len__(self) -> int:
        return len(self._waiting)

    def waiting_ids(self) -> list[str]:
        """按到达顺序返回等待中的连接 ID。"""
        return list(self._waiting)
