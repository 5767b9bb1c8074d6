"""
app.services.room_broadcaster
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间成员组 —— 维护某个房间的成员集合与广播能力。

直播间的观众人数直接由成员组大小得出，不单独维护计数器。
"""
from __future__ import annotations

from typing import Any

from app.services.registry import ConnectionRegistry


class RoomBroadcaster:
    """房间成员组。

    每个 ``BroadcastSession`` 持有一个独立的 ``RoomBroadcaster`` 实例，
    负责管理该房间内的观众集合和消息广播。

    Attributes:
        name: 成员组名称（日志用）。
        members: 当前成员的连接 ID 集合。
    """

    def __init__(self, name: str, registry: ConnectionRegistry) -> None:
        self.name = name
        self.members: set[str] = set()
        self._registry = registry

    def join(self, connection_id: str) -> None:
        """加入成员组（重复加入无副作用）。"""
        self.members.add(connection_id)

    def leave(self, connection_id: str) -> bool:
        """离开成员组，返回是否确实移除了成员。"""
        if connection_id in self.members:
            self.members.discard(connection_id)
            return True
        return False

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self.members

    def broadcast(self, message: dict[str, Any], exclude: str | None = None) -> int:
        """向本组所有成员投递消息，返回成功投递的数量。"""
        delivered = 0
        for connection_id in sorted(self.members):
            if connection_id == exclude:
                continue
            if self._registry.send_to(connection_id, message):
                delivered += 1
        return delivered

    @property
    def online_count(self) -> int:
        """当前成员数。"""
        return len(self.members)
