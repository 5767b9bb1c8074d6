"""
app.services.live_room
~~~~~~~~~~~~~~~~~~~~~~

会话领域模型 —— ``PairSession``（1:1 随机聊天）与 ``BroadcastSession``（1:N 直播）。

``BroadcastSession`` 的观众人数永远由成员组（``RoomBroadcaster``）大小得出，
不存在可能与实际加入/离开事件失步的独立计数器。
"""
from __future__ import annotations

import time

from app.schemas.events import StreamInfoData
from app.services.registry import ConnectionRegistry
from app.services.room_broadcaster import RoomBroadcaster


def pair_room_id(first: str, second: str) -> str:
    """由两个连接 ID 确定性地推导出房间 ID（与参数顺序无关）。"""
    low, high = sorted((first, second))
    return f"room_{low}_{high}"


class PairSession:
    """一个 1:1 随机聊天会话。

    Attributes:
        room_id: 房间 ID。
        participants: 恰好两个连接 ID。
        created_at: 建立时间（epoch 毫秒）。
    """

    def __init__(self, first: str, second: str) -> None:
        if first == second:
            raise ValueError("PairSession 需要两个不同的连接")
        self.room_id = pair_room_id(first, second)
        self.participants: tuple[str, str] = (first, second)
        self.created_at: int = int(time.time() * 1000)

    def other(self, connection_id: str) -> str:
        """返回另一位参与者的连接 ID。"""
        first, second = self.participants
        if connection_id == first:
            return second
        if connection_id == second:
            return first
        raise KeyError(connection_id)


class BroadcastSession:
    """一个 1:N 直播会话。

    Attributes:
        session_id: 会话 ID，即主播的协商 ID（观众据此直接呼叫主播）。
        host_connection_id: 主播的连接 ID。
        title: 直播标题。
        tag: 直播标签。
        streamer_name: 可选的主播显示名。
        started_at: 开播时间（epoch 毫秒）。
        viewers: 观众成员组。
    """

    def __init__(
        self,
        session_id: str,
        host_connection_id: str,
        title: str,
        tag: str,
        registry: ConnectionRegistry,
        streamer_name: str | None = None,
    ) -> None:
        self.session_id = session_id
        self.host_connection_id = host_connection_id
        self.title = title
        self.tag = tag
        self.streamer_name = streamer_name
        self.started_at: int = int(time.time() * 1000)
        self.viewers = RoomBroadcaster(name=f"live_{session_id}", registry=registry)

    @property
    def viewer_count(self) -> int:
        """当前观众数（由成员组大小得出）。"""
        return self.viewers.online_count

    def info(self) -> StreamInfoData:
        """返回直播摘要信息。"""
        return StreamInfoData(
            id=self.session_id,
            title=self.title,
            tag=self.tag,
            streamer_name=self.streamer_name,
            viewer_count=self.viewer_count,
            started_at=self.started_at,
        )
