"""
app.services.room_directory
~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间目录 —— 管理所有进行中的 1:1 会话与直播会话及其成员关系。

目录只做同步的状态变更和消息投递，不做任何 await；
调用方（``Coordinator``）负责把每次调用包在串行化区内。
"""
from __future__ import annotations

import time
import uuid

from app.core.exceptions import SessionConflictError
from app.core.logging import get_logger
from app.schemas.events import (
    MATCH_FOUND,
    PARTNER_DISCONNECTED,
    RECEIVE_LIVE_MESSAGE,
    RECEIVE_RANDOM_MESSAGE,
    STREAM_ENDED,
    LiveChatMessageData,
    MatchFoundData,
    PartnerInfo,
    StreamInfoData,
    envelope,
)
from app.services.live_room import BroadcastSession, PairSession
from app.services.registry import Connection, ConnectionRegistry

logger = get_logger(__name__)

VIEWER_LABEL = "Espectador"
HOST_LABEL = "Transmissor"


class RoomDirectory:
    """1:1 会话与直播会话的目录。

    Attributes:
        registry: 在线连接表（用于投递通知）。
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry
        self._pairs: dict[str, PairSession] = {}
        self._streams: dict[str, BroadcastSession] = {}
        self._stream_by_host: dict[str, str] = {}

    # ── 1:1 会话 ──────────────────────────────────────────────────────

    def open_pair(self, first: Connection, second: Connection) -> PairSession:
        """把两个连接绑定为一个新会话，并向双方下发 ``match_found``。"""
        session = PairSession(first.connection_id, second.connection_id)
        self._pairs[session.room_id] = session

        first.current_room_id = session.room_id
        second.current_room_id = session.room_id
        first.last_partner_id = second.connection_id
        second.last_partner_id = first.connection_id

        first.send(envelope(MATCH_FOUND, _match_found(second).wire()), critical=True)
        second.send(envelope(MATCH_FOUND, _match_found(first).wire()), critical=True)
        logger.info(
            "匹配成功 | room=%s | %s <-> %s",
            session.room_id, first.identity_tag, second.identity_tag,
        )
        return session

    def close_pair(self, connection: Connection) -> bool:
        """离开当前 1:1 会话：通知对方并销毁会话。不在会话中时为 no-op。"""
        room_id = connection.current_room_id
        if room_id is None:
            return False
        connection.current_room_id = None

        session = self._pairs.pop(room_id, None)
        if session is None:
            logger.warning("会话记录缺失，已清理连接上的房间引用 | room=%s", room_id)
            return False

        partner = self.registry.get(session.other(connection.connection_id))
        if partner is not None and partner.current_room_id == room_id:
            partner.current_room_id = None
            partner.send(envelope(PARTNER_DISCONNECTED), critical=True)
        logger.info("会话结束 | room=%s", room_id)
        return True

    def relay_pair(self, connection: Connection, text: str) -> bool:
        """把聊天消息转发给同一会话中的另一方；无会话时静默丢弃。"""
        session = self._pairs.get(connection.current_room_id or "")
        if session is None:
            logger.debug("无进行中的会话，丢弃随机聊天消息")
            return False
        return self.registry.send_to(
            session.other(connection.connection_id),
            envelope(RECEIVE_RANDOM_MESSAGE, {"text": text}),
        )

    def pair_of(self, connection_id: str) -> PairSession | None:
        """按成员查找会话（直接扫描会话表，不依赖连接记录上的字段）。"""
        for session in self._pairs.values():
            if connection_id in session.participants:
                return session
        return None

    @property
    def pair_count(self) -> int:
        return len(self._pairs)

    # ── 直播会话 ──────────────────────────────────────────────────────

    def start_broadcast(
        self,
        host: Connection,
        session_id: str,
        title: str,
        tag: str,
        streamer_name: str | None = None,
    ) -> BroadcastSession:
        """开播。同一主播已有的直播会被替换（旧观众收到 ``stream_ended``）。

        即使新会话沿用旧的会话 ID，旧会话也会先完整下播：观众被移出观众组，
        需要重新 ``join_live_room``，不会被悄悄并入新会话。

        Raises:
            SessionConflictError: 会话 ID 已被其他主播占用。
        """
        existing = self._streams.get(session_id)
        if existing is not None and existing.host_connection_id != host.connection_id:
            raise SessionConflictError("该会话 ID 已被其他主播使用")

        if host.viewing_session_id is not None:
            self.leave_broadcast(host, host.viewing_session_id)
        if host.hosting_session_id is not None:
            self.stop_broadcast(host)

        session = BroadcastSession(
            session_id=session_id,
            host_connection_id=host.connection_id,
            title=title,
            tag=tag,
            registry=self.registry,
            streamer_name=streamer_name,
        )
        self._streams[session_id] = session
        self._stream_by_host[host.connection_id] = session_id
        host.hosting_session_id = session_id
        logger.info("开播 | session=%s | title=%s", session_id, title)
        return session

    def join_broadcast(self, viewer: Connection, session_id: str) -> bool:
        """加入直播观众组。会话不存在、已在其中或是自己的直播时为 no-op。

        Raises:
            SessionConflictError: 连接本身正在主持直播。
        """
        session = self._streams.get(session_id)
        if session is None:
            logger.debug("直播不存在，忽略加入 | session=%s", session_id)
            return False
        if session.host_connection_id == viewer.connection_id:
            return False
        if viewer.hosting_session_id is not None:
            raise SessionConflictError("主持直播期间不能观看其他直播")
        if viewer.viewing_session_id == session_id:
            return False
        if viewer.viewing_session_id is not None:
            self.leave_broadcast(viewer, viewer.viewing_session_id)

        session.viewers.join(viewer.connection_id)
        viewer.viewing_session_id = session_id
        logger.debug("观众加入 | session=%s | 观众: %d", session_id, session.viewer_count)
        return True

    def leave_broadcast(self, viewer: Connection, session_id: str) -> bool:
        """离开直播观众组。会话不存在（已下播）时为 no-op。"""
        if viewer.viewing_session_id == session_id:
            viewer.viewing_session_id = None
        session = self._streams.get(session_id)
        if session is None:
            return False
        removed = session.viewers.leave(viewer.connection_id)
        if removed:
            logger.debug("观众离开 | session=%s | 观众: %d", session_id, session.viewer_count)
        return removed

    def relay_broadcast(self, sender: Connection, session_id: str, text: str) -> int:
        """把直播聊天消息扇出给主播和全部观众（含发送者本人）。

        发送者不是该会话成员时丢弃。返回投递数量。
        """
        session = self._streams.get(session_id)
        if session is None:
            return 0
        if sender.connection_id == session.host_connection_id:
            role, user = "host", session.streamer_name or HOST_LABEL
        elif sender.connection_id in session.viewers:
            role, user = "viewer", VIEWER_LABEL
        else:
            logger.debug("非成员发送直播消息，丢弃 | session=%s", session_id)
            return 0

        message = envelope(
            RECEIVE_LIVE_MESSAGE,
            LiveChatMessageData(
                id=uuid.uuid4().hex,
                session_id=session_id,
                user=user,
                role=role,
                text=text,
                timestamp=int(time.time() * 1000),
            ).wire(),
        )
        delivered = session.viewers.broadcast(message)
        if self.registry.send_to(session.host_connection_id, message):
            delivered += 1
        return delivered

    def stop_broadcast(self, host: Connection) -> BroadcastSession | None:
        """下播：通知每位观众一次 ``stream_ended`` 并移除会话。无直播时为 no-op。"""
        session_id = self._stream_by_host.pop(host.connection_id, None)
        host.hosting_session_id = None
        if session_id is None:
            return None
        session = self._streams.pop(session_id)

        ended = envelope(STREAM_ENDED, {"sessionId": session_id})
        for viewer_id in sorted(session.viewers.members):
            viewer = self.registry.get(viewer_id)
            if viewer is None:
                continue
            if viewer.viewing_session_id == session_id:
                viewer.viewing_session_id = None
            viewer.send(ended, critical=True)
        session.viewers.members.clear()
        logger.info("下播 | session=%s", session_id)
        return session

    def get_broadcast(self, session_id: str) -> BroadcastSession | None:
        return self._streams.get(session_id)

    def active_streams(self) -> list[StreamInfoData]:
        """按开播顺序列出所有活跃直播的摘要。"""
        return [session.info() for session in self._streams.values()]

    @property
    def stream_count(self) -> int:
        return len(self._streams)


def _match_found(partner: Connection) -> MatchFoundData:
    return MatchFoundData(
        negotiation_id=partner.negotiation_id or "",
        partner_info=PartnerInfo(
            negotiation_id=partner.negotiation_id or "",
            identity_tag=partner.identity_tag or "",
        ),
    )
