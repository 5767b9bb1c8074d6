"""
app.schemas.events
~~~~~~~~~~~~~~~~~~

WebSocket 事件协议的 Pydantic 模型。

所有帧（上行 / 下行）均为 JSON 文本帧::

    {"event": "<事件名>", "data": <负载>}

上行负载在触碰任何共享状态之前完成校验；字段使用 camelCase，
同时兼容旧客户端字段名（``peerId`` / ``identity`` / ``lookingFor`` 等）。
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from app.core.settings import settings

# ── 事件名 ────────────────────────────────────────────────────────────

JOIN_QUEUE = "join_queue"
LEAVE_MATCH = "leave_match"
SEND_RANDOM_MESSAGE = "send_random_message"
START_STREAM = "start_stream"
JOIN_LIVE_ROOM = "join_live_room"
LEAVE_LIVE_ROOM = "leave_live_room"
SEND_LIVE_MESSAGE = "send_live_message"
STOP_STREAM = "stop_stream"

MATCH_FOUND = "match_found"
PARTNER_DISCONNECTED = "partner_disconnected"
RECEIVE_RANDOM_MESSAGE = "receive_random_message"
ACTIVE_STREAMS = "active_streams"
STREAM_ENDED = "stream_ended"
RECEIVE_LIVE_MESSAGE = "receive_live_message"
ONLINE_STATS = "online_stats"
SYSTEM_NOTICE = "system_notice"

InboundEvent = Literal[
    "join_queue",
    "leave_match",
    "send_random_message",
    "start_stream",
    "join_live_room",
    "leave_live_room",
    "send_live_message",
    "stop_stream",
]

CHAT_EVENTS: frozenset[str] = frozenset({SEND_RANDOM_MESSAGE, SEND_LIVE_MESSAGE})

LiveRole = Literal["host", "viewer"]


def envelope(event: str, data: Any = None) -> dict[str, Any]:
    """组装一条下行帧。"""
    return {"event": event, "data": data if data is not None else {}}


# ── 上行 ──────────────────────────────────────────────────────────────

class InboundEnvelope(BaseModel):
    """上行帧外壳。未知事件名在这里即被拒绝。"""

    event: InboundEvent
    data: Any = None


class _Inbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, frozen=True)


def _check_tag(tag: str) -> str:
    if tag not in settings.IDENTITY_TAGS:
        raise ValueError(f"未知身份标签: {tag!r}")
    return tag


class JoinQueuePayload(_Inbound):
    """``join_queue`` 负载。"""

    negotiation_id: str = Field(
        ..., min_length=1, max_length=128,
        validation_alias=AliasChoices("negotiationId", "peerId"),
    )
    identity_tag: str = Field(..., validation_alias=AliasChoices("identityTag", "identity"))
    preference_filter: frozenset[str] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices("preferenceFilter", "lookingFor"),
    )

    @field_validator("identity_tag")
    @classmethod
    def _validate_identity(cls, value: str) -> str:
        return _check_tag(value)

    @field_validator("preference_filter")
    @classmethod
    def _validate_filter(cls, value: frozenset[str]) -> frozenset[str]:
        for tag in value:
            _check_tag(tag)
        return value


class TextPayload(_Inbound):
    """``send_random_message`` 负载，允许裸字符串。"""

    text: str = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"text": data}
        return data

    @field_validator("text")
    @classmethod
    def _limit_length(cls, value: str) -> str:
        if len(value) > settings.MAX_MESSAGE_LENGTH:
            raise ValueError("消息过长")
        return value


class SessionRefPayload(_Inbound):
    """``join_live_room`` / ``leave_live_room`` 负载，允许裸字符串。"""

    session_id: str = Field(
        ..., min_length=1, max_length=128,
        validation_alias=AliasChoices("sessionId", "id", "roomId"),
    )

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"sessionId": data}
        return data


class StartStreamPayload(_Inbound):
    """``start_stream`` 负载。"""

    negotiation_id: str = Field(
        ..., min_length=1, max_length=128,
        validation_alias=AliasChoices("negotiationId", "peerId", "id"),
    )
    title: str = Field(..., min_length=1, max_length=120)
    tag: str = Field(..., min_length=1, max_length=32)
    streamer_name: str | None = Field(
        default=None, max_length=64,
        validation_alias=AliasChoices("streamerName", "streamer_name"),
    )


class LiveMessagePayload(_Inbound):
    """``send_live_message`` 负载。"""

    session_id: str = Field(
        ..., min_length=1, max_length=128,
        validation_alias=AliasChoices("sessionId", "roomId"),
    )
    text: str = Field(..., min_length=1)

    @field_validator("text")
    @classmethod
    def _limit_length(cls, value: str) -> str:
        if len(value) > settings.MAX_MESSAGE_LENGTH:
            raise ValueError("消息过长")
        return value


# ── 下行 ──────────────────────────────────────────────────────────────

class _Outbound(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> dict[str, Any]:
        """序列化为下行 JSON（camelCase）。"""
        return self.model_dump(by_alias=True, mode="json")


class PartnerInfo(_Outbound):
    """匹配成功时下发的对方公开资料。"""

    negotiation_id: str
    identity_tag: str


class MatchFoundData(_Outbound):
    negotiation_id: str
    partner_info: PartnerInfo


class StreamInfoData(_Outbound):
    """活跃直播摘要，``id`` 即 sessionId（主播的协商 ID）。"""

    id: str
    title: str
    tag: str
    streamer_name: str | None = None
    viewer_count: int
    started_at: int = Field(..., description="开播时间（epoch 毫秒）")


class LiveChatMessageData(_Outbound):
    id: str
    session_id: str
    user: str
    role: LiveRole
    text: str
    timestamp: int


class SystemNoticeData(_Outbound):
    code: str
    message: str
