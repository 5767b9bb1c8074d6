"""
app.schemas.live_interactions
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

REST 接口相关的 Pydantic 请求/响应模型。
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

VerdictSource = Literal["local", "ai", "fallback"]


class StatsData(BaseModel):
    """协调服务的聚合状态快照。"""

    online_count: int = Field(..., description="当前在线连接数")
    waiting_count: int = Field(..., description="匹配队列中等待的连接数")
    pair_count: int = Field(..., description="进行中的 1:1 会话数")
    stream_count: int = Field(..., description="进行中的直播数")


class ModerationCheckRequest(BaseModel):
    """审核请求体。"""

    text: str = Field(..., min_length=1, max_length=2000, description="待审核的聊天文本")


class ModerationVerdictData(BaseModel):
    """审核结果。"""

    safe: bool = Field(..., description="是否安全")
    source: VerdictSource = Field(..., description="判定来源：local / ai / fallback")
