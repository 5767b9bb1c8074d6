"""
app.schemas
~~~~~~~~~~~

REST 与 WebSocket 协议模型。
"""
from app.schemas.api_response import ApiResponse
from app.schemas.events import InboundEnvelope, StreamInfoData
from app.schemas.live_interactions import (
    ModerationCheckRequest,
    ModerationVerdictData,
    StatsData,
)

# 泛型模型含前向引用，需显式 rebuild
ApiResponse.model_rebuild()
