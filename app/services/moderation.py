"""
app.services.moderation
~~~~~~~~~~~~~~~~~~~~~~~

内容审核服务 —— 本地违禁词过滤 + 可选的 Gemini 分类。

审核是外部协作方：分类器出错时记录日志并放行（fail-open），
绝不因为审核失败而拖垮协调服务。
"""
from __future__ import annotations

from collections.abc import Iterable

from app.core.logging import get_logger
from app.core.settings import settings
from app.llm.gemini_moderator import GeminiModerator
from app.schemas.live_interactions import ModerationVerdictData

logger = get_logger(__name__)


class ModerationService:
    """聊天内容审核服务。

    Attributes:
        forbidden_words: 小写化的本地违禁词表。
        moderator: 可选的 Gemini 分类器（为 None 时仅使用本地词表）。
    """

    def __init__(
        self,
        forbidden_words: Iterable[str] | None = None,
        moderator: GeminiModerator | None = None,
    ) -> None:
        words = settings.FORBIDDEN_WORDS if forbidden_words is None else forbidden_words
        self.forbidden_words: tuple[str, ...] = tuple(w.lower() for w in words if w)
        self.moderator = moderator

    @classmethod
    def from_settings(cls) -> ModerationService:
        """按当前配置构建；未配置 Gemini API Key 时不创建分类器。"""
        moderator = GeminiModerator() if settings.ai_moderation_enabled else None
        return cls(moderator=moderator)

    def check_local(self, text: str) -> bool:
        """本地词表检查，返回是否安全。"""
        lowered = text.lower()
        return not any(word in lowered for word in self.forbidden_words)

    async def check(self, text: str) -> ModerationVerdictData:
        """审核一段聊天文本。

        Args:
            text: 原始聊天文本。

        Returns:
            审核结果；``source`` 表示由本地词表、AI 还是降级放行得出。
        """
        if not self.check_local(text):
            return ModerationVerdictData(safe=False, source="local")
        if self.moderator is None:
            return ModerationVerdictData(safe=True, source="local")
        try:
            safe = await self.moderator.classify(text)
        except Exception as e:
            logger.error("AI 审核调用异常，放行消息: %s", e, exc_info=True)
            return ModerationVerdictData(safe=True, source="fallback")
        return ModerationVerdictData(safe=safe, source="ai")
