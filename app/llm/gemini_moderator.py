"""
app.llm.gemini_moderator
~~~~~~~~~~~~~~~~~~~~~~~~

纯 LLM 客户端封装 —— 只负责调用 Google Gemini 对文本做 SAFE / UNSAFE 分类。

不包含本地词表或降级逻辑（这些职责属于 ``ModerationService``）。
通过构造函数接受 ``client`` 参数实现依赖注入，方便测试和替换。
"""
from __future__ import annotations

from google import genai
from google.genai import types

from app.core.logging import get_logger
from app.core.settings import settings
from app.prompts.moderation import build_moderation_prompt, parse_verdict

logger = get_logger(__name__)


class GeminiModerator:
    """Gemini 文本分类器。

    Attributes:
        model_name: 使用的 Gemini 模型名称。
    """

    def __init__(
        self,
        model_name: str | None = None,
        client: genai.Client | None = None,
    ) -> None:
        """初始化分类器。

        Args:
            model_name: Gemini 模型名称，默认读取 ``settings.MODERATION_MODEL``。
            client: 可选的 ``genai.Client`` 实例（用于测试注入 mock）。
        """
        self.model_name: str = model_name or settings.MODERATION_MODEL
        if client is None:
            if not settings.GEMINI_API_KEY:
                raise ValueError("GEMINI_API_KEY 未配置，无法创建审核模型客户端")
            client = genai.Client(api_key=settings.GEMINI_API_KEY)
        self._client: genai.Client = client
        logger.info("审核模型客户端已初始化 | model=%s", self.model_name)

    async def classify(self, text: str) -> bool:
        """对文本分类，返回是否安全。

        调用失败时直接抛出异常，由上层决定降级策略。
        """
        response = await self._client.aio.models.generate_content(
            model=self.model_name,
            contents=build_moderation_prompt(text),
            config=types.GenerateContentConfig(temperature=0.1),
        )
        return parse_verdict(response.text)
