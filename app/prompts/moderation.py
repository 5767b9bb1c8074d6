"""
app.prompts.moderation
~~~~~~~~~~~~~~~~~~~~~~

聊天内容审核的 Prompt 与结果解析。

将 Prompt 独立管理，方便在不修改 LLM 连接代码的前提下调整审核策略。
"""

# ---------------------------------------------------------------------------
# 审核 Prompt —— 要求模型只回答 SAFE / UNSAFE
# ---------------------------------------------------------------------------
MODERATION_PROMPT_TEMPLATE: str = (
    "Analise se a seguinte mensagem de chat é ofensiva, ódio, assédio ou spam. "
    'Responda apenas "SAFE" ou "UNSAFE". Mensagem: "{text}"'
)


def build_moderation_prompt(text: str) -> str:
    """将待审核文本嵌入审核 Prompt。

    Args:
        text: 用户发送的原始聊天文本。

    Returns:
        组装后的 Prompt 字符串。
    """
    # 去掉双引号，避免文本提前闭合 Prompt 中的引用
    return MODERATION_PROMPT_TEMPLATE.format(text=text.replace('"', "'"))


def parse_verdict(reply: str | None) -> bool:
    """模型回复是否判定为安全。只有明确的 ``SAFE`` 才算安全。"""
    return (reply or "").strip().upper() == "SAFE"
