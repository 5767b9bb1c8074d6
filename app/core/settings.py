"""
app.core.settings
~~~~~~~~~~~~~~~~~

集中式配置管理，基于 pydantic-settings 自动从 ``.env`` 文件加载。

支持多环境配置（dev / test / prod），加载顺序为:
  1. 环境变量（最高优先级）
  2. ``.env.{ENVIRONMENT}`` 环境专属文件
  3. ``.env`` 基础文件
  4. 字段默认值（最低优先级）
"""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent

# 读取当前环境标识（在 Settings 类定义之前，用于决定加载哪个 .env 文件）
_CURRENT_ENV: str = os.getenv("ENVIRONMENT", "dev")

RepeatPartnerPolicy = Literal["off", "strict", "soft"]

_ENV_LOG_LEVELS: dict[str, str] = {"dev": "INFO", "test": "DEBUG", "prod": "WARNING"}


class Settings(BaseSettings):
    """全局配置对象，字段值按如下优先级加载：环境变量 > .env.{env} > .env > 默认值。"""

    # ── 基础 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="LiveFlow Coordinator", description="项目名称")
    VERSION: str = Field(default="0.1.0", description="版本号")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(
        default="dev",
        description="运行环境：dev / test / prod",
    )

    # ── 匹配 ──────────────────────────────────────────────────────────
    IDENTITY_TAGS: list[str] = Field(
        default=["homem", "mulher", "trans"],
        description="允许的身份标签集合",
    )
    REPEAT_PARTNER_POLICY: RepeatPartnerPolicy = Field(
        default="soft",
        description="上一任搭档回避策略：off / strict / soft",
    )

    # ── 消息 ──────────────────────────────────────────────────────────
    MAX_MESSAGE_LENGTH: int = Field(default=500, description="单条聊天消息最大长度")
    OUTBOX_MAXSIZE: int = Field(default=256, description="每个连接的下行消息队列容量")
    WS_RATE_LIMIT_INTERVAL: float = Field(
        default=0.5,
        description="同一连接两条聊天消息之间的最小间隔（秒）",
    )

    # ── 内容审核 ──────────────────────────────────────────────────────
    GEMINI_API_KEY: str = Field(default="", description="Google Gemini API Key（为空时仅使用本地词表）")
    MODERATION_MODEL: str = Field(
        default="gemini-2.5-flash",
        description="内容审核使用的 Gemini 模型名称",
    )
    FORBIDDEN_WORDS: list[str] = Field(
        default=["ofensa1", "ofensa2", "racismo", "nazismo", "cpflive", "venda de conta"],
        description="本地违禁词表（大小写不敏感，子串匹配）",
    )
    MODERATION_ENFORCE: bool = Field(
        default=False,
        description="是否在服务端对聊天消息强制执行审核",
    )

    # ── 服务 ──────────────────────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0", description="服务监听地址")
    PORT: int = Field(default=3000, description="服务监听端口")
    LOG_LEVEL: str = Field(default="INFO", description="日志级别；未显式设置时按环境推断")
    CORS_ORIGINS: list[str] = Field(default=[], description="prod 环境允许的前端来源")

    # ── Pydantic Settings ─────────────────────────────────────────────
    # 先加载 .env.{env} 再加载 .env，前者优先级更高
    model_config = SettingsConfigDict(
        env_file=(f".env.{_CURRENT_ENV}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── 派生属性 ──────────────────────────────────────────────────────

    @property
    def is_prod(self) -> bool:
        return self.ENVIRONMENT == "prod"

    @property
    def debug(self) -> bool:
        """dev 环境开启 FastAPI debug。"""
        return self.ENVIRONMENT == "dev"

    @property
    def reload(self) -> bool:
        """dev 环境开启 uvicorn 热重载。"""
        return self.ENVIRONMENT == "dev"

    @property
    def effective_log_level(self) -> str:
        """实际日志级别。

        显式配置了 ``LOG_LEVEL`` 时以其为准；否则按环境推断：
        dev → INFO，test → DEBUG，prod → WARNING。
        """
        if "LOG_LEVEL" in self.model_fields_set:
            return self.LOG_LEVEL.upper()
        return _ENV_LOG_LEVELS.get(self.ENVIRONMENT, "INFO")

    @property
    def cors_origins(self) -> list[str]:
        """实际生效的 CORS 来源；非 prod 环境放开全部来源。"""
        return self.CORS_ORIGINS if self.is_prod else ["*"]

    @property
    def ai_moderation_enabled(self) -> bool:
        """是否配置了 Gemini 审核。"""
        return bool(self.GEMINI_API_KEY)


@lru_cache
def get_settings() -> Settings:
    """获取全局 Settings 单例（带缓存，避免重复解析 .env）。"""
    return Settings()


settings: Settings = get_settings()
