"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 关闭 Gemini 审核与 WebSocket 限流，
使单元测试可在无网络环境下快速运行。
"""
from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置
os.environ["GEMINI_API_KEY"] = ""
os.environ.setdefault("WS_RATE_LIMIT_INTERVAL", "0")

from app.services.coordinator import Coordinator  # noqa: E402
from app.services.registry import Connection  # noqa: E402

Message = dict[str, Any]


def drain_outbox(connection: Connection) -> list[Message]:
    """取出连接 outbox 中已投递的全部消息（忽略结束信号）。"""
    messages: list[Message] = []
    while True:
        try:
            item = connection.outbox.get_nowait()
        except asyncio.QueueEmpty:
            break
        if item is not None:
            messages.append(item)
    return messages


def select(messages: list[Message], event: str) -> list[Any]:
    """按事件名筛选消息负载。"""
    return [m["data"] for m in messages if m["event"] == event]


@pytest.fixture()
def drain() -> Callable[[Connection], list[Message]]:
    return drain_outbox


@pytest.fixture()
def pick() -> Callable[[list[Message], str], list[Any]]:
    return select


@pytest.fixture()
def coordinator() -> Coordinator:
    """默认 soft 回避策略、不强制审核的协调器。"""
    return Coordinator(policy="soft", enforce_moderation=False)


def join_payload(peer: str, tag: str, looking_for: list[str] | None = None) -> dict[str, Any]:
    return {"negotiationId": peer, "identityTag": tag, "preferenceFilter": looking_for or []}


@pytest.fixture()
def join() -> Callable[..., dict[str, Any]]:
    return join_payload
