"""
app.core.exceptions
~~~~~~~~~~~~~~~~~~~

协调服务的领域异常。

由匹配队列 / 房间目录抛出，统一在 ``Coordinator`` 中捕获：
记录日志，并以 ``system_notice`` 通知发起方，绝不影响其他连接的共享状态。
"""
from __future__ import annotations


class CoordinatorError(Exception):
    """协调服务领域异常基类。

    Attributes:
        code: 下发给客户端的机器可读错误码。
    """

    code: str = "coordinator_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AlreadyPairedError(CoordinatorError):
    """连接已处于 1:1 会话中时尝试重新排队。"""

    code = "already_paired"


class SessionConflictError(CoordinatorError):
    """直播会话冲突（会话 ID 被其他主播占用、主播尝试观看等）。"""

    code = "session_conflict"
