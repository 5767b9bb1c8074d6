"""
app.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~

REST 接口的统一外壳 ``{"code", "data", "msg"}``。

WebSocket 下行帧不走这个外壳，见 ``app.schemas.events.envelope``。
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    """REST 应答外壳，``code == 200`` 表示成功。"""

    code: int = Field(default=200, description="业务状态码")
    data: DataT = Field(..., description="业务数据")
    msg: str = Field(default="success", description="状态消息")

    @classmethod
    def ok(cls, data: DataT) -> ApiResponse[DataT]:
        return cls(data=data)

    @classmethod
    def fail(cls, msg: str, code: int = 500, data: Any = None) -> ApiResponse[Any]:
        return cls(code=code, data=data, msg=msg)
