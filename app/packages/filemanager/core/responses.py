"""统一响应结构。"""

from typing import Any, Optional

from .constants import HTTP_STATUS_OK


def create_response(msg: str, data: Optional[Any] = None, code: int = HTTP_STATUS_OK) -> dict:
    """构造 ``{"msg", "data", "code"}`` 形式的响应体。"""
    return {"msg": msg, "data": data, "code": code}
