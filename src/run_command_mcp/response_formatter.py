"""MCP 响应格式化器。

每个工具调用返回单个 TextContent，内容为缩进 2 空格的 JSON 对象。
字段名与状态字符串是对外契约的一部分，保持不变。
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from .errors import ProcessError, ProcessNotRunningError

if TYPE_CHECKING:
    from mcp.types import TextContent

__all__ = [
    "format_response",
    "format_error_response",
    "format_process_error",
]


def format_payload(payload: dict[str, Any]) -> str:
    """将响应字典序列化为 JSON 文本。"""
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def format_response(payload: dict[str, Any]) -> list[TextContent]:
    """格式化成功（或已结构化）的响应。"""
    from mcp.types import TextContent

    return [TextContent(type="text", text=format_payload(payload))]


def format_error_response(error: str, **extra: Any) -> list[TextContent]:
    """格式化错误响应。

    Args:
        error: 错误消息
        **extra: 附加字段（如 process_id、status）
    """
    payload: dict[str, Any] = {"success": False, "error": error}
    payload.update(extra)
    return format_response(payload)


def format_process_error(exc: ProcessError) -> list[TextContent]:
    """将注册表异常转换为错误响应。"""
    extra: dict[str, Any] = {"process_id": exc.process_id}
    if isinstance(exc, ProcessNotRunningError):
        extra["status"] = exc.status
    return format_error_response(exc.message, **extra)
