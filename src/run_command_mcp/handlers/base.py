"""Tool Handler 基础抽象。

定义工具处理器的协议和上下文。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from mcp.types import TextContent
from pydantic import BaseModel, ValidationError

from ..errors import ProcessError
from ..response_formatter import (
    format_error_response,
    format_process_error,
    format_response,
)
from ..tool_schema import TOOL_DESCRIPTIONS, create_tool_schema

if TYPE_CHECKING:
    from ..config import Config
    from ..runtime import CommandRunner, ProcessRegistry

__all__ = [
    "ToolContext",
    "ToolHandler",
]

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """工具执行上下文。

    封装工具执行所需的所有依赖，避免在函数间传递大量参数。
    """

    config: "Config"
    registry: "ProcessRegistry"
    runner: "CommandRunner"


def _format_validation_error(error: ValidationError) -> str:
    """将 pydantic 校验错误压缩为一行消息。"""
    details = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        details.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "Invalid arguments: " + "; ".join(details)


class ToolHandler(ABC):
    """工具处理器协议。

    子类声明 name、args_model 并实现 execute()；
    参数校验、异常到响应的转换由 handle() 统一完成。
    """

    args_model: ClassVar[type[BaseModel]]

    @property
    @abstractmethod
    def name(self) -> str:
        """工具名称。"""
        ...

    @property
    def description(self) -> str:
        """工具描述。"""
        return TOOL_DESCRIPTIONS[self.name]

    def get_input_schema(self, config: "Config | None" = None) -> dict[str, Any]:
        """获取输入参数 schema。"""
        if config is None:
            return create_tool_schema(self.name)
        return create_tool_schema(
            self.name,
            run_timeout_ms=config.run_timeout_ms,
            start_timeout_ms=config.start_timeout_ms,
        )

    def validate(self, arguments: dict[str, Any]) -> str | None:
        """验证参数。

        Returns:
            错误消息，如果验证通过则返回 None
        """
        try:
            self.args_model.model_validate(arguments)
        except ValidationError as e:
            return _format_validation_error(e)
        return None

    async def handle(
        self,
        arguments: dict[str, Any],
        ctx: ToolContext,
    ) -> list[TextContent]:
        """处理工具调用。

        Args:
            arguments: 工具参数
            ctx: 执行上下文

        Returns:
            TextContent 列表（单个 JSON 对象）
        """
        arguments = arguments or {}
        error = self.validate(arguments)
        if error:
            logger.debug(f"[{self.name}] rejected: {error}")
            return format_error_response(error)

        args = self.args_model.model_validate(arguments)

        try:
            payload = await self.execute(args, ctx)
        except ProcessError as e:
            logger.debug(f"[{self.name}] {type(e).__name__}: {e.message} ({e.process_id})")
            return format_process_error(e)

        return format_response(payload)

    @abstractmethod
    async def execute(self, args: Any, ctx: ToolContext) -> dict[str, Any]:
        """执行工具并返回响应字典。

        Raises:
            ProcessError: 注册表操作失败（转换为 success=false 响应）
        """
        ...
