"""Tool Handlers 模块。

提供工具处理器抽象和具体实现。
"""

from .base import ToolContext, ToolHandler
from .commands import (
    HANDLERS,
    ClearProcessesHandler,
    GetOutputHandler,
    KillProcessHandler,
    ListProcessesHandler,
    RunCommandHandler,
    StartCommandHandler,
)

__all__ = [
    "ToolContext",
    "ToolHandler",
    "HANDLERS",
    "RunCommandHandler",
    "StartCommandHandler",
    "GetOutputHandler",
    "ListProcessesHandler",
    "KillProcessHandler",
    "ClearProcessesHandler",
]
