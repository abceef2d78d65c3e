"""命令工具处理器。

处理 run_command, start_command, get_command_output,
list_processes, kill_process, clear_processes 工具调用。
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..runtime import ProcessStatus
from .base import ToolContext, ToolHandler

__all__ = [
    "RunCommandHandler",
    "StartCommandHandler",
    "GetOutputHandler",
    "ListProcessesHandler",
    "KillProcessHandler",
    "ClearProcessesHandler",
    "HANDLERS",
]

logger = logging.getLogger(__name__)


class _Arguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CommandArgs(_Arguments):
    command: str = Field(min_length=1)
    timeout: float | None = None


class ProcessIdArgs(_Arguments):
    process_id: str = Field(min_length=1)


class OutputArgs(ProcessIdArgs):
    tail: float = 0


class ListArgs(_Arguments):
    status: str | None = None


class ClearArgs(_Arguments):
    process_id: str | None = None


class RunCommandHandler(ToolHandler):
    """阻塞执行命令，返回 stdout/stderr/exit_code。"""

    name = "run_command"
    args_model = CommandArgs

    async def execute(self, args: CommandArgs, ctx: ToolContext) -> dict[str, Any]:
        # 0 / 缺省都使用默认超时
        timeout = int(args.timeout) if args.timeout else ctx.config.run_timeout_ms
        outcome = await ctx.runner.run(args.command, timeout)
        return outcome.to_dict()


class StartCommandHandler(ToolHandler):
    """后台启动命令，立即返回 process_id。"""

    name = "start_command"
    args_model = CommandArgs

    async def execute(self, args: CommandArgs, ctx: ToolContext) -> dict[str, Any]:
        if args.timeout is None:
            timeout = ctx.config.start_timeout_ms
        else:
            timeout = max(int(args.timeout), 0)

        record = await ctx.runner.start(args.command, timeout)

        if record.status is ProcessStatus.ERROR:
            # 启动失败：记录保留在注册表中，可继续查询
            return {
                "success": False,
                "process_id": record.id,
                "pid": record.pid,
                "command": record.command,
                "status": record.status.value,
                "error": record.error,
            }

        return {
            "success": True,
            "process_id": record.id,
            "pid": record.pid,
            "command": record.command,
            "status": record.status.value,
            "message": (
                "Command started. Use get_command_output with this process_id "
                "to check status and logs."
            ),
        }


class GetOutputHandler(ToolHandler):
    """查询进程状态与输出。"""

    name = "get_command_output"
    args_model = OutputArgs

    async def execute(self, args: OutputArgs, ctx: ToolContext) -> dict[str, Any]:
        snapshot = ctx.registry.output(args.process_id, max(int(args.tail), 0))
        return {"success": True, **snapshot}


class ListProcessesHandler(ToolHandler):
    """列出已登记的进程。"""

    name = "list_processes"
    args_model = ListArgs

    async def execute(self, args: ListArgs, ctx: ToolContext) -> dict[str, Any]:
        processes = ctx.registry.list(args.status or None)
        return {"success": True, "total": len(processes), "processes": processes}


class KillProcessHandler(ToolHandler):
    """向运行中的进程发送 SIGTERM。"""

    name = "kill_process"
    args_model = ProcessIdArgs

    async def execute(self, args: ProcessIdArgs, ctx: ToolContext) -> dict[str, Any]:
        ctx.registry.kill(args.process_id)
        return {
            "success": True,
            "process_id": args.process_id,
            "message": "Process killed",
        }


class ClearProcessesHandler(ToolHandler):
    """从注册表中移除进程记录。"""

    name = "clear_processes"
    args_model = ClearArgs

    async def execute(self, args: ClearArgs, ctx: ToolContext) -> dict[str, Any]:
        if args.process_id:
            cleared = ctx.registry.clear(args.process_id)
            return {
                "success": True,
                "process_id": args.process_id,
                "cleared": cleared,
                "message": "Process cleared",
            }

        cleared = ctx.registry.clear()
        return {
            "success": True,
            "cleared": cleared,
            "message": f"Cleared {cleared} finished processes",
        }


# 工具名 -> 处理器（顺序即 list_tools 返回顺序）
HANDLERS: dict[str, ToolHandler] = {
    handler.name: handler
    for handler in (
        RunCommandHandler(),
        StartCommandHandler(),
        GetOutputHandler(),
        ListProcessesHandler(),
        KillProcessHandler(),
        ClearProcessesHandler(),
    )
}
