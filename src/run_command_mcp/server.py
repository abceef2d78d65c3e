"""Run Command MCP Server。

通过 MCP 暴露 shell 命令执行与后台进程管理工具。

环境变量:
    RCM_RUN_TIMEOUT_MS: run_command 默认超时 (默认 30000)
    RCM_START_TIMEOUT_MS: start_command 默认超时 (默认 0 = 不限时)
    RCM_SHELL: shell 可执行文件
    RCM_CWD: 子进程工作目录
    RCM_KILL_ON_EXIT: 退出时终止后台进程 (默认 true)

用法:
    uvx run-command-mcp
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from .config import Config, get_config
from .handlers import HANDLERS, ToolContext
from .response_formatter import format_error_response
from .runtime import CommandRunner, ProcessRegistry
from .tool_schema import SUPPORTED_TOOLS

__all__ = ["create_server", "create_runner"]

logger = logging.getLogger(__name__)

SERVER_NAME = "run-command-mcp"


def create_runner(registry: ProcessRegistry, config: Config | None = None) -> CommandRunner:
    """按配置创建 CommandRunner。"""
    config = config or get_config()
    return CommandRunner(
        registry=registry,
        shell=config.shell,
        cwd=config.cwd,
        default_timeout_ms=config.run_timeout_ms,
        term_timeout=config.term_timeout,
    )


def create_server(
    registry: ProcessRegistry | None = None,
    runner: CommandRunner | None = None,
    config: Config | None = None,
) -> Server:
    """创建 MCP Server 实例。

    Args:
        registry: 进程注册表（可选，默认新建）
        runner: 命令执行器（可选，默认按配置新建并绑定 registry）
        config: 配置（可选，默认读取环境变量）
    """
    config = config or get_config()
    registry = registry if registry is not None else ProcessRegistry()
    runner = runner if runner is not None else create_runner(registry, config)
    server = Server(SERVER_NAME)

    tool_ctx = ToolContext(config=config, registry=registry, runner=runner)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """列出可用工具。"""
        tools = []
        for name in SUPPORTED_TOOLS:
            handler = HANDLERS[name]
            tools.append(
                Tool(
                    name=handler.name,
                    description=handler.description,
                    inputSchema=handler.get_input_schema(config),
                )
            )
        logger.debug(f"[MCP] list_tools called, returning {len(tools)} tools")
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """调用工具。"""
        logger.debug(
            f"[MCP] call_tool request: {name} "
            f"{json.dumps(arguments or {}, ensure_ascii=False, default=str)}"
        )

        handler = HANDLERS.get(name)
        if handler is None:
            return format_error_response(f"Unknown tool '{name}'")

        try:
            return await handler.handle(arguments or {}, tool_ctx)

        except asyncio.CancelledError:
            logger.info(f"Tool '{name}' cancelled")
            raise

        except Exception as e:
            logger.exception(f"Tool '{name}' failed: {type(e).__name__}: {e}")
            return format_error_response(f"Tool execution failed: {e}")

    return server
