"""Tool Schema 定义。

包含工具名称、描述、参数 schema 和 schema 创建函数。
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "SUPPORTED_TOOLS",
    "TOOL_DESCRIPTIONS",
    "PROCESS_STATUSES",
    "create_tool_schema",
]

# 工具列表（顺序即 list_tools 返回顺序）
SUPPORTED_TOOLS = [
    "run_command",
    "start_command",
    "get_command_output",
    "list_processes",
    "kill_process",
    "clear_processes",
]

PROCESS_STATUSES = ["running", "completed", "failed", "killed", "error", "timed_out"]

# 工具描述
TOOL_DESCRIPTIONS = {
    "run_command": (
        "Run a custom shell command synchronously and return the output "
        "(stdout, stderr, exit code). Blocks until command completes."
    ),
    "start_command": (
        "Start a command asynchronously (non-blocking). Returns a process_id "
        "to check status and output later using get_command_output."
    ),
    "get_command_output": (
        "Get the current output and status of a running or completed async "
        "command by process_id."
    ),
    "list_processes": (
        "List all tracked processes (running, completed, failed, etc.)"
    ),
    "kill_process": "Kill a running process by process_id",
    "clear_processes": (
        "Clear finished processes from memory. If process_id is provided, "
        "clears that specific process. Otherwise clears all non-running processes."
    ),
}


def _command_property(examples: str) -> dict[str, Any]:
    return {
        "type": "string",
        "description": f"The full command to execute (e.g., {examples})",
    }


def _process_id_property(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def create_tool_schema(
    tool_name: str,
    *,
    run_timeout_ms: int = 30000,
    start_timeout_ms: int = 0,
) -> dict[str, Any]:
    """创建工具的输入 schema。

    Args:
        tool_name: 工具名称
        run_timeout_ms: run_command 的默认超时（写入描述）
        start_timeout_ms: start_command 的默认超时（写入描述）

    Raises:
        KeyError: 未知工具
    """
    if tool_name == "run_command":
        return {
            "type": "object",
            "properties": {
                "command": _command_property(
                    '"echo hello world", "npm install", "git status"'
                ),
                "timeout": {
                    "type": "number",
                    "description": f"Timeout in milliseconds (default: {run_timeout_ms})",
                },
            },
            "required": ["command"],
        }

    if tool_name == "start_command":
        return {
            "type": "object",
            "properties": {
                "command": _command_property(
                    '"node server.js", "npm run dev", "func start"'
                ),
                "timeout": {
                    "type": "number",
                    "description": (
                        "Timeout in milliseconds. 0 means no timeout "
                        f"(default: {start_timeout_ms})"
                    ),
                },
            },
            "required": ["command"],
        }

    if tool_name == "get_command_output":
        return {
            "type": "object",
            "properties": {
                "process_id": _process_id_property(
                    "The process ID returned by start_command"
                ),
                "tail": {
                    "type": "number",
                    "description": "Only return the last N lines of output (optional, 0 = all)",
                },
            },
            "required": ["process_id"],
        }

    if tool_name == "list_processes":
        return {
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "description": (
                        f"Filter by status: {', '.join(PROCESS_STATUSES)} (optional)"
                    ),
                },
            },
            "required": [],
        }

    if tool_name == "kill_process":
        return {
            "type": "object",
            "properties": {
                "process_id": _process_id_property("The process ID to kill"),
            },
            "required": ["process_id"],
        }

    if tool_name == "clear_processes":
        return {
            "type": "object",
            "properties": {
                "process_id": _process_id_property(
                    "Specific process ID to clear (optional)"
                ),
            },
            "required": [],
        }

    raise KeyError(f"Unknown tool '{tool_name}'")
