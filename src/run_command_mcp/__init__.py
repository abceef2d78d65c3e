"""Run Command MCP - shell 命令执行与后台进程管理 MCP 服务器。

环境变量:
    RCM_RUN_TIMEOUT_MS: run_command 默认超时 (默认 30000)
    RCM_START_TIMEOUT_MS: start_command 默认超时 (默认 0 = 不限时)
    RCM_SHELL: shell 可执行文件 (默认系统 shell)
    RCM_KILL_ON_EXIT: 退出时终止后台进程 (默认 true)

用法:
    uvx run-command-mcp
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
