"""Run Command MCP 入口点。

支持: python -m run_command_mcp
"""

from .app import main

if __name__ == "__main__":
    main()
