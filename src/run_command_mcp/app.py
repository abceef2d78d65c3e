"""Run Command MCP 应用入口。

包含服务器生命周期管理和主入口点。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys

from mcp.server.stdio import stdio_server

from .config import get_config
from .runtime import ProcessRegistry
from .server import create_runner, create_server
from .signal_manager import SignalManager

__all__ = ["run_server", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


async def run_server() -> None:
    """运行 MCP Server（stdio transport）。

    使用并发任务架构：
    - server_task: 运行 MCP server
    - shutdown_watcher: 监听 shutdown 事件并取消 server_task

    退出时根据 RCM_KILL_ON_EXIT 终止仍在运行的后台进程。
    """
    config = get_config()
    logger.info(f"Starting Run Command MCP Server: {config}")

    registry = ProcessRegistry()
    runner = create_runner(registry, config)
    server = create_server(registry, runner, config)
    server_task: asyncio.Task | None = None
    shutdown_watcher: asyncio.Task | None = None

    def on_shutdown() -> None:
        """信号管理器触发的关闭回调。"""
        logger.info("Shutdown callback triggered")
        # 关闭 stdin 以中断 stdio_server 的阻塞读取
        try:
            sys.stdin.close()
            logger.debug("stdin closed to unblock stdio_server")
        except OSError as e:
            logger.debug(f"Error closing stdin: {e}")

    signal_manager = SignalManager(on_shutdown=on_shutdown)

    async def _run_server_impl() -> None:
        """运行 MCP server 的内部实现。"""
        logger.debug("Starting MCP server with stdio transport")
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
        logger.debug("MCP server completed normally")

    async def _watch_shutdown() -> None:
        """监听 shutdown 事件并取消 server task。"""
        await signal_manager.wait_for_shutdown()
        logger.info("Shutdown signal received, cancelling server task...")
        if server_task and not server_task.done():
            server_task.cancel()

    try:
        await signal_manager.start()

        server_task = asyncio.create_task(_run_server_impl(), name="mcp-server")
        shutdown_watcher = asyncio.create_task(_watch_shutdown(), name="shutdown-watcher")

        try:
            await server_task
        except asyncio.CancelledError:
            logger.info("Server task cancelled by shutdown signal")

    finally:
        logger.info("run_server: entering finally block")

        if shutdown_watcher and not shutdown_watcher.done():
            shutdown_watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await shutdown_watcher

        await signal_manager.stop()

        running = registry.running_count
        if running:
            action = "terminating" if config.kill_on_exit else "leaving"
            logger.info(
                f"{action} {running} running process(es), "
                f"{runner.active_count} supervised"
            )
        await runner.aclose(kill_running=config.kill_on_exit)

        logger.info("run_server: cleanup completed")

        # 双击 SIGINT
        if signal_manager.is_force_exit:
            logger.warning("Force exit requested, terminating with exit code 130")
            sys.exit(130)  # 128 + SIGINT(2) = 130


def configure_logging() -> None:
    """配置日志输出。

    stdout 承载 MCP 协议流，日志只写 stderr 或调试文件。
    """
    config = get_config()
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers)
    # 只对 run_command_mcp 命名空间启用详细日志
    logging.getLogger("run_command_mcp").setLevel(log_level)


def main() -> None:
    """主入口点。"""
    configure_logging()
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
