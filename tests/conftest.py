"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from run_command_mcp.config import Config  # noqa: E402
from run_command_mcp.handlers import ToolContext  # noqa: E402
from run_command_mcp.runtime import CommandRunner, ProcessRegistry, ProcessStatus  # noqa: E402

IS_WINDOWS = sys.platform == "win32"

posix_only = pytest.mark.skipif(IS_WINDOWS, reason="POSIX shell commands")


async def wait_for_status(
    registry: ProcessRegistry,
    process_id: str,
    *,
    timeout: float = 10.0,
    interval: float = 0.05,
) -> ProcessStatus:
    """轮询直到记录离开 running 状态。"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    record = registry.get(process_id)
    while record.is_running:
        if loop.time() > deadline:
            raise AssertionError(f"process {process_id} still running after {timeout}s")
        await asyncio.sleep(interval)
    return record.status


async def wait_until(predicate, *, timeout: float = 10.0, interval: float = 0.05) -> None:
    """轮询直到 predicate() 为真。"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def registry() -> ProcessRegistry:
    """独立的进程注册表。"""
    return ProcessRegistry()


@pytest_asyncio.fixture
async def runner(registry: ProcessRegistry):
    """绑定 registry 的 CommandRunner，测试结束时终止残留进程。"""
    runner = CommandRunner(registry, term_timeout=0.5, kill_timeout=0.3)
    yield runner
    await runner.aclose(kill_running=True)


@pytest.fixture
def tool_ctx(registry: ProcessRegistry, runner: CommandRunner) -> ToolContext:
    """工具执行上下文（默认配置）。"""
    return ToolContext(config=Config(), registry=registry, runner=runner)
