"""RCM 环境变量配置管理。

环境变量:
    RCM_RUN_TIMEOUT_MS: run_command 默认超时（毫秒）
        - 默认 30000
        - 必须为正整数，无效值回退到默认值

    RCM_START_TIMEOUT_MS: start_command 默认超时（毫秒）
        - 默认 0（不限时）

    RCM_SHELL: 解释命令所用的 shell 可执行文件
        - 未设置 = 系统默认 (/bin/sh，Windows 为 cmd.exe)

    RCM_CWD: 子进程工作目录
        - 未设置 = 继承服务器进程的工作目录

    RCM_KILL_ON_EXIT: 服务器退出时是否终止仍在运行的后台进程
        - true/1/yes = 终止 (默认)
        - false/0/no = 保留运行

    RCM_TERM_TIMEOUT: 退出清理时 SIGTERM 之后等待的秒数，超时后发送 SIGKILL
        - 默认 2.0 秒，限制在 0.1-30 秒

    RCM_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_RUN_TIMEOUT_MS = 30000
DEFAULT_START_TIMEOUT_MS = 0
DEFAULT_TERM_TIMEOUT = 2.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_int(value: str | None, default: int, minimum: int = 0) -> int:
    """解析整数环境变量，小于 minimum 或无效时返回默认值。"""
    if not value or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _parse_term_timeout(value: str | None) -> float:
    """解析 SIGTERM 等待时间环境变量。"""
    if not value:
        return DEFAULT_TERM_TIMEOUT
    try:
        timeout = float(value)
        return max(0.1, min(timeout, 30.0))  # 限制在 0.1-30 秒范围
    except ValueError:
        return DEFAULT_TERM_TIMEOUT


def _parse_path(value: str | None) -> Path | None:
    """解析路径环境变量，空值返回 None。"""
    if not value or not value.strip():
        return None
    return Path(value.strip()).expanduser()


@dataclass
class Config:
    """RCM 配置。

    Attributes:
        run_timeout_ms: run_command 默认超时（毫秒，> 0）
        start_timeout_ms: start_command 默认超时（毫秒，0 = 不限时）
        shell: shell 可执行文件（None = 系统默认）
        cwd: 子进程工作目录（None = 继承）
        kill_on_exit: 退出时是否终止仍在运行的后台进程
        term_timeout: 退出清理时 SIGTERM 之后的等待时间（秒）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    run_timeout_ms: int = DEFAULT_RUN_TIMEOUT_MS
    start_timeout_ms: int = DEFAULT_START_TIMEOUT_MS
    shell: str | None = None
    cwd: Path | None = None
    kill_on_exit: bool = True
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(run_timeout_ms={self.run_timeout_ms}, "
            f"start_timeout_ms={self.start_timeout_ms}, "
            f"shell={self.shell or 'default'}, "
            f"cwd={self.cwd or 'inherit'}, "
            f"kill_on_exit={self.kill_on_exit}, "
            f"term_timeout={self.term_timeout}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "run-command-mcp"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"rcm_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("RCM_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None
    shell = os.environ.get("RCM_SHELL", "").strip() or None

    return Config(
        run_timeout_ms=_parse_int(
            os.environ.get("RCM_RUN_TIMEOUT_MS"), DEFAULT_RUN_TIMEOUT_MS, minimum=1
        ),
        start_timeout_ms=_parse_int(
            os.environ.get("RCM_START_TIMEOUT_MS"), DEFAULT_START_TIMEOUT_MS
        ),
        shell=shell,
        cwd=_parse_path(os.environ.get("RCM_CWD")),
        kill_on_exit=_parse_bool(os.environ.get("RCM_KILL_ON_EXIT"), default=True),
        term_timeout=_parse_term_timeout(os.environ.get("RCM_TERM_TIMEOUT")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
