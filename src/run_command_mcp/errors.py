"""进程注册表异常类。

由 ProcessRegistry 抛出，由 handlers 转换为 success=false 的结构化响应。
"""

from __future__ import annotations

__all__ = [
    "ProcessError",
    "ProcessNotFoundError",
    "ProcessNotRunningError",
    "SignalDeliveryError",
]


class ProcessError(Exception):
    """进程操作基础异常。

    Attributes:
        process_id: 相关的进程 ID
        message: 面向调用方的错误消息
    """

    def __init__(self, process_id: str, message: str) -> None:
        self.process_id = process_id
        self.message = message
        super().__init__(message)


class ProcessNotFoundError(ProcessError):
    """注册表中不存在该进程 ID。"""

    def __init__(self, process_id: str) -> None:
        super().__init__(process_id, "Process not found")


class ProcessNotRunningError(ProcessError):
    """操作要求 running 状态，但记录已处于终态。

    Attributes:
        status: 记录当前状态字符串
    """

    def __init__(self, process_id: str, status: str) -> None:
        self.status = status
        super().__init__(process_id, "Process is not running")


class SignalDeliveryError(ProcessError):
    """终止信号无法送达（进程已退出、权限不足等）。

    Attributes:
        cause: 底层 OSError
    """

    def __init__(self, process_id: str, cause: OSError | str) -> None:
        self.cause = cause
        message = cause if isinstance(cause, str) else (cause.strerror or str(cause))
        super().__init__(process_id, message)
