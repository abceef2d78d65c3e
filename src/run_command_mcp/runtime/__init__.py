"""Runtime module for command execution and process tracking.

This module provides shell command execution with concurrent output capture,
timeouts and an in-memory registry of background processes.
"""

from __future__ import annotations

from .process_runner import CommandOutcome, CommandRunner
from .records import ProcessRecord, ProcessStatus
from .registry import ProcessRegistry

__all__ = [
    "CommandOutcome",
    "CommandRunner",
    "ProcessRecord",
    "ProcessRegistry",
    "ProcessStatus",
]
