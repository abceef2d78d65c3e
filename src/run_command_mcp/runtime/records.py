"""Process record model.

run-command-mcp runtime module

A ProcessRecord is the tracked state of one launched command. Records are
mutated only on the event loop thread, so a plain status check is enough to
make the terminal transition a single-shot claim.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import asyncio

__all__ = [
    "ProcessStatus",
    "OutputBuffer",
    "ProcessRecord",
    "utc_timestamp",
    "tail_lines",
]


class ProcessStatus(str, Enum):
    """Lifecycle states of a tracked process.

    RUNNING is the only non-terminal state.
    """

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"
    ERROR = "error"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not ProcessStatus.RUNNING


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2025-01-01T00:00:00.000Z."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def tail_lines(text: str, tail: int) -> str:
    """Trim text and keep at most the last `tail` lines (all lines when tail <= 0)."""
    text = text.strip()
    if tail > 0:
        text = "\n".join(text.splitlines()[-tail:]).strip()
    return text


class OutputBuffer:
    """Append-only text buffer for one output stream.

    Chunks are kept as delivered; joining happens lazily on read.
    """

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self._size = 0

    def append(self, text: str) -> None:
        if not text:
            return
        self._chunks.append(text)
        self._size += len(text)

    def text(self) -> str:
        if len(self._chunks) > 1:
            # Collapse so repeated reads stay cheap
            self._chunks = ["".join(self._chunks)]
        return self._chunks[0] if self._chunks else ""

    def __len__(self) -> int:
        return self._size

    def __str__(self) -> str:
        return self.text()


def _new_process_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ProcessRecord:
    """Tracked state of one launched command.

    Attributes:
        command: Command line as submitted (interpreted by a shell)
        id: Opaque unique identifier (uuid4)
        status: Current lifecycle state
        stdout: Accumulated standard output
        stderr: Accumulated standard error
        exit_code: Exit code, set only on natural exit
        error: Launch/runtime error description, set only on error
        pid: OS process id, set once spawned
        started_at: Creation timestamp
        finished_at: Terminal transition timestamp (None while running)
        timed_out: True when the timeout fired before exit
    """

    command: str
    id: str = field(default_factory=_new_process_id)
    status: ProcessStatus = ProcessStatus.RUNNING
    stdout: OutputBuffer = field(default_factory=OutputBuffer, repr=False)
    stderr: OutputBuffer = field(default_factory=OutputBuffer, repr=False)
    exit_code: int | None = None
    error: str | None = None
    pid: int | None = None
    started_at: str = field(default_factory=utc_timestamp)
    finished_at: str | None = None
    timed_out: bool = False
    process: "asyncio.subprocess.Process | None" = field(
        default=None, repr=False, compare=False
    )

    @property
    def is_running(self) -> bool:
        return self.status is ProcessStatus.RUNNING

    def finish(
        self,
        status: ProcessStatus,
        *,
        exit_code: int | None = None,
        error: str | None = None,
        timed_out: bool = False,
    ) -> bool:
        """Claim the terminal transition.

        Returns:
            True if this call moved the record out of RUNNING, False if the
            record was already terminal (the call is then a no-op).
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        if not self.is_running:
            return False

        self.status = status
        self.exit_code = exit_code
        self.error = error
        self.timed_out = timed_out
        self.finished_at = utc_timestamp()
        return True

    def finish_exit(self, returncode: int) -> bool:
        """Natural exit: completed on 0, failed otherwise."""
        status = ProcessStatus.COMPLETED if returncode == 0 else ProcessStatus.FAILED
        return self.finish(status, exit_code=returncode)

    def summary(self) -> dict[str, Any]:
        """Listing projection of the record."""
        return {
            "process_id": self.id,
            "pid": self.pid,
            "command": self.command,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }

    def snapshot(self, tail: int = 0) -> dict[str, Any]:
        """Full projection with stdout/stderr tail-projected and trimmed.

        Storage is never modified; repeated calls on a finished record return
        identical data.
        """
        return {
            "process_id": self.id,
            "pid": self.pid,
            "command": self.command,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "stdout": tail_lines(self.stdout.text(), tail),
            "stderr": tail_lines(self.stderr.text(), tail),
            "error": self.error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "timed_out": self.timed_out,
        }
