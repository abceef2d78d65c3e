"""Command runner with concurrent stream capture and timeouts.

run-command-mcp runtime module

This module provides:
- Shell-interpreted command execution in an isolated session/process group
- Chunk-by-chunk stdout/stderr capture while the child runs
- Timeouts that deliver a graceful termination signal (SIGTERM)
- Blocking runs (run) and tracked background runs (start)

Key design points:
- Every terminal transition goes through ProcessRecord.finish(), so whichever
  of exit, error, timeout or kill fires first wins and the rest are no-ops
- The timeout timer is cancelled exactly once, when the supervisor returns
- Background supervisors are kept in a task set so shutdown can reap them
"""

from __future__ import annotations

import asyncio
import codecs
import functools
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anyio

from .records import OutputBuffer, ProcessRecord, ProcessStatus
from .registry import ProcessRegistry
from .signals import (
    DEFAULT_KILL_TIMEOUT,
    DEFAULT_TERM_TIMEOUT,
    isolation_kwargs,
    send_terminate,
    terminate_and_wait,
)

__all__ = [
    "CommandRunner",
    "CommandOutcome",
    "DEFAULT_RUN_TIMEOUT_MS",
]

logger = logging.getLogger(__name__)

DEFAULT_RUN_TIMEOUT_MS = 30000
READ_CHUNK_SIZE = 4096


@dataclass
class CommandOutcome:
    """Result of a blocking run.

    Attributes:
        command: Command line as submitted
        exit_code: Exit code (None on launch/stream error; negative when
            the child died from a signal)
        stdout: Captured standard output
        stderr: Captured standard error
        timed_out: True when the timeout fired before exit
        error: Launch/stream error description
    """

    command: str
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.timed_out and self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "exit_code": self.exit_code,
            "stdout": self.stdout.strip(),
            "stderr": self.stderr.strip(),
            "timed_out": self.timed_out,
            "command": self.command,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def _describe_error(exc: BaseException) -> str:
    # Task groups wrap the failing reader in an exception group
    while getattr(exc, "exceptions", None):
        exc = exc.exceptions[0]  # type: ignore[attr-defined]
    return str(exc) or type(exc).__name__


async def _pump(stream: asyncio.StreamReader | None, buffer: OutputBuffer) -> None:
    """Append every chunk from stream to buffer until EOF."""
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            buffer.append(decoder.decode(b"", final=True))
            return
        buffer.append(decoder.decode(chunk))


@dataclass
class CommandRunner:
    """Execution engine for shell commands.

    run() waits for the command and returns a CommandOutcome without touching
    the registry. start() registers a ProcessRecord, spawns the command and
    returns immediately; the record is updated in the background.

    Example:
        registry = ProcessRegistry()
        runner = CommandRunner(registry)

        outcome = await runner.run("echo hi", timeout_ms=5000)
        assert outcome.success and outcome.stdout.strip() == "hi"

        record = await runner.start("sleep 2")
        registry.output(record.id)["status"]  # "running"
    """

    registry: ProcessRegistry | None = None
    shell: str | None = None
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    default_timeout_ms: int = DEFAULT_RUN_TIMEOUT_MS
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    _tasks: set[asyncio.Task[int | None]] = field(
        default_factory=set, init=False, repr=False
    )
    _active: dict[str, ProcessRecord] = field(
        default_factory=dict, init=False, repr=False
    )

    async def run(self, command: str, timeout_ms: int | None = None) -> CommandOutcome:
        """Run command and wait for it to exit.

        Args:
            command: Command line, interpreted by the shell
            timeout_ms: Timeout in milliseconds; None or <= 0 uses
                default_timeout_ms

        Returns:
            CommandOutcome; launch errors are reported in its error field
        """
        if timeout_ms is None or timeout_ms <= 0:
            timeout_ms = self.default_timeout_ms

        # Local record only, blocking runs are never registered
        record = ProcessRecord(command=command)
        logger.info(f"Running command (sync): {command!r} timeout={timeout_ms}ms")

        process = await self._launch(record)
        if process is None:
            return self._outcome(record, None)

        try:
            returncode = await self._supervise(record, process, timeout_ms)
        except asyncio.CancelledError:
            logger.info(f"Sync command cancelled, terminating pid={process.pid}")
            await self._safe_cleanup(process)
            raise

        return self._outcome(record, returncode)

    async def start(self, command: str, timeout_ms: int = 0) -> ProcessRecord:
        """Start command in the background and return its registered record.

        The record is visible in the registry before the child is spawned.

        Args:
            command: Command line, interpreted by the shell
            timeout_ms: Timeout in milliseconds; 0 runs unbounded

        Raises:
            RuntimeError: If the runner has no registry
        """
        if self.registry is None:
            raise RuntimeError("CommandRunner.start() requires a ProcessRegistry")

        record = ProcessRecord(command=command)
        self.registry.register(record)
        logger.info(f"Starting async command {record.id}: {command!r}")

        process = await self._launch(record)
        if process is None:
            return record

        self._active[record.id] = record
        task = asyncio.create_task(
            self._supervise(record, process, max(timeout_ms, 0)),
            name=f"supervise-{record.id[:8]}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda _: self._active.pop(record.id, None))
        return record

    async def aclose(self, *, kill_running: bool = True) -> None:
        """Stop background supervision.

        With kill_running, every child still running is marked killed and
        terminated (SIGTERM, then SIGKILL after term_timeout). Otherwise the
        children are left running and only the supervisors are cancelled.
        """
        records = [r for r in self._active.values() if r.process is not None]

        if kill_running and records:
            logger.info(f"Terminating {len(records)} running process(es)")
            for record in records:
                record.finish(ProcessStatus.KILLED)
            async with anyio.create_task_group() as tg:
                for record in records:
                    tg.start_soon(
                        functools.partial(
                            terminate_and_wait,
                            record.process,
                            term_timeout=self.term_timeout,
                            kill_timeout=self.kill_timeout,
                        )
                    )
        elif not kill_running:
            for task in self._tasks:
                task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def active_count(self) -> int:
        """Background children not yet reaped."""
        return len(self._active)

    async def _launch(self, record: ProcessRecord) -> asyncio.subprocess.Process | None:
        """Spawn the shell for record; on failure the record ends in ERROR."""
        kwargs = isolation_kwargs()
        if self.env is not None:
            kwargs["env"] = dict(self.env)
        if self.shell:
            kwargs["executable"] = self.shell

        try:
            # stdin=DEVNULL: inheriting stdin would hand the MCP JSON-RPC
            # channel to the child
            process = await asyncio.create_subprocess_shell(
                record.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to launch {record.command!r}: {e}")
            record.finish(ProcessStatus.ERROR, error=_describe_error(e))
            return None

        record.process = process
        record.pid = process.pid
        logger.debug(f"Started subprocess pid={process.pid} id={record.id}")
        return process

    async def _supervise(
        self,
        record: ProcessRecord,
        process: asyncio.subprocess.Process,
        timeout_ms: int,
    ) -> int | None:
        """Capture output until EOF, wait for exit and finalize record.

        Returns:
            The child's return code, or None on a stream error
        """
        timer: asyncio.TimerHandle | None = None
        if timeout_ms > 0:
            loop = asyncio.get_running_loop()
            timer = loop.call_later(
                timeout_ms / 1000, self._on_timeout, record, process, timeout_ms
            )

        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(_pump, process.stdout, record.stdout)
                tg.start_soon(_pump, process.stderr, record.stderr)
            returncode = await process.wait()
        except Exception as e:
            message = _describe_error(e)
            logger.warning(f"Stream error for {record.id} pid={process.pid}: {message}")
            record.finish(ProcessStatus.ERROR, error=message)
            await self._safe_cleanup(process)
            return None
        finally:
            if timer is not None:
                timer.cancel()

        if record.finish_exit(returncode):
            logger.info(
                f"Process {record.id} pid={process.pid} exited "
                f"returncode={returncode} status={record.status.value}"
            )
        else:
            logger.debug(
                f"Process {record.id} pid={process.pid} exited "
                f"returncode={returncode} after status={record.status.value}"
            )
        return returncode

    def _on_timeout(
        self,
        record: ProcessRecord,
        process: asyncio.subprocess.Process,
        timeout_ms: int,
    ) -> None:
        if not record.finish(ProcessStatus.TIMED_OUT, timed_out=True):
            return

        logger.info(
            f"Process {record.id} pid={process.pid} timed out after "
            f"{timeout_ms}ms, sending SIGTERM"
        )
        try:
            send_terminate(process)
        except OSError as e:
            logger.debug(f"Timeout signal not delivered pid={process.pid}: {e}")

    async def _safe_cleanup(self, process: asyncio.subprocess.Process) -> None:
        """Terminate process, shielded from cancellation of the caller."""
        cleanup = functools.partial(
            terminate_and_wait,
            process,
            term_timeout=self.term_timeout,
            kill_timeout=self.kill_timeout,
        )
        try:
            await asyncio.shield(cleanup())
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await cleanup()

    @staticmethod
    def _outcome(record: ProcessRecord, returncode: int | None) -> CommandOutcome:
        return CommandOutcome(
            command=record.command,
            exit_code=returncode,
            stdout=record.stdout.text(),
            stderr=record.stderr.text(),
            timed_out=record.timed_out,
            error=record.error,
        )
