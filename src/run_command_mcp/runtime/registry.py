"""In-memory registry of tracked processes.

run-command-mcp runtime module

The registry owns the mapping from process id to ProcessRecord and is the
lifecycle authority for user-initiated transitions (kill, clear). Records
are never removed implicitly; a long-lived server must clear them.

Thread safety: all operations are synchronous and must be called from the
event loop that runs the child supervisors.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from ..errors import (
    ProcessNotFoundError,
    ProcessNotRunningError,
    SignalDeliveryError,
)
from .records import ProcessRecord, ProcessStatus
from .signals import send_terminate

__all__ = ["ProcessRegistry"]

logger = logging.getLogger(__name__)


class ProcessRegistry:
    """Registry of processes started with CommandRunner.start().

    Example:
        registry = ProcessRegistry()
        runner = CommandRunner(registry)

        record = await runner.start("npm run dev")
        registry.output(record.id, tail=20)
        registry.kill(record.id)
        registry.clear()
    """

    def __init__(self) -> None:
        self._records: dict[str, ProcessRecord] = {}

    def register(self, record: ProcessRecord) -> None:
        """Add a new record.

        Raises:
            ValueError: If the id is already registered
        """
        if record.id in self._records:
            raise ValueError(f"Process {record.id} already registered")
        self._records[record.id] = record
        logger.debug(f"Registered process {record.id}: {record.command!r}")

    def get(self, process_id: str) -> ProcessRecord:
        """Look up a record.

        Raises:
            ProcessNotFoundError: Unknown id
        """
        record = self._records.get(process_id)
        if record is None:
            raise ProcessNotFoundError(process_id)
        return record

    def output(self, process_id: str, tail: int = 0) -> dict[str, Any]:
        """Record projection with stdout/stderr limited to the last `tail` lines.

        Raises:
            ProcessNotFoundError: Unknown id
        """
        return self.get(process_id).snapshot(tail)

    def list(self, status: str | None = None) -> list[dict[str, Any]]:
        """Summaries in insertion order, optionally filtered by exact status."""
        return [
            record.summary()
            for record in self._records.values()
            if not status or record.status.value == status
        ]

    def kill(self, process_id: str) -> ProcessRecord:
        """Send SIGTERM to a running process and mark it killed.

        The record is only updated after the signal was delivered.

        Raises:
            ProcessNotFoundError: Unknown id
            ProcessNotRunningError: Record already terminal, nothing sent
            SignalDeliveryError: The signal could not be delivered
        """
        record = self.get(process_id)
        if not record.is_running:
            raise ProcessNotRunningError(process_id, record.status.value)
        if record.process is None:
            raise SignalDeliveryError(process_id, "Process has not been spawned yet")

        try:
            send_terminate(record.process)
        except OSError as e:
            logger.warning(f"Failed to signal process {process_id} pid={record.pid}: {e}")
            raise SignalDeliveryError(process_id, e) from e

        record.finish(ProcessStatus.KILLED)
        logger.info(f"Killed process {process_id} pid={record.pid}")
        return record

    def clear(self, process_id: str | None = None) -> int:
        """Remove records.

        With an id, removes that record whatever its status; a running record
        keeps running detached from the registry. Without an id, removes every
        non-running record.

        Returns:
            Number of records removed

        Raises:
            ProcessNotFoundError: Unknown id
        """
        if process_id:
            if process_id not in self._records:
                raise ProcessNotFoundError(process_id)
            record = self._records.pop(process_id)
            if record.is_running:
                logger.debug(f"Cleared running process {process_id}, now untracked")
            return 1

        finished = [
            key for key, record in self._records.items() if not record.is_running
        ]
        for key in finished:
            del self._records[key]

        if finished:
            logger.debug(f"Cleared {len(finished)} finished process(es)")
        return len(finished)

    @property
    def running_count(self) -> int:
        return sum(1 for record in self._records.values() if record.is_running)

    def __iter__(self) -> Iterator[ProcessRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, process_id: str) -> bool:
        return process_id in self._records
