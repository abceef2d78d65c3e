"""Signal delivery for spawned shell processes.

run-command-mcp runtime module

Children are started in their own session (POSIX) or process group (Windows),
so termination signals reach the shell and everything it spawned, not just
the shell itself.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from typing import Any

import anyio

__all__ = [
    "IS_WINDOWS",
    "isolation_kwargs",
    "send_terminate",
    "send_kill",
    "terminate_and_wait",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL


def isolation_kwargs() -> dict[str, Any]:
    """Platform-specific kwargs for asyncio.create_subprocess_shell."""
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    # POSIX: start_new_session (equivalent to setsid)
    return {"start_new_session": True}


def send_terminate(process: asyncio.subprocess.Process) -> None:
    """Send a graceful termination request (SIGTERM / CTRL_BREAK_EVENT).

    Raises:
        ProcessLookupError: The process (group) no longer exists
        OSError: The signal could not be delivered
    """
    if IS_WINDOWS:
        try:
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except OSError as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back to terminate: {e}")
            process.terminate()
        return

    # start_new_session makes pgid == pid; the group outlives a reaped shell
    os.killpg(process.pid, signal.SIGTERM)
    logger.debug(f"Sent SIGTERM to process group pgid={process.pid}")


def send_kill(process: asyncio.subprocess.Process) -> None:
    """Force kill (SIGKILL / TerminateProcess).

    Raises:
        ProcessLookupError: The process (group) no longer exists
        OSError: The signal could not be delivered
    """
    if IS_WINDOWS:
        process.kill()
        logger.debug(f"Called kill() on pid={process.pid}")
        return

    os.killpg(process.pid, signal.SIGKILL)
    logger.debug(f"Sent SIGKILL to process group pgid={process.pid}")


async def terminate_and_wait(
    process: asyncio.subprocess.Process,
    *,
    term_timeout: float = DEFAULT_TERM_TIMEOUT,
    kill_timeout: float = DEFAULT_KILL_TIMEOUT,
) -> None:
    """Terminate gracefully, then forcefully if needed, and wait for exit.

    Termination strategy:
    1. Send SIGTERM to the process group
    2. Wait up to term_timeout for graceful exit
    3. If still running, send SIGKILL
    4. Wait up to kill_timeout for forced exit

    Used for shutdown and cancellation cleanup, never for the timeout or
    kill_process paths, which only send the graceful signal.
    """
    pid = process.pid
    if process.returncode is not None:
        # Shell already reaped; background jobs may still hold the group
        if not IS_WINDOWS:
            try:
                send_terminate(process)
            except OSError as e:
                logger.debug(f"Process group already gone pgid={pid}: {e}")
        return

    try:
        send_terminate(process)

        with anyio.move_on_after(term_timeout):
            await process.wait()
        if process.returncode is not None:
            logger.debug(
                f"Subprocess terminated gracefully pid={pid} "
                f"returncode={process.returncode}"
            )
            return

        logger.debug(f"Force killing subprocess pid={pid}")
        send_kill(process)

        with anyio.move_on_after(kill_timeout):
            await process.wait()
        if process.returncode is None:
            logger.warning(f"Subprocess did not exit after kill pid={pid}")

    except ProcessLookupError:
        logger.debug(f"Subprocess already exited pid={pid}")
    except OSError as e:
        logger.warning(f"Error terminating subprocess pid={pid}: {e}")
