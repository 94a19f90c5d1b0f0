"""Async subprocess execution with hard timeouts and process-tree kill."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)

_READ_CHUNK = 65536
# Grace period for pipes to close once the process itself has exited
_DRAIN_GRACE = 5.0


@dataclass
class ProcessResult:
    """Captured outcome of one subprocess."""

    args: list[str]
    returncode: int | None
    stdout: bytes
    stderr: bytes
    timed_out: bool = False
    duration: float = 0.0

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


def kill_process_tree(pid: int) -> None:
    """Kill a live process and all of its descendants."""
    try:
        parent = psutil.Process(pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return

    for proc in [*children, parent]:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied:
            logger.warning("Permission denied killing process %d", proc.pid)


def _kill_group(pgid: int) -> None:
    """Kill whatever is left in a process group (orphaned grandchildren)."""
    try:
        os.killpg(pgid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


async def _drain(stream: asyncio.StreamReader | None, buf: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        buf.extend(chunk)


async def run_process(
    args: list[str],
    timeout: float,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> ProcessResult:
    """Run args to completion or until timeout, whichever comes first.

    Output captured before a timeout is returned with ``timed_out=True``.
    On cancellation the process tree is killed before CancelledError
    propagates. Raises FileNotFoundError if the executable does not exist.
    """
    start = time.monotonic()
    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    # New session: the child leads its own process group, pgid == pid
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        env=full_env,
        start_new_session=True,
    )
    pgid = proc.pid

    stdout = bytearray()
    stderr = bytearray()
    readers = asyncio.ensure_future(
        asyncio.gather(_drain(proc.stdout, stdout), _drain(proc.stderr, stderr))
    )
    timed_out = False

    try:
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(
                "Process timed out after %.0fs: %s", timeout, " ".join(args[:3])
            )
            kill_process_tree(proc.pid)
            _kill_group(pgid)
            await proc.wait()

        try:
            await asyncio.wait_for(asyncio.shield(readers), timeout=_DRAIN_GRACE)
        except asyncio.TimeoutError:
            _kill_group(pgid)
    finally:
        if proc.returncode is None:
            kill_process_tree(proc.pid)
            _kill_group(pgid)
            await proc.wait()
        if not readers.done():
            readers.cancel()

    return ProcessResult(
        args=list(args),
        returncode=proc.returncode,
        stdout=bytes(stdout),
        stderr=bytes(stderr),
        timed_out=timed_out,
        duration=time.monotonic() - start,
    )
