"""External process runner -- streams a child's combined output to a sink.

Every pipeline step (clone, commit resolution, image build, deploy) goes
through ``run()``.  The runner knows nothing about builds or subscribers:
callers hand it an async ``sink`` and it pushes stdout/stderr chunks into
it as soon as the child writes them.

No retries, no timeouts.  Cancelling the awaiting task kills the child.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable

from tinyci.errors import ExecutionError, LaunchError

logger = logging.getLogger(__name__)

# Read size per chunk; read() returns as soon as any output is available.
CHUNK_SIZE = 4096

OutputSink = Callable[[bytes], Awaitable[None]]
Runner = Callable[..., Awaitable[int]]


async def discard(chunk: bytes) -> None:
    """Sink that drops everything."""


class OutputBuffer:
    """Sink that collects output in memory (for captured, non-streamed steps)."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    async def __call__(self, chunk: bytes) -> None:
        self._chunks.append(chunk)

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)

    def text(self) -> str:
        return self.getvalue().decode("utf-8", errors="replace")


async def run(
    command: str,
    args: list[str],
    cwd: str | Path | None = None,
    sink: OutputSink = discard,
    *,
    env: dict[str, str] | None = None,
    merge_stderr: bool = True,
) -> int:
    """Run ``command *args`` and stream its output into *sink*.

    By default stderr is merged into stdout so the sink sees the interleaved
    console.  With ``merge_stderr=False`` only stdout reaches the sink and
    stderr goes to the debug log, for steps whose stdout is parsed.

    Returns the exit status (always 0).  Raises :class:`LaunchError` if the
    process cannot be spawned and :class:`ExecutionError` on a non-zero exit.
    """
    display = " ".join([command, *args])
    merged_env = {**os.environ, **env} if env else None

    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
            env=merged_env,
        )
    except OSError as exc:
        logger.error("Could not launch %s: %s", display, exc)
        raise LaunchError(display, str(exc)) from exc

    stdout = process.stdout
    if stdout is None:
        raise LaunchError(display, "stdout pipe was not created")
    logger.debug("Started pid=%s: %s", process.pid, display)

    stderr_task = None
    if process.stderr is not None:
        stderr_task = asyncio.create_task(_log_stderr(process.stderr, display))

    try:
        while True:
            chunk = await stdout.read(CHUNK_SIZE)
            if not chunk:
                break
            await sink(chunk)
        return_code = await process.wait()
        if stderr_task is not None:
            await stderr_task
    except BaseException:
        # Cancellation or a failing sink: never leave the child running
        if process.returncode is None:
            logger.warning("Killing pid=%s: %s", process.pid, display)
            process.kill()
            await process.wait()
        if stderr_task is not None:
            stderr_task.cancel()
        raise

    if return_code != 0:
        logger.error("%s failed (rc=%d)", display, return_code)
        raise ExecutionError(display, return_code)

    return return_code


async def _log_stderr(stream: asyncio.StreamReader, display: str) -> None:
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            break
        logger.debug("%s stderr: %s", display, chunk.decode("utf-8", errors="replace").rstrip())
