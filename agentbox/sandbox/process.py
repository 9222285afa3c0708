"""Streamed child-process execution for the container runtime.

Every runtime invocation (inspect, run, start, exec, build) goes through
this module. A spawned process yields two independent signals:

- output chunks, delivered to an optional callback as they arrive on
  stdout/stderr, until each stream closes;
- a single completion carrying the exit code.

Stream closure and process exit are not ordered relative to each other, so
completion is reported only once the process has exited AND both streams
have drained.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, Field

from agentbox.exceptions import ContainerExitError, SandboxTimeoutError, SpawnError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 65536
DEFAULT_CAPTURE_BYTES = 1_048_576  # 1 MiB per stream
DEFAULT_STDERR_TAIL_BYTES = 4096

StreamName = Literal["stdout", "stderr"]


@dataclass(frozen=True)
class OutputChunk:
    """One piece of process output."""

    stream: StreamName
    data: bytes

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


OutputCallback = Callable[[OutputChunk], None]


class ProcessResult(BaseModel):
    """Result of a completed runtime process."""

    argv: list[str] = Field(default_factory=list, description="Command that was run")
    exit_code: int = Field(..., description="Process exit code")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error (tail)")
    duration_seconds: float = Field(default=0.0, description="Wall-clock duration")
    timed_out: bool = Field(default=False, description="Whether the process was killed on timeout")
    stdout_truncated: bool = Field(
        default=False, description="Output past the capture limit was dropped"
    )
    stderr_truncated: bool = Field(default=False, description="Early stderr was dropped")

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def stderr_tail(self, max_chars: int = DEFAULT_STDERR_TAIL_BYTES) -> str:
        return self.stderr.rstrip()[-max_chars:].lstrip()


class _CaptureBuffer:
    """Byte buffer bounded to ``limit`` bytes.

    Keeps the first ``limit`` bytes, or the last ones when ``tail`` is set.
    """

    def __init__(self, limit: int, *, tail: bool = False) -> None:
        self.limit = limit
        self.tail = tail
        self.truncated = False
        self._buf = bytearray()

    def feed(self, data: bytes) -> None:
        if self.tail:
            self._buf += data
            overflow = len(self._buf) - self.limit
            if overflow > 0:
                del self._buf[:overflow]
                self.truncated = True
            return

        room = self.limit - len(self._buf)
        if len(data) > room:
            data = data[: max(room, 0)]
            self.truncated = True
        self._buf += data

    def text(self) -> str:
        return self._buf.decode("utf-8", errors="replace")


class RunningProcess:
    """A spawned runtime process with streamed output and a completion signal."""

    def __init__(
        self,
        argv: Sequence[str],
        process: asyncio.subprocess.Process,
        *,
        on_output: OutputCallback | None = None,
        capture_bytes: int = DEFAULT_CAPTURE_BYTES,
    ) -> None:
        self.argv = list(argv)
        self._process = process
        self._on_output = on_output
        self._stdout = _CaptureBuffer(capture_bytes)
        self._stderr = _CaptureBuffer(capture_bytes, tail=True)
        self._timed_out = False
        self._started = asyncio.get_running_loop().time()

        self._pumps = [
            asyncio.create_task(self._pump(process.stdout, "stdout", self._stdout)),
            asyncio.create_task(self._pump(process.stderr, "stderr", self._stderr)),
        ]
        self._completion: asyncio.Task[ProcessResult] = asyncio.create_task(self._complete())

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def done(self) -> bool:
        return self._completion.done()

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        name: StreamName,
        capture: _CaptureBuffer,
    ) -> None:
        if stream is None:
            return
        while True:
            data = await stream.read(_CHUNK_SIZE)
            if not data:
                break
            capture.feed(data)
            logger.debug("%s %s: %d bytes", self.argv[0], name, len(data))
            if self._on_output is not None:
                try:
                    self._on_output(OutputChunk(stream=name, data=data))
                except Exception:
                    logger.exception("Output callback failed for %s", self.argv[0])

    async def _complete(self) -> ProcessResult:
        exit_code = await self._process.wait()
        await asyncio.gather(*self._pumps)
        return ProcessResult(
            argv=self.argv,
            exit_code=exit_code,
            stdout=self._stdout.text(),
            stderr=self._stderr.text(),
            duration_seconds=asyncio.get_running_loop().time() - self._started,
            timed_out=self._timed_out,
            stdout_truncated=self._stdout.truncated,
            stderr_truncated=self._stderr.truncated,
        )

    async def wait(self, timeout: float | None = None) -> ProcessResult:
        """Wait for the process to exit and its streams to drain.

        On timeout the process is killed and reaped; the returned result
        has ``timed_out`` set.

        Args:
            timeout: Seconds to wait (None waits forever)

        Returns:
            ProcessResult with exit code and captured output
        """
        try:
            return await asyncio.wait_for(asyncio.shield(self._completion), timeout=timeout)
        except TimeoutError:
            self._timed_out = True
            self.kill()
            return await self._completion

    def kill(self) -> None:
        """Kill the process if it is still running."""
        if self._process.returncode is None:
            try:
                self._process.kill()
            except ProcessLookupError:
                pass


async def spawn_process(
    argv: Sequence[str],
    *,
    on_output: OutputCallback | None = None,
    capture_bytes: int = DEFAULT_CAPTURE_BYTES,
    container_name: str | None = None,
) -> RunningProcess:
    """Launch a runtime process with piped, streamed output.

    Args:
        argv: Command and arguments
        on_output: Called with each OutputChunk as it arrives
        capture_bytes: Bytes of output kept per stream
        container_name: Container the command concerns (for error context)

    Returns:
        RunningProcess

    Raises:
        SpawnError: If the executable cannot be launched
    """
    if not argv:
        raise SpawnError("Empty command", argv=argv, container_name=container_name)

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        msg = f"Container runtime not found: '{argv[0]}'. Install it or set AGENTBOX_SANDBOX_RUNTIME_PATH."
        raise SpawnError(msg, argv=argv, container_name=container_name) from e
    except PermissionError as e:
        msg = f"Permission denied launching '{argv[0]}'"
        raise SpawnError(msg, argv=argv, container_name=container_name) from e
    except OSError as e:
        msg = f"Failed to launch '{argv[0]}': {e}"
        raise SpawnError(msg, argv=argv, container_name=container_name) from e

    logger.debug("Spawned pid=%s: %s", process.pid, " ".join(argv))
    return RunningProcess(argv, process, on_output=on_output, capture_bytes=capture_bytes)


async def run_process(
    argv: Sequence[str],
    *,
    check: bool = True,
    timeout: float | None = None,
    on_output: OutputCallback | None = None,
    stderr_tail_bytes: int = DEFAULT_STDERR_TAIL_BYTES,
    container_name: str | None = None,
) -> ProcessResult:
    """Run a runtime process to completion.

    If the awaiting task is cancelled the child is killed rather than left
    running unobserved.

    Args:
        argv: Command and arguments
        check: Raise ContainerExitError on non-zero exit
        timeout: Seconds before the process is killed
        on_output: Called with each OutputChunk as it arrives
        stderr_tail_bytes: Trailing stderr included in errors
        container_name: Container the command concerns (for error context)

    Returns:
        ProcessResult

    Raises:
        SpawnError: If the executable cannot be launched
        SandboxTimeoutError: If the process exceeded ``timeout``
        ContainerExitError: If ``check`` and the exit code is non-zero
    """
    proc = await spawn_process(argv, on_output=on_output, container_name=container_name)
    try:
        result = await proc.wait(timeout=timeout)
    except asyncio.CancelledError:
        proc.kill()
        raise

    if result.timed_out:
        raise SandboxTimeoutError(
            f"'{' '.join(argv[:2])}' timed out after {timeout}s",
            timeout=timeout or 0.0,
            container_name=container_name,
        )

    if check and result.exit_code != 0:
        tail = result.stderr_tail(stderr_tail_bytes)
        raise ContainerExitError(
            f"'{' '.join(argv[:2])}' exited with code {result.exit_code}: {tail or '(no stderr)'}",
            exit_code=result.exit_code,
            stderr_tail=tail,
            argv=argv,
            container_name=container_name,
        )

    return result


__all__ = [
    "OutputCallback",
    "OutputChunk",
    "ProcessResult",
    "RunningProcess",
    "run_process",
    "spawn_process",
]
