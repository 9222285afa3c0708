"""Container runtime process mocks.

Provides a fake ``asyncio.subprocess.Process`` and a scriptable stand-in for
``asyncio.create_subprocess_exec`` so lifecycle code can be tested without
a real container runtime.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

# =============================================================================
# FAKE PROCESS
# =============================================================================


class FakeProcess:
    """Minimal asyncio.subprocess.Process replacement.

    Output is fed to real StreamReaders. The process exits after
    ``exit_delay`` seconds unless ``hang`` is set, in which case it runs
    until killed. ``eof_delay`` closes the streams that many seconds after
    exit, to exercise exit-before-stream-close ordering.
    """

    def __init__(
        self,
        *,
        stdout: bytes | list[bytes] = b"",
        stderr: bytes | list[bytes] = b"",
        returncode: int = 0,
        exit_delay: float = 0.0,
        eof_delay: float | None = None,
        hang: bool = False,
    ) -> None:
        self.pid = 4242
        self.returncode: int | None = None
        self.killed = False
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self._eof_delay = eof_delay
        self._exited = asyncio.Event()

        for reader, data in ((self.stdout, stdout), (self.stderr, stderr)):
            for chunk in data if isinstance(data, list) else [data]:
                if chunk:
                    reader.feed_data(chunk)

        if not hang:
            asyncio.get_running_loop().call_later(exit_delay, self._exit, returncode)

    def _close_streams(self) -> None:
        self.stdout.feed_eof()
        self.stderr.feed_eof()

    def _exit(self, code: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self._exited.set()
        if self._eof_delay is None:
            self._close_streams()
        else:
            asyncio.get_running_loop().call_later(self._eof_delay, self._close_streams)

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self._exit(-9)


# =============================================================================
# FAKE RUNTIME
# =============================================================================

NO_SUCH_CONTAINER = b"Error: No such container: agentbox-sbx-test"


@dataclass
class FakeRuntime:
    """Scriptable replacement for asyncio.create_subprocess_exec.

    Responses are keyed by runtime subcommand (``argv[1]``: image, inspect,
    run, start, rm, exec, build, version). Every call is recorded.

    Usage:
        runtime = FakeRuntime()
        runtime.respond("inspect", returncode=0, stdout=b"abc true running")
        with patch("asyncio.create_subprocess_exec", new=runtime):
            ...
        assert runtime.count("run") == 1
    """

    calls: list[list[str]] = field(default_factory=list)
    processes: list[FakeProcess] = field(default_factory=list)
    responses: dict[str, dict[str, Any]] = field(
        default_factory=lambda: {
            "version": {"stdout": b"27.1.1\n"},
            "image": {"stdout": b"sha256:0123456789ab\n"},
            "inspect": {"returncode": 1, "stderr": NO_SUCH_CONTAINER},
            "run": {"stdout": b"c0ffee1234567890\n"},
            "start": {},
            "rm": {},
            "exec": {},
            "build": {"stdout": b"Step 1/1 : FROM debian\n"},
        }
    )
    spawn_error: BaseException | None = None

    def respond(self, subcommand: str, **process_kwargs: Any) -> None:
        self.responses[subcommand] = process_kwargs

    def count(self, subcommand: str) -> int:
        return sum(1 for argv in self.calls if len(argv) > 1 and argv[1] == subcommand)

    def calls_for(self, subcommand: str) -> list[list[str]]:
        return [argv for argv in self.calls if len(argv) > 1 and argv[1] == subcommand]

    async def __call__(self, *argv: str, **kwargs: Any) -> FakeProcess:
        self.calls.append(list(argv))
        if self.spawn_error is not None:
            raise self.spawn_error
        subcommand = argv[1] if len(argv) > 1 else ""
        process = FakeProcess(**self.responses.get(subcommand, {}))
        self.processes.append(process)
        return process
