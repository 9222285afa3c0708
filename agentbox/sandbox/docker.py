"""Thin async wrapper over the container runtime CLI.

Commands are executed through agentbox.sandbox.process so output is
streamed and exit codes are surfaced. Works with ``docker`` and CLIs that
accept the same arguments (e.g. ``podman``).
"""

import logging
from pathlib import Path

from pydantic import BaseModel

from agentbox.exceptions import ContainerExitError
from agentbox.sandbox.policies import DockerOptions
from agentbox.sandbox.process import OutputCallback, ProcessResult, run_process
from agentbox.settings import Settings

logger = logging.getLogger(__name__)

LABEL_MANAGED = "agentbox.managed"
LABEL_SCOPE_KEY = "agentbox.scope-key"

_NOT_FOUND_MARKERS = ("no such", "not found")


class ContainerState(BaseModel):
    """Runtime view of a named container."""

    exists: bool
    running: bool = False
    container_id: str | None = None
    status: str | None = None


def _is_not_found(result: ProcessResult) -> bool:
    stderr = result.stderr.lower()
    return any(marker in stderr for marker in _NOT_FOUND_MARKERS)


class DockerCLI:
    """Runs container runtime commands.

    Usage:
        cli = DockerCLI()
        if await cli.image_exists("agentbox-sandbox:local"):
            container_id = await cli.run_detached(name, image, workspace_dir, options)
    """

    def __init__(
        self,
        runtime_path: str = "docker",
        *,
        command_timeout: float = 60.0,
        stderr_tail_bytes: int = 4096,
    ) -> None:
        """Initialize the runtime wrapper.

        Args:
            runtime_path: Container runtime executable
            command_timeout: Timeout for management commands in seconds
            stderr_tail_bytes: Trailing stderr carried by errors
        """
        self.runtime_path = runtime_path
        self.command_timeout = command_timeout
        self.stderr_tail_bytes = stderr_tail_bytes

    @classmethod
    def from_settings(cls, settings: Settings) -> "DockerCLI":
        return cls(
            settings.sandbox_runtime_path,
            command_timeout=settings.sandbox_command_timeout_seconds,
            stderr_tail_bytes=settings.sandbox_stderr_tail_bytes,
        )

    async def _run(
        self,
        *args: str,
        check: bool = True,
        timeout: float | None = None,
        on_output: OutputCallback | None = None,
        container_name: str | None = None,
    ) -> ProcessResult:
        return await run_process(
            [self.runtime_path, *args],
            check=check,
            timeout=timeout if timeout is not None else self.command_timeout,
            on_output=on_output,
            stderr_tail_bytes=self.stderr_tail_bytes,
            container_name=container_name,
        )

    async def version(self) -> str | None:
        """Return the runtime version string, or None if the daemon is unreachable."""
        result = await self._run("version", "--format", "{{.Server.Version}}", check=False)
        if result.exit_code != 0:
            return None
        return result.stdout.strip() or None

    async def image_exists(self, image: str) -> bool:
        """Check whether an image is present locally."""
        result = await self._run("image", "inspect", "--format", "{{.Id}}", image, check=False)
        return result.exit_code == 0

    async def inspect_container(self, name: str) -> ContainerState:
        """Look up a container by name.

        Raises:
            ContainerExitError: If inspect fails for a reason other than
                the container not existing
        """
        result = await self._run(
            "inspect",
            "--type",
            "container",
            "--format",
            "{{.Id}} {{.State.Running}} {{.State.Status}}",
            name,
            check=False,
            container_name=name,
        )
        if result.exit_code != 0:
            if _is_not_found(result):
                return ContainerState(exists=False)
            tail = result.stderr_tail(self.stderr_tail_bytes)
            raise ContainerExitError(
                f"Failed to inspect container '{name}': {tail}",
                exit_code=result.exit_code,
                stderr_tail=tail,
                argv=result.argv,
                container_name=name,
            )

        container_id, running, status = (result.stdout.strip().split(" ") + ["", "", ""])[:3]
        return ContainerState(
            exists=True,
            running=running == "true",
            container_id=container_id or None,
            status=status or None,
        )

    def build_run_argv(
        self,
        name: str,
        image: str,
        workspace_dir: Path,
        options: DockerOptions,
        *,
        workdir: str = "/workspace",
        scope_key: str | None = None,
    ) -> list[str]:
        """Build the detached ``run`` command for a sandbox container."""
        argv = [
            self.runtime_path,
            "run",
            "--detach",
            "--name",
            name,
            "--label",
            f"{LABEL_MANAGED}=1",
        ]
        if scope_key:
            argv.extend(["--label", f"{LABEL_SCOPE_KEY}={scope_key}"])
        argv.extend(["--workdir", workdir, "--volume", f"{workspace_dir}:{workdir}:rw"])
        argv.extend(options.to_run_args())
        # Keep the container alive; tool commands arrive through exec
        argv.extend([image, "sleep", "infinity"])
        return argv

    async def run_detached(
        self,
        name: str,
        image: str,
        workspace_dir: Path,
        options: DockerOptions,
        *,
        workdir: str = "/workspace",
        scope_key: str | None = None,
    ) -> str:
        """Create and start a sandbox container.

        Returns:
            Container ID printed by the runtime
        """
        argv = self.build_run_argv(
            name, image, workspace_dir, options, workdir=workdir, scope_key=scope_key
        )
        result = await self._run(*argv[1:], container_name=name)
        return result.stdout.strip()

    async def start(self, name: str) -> None:
        """Start an existing, stopped container."""
        await self._run("start", name, container_name=name)

    async def remove(self, name: str) -> bool:
        """Force-remove a container.

        Returns:
            True if removed, False if it did not exist
        """
        result = await self._run("rm", "--force", name, check=False, container_name=name)
        if result.exit_code == 0:
            return True
        if _is_not_found(result):
            return False
        tail = result.stderr_tail(self.stderr_tail_bytes)
        raise ContainerExitError(
            f"Failed to remove container '{name}': {tail}",
            exit_code=result.exit_code,
            stderr_tail=tail,
            argv=result.argv,
            container_name=name,
        )

    async def exec(
        self,
        name: str,
        command: str,
        *,
        workdir: str | None = None,
        env: dict[str, str] | None = None,
        on_output: OutputCallback | None = None,
        timeout: float | None = None,
        check: bool = False,
    ) -> ProcessResult:
        """Run a shell command inside a container."""
        args = ["exec"]
        if workdir:
            args.extend(["--workdir", workdir])
        for key, value in sorted((env or {}).items()):
            args.extend(["--env", f"{key}={value}"])
        args.extend([name, "sh", "-lc", command])
        return await self._run(
            *args,
            check=check,
            timeout=timeout,
            on_output=on_output,
            container_name=name,
        )

    async def build(
        self,
        image: str,
        dockerfile: Path,
        context_dir: Path,
        *,
        no_cache: bool = True,
        on_output: OutputCallback | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        """Build an image; the caller inspects the exit code."""
        args = ["build", "-t", image]
        if no_cache:
            args.append("--no-cache")
        args.extend(["-f", str(dockerfile), str(context_dir)])
        return await self._run(*args, check=False, timeout=timeout, on_output=on_output)


__all__ = [
    "LABEL_MANAGED",
    "LABEL_SCOPE_KEY",
    "ContainerState",
    "DockerCLI",
]
