"""Sandbox container lifecycle management.

The ContainerManager owns the process-wide mapping from container name to
live container handle. Creation is serialized per name: concurrent
``ensure`` calls for the same name share one creation task, while
unrelated names proceed independently. Creation runs shielded from caller
cancellation so an abandoned resolution never leaves a half-started
container behind; the container is registered and can be torn down later.
"""

import asyncio
import contextlib
import logging
import warnings
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from functools import partial
from pathlib import Path

from agentbox.exceptions import (
    IdentityCollisionWarning,
    ImageNotFoundError,
    SandboxError,
)
from agentbox.sandbox.docker import DockerCLI
from agentbox.sandbox.policies import DockerOptions
from agentbox.sandbox.process import OutputCallback, ProcessResult
from agentbox.settings import Settings, get_settings

logger = logging.getLogger(__name__)

_EXITED_MARKERS = ("is not running", "no such container")


class ContainerStatus(StrEnum):
    """Tracked container status."""

    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class ContainerHandle:
    """A sandbox container tracked by the manager."""

    name: str
    scope_key: str
    image: str
    workspace_dir: Path
    workdir: str
    container_id: str | None = None
    status: ContainerStatus = ContainerStatus.RUNNING
    adopted: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_used_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_running(self) -> bool:
        return self.status == ContainerStatus.RUNNING

    def touch(self) -> None:
        self.last_used_at = datetime.now(UTC)


class ContainerManager:
    """Ensures one running container per sandbox identity.

    Usage:
        manager = ContainerManager()
        handle = await manager.ensure(
            "agentbox-sbx-agent-work-1a2b3c4d",
            image="agentbox-sandbox:local",
            workspace_dir=Path("~/.agentbox/sandboxes/agent-work-1a2b3c4d").expanduser(),
            scope_key="agent:work",
        )
        result = await manager.exec(handle.name, "ls -la")
        await manager.stop(handle.name)
    """

    def __init__(
        self,
        docker: DockerCLI | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            docker: Runtime wrapper (default: built from settings)
            settings: Process settings (default: get_settings())
        """
        self.settings = settings or get_settings()
        self.docker = docker or DockerCLI.from_settings(self.settings)
        self._handles: dict[str, ContainerHandle] = {}
        self._pending: dict[str, asyncio.Task[ContainerHandle]] = {}
        self._owners: dict[str, str] = {}

    def get(self, name: str) -> ContainerHandle | None:
        """Return the tracked handle for a container name, if any."""
        return self._handles.get(name)

    @property
    def handles(self) -> list[ContainerHandle]:
        return list(self._handles.values())

    def is_pending(self, name: str) -> bool:
        return name in self._pending

    def _check_collision(self, name: str, scope_key: str) -> None:
        owner = self._owners.setdefault(name, scope_key)
        if owner != scope_key:
            msg = (
                f"Sandbox identities '{owner}' and '{scope_key}' both map to "
                f"container '{name}'; they will share one container"
            )
            logger.warning(msg)
            warnings.warn(msg, IdentityCollisionWarning, stacklevel=3)

    async def ensure(
        self,
        name: str,
        *,
        image: str,
        workspace_dir: Path,
        scope_key: str,
        options: DockerOptions | None = None,
        workdir: str | None = None,
    ) -> ContainerHandle:
        """Return a running container for ``name``, creating it if needed.

        Idempotent: a tracked running container is returned without any
        runtime call, and concurrent calls share a single creation.

        Args:
            name: Container name from the identity resolver
            image: Sandbox image tag
            workspace_dir: Host directory mounted as the container workdir
            scope_key: Identity unit the name was derived from
            options: Container runtime options
            workdir: Mount point inside the container

        Returns:
            ContainerHandle for the running container

        Raises:
            ImageNotFoundError: If the sandbox image has not been built
            SpawnError: If the runtime cannot be launched
            ContainerExitError: If a runtime command exits non-zero
        """
        self._check_collision(name, scope_key)

        handle = self._handles.get(name)
        if handle is not None and handle.is_running:
            handle.touch()
            return handle

        task = self._pending.get(name)
        if task is None:
            task = asyncio.create_task(
                self._create(
                    name,
                    image=image,
                    workspace_dir=workspace_dir,
                    scope_key=scope_key,
                    options=options or DockerOptions(),
                    workdir=workdir or self.settings.sandbox_container_workdir,
                ),
                name=f"agentbox-ensure-{name}",
            )
            self._pending[name] = task
            task.add_done_callback(partial(self._on_created, name))
        else:
            logger.debug("Awaiting in-flight creation of %s", name)

        return await asyncio.shield(task)

    def _on_created(self, name: str, task: asyncio.Task[ContainerHandle]) -> None:
        if self._pending.get(name) is task:
            del self._pending[name]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Sandbox container %s failed to start: %s", name, exc)

    async def _create(
        self,
        name: str,
        *,
        image: str,
        workspace_dir: Path,
        scope_key: str,
        options: DockerOptions,
        workdir: str,
    ) -> ContainerHandle:
        if not await self.docker.image_exists(image):
            raise ImageNotFoundError(
                f"Sandbox image '{image}' not found. Build it with "
                "scripts/sandbox-setup.sh or `agentbox build`.",
                image=image,
                container_name=name,
            )

        state = await self.docker.inspect_container(name)
        adopted = state.exists
        container_id = state.container_id

        if state.running:
            logger.info("Adopting running sandbox container %s", name)
        elif state.exists:
            logger.info("Starting stopped sandbox container %s", name)
            await self.docker.start(name)
        else:
            logger.info(
                "Creating sandbox container %s (image=%s, workspace=%s)",
                name,
                image,
                workspace_dir,
            )
            container_id = await self.docker.run_detached(
                name,
                image,
                workspace_dir,
                options,
                workdir=workdir,
                scope_key=scope_key,
            )
            if options.setup_command:
                try:
                    await self.docker.exec(
                        name,
                        options.setup_command,
                        workdir=workdir,
                        check=True,
                        timeout=self.settings.sandbox_command_timeout_seconds,
                    )
                except SandboxError:
                    logger.error("Setup command failed in %s; removing container", name)
                    with contextlib.suppress(SandboxError):
                        await self.docker.remove(name)
                    raise

        handle = ContainerHandle(
            name=name,
            scope_key=scope_key,
            image=image,
            workspace_dir=workspace_dir,
            workdir=workdir,
            container_id=container_id,
            adopted=adopted,
        )
        self._handles[name] = handle
        return handle

    def _mark_exited(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.status = ContainerStatus.STOPPED
            logger.info("Sandbox container %s is no longer running", name)

    async def exec(
        self,
        name: str,
        command: str,
        *,
        on_output: OutputCallback | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        """Run a shell command in a tracked container.

        A non-zero exit is returned in the result, since a failing tool
        command is not a lifecycle failure.

        Raises:
            SandboxError: If the container is not tracked or has exited
        """
        handle = self._handles.get(name)
        if handle is None or not handle.is_running:
            raise SandboxError(f"Sandbox container '{name}' is not running", container_name=name)

        handle.touch()
        result = await self.docker.exec(
            name,
            command,
            workdir=handle.workdir,
            on_output=on_output,
            timeout=timeout,
        )
        if result.exit_code != 0 and any(m in result.stderr.lower() for m in _EXITED_MARKERS):
            # Tool output may contain the same text; confirm with inspect
            if await self.refresh(name) is None:
                raise SandboxError(
                    f"Sandbox container '{name}' exited: {result.stderr_tail()}",
                    container_name=name,
                )
        return result

    async def refresh(self, name: str) -> ContainerHandle | None:
        """Re-inspect a tracked container and drop it if it has exited."""
        handle = self._handles.get(name)
        if handle is None:
            return None

        state = await self.docker.inspect_container(name)
        if not state.running:
            self._mark_exited(name)
            return None
        handle.container_id = state.container_id or handle.container_id
        return handle

    def release(self, name: str) -> ContainerHandle | None:
        """Stop tracking a container without touching it."""
        self._owners.pop(name, None)
        return self._handles.pop(name, None)

    async def stop(self, name: str) -> bool:
        """Remove a container and its registry entry.

        Waits for an in-flight creation first so the container it produces
        is removed too.

        Returns:
            True if a container was removed
        """
        task = self._pending.get(name)
        if task is not None:
            with contextlib.suppress(SandboxError):
                await asyncio.shield(task)

        handle = self.release(name)
        if handle is not None:
            handle.status = ContainerStatus.STOPPED

        removed = await self.docker.remove(name)
        if removed:
            logger.info("Removed sandbox container %s", name)
        return removed

    async def prune(self, idle_seconds: float | None = None) -> list[str]:
        """Remove tracked containers idle for longer than ``idle_seconds``.

        Args:
            idle_seconds: Idle threshold (default: settings.sandbox_idle_timeout_seconds)

        Returns:
            Names of removed containers
        """
        threshold = timedelta(
            seconds=idle_seconds
            if idle_seconds is not None
            else self.settings.sandbox_idle_timeout_seconds
        )
        cutoff = datetime.now(UTC) - threshold
        idle = [h.name for h in self._handles.values() if h.last_used_at < cutoff]

        pruned: list[str] = []
        for name in idle:
            logger.info("Pruning idle sandbox container %s", name)
            await self.stop(name)
            pruned.append(name)
        return pruned

    async def shutdown(self) -> None:
        """Remove every tracked container, including ones still being created."""
        names = set(self._handles) | set(self._pending)
        for name in sorted(names):
            try:
                await self.stop(name)
            except SandboxError as e:
                logger.error("Failed to remove sandbox container %s: %s", name, e)


_manager: ContainerManager | None = None


def get_container_manager() -> ContainerManager:
    """Get the process-wide container manager."""
    global _manager
    if _manager is None:
        _manager = ContainerManager()
    return _manager


def reset_container_manager() -> None:
    """Forget the process-wide container manager (used by tests)."""
    global _manager
    _manager = None


__all__ = [
    "ContainerHandle",
    "ContainerManager",
    "ContainerStatus",
    "get_container_manager",
    "reset_container_manager",
]
