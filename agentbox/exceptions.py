"""agentbox exception hierarchy.

Base exceptions for all layers with correlation ID support.

Usage:
    from agentbox.exceptions import ContainerExitError, SpawnError

    try:
        context = await resolve_sandbox_context(config, session_key, workspace_dir)
    except SpawnError as e:
        logger.error("Sandbox runtime unavailable (%s): %s", e.correlation_id, e)
"""

import uuid
from collections.abc import Sequence


class AgentboxError(Exception):
    """Base exception for all agentbox errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class ConfigurationError(AgentboxError):
    """Malformed or contradictory configuration (e.g. unknown sandbox mode)."""

    pass


class SandboxError(AgentboxError):
    """Errors from sandbox container management."""

    def __init__(self, message: str, *, container_name: str | None = None, **kwargs):
        self.container_name = container_name
        super().__init__(message, **kwargs)


class SpawnError(SandboxError):
    """The container runtime could not be launched.

    Raised before any process exists (binary missing, permission denied),
    as opposed to ContainerExitError which follows a successful spawn.
    """

    def __init__(self, message: str, *, argv: Sequence[str] | None = None, **kwargs):
        self.argv = list(argv or [])
        super().__init__(message, **kwargs)


class ImageNotFoundError(SpawnError):
    """The sandbox image has not been built on this host."""

    def __init__(self, message: str, *, image: str, **kwargs):
        self.image = image
        super().__init__(message, **kwargs)


class ContainerExitError(SandboxError):
    """A runtime process exited non-zero after starting successfully."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int,
        stderr_tail: str = "",
        argv: Sequence[str] | None = None,
        **kwargs,
    ):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        self.argv = list(argv or [])
        super().__init__(message, **kwargs)


class SandboxTimeoutError(SandboxError):
    """A runtime process did not complete within its timeout."""

    def __init__(self, message: str, *, timeout: float, **kwargs):
        self.timeout = timeout
        super().__init__(message, **kwargs)


class ImageBuildError(SandboxError):
    """The sandbox image build exited non-zero."""

    def __init__(self, message: str, *, exit_code: int, stderr_tail: str = "", **kwargs):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(message, **kwargs)


class IdentityCollisionWarning(UserWarning):
    """Two distinct sandbox identities normalized to the same container name."""
