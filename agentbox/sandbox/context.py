"""Sandbox context resolution.

``resolve_sandbox_context`` is the entry point used by the tool-execution
layer: it merges layered sandbox configuration for a session, decides
whether the session is sandboxed, and if so makes sure its container is
running. A ``None`` result means tools run on the host.

Failures propagate to the caller. There is no fallback to unsandboxed
execution once a session's policy requires a sandbox.
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agentbox.config import AgentboxConfig
from agentbox.sandbox.identity import parse_session_key, resolve_identity
from agentbox.sandbox.lifecycle import ContainerManager, get_container_manager
from agentbox.sandbox.mode import is_sandbox_active
from agentbox.sandbox.policies import (
    DockerOptions,
    OverrideInput,
    SandboxPolicy,
    SandboxScope,
    ToolPolicy,
    merge_policy,
)
from agentbox.sandbox.workspace import prepare_workspace
from agentbox.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class SandboxContext(BaseModel):
    """Resolved sandbox for one session."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Always True for a resolved context")
    session_key: str
    agent_name: str
    scope: SandboxScope
    container_name: str = Field(..., description="Stable runtime-safe container name")
    container_id: str | None = None
    workspace_dir: Path = Field(..., description="Host directory mounted into the container")
    agent_workspace_dir: Path | None = Field(
        default=None, description="Agent workspace the sandbox was seeded from"
    )
    container_workdir: str = "/workspace"
    image: str
    tools: ToolPolicy
    docker: DockerOptions


def resolve_policy(
    config: AgentboxConfig | Mapping[str, Any] | None,
    session_key: str,
    *,
    session_override: OverrideInput = None,
    settings: Settings | None = None,
) -> SandboxPolicy:
    """Merge the effective sandbox policy for a session without side effects.

    Args:
        config: Configuration object or raw mapping
        session_key: Session key (``agent:<name>:...``)
        session_override: Per-session override; defaults to
            ``config.routing.sessions[session_key].sandbox``
        settings: Process settings (default: get_settings())

    Returns:
        Effective SandboxPolicy

    Raises:
        ConfigurationError: If configuration or session key is malformed
    """
    settings = settings or get_settings()
    if not isinstance(config, AgentboxConfig):
        config = AgentboxConfig.from_mapping(config)

    session = parse_session_key(session_key)
    if session_override is None:
        session_override = config.session_sandbox(session.session_key)

    return merge_policy(
        config.global_sandbox(),
        config.agent_sandbox(session.agent_name),
        session_override,
        default_workspace_root=settings.sandbox_workspace_root,
    )


async def resolve_sandbox_context(
    config: AgentboxConfig | Mapping[str, Any] | None,
    session_key: str,
    workspace_dir: str | Path | None = None,
    *,
    session_override: OverrideInput = None,
    manager: ContainerManager | None = None,
    settings: Settings | None = None,
) -> SandboxContext | None:
    """Resolve whether and how a session's tools run in a sandbox.

    Args:
        config: Configuration object or raw mapping
        session_key: Session key (``agent:<name>:...``)
        workspace_dir: The agent's workspace for this session; bootstrap
            files are seeded from it into the sandbox workspace. Defaults
            to ``routing.agents[<agent>].workspace``
        session_override: Per-session sandbox override
        manager: Container manager (default: process-wide manager)
        settings: Process settings (default: get_settings())

    Returns:
        SandboxContext, or None when the session is not sandboxed

    Raises:
        ConfigurationError: If configuration or session key is malformed
        SpawnError: If the container runtime or image is unavailable
        ContainerExitError: If a runtime command exits non-zero
    """
    settings = settings or get_settings()
    if not isinstance(config, AgentboxConfig):
        config = AgentboxConfig.from_mapping(config)
    policy = resolve_policy(
        config,
        session_key,
        session_override=session_override,
        settings=settings,
    )

    session = parse_session_key(session_key)
    if not is_sandbox_active(policy, session.agent_name):
        logger.debug("Sandbox inactive for %s (mode=%s)", session_key, policy.mode)
        return None

    identity = resolve_identity(
        policy,
        session_key,
        container_prefix=settings.sandbox_container_prefix,
    )
    if workspace_dir is None:
        route = config.agent_route(session.agent_name)
        workspace_dir = route.workspace if route else None
    agent_workspace = Path(workspace_dir).expanduser() if workspace_dir else None
    prepare_workspace(identity.workspace_dir, agent_workspace, settings.sandbox_seed_files)

    image = policy.docker.image or settings.sandbox_image
    workdir = policy.docker.workdir or settings.sandbox_container_workdir
    manager = manager or get_container_manager()
    handle = await manager.ensure(
        identity.container_name,
        image=image,
        workspace_dir=identity.workspace_dir,
        scope_key=identity.scope_key,
        options=policy.docker,
        workdir=workdir,
    )

    logger.info(
        "Sandbox for %s: container=%s scope=%s workspace=%s",
        session_key,
        handle.name,
        identity.scope,
        identity.workspace_dir,
    )
    return SandboxContext(
        session_key=session.session_key,
        agent_name=session.agent_name,
        scope=identity.scope,
        container_name=handle.name,
        container_id=handle.container_id,
        workspace_dir=identity.workspace_dir,
        agent_workspace_dir=agent_workspace,
        container_workdir=workdir,
        image=image,
        tools=policy.tools,
        docker=policy.docker,
    )


__all__ = [
    "SandboxContext",
    "resolve_policy",
    "resolve_sandbox_context",
]
