"""Container sandboxing for agent sessions.

Layers, leaves first:
- policies: layered policy merge (global > agent > session)
- mode: whether a session is sandboxed at all
- identity: stable container name and workspace per agent or session
- process / docker: streamed runtime process execution
- lifecycle: idempotent, per-name serialized container creation
- context: resolve_sandbox_context, the public entry point

``SandboxContext`` and ``resolve_sandbox_context`` are exported from the
top-level ``agentbox`` package and ``agentbox.sandbox.context``.
"""

from agentbox.sandbox.build import build_sandbox_image
from agentbox.sandbox.docker import ContainerState, DockerCLI
from agentbox.sandbox.identity import (
    SandboxIdentity,
    SessionIdentity,
    parse_session_key,
    resolve_identity,
    slugify_identity,
)
from agentbox.sandbox.lifecycle import (
    ContainerHandle,
    ContainerManager,
    ContainerStatus,
    get_container_manager,
)
from agentbox.sandbox.mode import is_sandbox_active
from agentbox.sandbox.policies import (
    DockerOptions,
    DockerOverride,
    SandboxMode,
    SandboxOverride,
    SandboxPolicy,
    SandboxScope,
    ToolPolicy,
    is_tool_allowed,
    merge_policy,
)
from agentbox.sandbox.process import OutputChunk, ProcessResult, run_process, spawn_process

__all__ = [
    # Policies
    "DockerOptions",
    "DockerOverride",
    "SandboxMode",
    "SandboxOverride",
    "SandboxPolicy",
    "SandboxScope",
    "ToolPolicy",
    "is_tool_allowed",
    "merge_policy",
    # Mode / identity
    "SandboxIdentity",
    "SessionIdentity",
    "is_sandbox_active",
    "parse_session_key",
    "resolve_identity",
    "slugify_identity",
    # Runtime
    "ContainerHandle",
    "ContainerManager",
    "ContainerState",
    "ContainerStatus",
    "DockerCLI",
    "OutputChunk",
    "ProcessResult",
    "build_sandbox_image",
    "get_container_manager",
    "run_process",
    "spawn_process",
]
