"""agentbox: per-session container sandboxing for conversational agents.

Resolves, for each agent session, whether tool execution runs inside an
isolated container and manages the lifecycle of that container.

Usage:
    from agentbox import resolve_sandbox_context

    context = await resolve_sandbox_context(config, session_key, workspace_dir)
"""

__version__ = "0.1.0"

from agentbox.config import AgentboxConfig, load_config
from agentbox.sandbox.context import SandboxContext, resolve_sandbox_context

__all__ = [
    "AgentboxConfig",
    "SandboxContext",
    "__version__",
    "load_config",
    "resolve_sandbox_context",
]
