"""Sandbox mode evaluation.

Decides whether sandboxing applies to a session at all. Runs before any
identity or workspace computation so inactive sessions cost no I/O.
"""

from agentbox.sandbox.policies import MAIN_AGENT, SandboxMode, SandboxPolicy


def is_sandbox_active(policy: SandboxPolicy, agent_name: str) -> bool:
    """Return True if the session's tool execution must be sandboxed.

    ``non-main`` excludes by agent name only; the session key suffix plays
    no part.

    Args:
        policy: Effective sandbox policy
        agent_name: Agent parsed from the session key

    Returns:
        Whether a sandbox container is required
    """
    if policy.mode == SandboxMode.OFF:
        return False
    if policy.mode == SandboxMode.NON_MAIN:
        return agent_name != MAIN_AGENT
    return True


__all__ = ["is_sandbox_active"]
