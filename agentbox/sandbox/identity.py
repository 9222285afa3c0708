"""Sandbox identity resolution.

Maps a session key and an effective policy to a stable container name and
host workspace path. Pure: the same inputs always give the same identity,
which is what lets the lifecycle manager reuse containers.

Session keys look like ``agent:<agentName>:<channel/session suffix>``.

Normalization: the scope key is lowercased, every run of characters outside
``[a-z0-9._-]`` becomes ``-``, the result is truncated to 32 characters and
suffixed with the first 8 hex digits of the SHA-1 of the raw scope key. The
hash keeps distinct keys apart even when their readable parts normalize
to the same text.
"""

import hashlib
import os
import re
from dataclasses import dataclass
from pathlib import Path

from agentbox.exceptions import ConfigurationError
from agentbox.sandbox.policies import SandboxPolicy, SandboxScope

SESSION_KEY_PREFIX = "agent:"
DEFAULT_CONTAINER_PREFIX = "agentbox-sbx-"

_SLUG_MAX = 32
_HASH_LEN = 8
_CONTAINER_NAME_MAX = 63
_UNSAFE = re.compile(r"[^a-z0-9._-]+")


@dataclass(frozen=True)
class SessionIdentity:
    """Parsed session key."""

    session_key: str
    agent_name: str
    suffix: str


@dataclass(frozen=True)
class SandboxIdentity:
    """Resolved container identity for a session."""

    scope: SandboxScope
    scope_key: str
    slug: str
    container_name: str
    workspace_dir: Path


def parse_session_key(session_key: str) -> SessionIdentity:
    """Parse the agent name out of a session key.

    The key must begin with ``agent:``. Keys that merely contain it later
    are rejected rather than guessed at, so a stray key never resolves to
    the ``main`` agent.

    Args:
        session_key: Key of the form ``agent:<agentName>:<suffix>``

    Returns:
        SessionIdentity with agent name and remaining suffix

    Raises:
        ConfigurationError: If the key does not name an agent
    """
    key = session_key.strip()
    if not key.startswith(SESSION_KEY_PREFIX):
        msg = f"Session key must start with '{SESSION_KEY_PREFIX}': {session_key!r}"
        raise ConfigurationError(msg)

    agent_name, _, suffix = key[len(SESSION_KEY_PREFIX) :].partition(":")
    if not agent_name:
        raise ConfigurationError(f"Session key has an empty agent name: {session_key!r}")

    return SessionIdentity(session_key=key, agent_name=agent_name, suffix=suffix)


def slugify_identity(scope_key: str) -> str:
    """Normalize a scope key into a container- and filesystem-safe slug."""
    readable = _UNSAFE.sub("-", scope_key.strip().lower()).strip("-")[:_SLUG_MAX].strip("-")
    digest = hashlib.sha1(scope_key.encode("utf-8"), usedforsecurity=False).hexdigest()
    return f"{readable or 'sandbox'}-{digest[:_HASH_LEN]}"


def _container_name(prefix: str, slug: str) -> str:
    name = f"{prefix}{slug}"
    if len(name) <= _CONTAINER_NAME_MAX:
        return name
    # Shorten the readable part; the hash suffix always survives
    readable, _, digest = slug.rpartition("-")
    head = f"{prefix}{readable}"[: _CONTAINER_NAME_MAX - len(digest) - 1].rstrip("-")
    return f"{head}-{digest}"


def scope_key_for(session: SessionIdentity, scope: SandboxScope) -> str:
    """Return the identity unit for a session under a scope."""
    if scope == SandboxScope.AGENT:
        return f"{SESSION_KEY_PREFIX}{session.agent_name}"
    return session.session_key


def resolve_identity(
    policy: SandboxPolicy,
    session_key: str,
    *,
    container_prefix: str | None = None,
) -> SandboxIdentity:
    """Derive container name and sandbox workspace for a session.

    Args:
        policy: Effective sandbox policy
        session_key: Session key from the routing layer
        container_prefix: Prefix when the policy does not set one

    Returns:
        SandboxIdentity; ``workspace_dir`` always starts with the
        (user-expanded) ``policy.workspace_root``
    """
    session = parse_session_key(session_key)
    scope_key = scope_key_for(session, policy.scope)
    slug = slugify_identity(scope_key)

    prefix = policy.docker.container_prefix or container_prefix or DEFAULT_CONTAINER_PREFIX
    container_name = _container_name(prefix, slug)

    root = Path(os.path.expanduser(policy.workspace_root))
    return SandboxIdentity(
        scope=policy.scope,
        scope_key=scope_key,
        slug=slug,
        container_name=container_name,
        workspace_dir=root / slug,
    )


__all__ = [
    "DEFAULT_CONTAINER_PREFIX",
    "SESSION_KEY_PREFIX",
    "SandboxIdentity",
    "SessionIdentity",
    "parse_session_key",
    "resolve_identity",
    "scope_key_for",
    "slugify_identity",
]
