"""Sandbox policy models and the layered policy merge.

A sandbox policy decides whether a session's tool execution is contained,
how container identity is scoped, where sandbox workspaces live on the host,
and which tools may run. Policies come in two shapes:

- SandboxOverride: a partial policy as written in configuration. Every field
  is optional; absent fields inherit from the next more general layer.
- SandboxPolicy: the effective policy after merging. Every field is concrete.

Merge precedence, field by field: session > agent > global > built-in default.
The ``tools`` block is replaced as a unit. The ``docker`` block merges per
field, with ``env`` merged per key.
"""

from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from agentbox.exceptions import ConfigurationError

DEFAULT_WORKSPACE_ROOT = "~/.agentbox/sandboxes"
MAIN_AGENT = "main"


class SandboxMode(StrEnum):
    """Which sessions are sandboxed."""

    ALL = "all"  # Every session
    OFF = "off"  # No session
    NON_MAIN = "non-main"  # Every agent except "main"


class SandboxScope(StrEnum):
    """Unit of container identity."""

    AGENT = "agent"  # One container shared by all sessions of an agent
    SESSION = "session"  # One container per session


_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
    frozen=True,
)


def _unique_names(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list | tuple):
        msg = f"expected a tool name or list of tool names, got {type(value).__name__}"
        raise ValueError(msg)
    seen: dict[str, None] = {}
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"tool names must be strings, got {item!r}")
        name = item.strip()
        if name:
            seen.setdefault(name, None)
    return tuple(seen)


class ToolPolicy(BaseModel):
    """Allow/deny lists for tools executed inside the sandbox."""

    model_config = _MODEL_CONFIG

    allow: tuple[str, ...] = Field(default=(), description="Allowed tools (empty = all)")
    deny: tuple[str, ...] = Field(default=(), description="Denied tools (always wins)")

    @field_validator("allow", "deny", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> tuple[str, ...]:
        return _unique_names(value)


class DockerOverride(BaseModel):
    """Partial container runtime options as written in configuration."""

    model_config = _MODEL_CONFIG

    image: str | None = None
    container_prefix: str | None = None
    workdir: str | None = None
    read_only_root: bool | None = None
    tmpfs: tuple[str, ...] | None = None
    network: str | None = None
    user: str | None = None
    cap_drop: tuple[str, ...] | None = None
    env: dict[str, str] | None = None
    setup_command: str | None = None
    pids_limit: int | None = Field(default=None, ge=1)
    memory: str | None = None
    cpus: float | None = Field(default=None, gt=0)


class DockerOptions(BaseModel):
    """Effective container runtime options.

    ``image``, ``container_prefix`` and ``workdir`` stay None when no layer
    sets them; the lifecycle layer then uses the process settings.
    """

    model_config = _MODEL_CONFIG

    image: str | None = None
    container_prefix: str | None = None
    workdir: str | None = None
    read_only_root: bool = True
    tmpfs: tuple[str, ...] = ("/tmp", "/var/tmp", "/run")  # nosec B108
    network: str = "none"
    user: str | None = None
    cap_drop: tuple[str, ...] = ("ALL",)
    env: dict[str, str] = Field(default_factory=lambda: {"LANG": "C.UTF-8"})
    setup_command: str | None = None
    pids_limit: int | None = None
    memory: str | None = None
    cpus: float | None = None

    def to_run_args(self) -> list[str]:
        """Convert options to container runtime ``run`` arguments.

        Returns:
            List of CLI arguments (without name, mounts or image)
        """
        args: list[str] = []

        if self.read_only_root:
            args.append("--read-only")
        for path in self.tmpfs:
            args.extend(["--tmpfs", path])

        args.extend(["--network", self.network])

        if self.user:
            args.extend(["--user", self.user])
        for cap in self.cap_drop:
            args.extend(["--cap-drop", cap])
        args.extend(["--security-opt", "no-new-privileges"])

        if self.pids_limit is not None:
            args.extend(["--pids-limit", str(self.pids_limit)])
        if self.memory:
            args.extend(["--memory", self.memory])
        if self.cpus is not None:
            args.extend(["--cpus", str(self.cpus)])

        for key, value in sorted(self.env.items()):
            args.extend(["--env", f"{key}={value}"])

        return args


class SandboxOverride(BaseModel):
    """Partial sandbox policy for one configuration layer."""

    model_config = _MODEL_CONFIG

    mode: SandboxMode | None = None
    scope: SandboxScope | None = None
    workspace_root: str | None = None
    tools: ToolPolicy | None = None
    docker: DockerOverride | None = None

    @field_validator("mode", mode="before")
    @classmethod
    def _yaml_off(cls, value: Any) -> Any:
        # YAML 1.1 loads a bare `off` as False
        return SandboxMode.OFF if value is False else value


class SandboxPolicy(BaseModel):
    """Effective sandbox policy. Every field is concrete."""

    model_config = _MODEL_CONFIG

    mode: SandboxMode = SandboxMode.OFF
    scope: SandboxScope = SandboxScope.SESSION
    workspace_root: str = DEFAULT_WORKSPACE_ROOT
    tools: ToolPolicy = Field(default_factory=ToolPolicy)
    docker: DockerOptions = Field(default_factory=DockerOptions)

    def to_dict(self) -> dict[str, Any]:
        """Convert policy to a JSON-friendly dictionary for logging/display."""
        return self.model_dump(mode="json")


OverrideInput = SandboxOverride | Mapping[str, Any] | None


def coerce_override(value: OverrideInput, layer: str = "sandbox") -> SandboxOverride | None:
    """Validate a configuration layer into a SandboxOverride.

    Args:
        value: Override model, raw mapping, or None
        layer: Layer name used in error messages (global, agent, session)

    Returns:
        SandboxOverride, or None when the layer is absent

    Raises:
        ConfigurationError: If a present value is malformed (e.g. unknown mode)
    """
    if value is None or isinstance(value, SandboxOverride):
        return value
    if not isinstance(value, Mapping):
        msg = f"Invalid {layer} sandbox config: expected a mapping, got {type(value).__name__}"
        raise ConfigurationError(msg)
    try:
        return SandboxOverride.model_validate(value)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {layer} sandbox config: {e}") from e


def _first(values: Iterable[Any]) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _merge_docker(layers: list[SandboxOverride]) -> DockerOptions:
    blocks = [layer.docker for layer in layers if layer.docker is not None]
    if not blocks:
        return DockerOptions()

    defaults = DockerOptions()
    merged: dict[str, Any] = {}
    for name in DockerOptions.model_fields:
        if name == "env":
            continue
        value = _first(getattr(block, name) for block in blocks)
        merged[name] = value if value is not None else getattr(defaults, name)

    env = dict(defaults.env)
    # blocks are ordered most specific first; apply general layers first
    for block in reversed(blocks):
        if block.env:
            env.update(block.env)
    merged["env"] = env

    return DockerOptions(**merged)


def merge_policy(
    global_policy: OverrideInput = None,
    agent_override: OverrideInput = None,
    session_override: OverrideInput = None,
    *,
    default_workspace_root: str | None = None,
) -> SandboxPolicy:
    """Merge layered sandbox configuration into one effective policy.

    Pure and deterministic: identical inputs always produce equal policies.

    Args:
        global_policy: Global sandbox settings (``agent.sandbox``)
        agent_override: Per-agent override (``routing.agents.<name>.sandbox``)
        session_override: Per-session override
        default_workspace_root: Built-in workspace root used when no layer sets one

    Returns:
        Effective SandboxPolicy with every field set

    Raises:
        ConfigurationError: If a raw mapping layer contains malformed values
    """
    layers = [
        layer
        for layer in (
            coerce_override(session_override, "session"),
            coerce_override(agent_override, "agent"),
            coerce_override(global_policy, "global"),
        )
        if layer is not None
    ]

    mode = _first(layer.mode for layer in layers)
    scope = _first(layer.scope for layer in layers)
    workspace_root = _first(layer.workspace_root for layer in layers)
    # tools is atomic: the most specific block wins as a whole
    tools = _first(layer.tools for layer in layers)

    return SandboxPolicy(
        mode=mode or SandboxMode.OFF,
        scope=scope or SandboxScope.SESSION,
        workspace_root=workspace_root or default_workspace_root or DEFAULT_WORKSPACE_ROOT,
        tools=tools if tools is not None else ToolPolicy(),
        docker=_merge_docker(layers),
    )


def is_tool_allowed(tools: ToolPolicy, tool_name: str) -> bool:
    """Check whether a tool may run under a tool policy.

    Deny wins over allow. An empty allow list allows every tool that is not
    denied. ``"*"`` matches any tool. Names compare case-insensitively.

    Args:
        tools: Effective tool policy
        tool_name: Tool being invoked

    Returns:
        True if the tool may execute inside the sandbox
    """
    name = tool_name.strip().lower()
    deny = {t.lower() for t in tools.deny}
    if "*" in deny or name in deny:
        return False

    allow = {t.lower() for t in tools.allow}
    if not allow:
        return True
    return "*" in allow or name in allow


__all__ = [
    "DEFAULT_WORKSPACE_ROOT",
    "MAIN_AGENT",
    "DockerOptions",
    "DockerOverride",
    "SandboxMode",
    "SandboxOverride",
    "SandboxPolicy",
    "SandboxScope",
    "ToolPolicy",
    "coerce_override",
    "is_tool_allowed",
    "merge_policy",
]
