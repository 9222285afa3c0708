"""Typed routing configuration consumed by sandbox resolution.

Shape (YAML or an equivalent mapping):

    agent:
      sandbox:
        mode: non-main
        scope: session
        workspaceRoot: ~/.agentbox/sandboxes
    routing:
      agents:
        family:
          workspace: ~/agents/family
          sandbox:
            mode: all
            scope: agent
      sessions:
        "agent:family:whatsapp:group:123":
          sandbox:
            tools:
              allow: [read]

The configuration loader that produces this object normally lives outside
agentbox; ``load_config`` is a convenience for the CLI and tests.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentbox.exceptions import ConfigurationError
from agentbox.sandbox.policies import SandboxOverride

_CONFIG = ConfigDict(populate_by_name=True, extra="ignore")


class AgentDefaults(BaseModel):
    """Settings shared by every agent."""

    model_config = _CONFIG

    sandbox: SandboxOverride | None = None


class AgentRoute(BaseModel):
    """Per-agent routing entry."""

    model_config = _CONFIG

    workspace: str | None = None
    sandbox: SandboxOverride | None = None


class SessionRoute(BaseModel):
    """Per-session routing entry."""

    model_config = _CONFIG

    sandbox: SandboxOverride | None = None


class RoutingConfig(BaseModel):
    """Agent and session routing tables."""

    model_config = _CONFIG

    agents: dict[str, AgentRoute] = Field(default_factory=dict)
    sessions: dict[str, SessionRoute] = Field(default_factory=dict)


class AgentboxConfig(BaseModel):
    """Top-level configuration object."""

    model_config = _CONFIG

    agent: AgentDefaults = Field(default_factory=AgentDefaults)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "AgentboxConfig":
        """Validate a raw mapping.

        Raises:
            ConfigurationError: If any present value is malformed
        """
        try:
            return cls.model_validate(dict(data or {}))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def global_sandbox(self) -> SandboxOverride | None:
        return self.agent.sandbox

    def agent_route(self, agent_name: str) -> AgentRoute | None:
        return self.routing.agents.get(agent_name)

    def agent_sandbox(self, agent_name: str) -> SandboxOverride | None:
        route = self.agent_route(agent_name)
        return route.sandbox if route else None

    def session_sandbox(self, session_key: str) -> SandboxOverride | None:
        route = self.routing.sessions.get(session_key)
        return route.sandbox if route else None


def load_config(path: str | Path) -> AgentboxConfig:
    """Load configuration from a YAML file.

    Args:
        path: YAML file path

    Returns:
        Validated AgentboxConfig

    Raises:
        ConfigurationError: If the file is unreadable or invalid
    """
    config_path = Path(path).expanduser()
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if raw is not None and not isinstance(raw, Mapping):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return AgentboxConfig.from_mapping(raw)


__all__ = [
    "AgentDefaults",
    "AgentRoute",
    "AgentboxConfig",
    "RoutingConfig",
    "SessionRoute",
    "load_config",
]
