"""Unit tests for agentbox/config.py."""

import pytest

from agentbox.config import AgentboxConfig, load_config
from agentbox.exceptions import ConfigurationError
from agentbox.sandbox.policies import SandboxMode, SandboxScope

YAML_CONFIG = """\
agent:
  sandbox:
    mode: non-main
    workspaceRoot: ~/sbx
routing:
  agents:
    family:
      workspace: ~/agents/family
      sandbox:
        scope: agent
        tools:
          allow: [read]
  sessions:
    "agent:family:whatsapp:group:123":
      sandbox:
        mode: off
"""


class TestAgentboxConfig:
    def test_empty(self):
        config = AgentboxConfig.from_mapping(None)

        assert config.global_sandbox() is None
        assert config.agent_sandbox("main") is None
        assert config.session_sandbox("agent:main:main") is None

    def test_accessors(self):
        config = AgentboxConfig.from_mapping(
            {
                "agent": {"sandbox": {"mode": "all"}},
                "routing": {"agents": {"work": {"workspace": "~/w", "sandbox": {"scope": "agent"}}}},
            }
        )

        assert config.global_sandbox().mode == SandboxMode.ALL
        assert config.agent_sandbox("work").scope == SandboxScope.AGENT
        assert config.agent_route("work").workspace == "~/w"
        assert config.agent_sandbox("other") is None

    def test_agent_without_sandbox_block(self):
        config = AgentboxConfig.from_mapping({"routing": {"agents": {"main": {}}}})
        assert config.agent_sandbox("main") is None

    def test_invalid_value_raises(self):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            AgentboxConfig.from_mapping({"agent": {"sandbox": {"scope": "planet"}}})

    def test_unknown_keys_ignored(self):
        config = AgentboxConfig.from_mapping({"gateway": {"port": 1}, "agent": {"model": "x"}})
        assert config.global_sandbox() is None


class TestLoadConfig:
    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "agentbox.yaml"
        path.write_text(YAML_CONFIG)

        config = load_config(path)

        assert config.global_sandbox().mode == SandboxMode.NON_MAIN
        assert config.global_sandbox().workspace_root == "~/sbx"
        assert config.agent_sandbox("family").tools.allow == ("read",)
        assert config.session_sandbox("agent:family:whatsapp:group:123").mode == SandboxMode.OFF

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == AgentboxConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("agent: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            load_config(path)
