"""Shared test fixtures for agentbox.

Provides settings isolated to a temporary directory and a fake container
runtime so no test touches a real container engine.
"""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from agentbox.sandbox.lifecycle import ContainerManager, reset_container_manager
from agentbox.settings import Settings, get_settings
from tests.mocks import FakeRuntime

# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Provide test settings with workspaces under tmp_path."""
    return Settings(
        environment="testing",
        sandbox_runtime_path="docker",
        sandbox_image="agentbox-sandbox:test",
        sandbox_workspace_root=str(tmp_path / "sandboxes"),
        sandbox_command_timeout_seconds=5.0,
    )


@pytest.fixture
def mock_settings(test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Make get_settings() return the test settings everywhere it is imported."""
    from agentbox import logging_config, settings
    from agentbox.sandbox import build, context, lifecycle

    for module in (settings, logging_config, context, lifecycle, build):
        monkeypatch.setattr(module, "get_settings", lambda: test_settings)
    return test_settings


@pytest.fixture(autouse=True)
def _reset_singletons() -> Generator[None, None, None]:
    """Start every test with a fresh container manager and settings cache."""
    reset_container_manager()
    get_settings.cache_clear()
    yield
    reset_container_manager()
    get_settings.cache_clear()


# =============================================================================
# CONTAINER RUNTIME
# =============================================================================


@pytest.fixture
def fake_runtime() -> Generator[FakeRuntime, None, None]:
    """Replace asyncio.create_subprocess_exec with a scriptable fake."""
    runtime = FakeRuntime()
    with patch("asyncio.create_subprocess_exec", new=runtime):
        yield runtime


@pytest.fixture
def manager(test_settings: Settings) -> ContainerManager:
    """Container manager bound to the test settings."""
    return ContainerManager(settings=test_settings)
