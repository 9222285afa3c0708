"""Application settings using pydantic-settings.

Loads process-level configuration from environment variables with .env file
support. Per-agent sandbox policy lives in the routing configuration
(see agentbox.config), not here.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "testing", "production"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Container runtime
    sandbox_runtime_path: str = Field(
        default="docker",
        description="Container runtime executable (docker or a compatible CLI)",
    )
    sandbox_image: str = Field(
        default="agentbox-sandbox:local",
        description="Image tag produced by scripts/sandbox-setup.sh",
    )
    sandbox_dockerfile: str = Field(
        default="Dockerfile.sandbox",
        description="Dockerfile used to build the sandbox image",
    )
    sandbox_container_prefix: str = Field(
        default="agentbox-sbx-",
        description="Prefix for sandbox container names",
    )
    sandbox_container_workdir: str = Field(
        default="/workspace",
        description="Mount point of the sandbox workspace inside the container",
    )

    # Workspaces
    sandbox_workspace_root: str = Field(
        default="~/.agentbox/sandboxes",
        description="Default host root under which sandbox workspaces are created",
    )
    sandbox_seed_files: list[str] = Field(
        default_factory=lambda: ["AGENTS.md", "TOOLS.md"],
        description="Files copied from the agent workspace into a fresh sandbox workspace",
    )

    # Process handling
    sandbox_stderr_tail_bytes: int = Field(
        default=4096,
        ge=256,
        le=1_048_576,
        description="Trailing stderr kept for ContainerExitError diagnostics",
    )
    sandbox_command_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=3600,
        description="Timeout for runtime management commands (inspect, run, start, rm)",
    )
    sandbox_idle_timeout_seconds: int = Field(
        default=86_400,
        ge=60,
        description="Idle time after which prune() stops a sandbox container",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()
