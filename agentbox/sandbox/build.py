"""Sandbox image build.

Python counterpart of scripts/sandbox-setup.sh: a one-shot, no-cache build
producing the fixed local tag that the lifecycle manager runs.
"""

import logging
from pathlib import Path

from agentbox.exceptions import ImageBuildError
from agentbox.sandbox.docker import DockerCLI
from agentbox.sandbox.process import OutputCallback, ProcessResult
from agentbox.settings import get_settings

logger = logging.getLogger(__name__)

_BUILD_TIMEOUT = 1800  # 30 minutes


async def build_sandbox_image(
    image: str | None = None,
    dockerfile: str | Path | None = None,
    context_dir: str | Path = ".",
    *,
    docker: DockerCLI | None = None,
    on_output: OutputCallback | None = None,
    timeout: float = _BUILD_TIMEOUT,
) -> ProcessResult:
    """Build the sandbox image without cache.

    Args:
        image: Image tag (default: settings.sandbox_image)
        dockerfile: Dockerfile path (default: settings.sandbox_dockerfile)
        context_dir: Build context directory
        docker: Runtime wrapper (default: built from settings)
        on_output: Receives build output chunks as they stream
        timeout: Build timeout in seconds

    Returns:
        ProcessResult of the build

    Raises:
        ImageBuildError: If the build exits non-zero
        SandboxTimeoutError: If the build exceeds the timeout
        SpawnError: If the runtime cannot be launched
    """
    settings = get_settings()
    image = image or settings.sandbox_image
    dockerfile = Path(dockerfile or settings.sandbox_dockerfile)
    docker = docker or DockerCLI.from_settings(settings)

    logger.info("Building sandbox image %s from %s", image, dockerfile)
    result = await docker.build(
        image,
        dockerfile,
        Path(context_dir),
        no_cache=True,
        on_output=on_output,
        timeout=timeout,
    )

    if result.exit_code != 0:
        tail = result.stderr_tail(settings.sandbox_stderr_tail_bytes)
        raise ImageBuildError(
            f"Sandbox image build exited with code {result.exit_code}: {tail or '(no stderr)'}",
            exit_code=result.exit_code,
            stderr_tail=tail,
        )

    logger.info("Built %s", image)
    return result


__all__ = ["build_sandbox_image"]
