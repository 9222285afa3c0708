"""Sandbox workspace preparation.

Creates the host directory mounted into a sandbox container and seeds it
with bootstrap files from the agent's own workspace. Files already present
in the sandbox workspace are never overwritten.
"""

import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path

from agentbox.exceptions import SandboxError

logger = logging.getLogger(__name__)


def prepare_workspace(
    sandbox_dir: Path,
    agent_workspace: str | Path | None = None,
    seed_files: Iterable[str] = (),
) -> list[Path]:
    """Create a sandbox workspace and copy missing seed files into it.

    Args:
        sandbox_dir: Host directory for the sandbox workspace
        agent_workspace: Agent workspace to seed from (skipped if missing)
        seed_files: File names, relative to the agent workspace

    Returns:
        Paths of files copied into the sandbox workspace

    Raises:
        SandboxError: If the directory cannot be created or a file copied
    """
    try:
        sandbox_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SandboxError(f"Cannot create sandbox workspace {sandbox_dir}: {e}") from e

    if agent_workspace is None:
        return []
    source_root = Path(os.path.expanduser(str(agent_workspace)))
    if not source_root.is_dir():
        logger.debug("Agent workspace %s does not exist; nothing to seed", source_root)
        return []

    copied: list[Path] = []
    for name in seed_files:
        source = source_root / name
        target = sandbox_dir / name
        if not source.is_file() or target.exists():
            continue
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
        except OSError as e:
            raise SandboxError(f"Cannot seed {target} from {source}: {e}") from e
        copied.append(target)

    if copied:
        logger.info("Seeded %d file(s) into %s", len(copied), sandbox_dir)
    return copied


__all__ = ["prepare_workspace"]
