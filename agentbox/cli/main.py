"""CLI entry point and commands.

Provides the operator CLI with commands for:
- resolve: Show the effective sandbox policy and context for a session
- build: Build the sandbox image
- status: Check the container runtime and sandbox image
- stop: Remove a sandbox container
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from agentbox import __version__
from agentbox.exceptions import AgentboxError
from agentbox.logging_config import configure_logging

app = typer.Typer(
    name="agentbox",
    help="Per-session container sandboxing for conversational agents",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """agentbox operator commands."""
    configure_logging("DEBUG" if verbose else None)


@app.command()
def resolve(
    session_key: Annotated[str, typer.Argument(help="Session key, e.g. agent:work:slack:channel:456")],
    config_path: Annotated[
        Path,
        typer.Option("--config", "-c", help="YAML configuration file"),
    ],
    workspace: Annotated[
        Optional[Path],  # noqa: UP007
        typer.Option("--workspace", "-w", help="Agent workspace directory for this session"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Only show the effective policy; start nothing"),
    ] = False,
) -> None:
    """Resolve the sandbox for a session.

    Prints the merged policy and, unless --dry-run is given, ensures the
    session's container is running and prints the resulting context.
    """
    from agentbox.config import load_config
    from agentbox.sandbox.context import resolve_policy, resolve_sandbox_context
    from agentbox.sandbox.identity import parse_session_key, resolve_identity
    from agentbox.sandbox.mode import is_sandbox_active
    from agentbox.settings import get_settings

    try:
        config = load_config(config_path)
        policy = resolve_policy(config, session_key)
        session = parse_session_key(session_key)
    except AgentboxError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1) from e

    active = is_sandbox_active(policy, session.agent_name)

    table = Table(title=f"Sandbox policy: {session_key}", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Agent", session.agent_name)
    table.add_row("Mode", str(policy.mode))
    table.add_row("Scope", str(policy.scope))
    table.add_row("Workspace root", policy.workspace_root)
    table.add_row("Tools allow", ", ".join(policy.tools.allow) or "[dim](all)[/dim]")
    table.add_row("Tools deny", ", ".join(policy.tools.deny) or "[dim](none)[/dim]")
    table.add_row("Sandboxed", "[green]yes[/green]" if active else "[yellow]no[/yellow]")
    if active:
        identity = resolve_identity(
            policy, session_key, container_prefix=get_settings().sandbox_container_prefix
        )
        table.add_row("Container", identity.container_name)
        table.add_row("Workspace", str(identity.workspace_dir))
    console.print(table)

    if dry_run or not active:
        return

    try:
        context = asyncio.run(resolve_sandbox_context(config, session_key, workspace))
    except AgentboxError as e:
        console.print(f"[red]❌ Sandbox failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    if context is not None:
        console.print(
            Panel(
                json.dumps(context.model_dump(mode="json"), indent=2),
                title="📦 Sandbox context",
                border_style="green",
            )
        )


@app.command()
def build(
    image: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--image", "-i", help="Image tag (default: AGENTBOX_SANDBOX_IMAGE)"),
    ] = None,
    dockerfile: Annotated[
        Optional[Path],  # noqa: UP007
        typer.Option("--dockerfile", "-f", help="Dockerfile (default: Dockerfile.sandbox)"),
    ] = None,
    context_dir: Annotated[
        Path,
        typer.Option("--context", help="Build context directory"),
    ] = Path("."),
) -> None:
    """Build the sandbox image (no cache)."""
    from agentbox.sandbox.build import build_sandbox_image
    from agentbox.sandbox.process import OutputChunk

    def echo(chunk: OutputChunk) -> None:
        console.print(chunk.text(), end="", markup=False, highlight=False)

    try:
        asyncio.run(build_sandbox_image(image, dockerfile, context_dir, on_output=echo))
    except AgentboxError as e:
        console.print(f"[red]❌ Build failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print("[green]✅ Sandbox image built[/green]")


@app.command()
def status() -> None:
    """Check container runtime and sandbox image availability."""
    asyncio.run(_show_status())


async def _show_status() -> None:
    from agentbox.sandbox.docker import DockerCLI
    from agentbox.settings import get_settings

    settings = get_settings()
    docker = DockerCLI.from_settings(settings)

    table = Table(title="Sandbox runtime", show_header=True)
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Details")

    try:
        runtime_version = await docker.version()
    except AgentboxError as e:
        table.add_row("Runtime", "[red]missing[/red]", str(e))
        console.print(table)
        raise typer.Exit(code=1) from e

    if runtime_version is None:
        table.add_row("Runtime", "[red]unreachable[/red]", settings.sandbox_runtime_path)
        console.print(table)
        raise typer.Exit(code=1)
    table.add_row("Runtime", "[green]ok[/green]", f"{settings.sandbox_runtime_path} {runtime_version}")

    if await docker.image_exists(settings.sandbox_image):
        table.add_row("Image", "[green]ok[/green]", settings.sandbox_image)
    else:
        table.add_row(
            "Image",
            "[yellow]missing[/yellow]",
            f"{settings.sandbox_image} (run `agentbox build`)",
        )
    console.print(table)


@app.command()
def stop(
    container_name: Annotated[str, typer.Argument(help="Sandbox container name")],
) -> None:
    """Remove a sandbox container."""
    from agentbox.sandbox.lifecycle import get_container_manager

    try:
        removed = asyncio.run(get_container_manager().stop(container_name))
    except AgentboxError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1) from e

    if removed:
        console.print(f"[green]✅ Removed {container_name}[/green]")
    else:
        console.print(f"[yellow]No container named {container_name}[/yellow]")


@app.command()
def version() -> None:
    """Show agentbox version information."""
    console.print(
        Panel(
            f"[bold]agentbox[/bold] v{__version__}\n"
            "Per-session container sandboxing for conversational agents",
            title="📦 Version",
            border_style="blue",
        )
    )


# Entry point for: python -m agentbox.cli.main
if __name__ == "__main__":
    app()
