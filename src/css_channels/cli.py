"""
CSS Channels CLI - Command-line interface.

Build, deploy and clean release channels from the terminal.
"""

from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from css_channels.core.exceptions import ChannelsError
from css_channels.core.models import ApplyResult
from css_channels.logging_config import setup_logging
from css_channels.orchestrator.core import Orchestrator

app = typer.Typer(
    name="css-channels",
    help="CSS Channels - build, deploy and clean release channels",
    no_args_is_help=True,
)
remote_app = typer.Typer(help="Operate on the deployed remote", no_args_is_help=True)
app.add_typer(remote_app, name="remote")
console = Console()


class VariantChoice(str, Enum):
    """Deployable variants."""

    p = "p"
    c = "c"
    v = "v"


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging"),
):
    """CSS Channels - build, deploy and clean release channels."""
    setup_logging(verbose)


def _get_orchestrator() -> Orchestrator:
    try:
        return Orchestrator()
    except ChannelsError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _fail(error: ChannelsError) -> None:
    console.print(f"[red]{type(error).__name__}: {escape(str(error))}[/red]")
    raise typer.Exit(1)


def _confirm(prompt: str, yes: bool, dry_run: bool) -> None:
    """Ask before a destructive operation; exit cleanly if declined."""
    if yes or dry_run:
        return
    if not typer.confirm(prompt, default=False):
        console.print("[yellow]Operation cancelled[/yellow]")
        raise typer.Exit(0)


def _only_one(**flags: bool) -> str | None:
    chosen = [name for name, value in flags.items() if value]
    if len(chosen) > 1:
        raise typer.BadParameter(f"Choose only one of: {', '.join('--' + c for c in chosen)}")
    return chosen[0] if chosen else None


def _report_partial(result: ApplyResult) -> None:
    """Warn about locations that could not be deleted; exit code stays 0."""
    if result.report.failed:
        console.print(
            f"\n[yellow]Partial failure: {len(result.report.failed)} location(s) "
            f"could not be deleted:[/yellow]"
        )
        for path in result.report.failed:
            console.print(f"  [yellow]{path}[/yellow]")
    if result.rebuild_skipped:
        console.print(f"[yellow]Rebuild skipped: {result.rebuild_skipped}[/yellow]")
    elif result.rebuild is not None and result.rebuild.failed:
        failed = ", ".join(r.channel_id for r in result.rebuild.failed)
        console.print(f"[yellow]Rebuild failed for: {failed}[/yellow]")


@app.command()
def channels():
    """List registered release channels."""
    orchestrator = _get_orchestrator()
    registry = orchestrator.registry

    table = Table(title=f"Release Channels ({len(registry)})")
    table.add_column("ID", style="cyan")
    table.add_column("Variant", style="magenta")
    table.add_column("Local Path")
    table.add_column("Remote Path")
    table.add_column("Protected", justify="center")

    for channel in registry.all():
        table.add_row(
            channel.id,
            channel.variant.value,
            channel.local_path_template,
            channel.remote_path_template,
            "yes" if channel.protected_by_default else "",
        )

    console.print(table)


@app.command()
def build(
    channel: Optional[str] = typer.Option(None, "--channel", "-c", help="Channel to build"),
    full: bool = typer.Option(False, "--full", help="Build every channel in registry order"),
):
    """Build one channel (default: from the git branch) or all of them."""
    if channel and full:
        raise typer.BadParameter("--channel and --full are mutually exclusive")

    orchestrator = _get_orchestrator()
    try:
        batch = orchestrator.build(channel_id=channel, full=full)
    except ChannelsError as e:
        _fail(e)

    console.print(orchestrator.build_summary(batch))

    if batch.failed:
        if not full:
            raise typer.Exit(1)
        console.print(
            f"\n[yellow]{len(batch.failed)} of {len(batch.results)} channel(s) failed[/yellow]"
        )


@app.command()
def deploy(
    channel: Optional[str] = typer.Option(None, "--channel", "-c", help="Channel to deploy"),
    variant: Optional[VariantChoice] = typer.Option(
        None, "--variant", help="Deploy a prefixed variant (p, c, v)"
    ),
):
    """Build a channel and push it to the remote."""
    orchestrator = _get_orchestrator()
    try:
        result = orchestrator.deploy(
            channel_id=channel, variant=variant.value if variant else None
        )
    except ChannelsError as e:
        _fail(e)

    console.print(
        Panel.fit(
            f"[bold blue]Deploy[/bold blue]\n"
            f"Channel: {result.channel_id}\n"
            f"Target: {result.build.target}",
        )
    )

    if not result.build.ok:
        console.print(f"[red]Build failed: {escape(result.build.error or '')}[/red]")
        raise typer.Exit(1)

    push = result.push
    if push is None or not push.ok:
        console.print(f"[red]Push failed: {escape(push.error or '') if push else 'not attempted'}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]Pushed {push.uploaded_files} file(s) to {push.remote_path}[/green]"
    )
    if push.bootstrapped:
        console.print("[green]Bootstrapped remote root[/green]")
    if result.cleanup is not None and result.cleanup.deleted:
        console.print(f"Removed {len(result.cleanup.report.succeeded)} expired preview(s)")
    for warning in push.warnings + result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


@app.command()
def clean(
    folder: Optional[str] = typer.Argument(None, help="Single dist folder to delete"),
    all_: bool = typer.Option(False, "--all", help="Delete everything, no rebuild"),
    safe: bool = typer.Option(False, "--safe", help="Keep stable and latest"),
    preview: bool = typer.Option(False, "--preview", help="Delete local previews only"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be deleted"),
):
    """Clean the local dist tree (default: delete everything and rebuild)."""
    mode = _only_one(all=all_, safe=safe, preview=preview)
    if folder and mode:
        raise typer.BadParameter("A folder name cannot be combined with a mode flag")
    mode = mode or "reset"

    if folder is None and mode in ("reset", "all"):
        _confirm(f"Delete everything under dist ({mode})?", yes, dry_run)

    orchestrator = _get_orchestrator()
    try:
        result = orchestrator.clean(mode=mode, folder=folder, dry_run=dry_run)
    except ChannelsError as e:
        _fail(e)

    console.print(orchestrator.apply_summary(result))
    _report_partial(result)


@remote_app.command("cleanup")
def remote_cleanup(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be deleted"),
):
    """Delete remote previews older than the retention period."""
    orchestrator = _get_orchestrator()
    try:
        result = orchestrator.remote_cleanup(dry_run=dry_run)
    except ChannelsError as e:
        _fail(e)

    console.print(orchestrator.apply_summary(result))
    _report_partial(result)


@remote_app.command("wipe")
def remote_wipe(
    all_: bool = typer.Option(False, "--all", help="Delete everything on the remote"),
    safe: bool = typer.Option(False, "--safe", help="Delete previews only"),
    stable: bool = typer.Option(False, "--stable", help="Keep only stable and index.html"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be deleted"),
):
    """Wipe remote channels (default: latest and previews)."""
    mode = _only_one(all=all_, safe=safe, stable=stable) or "default"
    _confirm(f"Wipe the remote ({mode})?", yes, dry_run)

    orchestrator = _get_orchestrator()
    try:
        result = orchestrator.remote_wipe(mode=mode, dry_run=dry_run)
    except ChannelsError as e:
        _fail(e)

    console.print(orchestrator.apply_summary(result))
    _report_partial(result)


@remote_app.command("ensure")
def remote_ensure(
    directory: Path = typer.Argument(..., help="Local directory whose structure to mirror"),
    remote_dir: Optional[str] = typer.Option(None, "--to", help="Remote directory"),
):
    """Pre-create a local directory skeleton on the remote."""
    if not directory.is_dir():
        console.print(f"[red]Directory does not exist: {directory}[/red]")
        raise typer.Exit(1)

    orchestrator = _get_orchestrator()
    try:
        result = orchestrator.ensure_remote_structure(directory, remote_dir)
    except ChannelsError as e:
        _fail(e)

    console.print(f"[green]Ensured {len(result.created)} remote director(ies)[/green]")
    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


@app.command()
def nuke(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be deleted"),
):
    """Delete every local artifact and wipe the whole remote."""
    _confirm("Delete ALL local artifacts and wipe the ENTIRE remote?", yes, dry_run)

    orchestrator = _get_orchestrator()
    result = orchestrator.nuke(dry_run=dry_run)

    for label, half, error in (
        ("Local", result.local, result.local_error),
        ("Remote", result.remote, result.remote_error),
    ):
        console.print(f"\n[bold]{label}[/bold]")
        if error:
            console.print(f"[red]{escape(error)}[/red]")
        elif half is not None:
            console.print(orchestrator.apply_summary(half))
            _report_partial(half)

    if result.local_error or result.remote_error:
        raise typer.Exit(1)


@app.command()
def version():
    """Show CSS Channels version."""
    from css_channels import __version__

    console.print(f"CSS Channels v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
