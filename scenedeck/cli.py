"""
scenedeck.cli - Typer CLI entry point.

Vault maintenance commands: create a vault, import media as cuts, inspect
the asset index and the trash, and check a project for missing files.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from scenedeck import __version__
from scenedeck.commands import ImportCutCommand
from scenedeck.exceptions import SceneDeckError
from scenedeck.index import load_index, verify_vault
from scenedeck.logging import configure_logging
from scenedeck.project import Vault, find_vault_dir
from scenedeck.session import load_project, open_project
from scenedeck.trash import purge_expired_trash, read_trash_index, write_trash_index
from scenedeck.utils import format_duration, format_size, parse_iso

app = typer.Typer(
    name="scenedeck",
    help="Vault-backed storyboard projects.\n\n"
    "Manages the content-addressed asset vault behind a SceneDeck project: "
    "importing media, checking for missing files, and the trash.",
    add_completion=False,
)
trash_app = typer.Typer(help="Inspect and empty the vault trash.")
app.add_typer(trash_app, name="trash")
console = Console()

VAULT_OPTION = typer.Option(None, "--vault", "-d", help="Vault directory (default: search upwards)")


def resolve_vault(vault: str | None) -> Vault:
    """Vault from --vault, or the nearest directory holding project.sdp."""
    if vault:
        vault_dir = Path(vault).expanduser().resolve()
    else:
        vault_dir = find_vault_dir()
    if vault_dir is None or not Vault(vault_dir).exists():
        console.print("[red]Error: Not in a SceneDeck vault[/red]")
        console.print("[dim]Run 'scenedeck init' first or pass --vault[/dim]")
        raise typer.Exit(1)
    return Vault(vault_dir)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"scenedeck {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """SceneDeck - vault-backed storyboard projects."""
    configure_logging(verbose)


@app.command("init")
def init_vault(
    name: str = typer.Argument(..., help="Project name"),
    path: str = typer.Option(".", "--path", "-d", help="Directory to create the vault in"),
) -> None:
    """Create a new vault with an empty project."""
    vault_path = Path(path) / name

    if (vault_path / "project.sdp").exists():
        console.print(f"[red]Error: '{vault_path}' already holds a project[/red]")
        raise typer.Exit(1)

    try:
        Vault(vault_path).create(name)
    except (SceneDeckError, OSError) as e:
        console.print(f"[red]Error creating vault: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Created vault '{name}'")
    console.print(f"[dim]  {vault_path}[/dim]")
    console.print("\nNext steps:")
    console.print(f"  cd {vault_path}")
    console.print("  scenedeck import <media_files>")


@app.command("import")
def import_files(
    files: list[str] = typer.Argument(..., help="Image, video or audio file(s) to import"),
    scene: str = typer.Option(None, "--scene", "-s", help="Scene name or id (default: first scene)"),
    vault: str = VAULT_OPTION,
) -> None:
    """Import files into the vault and add them as cuts."""
    target = resolve_vault(vault)
    paths = []
    for file in files:
        source = Path(file).expanduser().resolve()
        if not source.exists():
            console.print(f"[yellow]Skipping {file}: not found[/yellow]")
            continue
        paths.append(source)
    if not paths:
        console.print("[red]Error: No files to import[/red]")
        raise typer.Exit(1)

    try:
        commands = asyncio.run(_import(target, paths, scene))
    except SceneDeckError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Imported")
    table.add_column("File", style="cyan")
    table.add_column("Asset", style="dim")
    table.add_column("Length", style="green")
    table.add_column("Status", style="yellow")
    for command in commands:
        result = command.result
        if result is None:
            continue
        if result.import_result is None:
            status = "[red]Unmanaged[/red]"
        elif result.import_result.is_duplicate:
            status = "[dim]Duplicate[/dim]"
        else:
            status = "[green]Imported[/green]"
        table.add_row(command.source.name, result.asset.id, format_duration(result.display_time), status)
    console.print(table)
    console.print(f"\n[green]✓[/green] Added {len(commands)} cut(s)")


async def _import(vault: Vault, paths: list[Path], scene: str | None) -> list[ImportCutCommand]:
    session = await open_project(vault.path)
    state = session.state
    if scene:
        found = next((s for s in state.scenes if s.id == scene or s.name == scene), None)
        scene_id = found.id if found else state.add_scene(scene)
    elif state.scenes:
        scene_id = state.scenes[0].id
    else:
        scene_id = state.add_scene()
    commands = await session.import_files(scene_id, paths)
    await session.save()
    await session.close()
    return commands


@app.command("index")
def show_index(vault: str = VAULT_OPTION) -> None:
    """List the assets in the vault index in storyline order."""
    target = resolve_vault(vault)
    index = load_index(target.path)
    if not index.assets:
        console.print("[dim]The asset index is empty[/dim]")
        raise typer.Exit(0)

    table = Table(title=f"Assets ({len(index.assets)})")
    table.add_column("ID", style="dim")
    table.add_column("File", style="cyan")
    table.add_column("Original")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Uses", justify="right", style="green")
    for entry in index.assets:
        table.add_row(
            entry.id,
            entry.filename,
            entry.original_name,
            entry.type,
            format_size(entry.file_size),
            str(len(entry.usage_refs)),
        )
    console.print(table)


@app.command("verify")
def verify(vault: str = VAULT_OPTION) -> None:
    """Compare the asset index with the files in assets/."""
    target = resolve_vault(vault)
    report = verify_vault(target.path)

    if report["valid"]:
        console.print("[green]✓[/green] Every indexed file is present")
    for filename in report["missing"]:
        console.print(f"[red]✗ Missing:[/red] {filename}")
    for filename in report["orphaned"]:
        console.print(f"[yellow]? Not indexed:[/yellow] {filename}")
    if report["missing"]:
        raise typer.Exit(1)


@app.command("check")
def check(vault: str = VAULT_OPTION) -> None:
    """Load the project and report cuts whose files are missing."""
    target = resolve_vault(vault)
    try:
        pending = asyncio.run(load_project(target.project_path))
    except SceneDeckError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    cut_count = sum(len(scene.cuts) for scene in pending.resolution.scenes)
    if not pending.needs_recovery:
        console.print(f"[green]✓[/green] All {cut_count} cut(s) resolve to existing files")
        return

    scene_names = {scene.id: scene.name for scene in pending.resolution.scenes}
    table = Table(title=f"Missing assets ({len(pending.missing)})")
    table.add_column("Scene", style="cyan")
    table.add_column("Cut", style="dim")
    table.add_column("Asset")
    table.add_column("Expected at", style="red")
    for info in pending.missing:
        table.add_row(scene_names.get(info.scene_id, info.scene_id), info.cut_id, info.name, info.asset.path)
    console.print(table)
    raise typer.Exit(1)


@trash_app.command("list")
def trash_list(vault: str = VAULT_OPTION) -> None:
    """List trashed files."""
    target = resolve_vault(vault)
    index = read_trash_index(target.trash_dir)
    if not index.items:
        console.print("[dim]The trash is empty[/dim]")
        raise typer.Exit(0)

    table = Table(title=f"Trash (kept {index.retention_days} days)")
    table.add_column("ID", style="dim")
    table.add_column("File", style="cyan")
    table.add_column("Deleted")
    table.add_column("Reason", style="yellow")
    table.add_column("From")
    for item in index.items:
        deleted = parse_iso(item.deleted_at)
        table.add_row(
            item.id,
            item.filename,
            deleted.strftime("%Y-%m-%d %H:%M") if deleted else item.deleted_at,
            item.reason or "-",
            item.original_path or "-",
        )
    console.print(table)


@trash_app.command("purge")
def trash_purge(
    all_items: bool = typer.Option(False, "--all", help="Delete everything, not only expired items"),
    vault: str = VAULT_OPTION,
) -> None:
    """Delete trashed files past their retention period."""
    target = resolve_vault(vault)
    index = read_trash_index(target.trash_dir)
    before = len(index.items)
    now = datetime.now(timezone.utc)
    if all_items:
        now += timedelta(days=index.retention_days + 1)
    purged = purge_expired_trash(target.trash_dir, index, now=now)
    write_trash_index(target.trash_dir, purged)
    console.print(f"[green]✓[/green] Purged {before - len(purged.items)} item(s)")


if __name__ == "__main__":
    app()
