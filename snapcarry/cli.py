"""snapcarry CLI — mirror local snaps onto a portable offline store."""

import logging
import queue

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from snapcarry import __version__

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(config_path: str | None, keep: int | None):
    from snapcarry.config import load_config, validate_retention
    from snapcarry.errors import ConfigError

    try:
        config = load_config(config_path)
        if keep is not None:
            config.retention = validate_retention(keep)
    except ConfigError as e:
        raise click.BadParameter(str(e))
    return config


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """snapcarry — offline snap mirroring.

    Keep a portable destination store in sync with the snaps on this host,
    retaining a bounded number of revisions per snap.
    """
    _setup_logging(verbose)


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("destination", type=click.Path(file_okay=False))
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True),
              help="YAML configuration file")
@click.option("--keep", "-k", default=None, type=int, help="Revisions to keep per snap")
def sync(destination: str, config_path: str | None, keep: int | None):
    """Copy new snap revisions into DESTINATION and prune old ones."""
    from snapcarry.sync.runner import MirrorRun

    config = _load(config_path, keep)
    console.print(f"\n[bold blue]snapcarry[/] — Syncing to: {destination}\n")

    run = MirrorRun(config, destination)
    thread = run.start()

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        bar = progress.add_task("Waiting for first package", total=100)
        while True:
            try:
                event = run.progress.get(timeout=0.5)
            except queue.Empty:
                continue
            except KeyboardInterrupt:
                console.print("[yellow]Cancelling — finishing the current package...[/]")
                run.token.cancel()
                continue
            if event is None:
                break
            progress.update(bar, completed=event.percent, description=event.item)

    thread.join()
    result = run.result

    console.print(Panel(result.summary(), title="Sync Result"))
    if not result.ok:
        raise SystemExit(1)


# ── Plan ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("destination", type=click.Path(file_okay=False))
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True),
              help="YAML configuration file")
def plan(destination: str, config_path: str | None):
    """Show what a sync to DESTINATION would copy, without copying."""
    import subprocess

    from snapcarry.errors import SnapcarryError
    from snapcarry.sync.runner import MirrorRun

    config = _load(config_path, None)
    try:
        tasks = MirrorRun(config, destination).plan()
    except (SnapcarryError, subprocess.CalledProcessError) as e:
        console.print(f"[red]Plan failed:[/] {e}")
        raise SystemExit(1)

    if not tasks:
        console.print("[green]Destination is up to date.[/]")
        return

    table = Table(title=f"Planned Transfers ({len(tasks)})")
    table.add_column("Name", style="cyan")
    table.add_column("Revision", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Origin")

    for task in tasks:
        table.add_row(task.name, str(task.revision), str(task.size), task.origin.value)

    console.print(table)


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@click.argument("destination", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True),
              help="YAML configuration file")
def status(destination: str, config_path: str | None):
    """List the snaps stored in DESTINATION."""
    from snapcarry.inventory.destination import StoreLayout, scan_destination

    config = _load(config_path, None)
    inventory = scan_destination(
        destination, StoreLayout(config.payload_suffix, config.meta_suffix)
    )

    if not inventory.entries:
        console.print("[yellow]Destination holds no complete snaps.[/]")
    else:
        table = Table(title=f"Destination ({len(inventory.entries)} snaps)")
        table.add_column("Name", style="cyan")
        table.add_column("Revisions")
        table.add_column("Top", justify="right", style="green")

        for name, entry in sorted(inventory.entries.items()):
            revisions = ", ".join(str(r) for r in sorted(entry.revisions, reverse=True))
            table.add_row(name, revisions, str(entry.top))

        console.print(table)

    for orphan in inventory.orphans:
        console.print(f"  [red]![/] unpaired: {orphan}")


# ── Prune ────────────────────────────────────────────────────────────


@main.command()
@click.argument("destination", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True),
              help="YAML configuration file")
@click.option("--keep", "-k", default=None, type=int, help="Revisions to keep per snap")
def prune(destination: str, config_path: str | None, keep: int | None):
    """Repair broken pairs and prune old revisions in DESTINATION."""
    from snapcarry.inventory.destination import StoreLayout
    from snapcarry.sync.retention import pairing_sweep, retention_sweep

    config = _load(config_path, keep)
    layout = StoreLayout(config.payload_suffix, config.meta_suffix)

    orphans = pairing_sweep(destination, layout)
    pruned = retention_sweep(destination, config.retention, layout)

    for path in orphans:
        console.print(f"  [red]x[/] removed unpaired {path}")
    for pair in pruned:
        console.print(f"  [yellow]-[/] pruned {pair.filename_stem} ({pair.directory})")

    console.print(
        f"\n[green]Done.[/] {len(orphans)} unpaired file(s) removed, "
        f"{len(pruned)} old pair(s) pruned (keeping {config.retention})."
    )


if __name__ == "__main__":
    main()
