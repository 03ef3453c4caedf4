"""CLI commands for canvaspipe using Typer and Rich.

Commands:
- generate: Run a GENERATE step and print the new asset
- run: Enqueue and run a step of any kind on input assets
- import: Register a local file as an uploaded asset
- assets / steps / canvases: List library state in tables
- optimize: Apply retention limits and migrate expired assets
- migrate: Migrate expired assets only
- mask: Normalize a painted mask file and print its quality report
- export: Write asset content to the media exports directory
- stats: Show storage statistics
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from canvaspipe.config import settings
from canvaspipe.editor import MediaEditor
from canvaspipe.errors import CanvasPipeError, MaskError, StepFailedError
from canvaspipe.orchestrator.state import STEP_KINDS
from canvaspipe.services.mask_processor import normalize_mask
from canvaspipe.services.media_store import extension_for
from canvaspipe.services.notifications import ConsoleNotifier

app = typer.Typer(name="canvaspipe", help="Pipeline step engine for AI image generation and editing")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _open_editor(optimize: bool = True) -> MediaEditor:
    editor = await MediaEditor.create(hydrate=False, notifier=ConsoleNotifier(console))
    await editor.hydrate(optimize=optimize)
    return editor


def _parse_params(params: Optional[str]) -> dict:
    if not params:
        return {}
    try:
        parsed = json.loads(params)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] --params must be a JSON object: {e}")
        raise typer.Exit(code=1)
    if not isinstance(parsed, dict):
        console.print("[red]Error:[/red] --params must be a JSON object")
        raise typer.Exit(code=1)
    return parsed


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="Text prompt for image generation"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Generate provider key"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed"),
    aspect: Optional[str] = typer.Option(None, "--aspect", "-a", help="Aspect ratio, e.g. 1:1"),
):
    """Generate a new image from a text prompt."""
    asyncio.run(_generate_async(prompt, provider or settings.providers.default_generate_provider, seed, aspect))


async def _generate_async(prompt: str, provider: str, seed: Optional[int], aspect: Optional[str]):
    editor = await _open_editor()
    try:
        params = {"prompt": prompt}
        if seed is not None:
            params["seed"] = seed
        if aspect:
            params["aspect"] = aspect
        with console.status(f"[bold green]Generating on {provider}..."):
            asset = await editor.generate_directly(params, provider)
        console.print(f"[green]Asset:[/green] {asset.id}  {asset.name}")
        console.print(f"[green]Source:[/green] {asset.src[:96]}")
    except StepFailedError as e:
        console.print(f"[red]✗ Generation failed:[/red] {e.error}")
        raise typer.Exit(code=1)
    finally:
        await editor.close()


@app.command()
def run(
    kind: str = typer.Argument(..., help=f"Step kind: {', '.join(STEP_KINDS)}"),
    provider: str = typer.Argument(..., help="Provider key, e.g. editor.mock"),
    inputs: List[str] = typer.Option([], "--input", "-i", help="Input asset id (repeatable)"),
    params: Optional[str] = typer.Option(None, "--params", help="Step params as a JSON object"),
):
    """Enqueue and run a pipeline step."""
    asyncio.run(_run_async(kind.upper(), provider, inputs, _parse_params(params)))


async def _run_async(kind: str, provider: str, inputs: list[str], params: dict):
    editor = await _open_editor()
    try:
        step_id = editor.enqueue_step(kind, inputs, params, provider)
        with console.status(f"[bold green]Running {kind}..."):
            await editor.run_step(step_id)
        step = editor.engine.get_step(step_id)
        color = _get_status_color(step.status)
        console.print(f"Step {step.id}: [{color}]{step.status}[/{color}]")
        if step.status == "done":
            console.print(f"[green]Output asset:[/green] {step.output_asset_id}")
        else:
            console.print(f"[red]Error:[/red] {step.error}")
            raise typer.Exit(code=1)
    finally:
        await editor.close()


@app.command(name="import")
def import_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to import"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Asset name"),
):
    """Import a local file as an uploaded asset."""
    asyncio.run(_import_async(path, name))


async def _import_async(path: Path, name: Optional[str]):
    editor = await _open_editor()
    try:
        asset = await editor.assets.import_file(path, name)
        console.print(f"[green]✓[/green] Imported {asset.name} as {asset.id}")
    finally:
        await editor.close()


@app.command()
def assets(
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Filter by category"),
):
    """List assets, newest first."""
    asyncio.run(_assets_async(category))


async def _assets_async(category: Optional[str]):
    editor = await _open_editor(optimize=False)
    try:
        items = editor.assets.list_assets(category)
        if not items:
            console.print("[yellow]No assets found[/yellow]")
            return

        table = Table(show_header=True, header_style="bold blue")
        table.add_column("ID", style="dim")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Category")
        table.add_column("Source")
        table.add_column("Created")
        for asset in items:
            category_display = asset.category or "-"
            if asset.subcategory:
                category_display += f" / {asset.subcategory}"
            table.add_row(
                asset.id[:8] + "...",
                asset.name if len(asset.name) <= 40 else asset.name[:37] + "...",
                asset.type,
                category_display,
                asset.src.split(":", 1)[0],
                asset.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)
    finally:
        await editor.close()


@app.command()
def steps(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
):
    """List pipeline steps, newest first."""
    asyncio.run(_steps_async(status))


async def _steps_async(status: Optional[str]):
    editor = await _open_editor(optimize=False)
    try:
        items = editor.engine.list_steps(status)
        if not items:
            console.print("[yellow]No steps found[/yellow]")
            return

        table = Table(show_header=True, header_style="bold blue")
        table.add_column("ID", style="dim")
        table.add_column("Kind")
        table.add_column("Provider")
        table.add_column("Status")
        table.add_column("Output / Error")
        table.add_column("Updated")
        for step in items:
            color = _get_status_color(step.status)
            detail = step.output_asset_id or step.error or ""
            table.add_row(
                step.id[:8] + "...",
                step.kind,
                step.provider,
                f"[{color}]{step.status}[/{color}]",
                detail if len(detail) <= 50 else detail[:47] + "...",
                step.updated_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)
    finally:
        await editor.close()


@app.command()
def canvases():
    """List canvases; the active one is marked."""
    asyncio.run(_canvases_async())


async def _canvases_async():
    editor = await _open_editor(optimize=False)
    try:
        items = editor.canvases.list_canvases()
        if not items:
            console.print("[yellow]No canvases found[/yellow]")
            return

        active_id = editor.state.active_canvas_id
        table = Table(show_header=True, header_style="bold blue")
        table.add_column("", width=1)
        table.add_column("ID", style="dim")
        table.add_column("Name")
        table.add_column("Asset")
        table.add_column("Created")
        for canvas in items:
            table.add_row(
                "*" if canvas.id == active_id else "",
                canvas.id[:8] + "...",
                canvas.name,
                canvas.asset.name if canvas.asset else "[dim]empty[/dim]",
                canvas.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)
    finally:
        await editor.close()


@app.command()
def optimize():
    """Prune old canvases and steps, then migrate expired assets."""
    asyncio.run(_optimize_async())


async def _optimize_async():
    editor = await _open_editor(optimize=False)
    try:
        with console.status("[bold green]Optimizing storage..."):
            report = await editor.persistence.optimize_storage()
        console.print(Panel(
            f"Canvases pruned: {report.canvases_removed}\n"
            f"Steps pruned: {report.steps_removed}\n"
            f"Assets migrated: {report.assets_migrated}",
            title="Storage optimized",
        ))
    finally:
        await editor.close()


@app.command()
def migrate():
    """Copy transient asset content into durable media storage."""
    asyncio.run(_migrate_async())


async def _migrate_async():
    editor = await _open_editor(optimize=False)
    try:
        with console.status("[bold green]Migrating expired assets..."):
            count = await editor.persistence.migrate_expired_assets()
        console.print(f"[green]✓[/green] Migrated {count} asset(s)")
    finally:
        await editor.close()


@app.command()
def mask(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Painted mask image"),
    output: Path = typer.Option(Path("mask.png"), "--output", "-o", help="Normalized mask output"),
    padding: Optional[int] = typer.Option(None, "--padding", help="Dilation radius in pixels"),
    feather: Optional[float] = typer.Option(None, "--feather", help="Feather radius"),
    invert: bool = typer.Option(False, "--invert", help="Invert output (development mode only)"),
):
    """Normalize a painted mask and report its quality."""
    try:
        normalized = normalize_mask(source.read_bytes(), padding, feather, invert=invert)
    except MaskError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    output.write_bytes(normalized.to_png_bytes())
    report = normalized.report
    validity = "[green]valid[/green]" if report.is_valid else "[red]invalid[/red]"
    lines = [
        f"Status: {validity}",
        f"Coverage: {report.coverage:.2%} ({report.area} px)",
        f"Aspect ratio: {report.aspect_ratio:.2f}",
    ]
    lines += [f"[yellow]Warning:[/yellow] {w}" for w in report.warnings]
    lines += [f"[dim]Suggestion:[/dim] {s}" for s in report.suggestions]
    console.print(Panel("\n".join(lines), title=str(output)))


@app.command()
def export(
    asset_ids: List[str] = typer.Argument(..., help="Asset ids to export"),
):
    """Export asset content to the media exports directory."""
    asyncio.run(_export_async(asset_ids))


async def _export_async(asset_ids: list[str]):
    editor = await _open_editor(optimize=False)
    try:
        exported = await editor.assets.export_assets(asset_ids)
        for item in exported:
            path = editor.persistence.media_store.save_export(
                f"{_safe_filename(item.name)}{extension_for(item.mime_type)}", item.data
            )
            console.print(f"[green]✓[/green] {path}")
    except CanvasPipeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        await editor.close()


@app.command()
def stats():
    """Show storage statistics."""
    asyncio.run(_stats_async())


async def _stats_async():
    editor = await _open_editor(optimize=False)
    try:
        s = editor.persistence.storage_stats()
        table = Table(show_header=False)
        table.add_row("Assets", str(s.assets))
        table.add_row("Transient assets", str(s.transient_assets))
        table.add_row("Steps", str(s.steps))
        table.add_row("Canvases", f"{s.canvases} / {settings.retention.max_canvases}")
        table.add_row("Gallery images", str(s.gallery_images))
        table.add_row("Snapshot size", f"{s.snapshot_bytes / 1024:.1f} KiB")
        console.print(table)
    finally:
        await editor.close()


def _safe_filename(name: str) -> str:
    cleaned = "".join(c if c.isalnum() or c in "-_ " else "_" for c in name).strip()
    return cleaned.replace(" ", "_") or "asset"


def _get_status_color(status: str) -> str:
    """Get Rich color for a step status.

    Color coding:
    - done: green
    - failed: red
    - running: yellow
    - queued: dim
    """
    if status == "done":
        return "green"
    elif status == "failed":
        return "red"
    elif status == "running":
        return "yellow"
    elif status == "queued":
        return "dim"
    else:
        return "white"
