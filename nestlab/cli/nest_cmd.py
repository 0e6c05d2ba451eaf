"""CLI commands for sheet nesting."""

import json
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from nestlab.nesting.models import Algorithm, OptimizationConfig, Part, Sheet
from nestlab.utils import format_duration

console = Console()

ALGORITHM_CHOICES = [a.value for a in Algorithm]


def _parse_size(spec: str) -> Tuple[float, float, Optional[str]]:
    """Split 'WxH[:extra]' into width, height and the extra field."""
    size, _, extra = spec.partition(":")
    try:
        width, height = (float(v) for v in size.lower().split("x"))
    except ValueError:
        raise click.BadParameter(f"expected WIDTHxHEIGHT, got '{spec}'")
    return width, height, extra or None


def parse_part_spec(spec: str, index: int) -> Part:
    """Parse 'WxH[:qty]' into a part."""
    width, height, extra = _parse_size(spec)
    try:
        quantity = int(extra) if extra else 1
        return Part(id=f"part{index + 1}", name=f"Part {index + 1}", width=width, height=height, quantity=quantity)
    except ValueError as e:
        raise click.BadParameter(str(e))


def parse_sheet_spec(spec: str, index: int) -> Sheet:
    """Parse 'WxH[:cost]' into a sheet."""
    width, height, extra = _parse_size(spec)
    try:
        cost = float(extra) if extra else 0.0
        return Sheet(id=f"sheet{index + 1}", name=f"Sheet {index + 1}", width=width, height=height, cost=cost)
    except ValueError as e:
        raise click.BadParameter(str(e))


def load_job(path: Path) -> Tuple[List[Part], List[Sheet], dict]:
    """Load parts, sheets and config overrides from a JSON job file."""
    try:
        data = json.loads(path.read_text())
        parts = [Part.from_dict(p) for p in data.get("parts", [])]
        sheets = [Sheet.from_dict(s) for s in data.get("sheets", [])]
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
        raise click.BadParameter(f"invalid job file {path}: {e}")
    return parts, sheets, data.get("config", {})


@click.group()
def nest() -> None:
    """Sheet nesting commands."""
    pass


@nest.command("run")
@click.option("--job", "-j", "job_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON file with parts, sheets and config")
@click.option("--part", "part_specs", multiple=True, help="Part as WxH[:qty], repeatable")
@click.option("--sheet", "sheet_specs", multiple=True, help="Sheet as WxH[:cost], repeatable")
@click.option("--algorithm", "-a", type=click.Choice(ALGORITHM_CHOICES), default=None, help="Search algorithm")
@click.option("--generations", "-g", type=int, default=None, help="Generations / iterations")
@click.option("--population", "-p", type=int, default=None, help="Population / swarm size")
@click.option("--seed", type=int, default=None, help="Random seed for reproducible runs")
@click.option("--no-rotation", is_flag=True, help="Disallow part rotation")
@click.option("--report", type=click.Path(dir_okay=False, path_type=Path), help="Write a cutting report")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def nest_run(job_file, part_specs, sheet_specs, algorithm, generations, population, seed,
             no_rotation, report, as_json):
    """Optimize a layout of parts on stock sheets.

    Example: nestlab nest run --part 20x20:5 --sheet 100x50:40 -a genetic
    """
    from nestlab.nesting import MaterialOptimizer, EventType, export_layout

    parts: List[Part] = []
    sheets: List[Sheet] = []
    overrides: dict = {}
    if job_file:
        parts, sheets, overrides = load_job(job_file)
    parts += [parse_part_spec(s, len(parts) + i) for i, s in enumerate(part_specs)]
    sheets += [parse_sheet_spec(s, len(sheets) + i) for i, s in enumerate(sheet_specs)]

    if not parts or not sheets:
        console.print("[red]Error: Provide at least one part and one sheet[/red]")
        raise SystemExit(1)

    cli_overrides = {
        "algorithm": algorithm,
        "max_generations": generations,
        "population_size": population,
        "seed": seed,
    }
    try:
        config = OptimizationConfig.from_settings()
        config = OptimizationConfig.from_dict({**config.to_dict(), **overrides})
        config = replace(config, **{k: v for k, v in cli_overrides.items() if v is not None})
        if no_rotation:
            config = replace(config, allow_rotation=False)
    except (TypeError, ValueError) as e:
        raise click.BadParameter(f"invalid optimization settings: {e}")

    optimizer = MaterialOptimizer(config=config)

    if as_json:
        result = optimizer.optimize_nesting(parts, sheets)
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f"Nesting ({config.algorithm.value})", total=100)

        def on_event(event):
            if event.type == EventType.PROGRESS:
                progress.update(task, completed=event.percent,
                                description=f"Nesting ({config.algorithm.value}) best={event.best_fitness:.4f}")
            elif event.type == EventType.COMPLETED:
                progress.update(task, completed=100)

        optimizer.register_callback(on_event)
        result = optimizer.optimize_nesting(parts, sheets)

    if not result.success:
        console.print(f"[red]Optimization failed: {result.error_message}[/red]")
        raise SystemExit(1)

    summary = (
        f"[bold cyan]Efficiency:[/bold cyan] {result.total_efficiency:.1f}%\n"
        f"[bold green]Sheets Used:[/bold green] {result.total_sheets_used}\n"
        f"[bold yellow]Total Cost:[/bold yellow] ${result.total_cost:.2f}\n"
        f"[bold]Iterations:[/bold] {result.iterations_run}"
        f"{' (stopped early)' if result.stopped_early else ''}\n"
        f"[bold]Time:[/bold] {format_duration(result.optimization_time_ms / 1000)}"
    )
    console.print(Panel(summary, title=f"Nesting Result - {result.algorithm}"))

    table = Table(title="Placements")
    table.add_column("Part", style="cyan")
    table.add_column("Sheet", justify="right")
    table.add_column("X", justify="right")
    table.add_column("Y", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Rotation", justify="right", style="dim")

    for placement in result.placements:
        table.add_row(
            placement.instance_id,
            str(placement.sheet_index + 1),
            f"{placement.x:.2f}",
            f"{placement.y:.2f}",
            f"{placement.width:.2f}x{placement.height:.2f}",
            f"{placement.rotation:.0f}°",
        )
    console.print(table)

    if result.unplaced_parts:
        console.print(f"[yellow]Unplaced: {', '.join(result.unplaced_parts)}[/yellow]")

    if report:
        report.write_text(export_layout(result))
        console.print(f"[green]Report written to {report}[/green]")


@nest.command("select")
@click.option("--part", "part_specs", multiple=True, required=True, help="Part as WxH[:qty], repeatable")
@click.option("--sheet", "sheet_specs", multiple=True, required=True, help="Sheet as WxH[:cost], repeatable")
def nest_select(part_specs, sheet_specs):
    """Show which stock sheets suit the parts."""
    from nestlab.nesting import select_optimal_sheet_sizes

    parts = [parse_part_spec(s, i) for i, s in enumerate(part_specs)]
    sheets = [parse_sheet_spec(s, i) for i, s in enumerate(sheet_specs)]
    selected = {s.id for s in select_optimal_sheet_sizes(parts, sheets)}
    total_area = sum(p.area * p.quantity for p in parts)

    table = Table(title="Sheet Selection")
    table.add_column("Sheet", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Cost", justify="right", style="green")
    table.add_column("Fill", justify="right")
    table.add_column("Selected", justify="center")

    for sheet in sheets:
        table.add_row(
            sheet.id,
            f"{sheet.width:g}x{sheet.height:g}",
            f"${sheet.cost:.2f}",
            f"{total_area / sheet.area * 100:.1f}%",
            "[green]yes[/green]" if sheet.id in selected else "",
        )
    console.print(table)
