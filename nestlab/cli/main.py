"""Main CLI entry point for NestLab."""

import click
from rich.console import Console

from nestlab import __version__
from nestlab.utils import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="NestLab")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """NestLab - sheet material nesting optimizer.

    Lays out cut parts on stock sheets with genetic, simulated annealing
    or particle swarm search.
    """
    from nestlab.config import get_settings

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging("DEBUG" if verbose else get_settings().log_level)


# Import and register command groups
from nestlab.cli.nest_cmd import nest

cli.add_command(nest)


@cli.command()
def status() -> None:
    """Show optimizer configuration."""
    from nestlab.config import get_settings

    settings = get_settings()

    console.print("[bold]NestLab Status[/bold]")
    console.print(f"Version: {__version__}")
    console.print()
    console.print("[bold]Optimizer Defaults:[/bold]")
    console.print(f"  Algorithm: {settings.algorithm}")
    console.print(f"  Population: {settings.population_size}")
    console.print(f"  Generations: {settings.max_generations}")
    console.print(f"  Mutation / Crossover / Elitism: "
                  f"{settings.mutation_rate} / {settings.crossover_rate} / {settings.elitism_rate}")
    console.print(f"  Min Part Distance: {settings.min_part_distance}")
    console.print(f"  Rotation: {'[green]Allowed[/green]' if settings.allow_rotation else '[yellow]Off[/yellow]'}")
    console.print(f"  Time Budget: {settings.max_optimization_time_ms}ms")
    console.print(f"  Seed: {settings.random_seed if settings.random_seed is not None else 'random'}")


if __name__ == "__main__":
    cli()
