"""Shared utilities for NestLab."""

import logging

from rich.console import Console
from rich.logging import RichHandler

# Rich console for pretty output
console = Console()


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Set up logging with Rich handler."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    return logging.getLogger("nestlab")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module."""
    return logging.getLogger(f"nestlab.{name}")


def format_duration(seconds: float) -> str:
    """Format duration in seconds as human-readable string."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    minutes = seconds // 60
    secs = seconds % 60
    return f"{minutes:.0f}m {secs:.0f}s"


def format_area(value: float, unit: str = "sq in") -> str:
    """Format an area with its unit."""
    return f"{value:,.1f} {unit}"
