"""Nesting module for optimizing part layout on stock sheets.

Provides genetic, simulated annealing and particle swarm search over
part placements with a shared fitness and placement model.
"""

from nestlab.nesting.events import CancellationToken, EventType, OptimizationEvent
from nestlab.nesting.layout import export_layout
from nestlab.nesting.models import (
    Algorithm,
    FitnessWeights,
    OptimizationConfig,
    OptimizationResult,
    Part,
    PartInstance,
    Placement,
    Sheet,
    expand_parts,
)
from nestlab.nesting.optimizer import (
    MaterialOptimizer,
    OptimizerMetrics,
    create_optimizer,
    optimize_nesting,
)
from nestlab.nesting.sheet_selector import select_optimal_sheet_sizes

__all__ = [
    "Algorithm",
    "CancellationToken",
    "EventType",
    "FitnessWeights",
    "MaterialOptimizer",
    "OptimizationConfig",
    "OptimizationEvent",
    "OptimizationResult",
    "OptimizerMetrics",
    "Part",
    "PartInstance",
    "Placement",
    "Sheet",
    "create_optimizer",
    "expand_parts",
    "export_layout",
    "optimize_nesting",
    "select_optimal_sheet_sizes",
]
