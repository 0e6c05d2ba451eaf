"""Material nesting optimizer.

Public entry point for sheet nesting. Picks candidate sheets, dispatches
to a search driver and converts the best candidate into a validated
layout, reporting progress through callbacks along the way.
"""

import asyncio
import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from functools import partial
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from nestlab.nesting.algorithms import get_driver
from nestlab.nesting.events import (
    CancellationToken,
    EventCallback,
    EventEmitter,
    EventType,
    OptimizationEvent,
)
from nestlab.nesting.fitness import FitnessEvaluator
from nestlab.nesting.geometry import find_valid_placements, validate_placement
from nestlab.nesting.layout import build_result
from nestlab.nesting.models import (
    Algorithm,
    OptimizationConfig,
    OptimizationResult,
    Part,
    Sheet,
    expand_parts,
)
from nestlab.nesting.sheet_selector import select_optimal_sheet_sizes
from nestlab.utils import get_logger

logger = get_logger("nesting.optimizer")

OBJECTIVES = ("efficiency", "cost", "sheets")


@dataclass
class OptimizerMetrics:
    """Aggregate diagnostics across runs."""
    total_time_ms: int = 0
    runs: int = 0
    last_time_ms: int = 0
    last_efficiency: float = 0.0
    failed_runs: int = 0

    @property
    def average_time_ms(self) -> float:
        return self.total_time_ms / self.runs if self.runs else 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total_time_ms": self.total_time_ms,
            "runs": self.runs,
            "average_time_ms": self.average_time_ms,
            "last_time_ms": self.last_time_ms,
            "last_efficiency": self.last_efficiency,
            "failed_runs": self.failed_runs,
        }


class MaterialOptimizer:
    """
    Nesting optimizer for stock sheets.

    Runs share nothing but the event callbacks and the metrics counters,
    so one optimizer can serve many concurrent runs.
    """

    def __init__(self, config: Optional[OptimizationConfig] = None, seed: Optional[int] = None):
        """
        Initialize optimizer.

        Args:
            config: Default run configuration (from settings if omitted)
            seed: Seed for the per-run seed source, for reproducible runs
        """
        self.config = config or OptimizationConfig.from_settings()
        self.events = EventEmitter()
        self._seed_source = random.Random(seed)
        self._seed_lock = threading.Lock()
        self._metrics = OptimizerMetrics()
        self._metrics_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    # Callbacks

    def register_callback(self, callback: EventCallback) -> None:
        """Register a callback for optimization events."""
        self.events.register_callback(callback)

    def unregister_callback(self, callback: EventCallback) -> None:
        """Remove an event callback."""
        self.events.unregister_callback(callback)

    # Main entry points

    def optimize_nesting(
        self,
        parts: List[Part],
        available_sheets: List[Sheet],
        config: Optional[OptimizationConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OptimizationResult:
        """
        Nest parts onto the best-suited stock sheets.

        Never raises: empty input gives a zero-valued result and failures
        give a zero-valued result with `error_message` set.
        """
        config = config or self.config
        return self._execute(config.algorithm, parts, available_sheets, config, cancel_token, select_sheets=True)

    async def optimize_nesting_async(
        self,
        parts: List[Part],
        available_sheets: List[Sheet],
        config: Optional[OptimizationConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OptimizationResult:
        """Run `optimize_nesting` on a worker thread without blocking the loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._get_executor(),
            partial(self.optimize_nesting, parts, available_sheets, config, cancel_token),
        )

    def submit_nesting(
        self,
        parts: List[Part],
        available_sheets: List[Sheet],
        config: Optional[OptimizationConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "Future[OptimizationResult]":
        """Queue a run on the worker pool and return its future."""
        return self._get_executor().submit(self.optimize_nesting, parts, available_sheets, config, cancel_token)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    # Individual algorithms, without sheet selection

    def genetic_algorithm_optimization(self, parts, sheets, config=None) -> OptimizationResult:
        return self._execute(Algorithm.GENETIC, parts, sheets, config or self.config)

    def simulated_annealing_optimization(self, parts, sheets, config=None) -> OptimizationResult:
        return self._execute(Algorithm.SIMULATED_ANNEALING, parts, sheets, config or self.config)

    def particle_swarm_optimization(self, parts, sheets, config=None) -> OptimizationResult:
        return self._execute(Algorithm.PARTICLE_SWARM, parts, sheets, config or self.config)

    def multi_objective_optimization(
        self,
        parts: List[Part],
        sheets: List[Sheet],
        objectives: Sequence[str] = OBJECTIVES,
        config: Optional[OptimizationConfig] = None,
    ) -> OptimizationResult:
        """
        Run one optimization per objective and return a compromise.

        Every objective currently runs the genetic algorithm with the same
        settings, and the compromise is the first objective's result.
        """
        base = config or self.config
        front: List[Tuple[str, OptimizationResult]] = []

        for objective in objectives:
            if objective not in OBJECTIVES:
                logger.warning(f"Unknown objective '{objective}', running default optimization")
            objective_config = replace(base, algorithm=Algorithm.GENETIC)
            front.append((objective, self.optimize_nesting(parts, sheets, objective_config)))

        if not front:
            return OptimizationResult.empty()

        # TODO: pick by Pareto dominance once objectives get their own fitness weights
        return front[0][1]

    # Placement model pass-throughs

    def validate_placement(self, part, position, rotation, sheet_size, existing_positions) -> bool:
        return validate_placement(
            part, position, rotation, sheet_size, existing_positions, self.config.min_part_distance
        )

    def find_valid_placements(self, part, sheet_size, existing_positions) -> List[Tuple[float, float]]:
        return find_valid_placements(part, sheet_size, existing_positions, self.config.min_part_distance)

    def select_optimal_sheet_sizes(self, parts: List[Part], available_sheets: List[Sheet]) -> List[Sheet]:
        return select_optimal_sheet_sizes(parts, available_sheets)

    # Metrics

    def get_optimization_metrics(self) -> OptimizerMetrics:
        """Snapshot of aggregate run metrics."""
        with self._metrics_lock:
            return replace(self._metrics)

    def reset_performance_metrics(self) -> None:
        with self._metrics_lock:
            self._metrics = OptimizerMetrics()

    # Internals

    def _execute(
        self,
        algorithm,
        parts: List[Part],
        sheets: List[Sheet],
        config: OptimizationConfig,
        cancel_token: Optional[CancellationToken] = None,
        select_sheets: bool = False,
    ) -> OptimizationResult:
        start = time.monotonic()
        run_id = str(uuid4())[:8]
        algorithm = Algorithm.parse(algorithm)
        failed = False

        self.events.emit(OptimizationEvent(type=EventType.STARTED, run_id=run_id, algorithm=algorithm.value))

        try:
            if not parts or not sheets:
                result = OptimizationResult.empty()
            else:
                if select_sheets:
                    sheets = select_optimal_sheet_sizes(parts, sheets)
                result = self._run(algorithm, parts, sheets, config, cancel_token, run_id)
        except Exception as e:
            logger.exception(f"Material optimization failed: {e}")
            result = OptimizationResult.empty(error_message=str(e))
            failed = True

        result.algorithm = algorithm.value
        result.optimization_time_ms = int((time.monotonic() - start) * 1000)

        metrics = self._record(result, failed)
        self.events.emit(OptimizationEvent(
            type=EventType.METRICS_UPDATED, run_id=run_id, algorithm=algorithm.value, metrics=metrics,
        ))

        logger.info(
            f"Material optimization completed in {result.optimization_time_ms}ms: "
            f"{result.total_efficiency:.1f}% efficiency, {result.total_sheets_used} sheets"
        )
        self.events.emit(OptimizationEvent(
            type=EventType.COMPLETED,
            run_id=run_id,
            algorithm=algorithm.value,
            iteration=result.iterations_run,
            percent=100,
            best_fitness=result.best_fitness,
            result=result,
        ))
        return result

    def _run(self, algorithm, parts, sheets, config, cancel_token, run_id) -> OptimizationResult:
        instances = expand_parts(parts)
        sheet = sheets[0]
        logger.info(
            f"Starting {algorithm.value} run {run_id}: {len(instances)} instances on sheet "
            f"{sheet.id} ({sheet.width}x{sheet.height})"
        )

        evaluator = FitnessEvaluator(instances, sheet, config)
        driver = get_driver(algorithm)(
            evaluator,
            config,
            rng=random.Random(self._next_seed(config)),
            emitter=self.events,
            cancel_token=cancel_token,
            run_id=run_id,
        )
        outcome = driver.run()

        result = build_result(evaluator, outcome.best_candidate)
        result.best_fitness = outcome.best_fitness
        result.iterations_run = outcome.iterations
        result.stopped_early = outcome.stopped_early
        return result

    def _next_seed(self, config: OptimizationConfig) -> int:
        if config.seed is not None:
            return config.seed
        with self._seed_lock:
            return self._seed_source.randrange(2 ** 32)

    def _record(self, result: OptimizationResult, failed: bool) -> OptimizerMetrics:
        with self._metrics_lock:
            self._metrics.total_time_ms += result.optimization_time_ms
            self._metrics.runs += 1
            self._metrics.last_time_ms = result.optimization_time_ms
            self._metrics.last_efficiency = result.total_efficiency
            if failed:
                self._metrics.failed_runs += 1
            return replace(self._metrics)

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.max_workers,
                    thread_name_prefix="nesting",
                )
            return self._executor


# Convenience functions
def create_optimizer(algorithm: str = "genetic", seed: Optional[int] = None, **overrides) -> MaterialOptimizer:
    """Create an optimizer with settings defaults and overrides."""
    config = replace(OptimizationConfig.from_settings(), algorithm=Algorithm.parse(algorithm), **overrides)
    return MaterialOptimizer(config=config, seed=seed)


def optimize_nesting(
    parts: List[Part],
    sheets: List[Sheet],
    algorithm: str = "genetic",
    **overrides,
) -> OptimizationResult:
    """
    Nest parts onto sheets in one call.

    Args:
        parts: Parts to place
        sheets: Candidate stock sheets
        algorithm: genetic, simulated_annealing or particle_swarm
        **overrides: OptimizationConfig fields

    Returns:
        Optimization result
    """
    return create_optimizer(algorithm, **overrides).optimize_nesting(parts, sheets)
