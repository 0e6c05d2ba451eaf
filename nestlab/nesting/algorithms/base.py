"""Shared driver machinery: random candidates, deadline and progress."""

import random
import time
from dataclasses import dataclass, field
from typing import List, Optional

from nestlab.nesting.events import CancellationToken, EventEmitter, EventType, OptimizationEvent
from nestlab.nesting.fitness import FitnessEvaluator
from nestlab.nesting.geometry import allowed_rotations, rotated_size
from nestlab.nesting.models import Algorithm, Candidate, Gene, OptimizationConfig
from nestlab.utils import get_logger

logger = get_logger("nesting.algorithms")


@dataclass
class SearchOutcome:
    """Best candidate found by a driver."""
    best_candidate: Candidate
    best_fitness: float
    iterations: int
    stopped_early: bool = False
    history: List[float] = field(default_factory=list)  # best fitness per iteration


class BaseDriver:
    """
    Base for optimization drivers.

    A driver owns all of its search state for one run. Subclasses
    implement `run`.
    """

    algorithm: Algorithm = Algorithm.GENETIC

    def __init__(
        self,
        evaluator: FitnessEvaluator,
        config: OptimizationConfig,
        rng: Optional[random.Random] = None,
        emitter: Optional[EventEmitter] = None,
        cancel_token: Optional[CancellationToken] = None,
        run_id: str = "",
    ):
        self.evaluator = evaluator
        self.config = config
        self.rng = rng or random.Random(config.seed)
        self.emitter = emitter or EventEmitter()
        self.cancel_token = cancel_token
        self.run_id = run_id

        self.instances = evaluator.instances
        self.sheet = evaluator.sheet
        self._rotations = [allowed_rotations(i, config.allow_rotation) for i in self.instances]
        self._started = time.monotonic()

    def run(self) -> SearchOutcome:
        raise NotImplementedError

    # Candidates

    def clamp_gene(self, index: int, x: float, y: float, rotation: float) -> Gene:
        """Keep an instance's rotated box inside the sheet where possible."""
        instance = self.instances[index]
        width, height = rotated_size(instance.width, instance.height, rotation)
        max_x = max(0.0, self.sheet.width - width)
        max_y = max(0.0, self.sheet.height - height)
        return (min(max(x, 0.0), max_x), min(max(y, 0.0), max_y), rotation)

    def random_gene(self, index: int) -> Gene:
        """Random position and rotation for one instance."""
        instance = self.instances[index]
        rotation = self.rng.choice(self._rotations[index])
        width, height = rotated_size(instance.width, instance.height, rotation)
        x = self.rng.uniform(0.0, max(0.0, self.sheet.width - width))
        y = self.rng.uniform(0.0, max(0.0, self.sheet.height - height))
        return (x, y, rotation)

    def random_candidate(self) -> Candidate:
        return [self.random_gene(i) for i in range(len(self.instances))]

    # Run control

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._started) * 1000.0

    def should_stop(self) -> bool:
        """Check cancellation and the soft time budget."""
        if self.cancel_token is not None and self.cancel_token.cancelled:
            logger.warning(f"{self.algorithm.value} run {self.run_id} cancelled")
            return True
        budget = self.config.max_optimization_time_ms
        if budget > 0 and self.elapsed_ms >= budget:
            logger.warning(f"{self.algorithm.value} run {self.run_id} hit {budget}ms time budget")
            return True
        return False

    # Events

    def report_progress(self, iteration: int, total: int, best_fitness: float) -> None:
        self.emitter.emit(OptimizationEvent(
            type=EventType.PROGRESS,
            run_id=self.run_id,
            algorithm=self.algorithm.value,
            iteration=iteration,
            percent=((iteration + 1) * 100) // total,
            best_fitness=best_fitness,
        ))

    def report_improvement(self, iteration: int, best_fitness: float) -> None:
        logger.debug(f"{self.algorithm.value} iteration {iteration}: best fitness {best_fitness:.4f}")
        self.emitter.emit(OptimizationEvent(
            type=EventType.IMPROVED,
            run_id=self.run_id,
            algorithm=self.algorithm.value,
            iteration=iteration,
            best_fitness=best_fitness,
        ))
