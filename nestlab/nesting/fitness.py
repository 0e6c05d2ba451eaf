"""Fitness model for candidate placements.

Higher scores are better. The combined score is a weighted sum of
material efficiency, sheet cost and part compactness.
"""

import math
from concurrent.futures import Executor
from typing import List, Optional, Sequence, Tuple

from nestlab.nesting.geometry import Rect, rotated_size, validate_placement
from nestlab.nesting.models import Candidate, FitnessWeights, Gene, OptimizationConfig, PartInstance, Placement, Sheet


def efficiency_fitness(placed_area: float, sheet_area: float) -> float:
    """Placed area over sheet area, clamped to [0, 1]."""
    if sheet_area <= 0:
        return 0.0
    return max(0.0, min(1.0, placed_area / sheet_area))


def cost_fitness(sheet_cost: float) -> float:
    """Reward cheaper sheets. Shifted by one so free sheets score 1."""
    return 1.0 / (sheet_cost + 1.0)


def compactness_fitness(positions: Sequence) -> float:
    """Inverse of the average pairwise distance between positions."""
    count = len(positions)
    if count < 2:
        return 1.0

    total = 0.0
    for i in range(count):
        x1, y1 = positions[i][0], positions[i][1]
        for j in range(i + 1, count):
            total += math.hypot(positions[j][0] - x1, positions[j][1] - y1)

    average = total / (count * (count - 1) / 2)
    return 1.0 / (average + 1.0)


class FitnessEvaluator:
    """
    Scores candidates for one sheet.

    Evaluation only reads the candidate and the evaluator's immutable
    inputs, so populations may be scored concurrently.
    """

    def __init__(self, instances: List[PartInstance], sheet: Sheet, config: OptimizationConfig):
        self.instances = list(instances)
        self.sheet = sheet
        self.config = config
        self.weights: FitnessWeights = config.fitness_weights

    def gene_rect(self, index: int, gene: Gene) -> Rect:
        """Bounding rectangle of an instance placed by a gene."""
        instance = self.instances[index]
        width, height = rotated_size(instance.width, instance.height, gene[2])
        return Rect(gene[0], gene[1], width, height)

    def decode(self, candidate: Candidate) -> List[Placement]:
        """
        Keep every instance that fits, in candidate order.

        An instance is dropped when it leaves the sheet or collides with an
        instance kept before it.
        """
        return [placement for _, placement in self.decode_indexed(candidate)]

    def decode_indexed(self, candidate: Candidate) -> List[Tuple[int, Placement]]:
        """Like `decode`, paired with each kept instance's index."""
        kept: List[Tuple[int, Placement]] = []
        placed: List[Placement] = []
        for index, gene in enumerate(candidate[:len(self.instances)]):
            instance = self.instances[index]
            x, y, rotation = gene
            if validate_placement(
                instance, (x, y), rotation, self.sheet.size, placed, self.config.min_part_distance
            ):
                width, height = rotated_size(instance.width, instance.height, rotation)
                placement = Placement(
                    instance_id=instance.instance_id,
                    part_id=instance.part.id,
                    sheet_index=0,
                    x=x,
                    y=y,
                    rotation=rotation,
                    width=width,
                    height=height,
                )
                placed.append(placement)
                kept.append((index, placement))
        return kept

    def efficiency(self, candidate: Candidate) -> float:
        placed_area = sum(p.area for p in self.decode(candidate))
        return efficiency_fitness(placed_area, self.sheet.area)

    def cost(self) -> float:
        return cost_fitness(self.sheet.cost)

    def compactness(self, candidate: Candidate) -> float:
        return compactness_fitness(candidate)

    def evaluate(self, candidate: Candidate) -> float:
        """Combined fitness of a candidate."""
        if not candidate:
            return 0.0
        return (
            self.weights.efficiency * self.efficiency(candidate)
            + self.weights.cost * self.cost()
            + self.weights.compactness * self.compactness(candidate)
        )

    def evaluate_population(
        self,
        population: List[Candidate],
        executor: Optional[Executor] = None,
    ) -> List[float]:
        """Score a population, optionally on an executor. Order is preserved."""
        if executor is not None:
            return list(executor.map(self.evaluate, population))
        return [self.evaluate(candidate) for candidate in population]


def average_fitness(fitness: Sequence[float]) -> float:
    """Mean of a fitness list, 0 when empty."""
    if not fitness:
        return 0.0
    return sum(fitness) / len(fitness)
