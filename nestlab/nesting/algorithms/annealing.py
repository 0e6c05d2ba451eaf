"""Simulated annealing driver with geometric cooling."""

import math

from nestlab.nesting.algorithms.base import BaseDriver, SearchOutcome
from nestlab.nesting.geometry import validate_placement
from nestlab.nesting.models import Algorithm, Candidate

MIN_TEMPERATURE = 1e-12
NEIGHBOR_ATTEMPTS = 20


class AnnealingDriver(BaseDriver):
    """Single-solution search accepting worse moves with falling probability."""

    algorithm = Algorithm.SIMULATED_ANNEALING

    def run(self) -> SearchOutcome:
        config = self.config
        current = self.random_candidate()
        current_fitness = self.evaluator.evaluate(current)

        best = list(current)
        best_fitness = current_fitness
        history = []
        stopped_early = False
        iterations = 0

        temperature = config.initial_temperature

        for iteration in range(config.max_generations):
            neighbor = self.neighbor(current)
            neighbor_fitness = self.evaluator.evaluate(neighbor)

            # Metropolis criterion, delta <= 0 on the second branch
            delta = neighbor_fitness - current_fitness
            if delta > 0 or self.rng.random() < math.exp(delta / temperature):
                current = neighbor
                current_fitness = neighbor_fitness

                if current_fitness > best_fitness:
                    best = list(current)
                    best_fitness = current_fitness
                    self.report_improvement(iteration, best_fitness)

            temperature = max(temperature * config.cooling_rate, MIN_TEMPERATURE)

            history.append(best_fitness)
            iterations = iteration + 1
            self.report_progress(iteration, config.max_generations, best_fitness)

            if iteration < config.max_generations - 1 and self.should_stop():
                stopped_early = True
                break

        return SearchOutcome(
            best_candidate=best,
            best_fitness=best_fitness,
            iterations=iterations,
            stopped_early=stopped_early,
            history=history,
        )

    def neighbor(self, solution: Candidate) -> Candidate:
        """Move one random instance to a new position, valid if one is found."""
        neighbor = list(solution)
        if not neighbor:
            return neighbor

        index = self.rng.randrange(len(neighbor))
        instance = self.instances[index]
        others = [
            self.evaluator.gene_rect(i, gene)
            for i, gene in enumerate(neighbor) if i != index
        ]

        gene = self.random_gene(index)
        for _ in range(NEIGHBOR_ATTEMPTS - 1):
            if validate_placement(
                instance, gene[:2], gene[2], self.sheet.size, others, self.config.min_part_distance
            ):
                break
            gene = self.random_gene(index)

        neighbor[index] = gene
        return neighbor
