"""Genetic algorithm driver.

Each individual holds one gene (x, y, rotation) per part instance.
Generations are built with elitism, tournament selection, uniform
crossover and displacement mutation.
"""

from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from typing import List, Optional

from nestlab.nesting.algorithms.base import BaseDriver, SearchOutcome
from nestlab.nesting.events import EventType, OptimizationEvent
from nestlab.nesting.fitness import average_fitness
from nestlab.nesting.models import Algorithm, Candidate


class GeneticDriver(BaseDriver):
    """Population-based search with elitist memory."""

    algorithm = Algorithm.GENETIC

    def run(self) -> SearchOutcome:
        config = self.config
        population = [self.random_candidate() for _ in range(config.population_size)]

        best_candidate: Candidate = list(population[0])
        best_fitness = float("-inf")
        history: List[float] = []
        stopped_early = False
        iterations = 0

        pool = (
            ThreadPoolExecutor(max_workers=config.max_workers)
            if config.use_parallel_processing and config.population_size > 1
            else nullcontext()
        )
        with pool as executor:
            for generation in range(config.max_generations):
                fitness = self.evaluator.evaluate_population(population, executor)

                best_index = max(range(len(fitness)), key=fitness.__getitem__)
                if fitness[best_index] > best_fitness:
                    best_fitness = fitness[best_index]
                    best_candidate = list(population[best_index])
                    self.report_improvement(generation, best_fitness)

                history.append(best_fitness)
                iterations = generation + 1

                population = self.next_generation(population, fitness)

                self.report_progress(generation, config.max_generations, best_fitness)
                self.emitter.emit(OptimizationEvent(
                    type=EventType.GENERATION_COMPLETED,
                    run_id=self.run_id,
                    algorithm=self.algorithm.value,
                    iteration=generation,
                    best_fitness=best_fitness,
                    average_fitness=average_fitness(fitness),
                ))

                if generation < config.max_generations - 1 and self.should_stop():
                    stopped_early = True
                    break

        return SearchOutcome(
            best_candidate=best_candidate,
            best_fitness=best_fitness,
            iterations=iterations,
            stopped_early=stopped_early,
            history=history,
        )

    def next_generation(self, population: List[Candidate], fitness: List[float]) -> List[Candidate]:
        """Build the next population. The previous one is left untouched."""
        size = self.config.population_size
        new_population = self.select_elite(population, fitness)

        offspring = max(0, size - len(new_population))
        parents = self.selection(population, fitness, 2 * offspring)

        for parent1, parent2 in zip(parents[0::2], parents[1::2]):
            if self.rng.random() < self.config.crossover_rate:
                child = self.crossover(parent1, parent2)
            else:
                child = list(parent1)

            new_population.append(self.mutate(child))

        return new_population

    def select_elite(self, population: List[Candidate], fitness: List[float]) -> List[Candidate]:
        """Copy the top `elitism_rate` share of the population."""
        elite_count = int(len(population) * self.config.elitism_rate)
        ranked = sorted(range(len(population)), key=lambda i: fitness[i], reverse=True)
        return [list(population[i]) for i in ranked[:elite_count]]

    def tournament_selection(self, population: List[Candidate], fitness: List[float]) -> Candidate:
        """Best of `tournament_size` randomly drawn individuals."""
        contenders = [self.rng.randrange(len(population)) for _ in range(self.config.tournament_size)]
        return population[max(contenders, key=fitness.__getitem__)]

    def selection(
        self,
        population: List[Candidate],
        fitness: List[float],
        count: Optional[int] = None,
    ) -> List[Candidate]:
        """Draw a mating pool of `count` parents (default: population size) by tournament."""
        if count is None:
            count = len(population)
        return [self.tournament_selection(population, fitness) for _ in range(count)]

    def crossover(self, parent1: Candidate, parent2: Candidate) -> Candidate:
        """Uniform crossover: each gene comes from either parent with equal odds."""
        return [g1 if self.rng.random() < 0.5 else g2 for g1, g2 in zip(parent1, parent2)]

    def mutate(self, candidate: Candidate) -> Candidate:
        """Displace each gene with probability `mutation_rate`."""
        step = self.config.max_displacement
        mutated = list(candidate)
        for index, (x, y, rotation) in enumerate(mutated):
            if self.rng.random() < self.config.mutation_rate:
                dx = self.rng.uniform(-step, step)
                dy = self.rng.uniform(-step, step)
                mutated[index] = self.clamp_gene(index, x + dx, y + dy, rotation)
        return mutated
