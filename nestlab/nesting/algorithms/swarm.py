"""Particle swarm optimization driver.

Particles move their part positions toward their own best and the
swarm's best layout. Rotations stay with the particle that drew them
and travel with any best position that is copied.
"""

from dataclasses import dataclass
from typing import List, Tuple

from nestlab.nesting.algorithms.base import BaseDriver, SearchOutcome
from nestlab.nesting.models import Algorithm, Candidate


@dataclass
class Particle:
    """One particle of the swarm."""
    position: Candidate
    velocity: List[Tuple[float, float]]
    best_position: Candidate
    best_fitness: float


class SwarmDriver(BaseDriver):
    """Swarm search with inertia, cognitive and social pull."""

    algorithm = Algorithm.PARTICLE_SWARM

    def run(self) -> SearchOutcome:
        config = self.config
        swarm = [self.new_particle() for _ in range(config.population_size)]

        leader = max(swarm, key=lambda p: p.best_fitness)
        global_best = list(leader.best_position)
        global_best_fitness = leader.best_fitness

        history = []
        stopped_early = False
        iterations = 0

        for iteration in range(config.max_generations):
            for particle in swarm:
                self.move(particle, global_best)

                fitness = self.evaluator.evaluate(particle.position)
                if fitness > particle.best_fitness:
                    particle.best_fitness = fitness
                    particle.best_position = list(particle.position)

                if fitness > global_best_fitness:
                    global_best_fitness = fitness
                    global_best = list(particle.position)
                    self.report_improvement(iteration, global_best_fitness)

            history.append(global_best_fitness)
            iterations = iteration + 1
            self.report_progress(iteration, config.max_generations, global_best_fitness)

            if iteration < config.max_generations - 1 and self.should_stop():
                stopped_early = True
                break

        return SearchOutcome(
            best_candidate=global_best,
            best_fitness=global_best_fitness,
            iterations=iterations,
            stopped_early=stopped_early,
            history=history,
        )

    def new_particle(self) -> Particle:
        position = self.random_candidate()
        velocity = [
            (self.rng.uniform(-1.0, 1.0), self.rng.uniform(-1.0, 1.0))
            for _ in position
        ]
        return Particle(
            position=position,
            velocity=velocity,
            best_position=list(position),
            best_fitness=self.evaluator.evaluate(position),
        )

    def move(self, particle: Particle, global_best: Candidate) -> None:
        """Update velocity and position of every coordinate."""
        w = self.config.inertia_weight
        c1 = self.config.cognitive_weight
        c2 = self.config.social_weight

        for i, (x, y, rotation) in enumerate(particle.position):
            vx, vy = particle.velocity[i]
            px, py = particle.best_position[i][:2]
            gx, gy = global_best[i][:2]

            vx = (w * vx
                  + c1 * self.rng.random() * (px - x)
                  + c2 * self.rng.random() * (gx - x))
            vy = (w * vy
                  + c1 * self.rng.random() * (py - y)
                  + c2 * self.rng.random() * (gy - y))

            particle.velocity[i] = (vx, vy)
            particle.position[i] = self.clamp_gene(i, x + vx, y + vy, rotation)
