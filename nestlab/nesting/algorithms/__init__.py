"""Optimization drivers, selected by algorithm."""

from typing import Dict, Type

from nestlab.nesting.algorithms.annealing import AnnealingDriver
from nestlab.nesting.algorithms.base import BaseDriver, SearchOutcome
from nestlab.nesting.algorithms.genetic import GeneticDriver
from nestlab.nesting.algorithms.swarm import Particle, SwarmDriver
from nestlab.nesting.models import Algorithm

DRIVERS: Dict[Algorithm, Type[BaseDriver]] = {
    Algorithm.GENETIC: GeneticDriver,
    Algorithm.SIMULATED_ANNEALING: AnnealingDriver,
    Algorithm.PARTICLE_SWARM: SwarmDriver,
}


def get_driver(algorithm) -> Type[BaseDriver]:
    """Driver class for an algorithm; unknown names get the genetic driver."""
    return DRIVERS.get(Algorithm.parse(algorithm), GeneticDriver)


__all__ = [
    "AnnealingDriver",
    "BaseDriver",
    "DRIVERS",
    "GeneticDriver",
    "Particle",
    "SearchOutcome",
    "SwarmDriver",
    "get_driver",
]
