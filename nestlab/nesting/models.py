"""Data model for sheet nesting.

Parts and sheets are caller-owned inputs; results are built fresh per run.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from nestlab.utils import get_logger

logger = get_logger("nesting.models")

# A gene is one placed part instance: (x, y, rotation in degrees)
Gene = Tuple[float, float, float]
Candidate = List[Gene]

# Algorithm constants
DEFAULT_TOURNAMENT_SIZE = 3
DEFAULT_INITIAL_TEMPERATURE = 100.0
DEFAULT_COOLING_RATE = 0.95
DEFAULT_INERTIA_WEIGHT = 0.7
DEFAULT_COGNITIVE_WEIGHT = 1.5
DEFAULT_SOCIAL_WEIGHT = 1.5
DEFAULT_MAX_DISPLACEMENT = 2.0  # inches per axis


class Algorithm(str, Enum):
    """Optimization strategies."""
    GENETIC = "genetic"
    SIMULATED_ANNEALING = "simulated_annealing"
    PARTICLE_SWARM = "particle_swarm"

    @classmethod
    def parse(cls, value: Any) -> "Algorithm":
        """Parse an algorithm name, falling back to the genetic algorithm."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            logger.warning(f"Unknown algorithm '{value}', using genetic")
            return cls.GENETIC


@dataclass(frozen=True)
class Part:
    """A distinct part to cut, replicated `quantity` times."""
    id: str
    width: float
    height: float
    quantity: int = 1
    name: str = ""
    can_rotate: bool = True
    material: str = ""
    constraints: Dict[str, Any] = field(default_factory=dict)  # grain direction, edges

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Part {self.id} must have positive dimensions")
        if self.quantity < 1:
            raise ValueError(f"Part {self.id} quantity must be at least 1")

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "quantity": self.quantity,
            "can_rotate": self.can_rotate,
            "material": self.material,
            "constraints": dict(self.constraints),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Part":
        """Create from dictionary."""
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            width=float(data["width"]),
            height=float(data["height"]),
            quantity=int(data.get("quantity", 1)),
            can_rotate=data.get("can_rotate", True),
            material=data.get("material", ""),
            constraints=dict(data.get("constraints", {})),
        )


@dataclass(frozen=True)
class Sheet:
    """A stock sheet that parts are cut from."""
    id: str
    width: float
    height: float
    cost: float = 0.0  # per sheet
    name: str = ""
    material: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Sheet {self.id} must have positive dimensions")
        if self.cost < 0:
            raise ValueError(f"Sheet {self.id} cost cannot be negative")

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def size(self) -> Tuple[float, float]:
        return (self.width, self.height)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "cost": self.cost,
            "material": self.material,
            "properties": dict(self.properties),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Sheet":
        """Create from dictionary."""
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            width=float(data["width"]),
            height=float(data["height"]),
            cost=float(data.get("cost", 0.0)),
            material=data.get("material", ""),
            properties=dict(data.get("properties", {})),
        )


@dataclass(frozen=True)
class PartInstance:
    """One physically placeable copy of a part."""
    part: Part
    copy: int  # 0-based copy number within the part's quantity

    @property
    def instance_id(self) -> str:
        return f"{self.part.id}#{self.copy + 1}"

    @property
    def width(self) -> float:
        return self.part.width

    @property
    def height(self) -> float:
        return self.part.height

    @property
    def area(self) -> float:
        return self.part.area

    @property
    def can_rotate(self) -> bool:
        return self.part.can_rotate


def expand_parts(parts: List[Part]) -> List[PartInstance]:
    """Expand parts into independent instances, one per unit of quantity."""
    return [PartInstance(part, copy) for part in parts for copy in range(part.quantity)]


@dataclass
class FitnessWeights:
    """Weights of the combined fitness score."""
    efficiency: float = 0.6
    cost: float = 0.3
    compactness: float = 0.1

    def to_dict(self) -> dict:
        return {"efficiency": self.efficiency, "cost": self.cost, "compactness": self.compactness}


@dataclass
class OptimizationConfig:
    """Run parameters for one nesting optimization."""
    algorithm: Algorithm = Algorithm.GENETIC
    population_size: int = 100
    max_generations: int = 200  # also max iterations for annealing and swarm
    mutation_rate: float = 0.1
    crossover_rate: float = 0.8
    elitism_rate: float = 0.1

    # Constraints
    min_part_distance: float = 0.125  # 1/8 inch
    respect_grain_direction: bool = True  # advisory
    allow_rotation: bool = True

    # Performance
    use_parallel_processing: bool = True
    max_optimization_time_ms: int = 30000  # soft budget, <= 0 disables
    max_workers: int = 4
    seed: Optional[int] = None

    # Algorithm constants
    fitness_weights: FitnessWeights = field(default_factory=FitnessWeights)
    tournament_size: int = DEFAULT_TOURNAMENT_SIZE
    initial_temperature: float = DEFAULT_INITIAL_TEMPERATURE
    cooling_rate: float = DEFAULT_COOLING_RATE
    inertia_weight: float = DEFAULT_INERTIA_WEIGHT
    cognitive_weight: float = DEFAULT_COGNITIVE_WEIGHT
    social_weight: float = DEFAULT_SOCIAL_WEIGHT
    max_displacement: float = DEFAULT_MAX_DISPLACEMENT

    def __post_init__(self):
        self.algorithm = Algorithm.parse(self.algorithm)
        if isinstance(self.fitness_weights, dict):
            self.fitness_weights = FitnessWeights(**self.fitness_weights)
        for name in ("mutation_rate", "crossover_rate", "elitism_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        if self.population_size < 1 or self.max_generations < 1:
            raise ValueError("population_size and max_generations must be at least 1")
        if self.tournament_size < 1:
            raise ValueError("tournament_size must be at least 1")
        if self.min_part_distance < 0:
            raise ValueError("min_part_distance cannot be negative")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["algorithm"] = self.algorithm.value
        data["fitness_weights"] = self.fitness_weights.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "OptimizationConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_settings(cls, settings=None) -> "OptimizationConfig":
        """Create from application settings."""
        from nestlab.config import get_settings

        settings = settings or get_settings()
        return cls(
            algorithm=settings.algorithm,
            population_size=settings.population_size,
            max_generations=settings.max_generations,
            mutation_rate=settings.mutation_rate,
            crossover_rate=settings.crossover_rate,
            elitism_rate=settings.elitism_rate,
            min_part_distance=settings.min_part_distance,
            respect_grain_direction=settings.respect_grain_direction,
            allow_rotation=settings.allow_rotation,
            use_parallel_processing=settings.use_parallel_processing,
            max_optimization_time_ms=settings.max_optimization_time_ms,
            max_workers=settings.max_workers,
            seed=settings.random_seed,
        )


@dataclass
class Placement:
    """A part instance placed on a sheet."""
    instance_id: str
    part_id: str
    sheet_index: int
    x: float
    y: float
    rotation: float  # degrees
    width: float  # rotated bounding box width
    height: float  # rotated bounding box height

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def top(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "instance_id": self.instance_id,
            "part_id": self.part_id,
            "sheet_index": self.sheet_index,
            "x": self.x,
            "y": self.y,
            "rotation": self.rotation,
            "width": self.width,
            "height": self.height,
        }


@dataclass
class OptimizationResult:
    """Result of a nesting optimization."""
    used_sheets: List[Sheet] = field(default_factory=list)
    part_positions: List[List[Tuple[float, float]]] = field(default_factory=list)  # per sheet
    part_rotations: List[List[float]] = field(default_factory=list)  # per sheet
    total_efficiency: float = 0.0  # percent
    total_cost: float = 0.0
    total_sheets_used: int = 0
    optimization_time_ms: int = 0

    placements: List[Placement] = field(default_factory=list)
    unplaced_parts: List[str] = field(default_factory=list)  # instance ids
    best_fitness: float = 0.0
    iterations_run: int = 0
    stopped_early: bool = False
    algorithm: Optional[str] = None
    waste_area: float = 0.0
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error_message is None

    @classmethod
    def empty(cls, error_message: Optional[str] = None) -> "OptimizationResult":
        """Zero-valued result for empty input or failed runs."""
        return cls(error_message=error_message)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "used_sheets": [s.to_dict() for s in self.used_sheets],
            "part_positions": [[list(p) for p in sheet] for sheet in self.part_positions],
            "part_rotations": [list(r) for r in self.part_rotations],
            "total_efficiency": self.total_efficiency,
            "total_cost": self.total_cost,
            "total_sheets_used": self.total_sheets_used,
            "optimization_time_ms": self.optimization_time_ms,
            "placements": [p.to_dict() for p in self.placements],
            "unplaced_parts": list(self.unplaced_parts),
            "best_fitness": self.best_fitness,
            "iterations_run": self.iterations_run,
            "stopped_early": self.stopped_early,
            "algorithm": self.algorithm,
            "waste_area": self.waste_area,
            "error_message": self.error_message,
        }
