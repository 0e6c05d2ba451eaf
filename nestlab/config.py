"""Configuration management for NestLab."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="NEST_",
        extra="ignore",
    )

    # Algorithm
    algorithm: str = Field(default="genetic", description="genetic, simulated_annealing or particle_swarm")
    population_size: int = Field(default=100, ge=1, description="Population / swarm size")
    max_generations: int = Field(default=200, ge=1, description="Generations or iterations per run")
    mutation_rate: float = Field(default=0.1, description="Per-position mutation probability")
    crossover_rate: float = Field(default=0.8, description="Probability of crossover per offspring")
    elitism_rate: float = Field(default=0.1, description="Fraction of population carried over unchanged")

    # Constraints
    min_part_distance: float = Field(default=0.125, ge=0.0, description="Minimum distance between parts")
    respect_grain_direction: bool = Field(default=True, description="Honor grain direction (advisory)")
    allow_rotation: bool = Field(default=True, description="Allow 90 degree part rotations")

    # Performance
    use_parallel_processing: bool = Field(default=True, description="Score populations on a thread pool")
    max_optimization_time_ms: int = Field(default=30000, ge=0, description="Soft wall-clock budget per run")
    max_workers: int = Field(default=4, ge=1, description="Worker threads for async runs")
    random_seed: Optional[int] = Field(default=None, description="Seed for reproducible runs")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("mutation_rate", "crossover_rate", "elitism_rate")
    @classmethod
    def _check_fraction(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("rate must be between 0 and 1")
        return value


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure(settings: Optional[Settings]) -> None:
    """Override global settings (None resets to environment defaults)."""
    global _settings
    _settings = settings
