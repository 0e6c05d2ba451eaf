"""Progress events and cancellation for optimization runs."""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from nestlab.utils import get_logger

logger = get_logger("nesting.events")


class EventType(str, Enum):
    """Optimization event types."""
    STARTED = "started"
    PROGRESS = "progress"
    GENERATION_COMPLETED = "generation_completed"  # genetic algorithm only
    IMPROVED = "improved"
    METRICS_UPDATED = "metrics_updated"
    COMPLETED = "completed"  # always last for a run


@dataclass
class OptimizationEvent:
    """An event emitted during an optimization run."""
    type: EventType
    run_id: str
    algorithm: Optional[str] = None
    iteration: int = 0
    percent: int = 0
    best_fitness: float = 0.0
    average_fitness: float = 0.0
    result: Any = None  # OptimizationResult on COMPLETED
    metrics: Any = None  # OptimizerMetrics on METRICS_UPDATED


EventCallback = Callable[[OptimizationEvent], None]


class EventEmitter:
    """Dispatches optimization events to registered callbacks."""

    def __init__(self):
        self._callbacks: List[EventCallback] = []

    def register_callback(self, callback: EventCallback) -> None:
        """Register a callback for optimization events."""
        self._callbacks.append(callback)

    def unregister_callback(self, callback: EventCallback) -> None:
        """Remove an event callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def emit(self, event: OptimizationEvent) -> None:
        """Send an event to every callback in registration order."""
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event callback error ({event.type.value}): {e}")


class CancellationToken:
    """Cooperative stop flag checked once per iteration."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
