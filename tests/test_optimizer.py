"""Tests for the material nesting optimizer."""

import asyncio
import itertools
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from nestlab.nesting import (
    Algorithm,
    CancellationToken,
    EventType,
    MaterialOptimizer,
    OptimizationConfig,
    OptimizationResult,
    Part,
    Sheet,
    create_optimizer,
    export_layout,
    optimize_nesting,
)
from nestlab.nesting.geometry import center_distance, rects_overlap


def small_config(**overrides):
    values = dict(
        population_size=20,
        max_generations=10,
        mutation_rate=0.1,
        crossover_rate=0.8,
        elitism_rate=0.1,
        max_optimization_time_ms=0,
        seed=7,
    )
    values.update(overrides)
    return OptimizationConfig(**values)


@pytest.fixture
def optimizer():
    """Optimizer with a small default config."""
    opt = MaterialOptimizer(config=small_config())
    yield opt
    opt.shutdown()


@pytest.fixture
def three_squares():
    """Three 10x10 parts that may not rotate."""
    return [Part(id=f"p{i}", width=10, height=10, can_rotate=False) for i in range(3)]


@pytest.fixture
def sheet():
    """A 100x100 sheet costing 50."""
    return Sheet(id="main", name="Main Sheet", width=100, height=100, cost=50)


def assert_valid_layout(result, min_distance):
    """Check bounds, overlap and spacing of every placement."""
    for placement in result.placements:
        sheet = result.used_sheets[placement.sheet_index]
        assert placement.x >= 0 and placement.y >= 0
        assert placement.right <= sheet.width + 1e-9
        assert placement.top <= sheet.height + 1e-9

    for a, b in itertools.combinations(result.placements, 2):
        if a.sheet_index == b.sheet_index:
            assert not rects_overlap(a, b)
            assert center_distance(a, b) >= min_distance


class TestEmptyInput:
    """Tests for empty input handling."""

    def test_no_parts(self, optimizer, sheet):
        """Test empty part list gives a zero result."""
        result = optimizer.optimize_nesting([], [sheet])

        assert result.total_sheets_used == 0
        assert result.total_efficiency == 0.0
        assert result.total_cost == 0.0
        assert result.used_sheets == []
        assert result.success

    def test_no_sheets(self, optimizer, three_squares):
        """Test empty sheet list gives a zero result."""
        result = optimizer.optimize_nesting(three_squares, [])

        assert result.total_sheets_used == 0
        assert result.part_positions == []
        assert result.success


class TestOptimizeNesting:
    """Tests for full optimization runs."""

    def test_three_squares(self, optimizer, three_squares, sheet):
        """Test three 10x10 parts on one 100x100 sheet."""
        result = optimizer.optimize_nesting(three_squares, [sheet])

        assert result.total_sheets_used == 1
        assert result.used_sheets == [sheet]
        assert result.total_cost == 50
        assert result.total_efficiency == pytest.approx(3.0)
        assert len(result.part_positions) == 1
        assert len(result.part_positions[0]) == 3
        assert result.part_rotations == [[0.0, 0.0, 0.0]]
        assert result.unplaced_parts == []
        assert result.algorithm == "genetic"
        assert result.iterations_run == 10
        assert_valid_layout(result, optimizer.config.min_part_distance)

    def test_quantity_expansion(self, optimizer):
        """Test a part with quantity 5 yields 5 placed instances."""
        parts = [Part(id="sq", width=20, height=20, quantity=5)]
        result = optimizer.optimize_nesting(parts, [Sheet(id="s", width=100, height=50)])

        ids = sorted(p.instance_id for p in result.placements)
        assert ids == ["sq#1", "sq#2", "sq#3", "sq#4", "sq#5"]
        assert result.unplaced_parts == []
        assert sum(len(positions) for positions in result.part_positions) == 5
        assert_valid_layout(result, optimizer.config.min_part_distance)

    @pytest.mark.parametrize("algorithm", [a.value for a in Algorithm])
    def test_every_algorithm(self, algorithm, three_squares, sheet):
        """Test each algorithm gives a valid layout."""
        config = small_config(algorithm=algorithm)
        result = MaterialOptimizer(config=config).optimize_nesting(three_squares, [sheet])

        assert result.algorithm == algorithm
        assert result.total_sheets_used == 1
        assert 0.0 <= result.total_efficiency <= 100.0
        assert len(result.placements) == 3
        assert_valid_layout(result, config.min_part_distance)

    def test_unknown_algorithm_runs_genetic(self, three_squares, sheet):
        """Test fallback to the genetic algorithm."""
        result = MaterialOptimizer(config=small_config(algorithm="bogus")).optimize_nesting(three_squares, [sheet])
        assert result.algorithm == "genetic"

    def test_crowded_sheet_overflows(self):
        """Test instances that do not fit spill onto extra sheets."""
        parts = [Part(id="blk", width=40, height=40, quantity=5)]
        sheet = Sheet(id="s", width=100, height=100, cost=10)
        config = small_config(min_part_distance=0.0)
        result = MaterialOptimizer(config=config).optimize_nesting(parts, [sheet])

        assert len(result.placements) == 5
        assert result.total_sheets_used == 2
        assert result.total_cost == 20
        assert 0.0 < result.total_efficiency <= 100.0
        assert_valid_layout(result, 0.0)

    def test_oversized_part_unplaced(self):
        """Test a part bigger than every sheet is reported, not placed."""
        parts = [
            Part(id="ok", width=10, height=10),
            Part(id="huge", width=500, height=500),
        ]
        result = MaterialOptimizer(config=small_config()).optimize_nesting(
            parts, [Sheet(id="s", width=100, height=100)]
        )

        assert result.unplaced_parts == ["huge#1"]
        assert [p.instance_id for p in result.placements] == ["ok#1"]
        assert result.success

    def test_parts_sharing_an_id(self):
        """Test parts with the same id are each placed or reported."""
        parts = [Part(id="a", width=40, height=40), Part(id="a", width=40, height=40)]
        result = MaterialOptimizer(config=small_config(seed=3)).optimize_nesting(
            parts, [Sheet(id="s", width=50, height=50)]
        )

        assert len(result.placements) + len(result.unplaced_parts) == 2
        assert len(result.placements) == 2
        assert result.total_sheets_used == 2
        assert_valid_layout(result, 0.125)

    def test_rotation_used_when_needed(self):
        """Test a long part is rotated onto a tall sheet."""
        parts = [Part(id="rail", width=80, height=10)]
        result = MaterialOptimizer(config=small_config()).optimize_nesting(
            parts, [Sheet(id="tall", width=20, height=100)]
        )

        assert len(result.placements) == 1
        assert result.placements[0].rotation in (90.0, 270.0)
        assert_valid_layout(result, 0.125)

    def test_deterministic_with_seed(self, three_squares, sheet):
        """Test identical seeded runs give identical layouts."""
        first = MaterialOptimizer(config=small_config(seed=99)).optimize_nesting(three_squares, [sheet])
        second = MaterialOptimizer(config=small_config(seed=99)).optimize_nesting(three_squares, [sheet])

        assert first.part_positions == second.part_positions
        assert first.part_rotations == second.part_rotations
        assert first.best_fitness == second.best_fitness

    def test_optimizer_seed(self, three_squares, sheet):
        """Test seeding the optimizer instead of the config."""
        config = small_config(seed=None)
        first = MaterialOptimizer(config=config, seed=5).optimize_nesting(three_squares, [sheet])
        second = MaterialOptimizer(config=config, seed=5).optimize_nesting(three_squares, [sheet])

        assert first.part_positions == second.part_positions

    def test_sheet_selection(self, optimizer):
        """Test the selected sheet is used."""
        parts = [Part(id="a", width=20, height=20, quantity=10)]
        sheets = [Sheet(id="huge", width=400, height=400), Sheet(id="fit", width=80, height=80)]
        result = optimizer.optimize_nesting(parts, sheets)

        assert result.used_sheets[0].id == "fit"

    def test_cancelled_run(self, optimizer, three_squares, sheet):
        """Test cancellation returns best so far."""
        token = CancellationToken()
        token.cancel()
        result = optimizer.optimize_nesting(three_squares, [sheet], cancel_token=token)

        assert result.stopped_early
        assert result.iterations_run == 1
        assert len(result.placements) == 3

    def test_failure_is_contained(self, optimizer, three_squares, sheet, monkeypatch):
        """Test internal errors give an empty result instead of raising."""
        def broken(*args, **kwargs):
            raise RuntimeError("layout exploded")

        monkeypatch.setattr("nestlab.nesting.optimizer.build_result", broken)
        result = optimizer.optimize_nesting(three_squares, [sheet])

        assert not result.success
        assert "layout exploded" in result.error_message
        assert result.total_sheets_used == 0
        assert result.optimization_time_ms >= 0
        assert optimizer.get_optimization_metrics().failed_runs == 1


class TestAlgorithmMethods:
    """Tests for per-algorithm entry points."""

    def test_named_methods(self, optimizer, three_squares, sheet):
        """Test algorithm-specific methods."""
        assert optimizer.genetic_algorithm_optimization(three_squares, [sheet]).algorithm == "genetic"
        assert optimizer.simulated_annealing_optimization(
            three_squares, [sheet]
        ).algorithm == "simulated_annealing"
        assert optimizer.particle_swarm_optimization(three_squares, [sheet]).algorithm == "particle_swarm"

    def test_placement_pass_throughs(self, optimizer, three_squares):
        """Test placement helpers use the optimizer's spacing."""
        assert optimizer.validate_placement(three_squares[0], (0, 0), 0, (20, 20), [])
        assert len(optimizer.find_valid_placements(three_squares[0], (11, 11), [])) == 9
        sheets = [Sheet(id="s", width=10, height=10)]
        assert optimizer.select_optimal_sheet_sizes(three_squares, sheets) == sheets


class TestEvents:
    """Tests for progress events."""

    def test_event_order(self, optimizer, three_squares, sheet):
        """Test started first, completed last, iterations non-decreasing."""
        events = []
        optimizer.register_callback(events.append)
        result = optimizer.optimize_nesting(three_squares, [sheet])

        assert events[0].type == EventType.STARTED
        assert events[0].algorithm == "genetic"
        assert events[-1].type == EventType.COMPLETED
        assert events[-1].result is result

        iterations = [e.iteration for e in events if e.type == EventType.PROGRESS]
        assert iterations == sorted(iterations)
        assert len(iterations) == 10
        assert [e.percent for e in events if e.type == EventType.PROGRESS][-1] == 100

        assert any(e.type == EventType.IMPROVED for e in events)
        assert any(e.type == EventType.METRICS_UPDATED for e in events)
        assert len({e.run_id for e in events}) == 1

    def test_empty_run_still_completes(self, optimizer, sheet):
        """Test empty input emits started and completed."""
        events = []
        optimizer.register_callback(events.append)
        optimizer.optimize_nesting([], [sheet])

        assert events[0].type == EventType.STARTED
        assert events[-1].type == EventType.COMPLETED

    def test_bad_callback_does_not_break_run(self, optimizer, three_squares, sheet):
        """Test listener errors are contained."""
        def bad_listener(event):
            raise ValueError("listener bug")

        optimizer.register_callback(bad_listener)
        result = optimizer.optimize_nesting(three_squares, [sheet])

        assert result.success
        assert result.total_sheets_used == 1

    def test_unregister(self, optimizer, three_squares, sheet):
        """Test removing a callback."""
        events = []
        optimizer.register_callback(events.append)
        optimizer.unregister_callback(events.append)
        optimizer.optimize_nesting(three_squares, [sheet])

        assert events == []


class TestMetrics:
    """Tests for aggregate metrics."""

    def test_metrics_accumulate(self, optimizer, three_squares, sheet):
        """Test run count and time totals."""
        optimizer.optimize_nesting(three_squares, [sheet])
        optimizer.optimize_nesting(three_squares, [sheet])
        metrics = optimizer.get_optimization_metrics()

        assert metrics.runs == 2
        assert metrics.total_time_ms >= metrics.last_time_ms
        assert metrics.last_efficiency == pytest.approx(3.0)
        assert metrics.to_dict()["runs"] == 2

    def test_reset(self, optimizer, three_squares, sheet):
        """Test resetting metrics."""
        optimizer.optimize_nesting(three_squares, [sheet])
        optimizer.reset_performance_metrics()

        assert optimizer.get_optimization_metrics().runs == 0
        assert optimizer.get_optimization_metrics().average_time_ms == 0.0


class TestAsync:
    """Tests for asynchronous entry points."""

    def test_async_run(self, optimizer, three_squares, sheet):
        """Test the async variant returns the same kind of result."""
        result = asyncio.run(optimizer.optimize_nesting_async(three_squares, [sheet]))

        assert result.total_sheets_used == 1
        assert result.total_efficiency == pytest.approx(3.0)

    def test_concurrent_runs(self, optimizer, three_squares, sheet):
        """Test concurrent runs do not interfere."""
        async def run_all():
            return await asyncio.gather(*[
                optimizer.optimize_nesting_async(three_squares, [sheet]) for _ in range(3)
            ])

        results = asyncio.run(run_all())

        assert len(results) == 3
        # same seed in config, so every run finds the same layout
        assert all(r.part_positions == results[0].part_positions for r in results)
        assert optimizer.get_optimization_metrics().runs == 3

    def test_submit(self, optimizer, three_squares, sheet):
        """Test future-based submission."""
        future = optimizer.submit_nesting(three_squares, [sheet])
        assert future.result(timeout=60).total_sheets_used == 1

    def test_pool_uses_config_workers(self):
        """Test the worker pool is sized from the optimizer's config."""
        optimizer = MaterialOptimizer(config=small_config(max_workers=2))
        try:
            assert optimizer._get_executor()._max_workers == 2
        finally:
            optimizer.shutdown()

    def test_pool_created_once(self, optimizer):
        """Test concurrent callers share one worker pool."""
        barrier = threading.Barrier(8)

        def grab(_):
            barrier.wait()
            return optimizer._get_executor()

        with ThreadPoolExecutor(max_workers=8) as pool:
            executors = list(pool.map(grab, range(8)))

        assert all(executor is executors[0] for executor in executors)


class TestMultiObjective:
    """Tests for multi-objective optimization."""

    def test_returns_first_result(self, optimizer, three_squares, sheet):
        """Test one run per objective and the first result is returned."""
        result = optimizer.multi_objective_optimization(three_squares, [sheet], ["efficiency", "cost", "sheets"])

        assert isinstance(result, OptimizationResult)
        assert result.algorithm == "genetic"
        assert result.total_sheets_used == 1
        assert optimizer.get_optimization_metrics().runs == 3

    def test_no_objectives(self, optimizer, three_squares, sheet):
        """Test empty objective list."""
        result = optimizer.multi_objective_optimization(three_squares, [sheet], [])
        assert result.total_sheets_used == 0


class TestConvenience:
    """Tests for module-level helpers."""

    def test_create_optimizer(self):
        """Test factory overrides."""
        optimizer = create_optimizer("particle_swarm", population_size=8, max_generations=4)

        assert optimizer.config.algorithm == Algorithm.PARTICLE_SWARM
        assert optimizer.config.population_size == 8

    def test_optimize_nesting_function(self, three_squares, sheet):
        """Test one-call optimization."""
        result = optimize_nesting(
            three_squares, [sheet],
            algorithm="simulated_annealing",
            max_generations=20,
            max_optimization_time_ms=0,
            seed=1,
        )
        assert result.algorithm == "simulated_annealing"
        assert len(result.placements) == 3


class TestExportLayout:
    """Tests for the text cutting report."""

    def test_report(self, optimizer, three_squares, sheet):
        """Test report contents."""
        result = optimizer.optimize_nesting(three_squares, [sheet])
        report = export_layout(result)

        assert "; Cutting layout" in report
        assert "Efficiency: 3.0%" in report
        assert "Main Sheet" in report
        assert "p0#1" in report

    def test_report_unplaced(self):
        """Test unplaced parts are listed."""
        result = OptimizationResult(unplaced_parts=["big#1"], error_message="nope")
        report = export_layout(result)

        assert "Unplaced parts (1)" in report
        assert "big#1" in report
        assert "Error: nope" in report
