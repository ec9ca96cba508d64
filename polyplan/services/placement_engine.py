"""
Placement engines.

Engines fill a buildable region with non-overlapping polyhouse footprints.
They share one contract (``PlacementEngine.place``) and are looked up by name
from ``PLACEMENT_ENGINES``.

- priority: largest-first greedy over the full candidate catalog, with an
  optional secondary-angle pass and a small-structure infill pass
- block_grid: the single largest fitting size repeated on a regular lattice
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from polyplan.services.block_grid import BlockGrid, pack_largest_first
from polyplan.services.buildable_region import BuildableRegion
from polyplan.services.candidates import Candidate, build_candidate_catalog, infill_catalog
from polyplan.services.configuration import PlannerConfiguration
from polyplan.services.exceptions import ConfigurationError, PlanningCancelledError
from polyplan.services.geometry import Rectangle
from polyplan.services.orientation import OrientationPlan

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class PlacementPass(str, Enum):
    """Which pass committed a structure."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    INFILL = "infill"


@dataclass
class PlacementBudget:
    """
    Iteration, time and cancellation limits for one run.

    ``tick`` is called before every placement attempt. Running out of
    iterations stops the search gracefully; a deadline or cancellation aborts
    the run with PlanningCancelledError.
    """
    max_iterations: int
    deadline: Optional[float] = None  # time.monotonic() value
    cancel_event: Optional[threading.Event] = None
    iterations: int = 0
    exhausted: bool = False

    def check(self) -> None:
        """Raise if the run was cancelled or is past its deadline."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PlanningCancelledError("Planning run was cancelled")
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise PlanningCancelledError("Planning run exceeded its time limit")

    def tick(self) -> bool:
        self.check()
        if self.iterations >= self.max_iterations:
            self.exhausted = True
            return False
        self.iterations += 1
        return True


@dataclass(frozen=True)
class Placement:
    """A committed footprint before post-processing."""
    rectangle: Rectangle
    candidate: Candidate
    placement_pass: PlacementPass


@dataclass
class PlacementOutcome:
    """Raw engine output."""
    placements: list[Placement] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    iterations: int = 0


class _ProgressTracker:
    """Turns processed-size counts into whole percentages."""

    def __init__(self, total_steps: int, callback: Optional[ProgressCallback]):
        self.total = max(total_steps, 1)
        self.done = 0
        self.callback = callback
        self.last_pct = -1

    def step(self, _size: Candidate) -> None:
        self.done += 1
        self.report(min(99, int(self.done * 100 / self.total)))

    def report(self, pct: int) -> None:
        if self.callback and pct != self.last_pct:
            self.last_pct = pct
            self.callback(pct)


class PlacementEngine(ABC):
    """Interface shared by all placement engines."""

    name: str = ""
    description: str = ""

    @abstractmethod
    def place(
        self,
        region: BuildableRegion,
        config: PlannerConfiguration,
        orientation: OrientationPlan,
        budget: PlacementBudget,
        progress: Optional[ProgressCallback] = None,
    ) -> PlacementOutcome:
        """
        Place structures inside a buildable region.

        Args:
            region: Resolved buildable region
            config: Resolved configuration
            orientation: Chosen rotation angle(s)
            budget: Iteration/time/cancellation limits
            progress: Optional callback receiving 0-100

        Returns:
            PlacementOutcome

        Raises:
            PlanningCancelledError: On cancellation or deadline
        """

    def _grid(self, region: BuildableRegion, angle: float, config: PlannerConfiguration) -> BlockGrid:
        return BlockGrid(region.geometry, angle, config.module_width, config.module_height)

    @staticmethod
    def _finish(outcome: PlacementOutcome, budget: PlacementBudget) -> PlacementOutcome:
        outcome.iterations = budget.iterations
        if budget.exhausted:
            outcome.warnings.append(
                f"Placement search stopped after {budget.max_iterations} attempts; "
                "the layout may not be fully packed"
            )
            logger.warning(f"Iteration budget of {budget.max_iterations} exhausted")
        return outcome


class PriorityPlacementEngine(PlacementEngine):
    """Largest-first greedy placement over the full candidate catalog."""

    name = "priority"
    description = "Largest structures first, then secondary angles and small infill structures"

    def place(self, region, config, orientation, budget, progress=None):
        outcome = PlacementOutcome()
        catalog = build_candidate_catalog(config)
        infill = infill_catalog(config) if config.optimization.allow_infill else []
        angles = orientation.angles
        tracker = _ProgressTracker(len(catalog) * len(angles) + len(infill) * len(angles), progress)

        grids = {angle: self._grid(region, angle, config) for angle in angles}
        placed: list[Rectangle] = []

        def commit(new, placement_pass: PlacementPass) -> None:
            for rect, size in new:
                placed.append(rect)
                outcome.placements.append(Placement(rect, size, placement_pass))

        # Large-first pass at the primary angle
        primary_grid = grids[orientation.primary_angle_deg]
        commit(
            pack_largest_first(primary_grid, catalog, config.clearance, placed, budget.tick, tracker.step),
            PlacementPass.PRIMARY,
        )
        primary_count = len(outcome.placements)
        logger.info(f"Primary pass at {orientation.primary_angle_deg:.1f} deg placed {primary_count} structure(s)")

        # Remaining space at secondary angles
        for angle in orientation.secondary_angles_deg:
            if budget.exhausted:
                break
            new = pack_largest_first(grids[angle], catalog, config.clearance, placed, budget.tick, tracker.step)
            commit(new, PlacementPass.SECONDARY)
            logger.info(f"Secondary pass at {angle:.1f} deg placed {len(new)} structure(s)")

        # Infill only tops up a layout that already has regular structures
        if infill and outcome.placements and not budget.exhausted:
            before = len(outcome.placements)
            for angle in angles:
                if budget.exhausted:
                    break
                new = pack_largest_first(grids[angle], infill, config.clearance, placed, budget.tick, tracker.step)
                commit(new, PlacementPass.INFILL)
            logger.info(f"Infill pass placed {len(outcome.placements) - before} structure(s)")

        tracker.report(100)
        return self._finish(outcome, budget)


class BlockGridPlacementEngine(PlacementEngine):
    """The largest fitting size repeated on a regular lattice at one angle."""

    name = "block_grid"
    description = "Uniform blocks of a single structure size on a regular grid"

    def place(self, region, config, orientation, budget, progress=None):
        outcome = PlacementOutcome()
        catalog = build_candidate_catalog(config)
        grid = self._grid(region, orientation.primary_angle_deg, config)
        tracker = _ProgressTracker(len(catalog), progress)

        for size in catalog:
            if not budget.tick():
                break
            xs, ys = grid.positions(size.length, size.width)
            if not grid.fit_mask(size.length, size.width, xs, ys).any():
                tracker.step(size)
                continue
            new = pack_largest_first(grid, [size], config.clearance, (), budget.tick)
            outcome.placements.extend(Placement(rect, cand, PlacementPass.PRIMARY) for rect, cand in new)
            logger.info(
                f"Block grid: {len(new)} block(s) of {size.length:.0f}x{size.width:.0f} m "
                f"at {orientation.primary_angle_deg:.1f} deg"
            )
            break

        tracker.report(100)
        return self._finish(outcome, budget)


PLACEMENT_ENGINES: dict[str, type[PlacementEngine]] = {
    PriorityPlacementEngine.name: PriorityPlacementEngine,
    BlockGridPlacementEngine.name: BlockGridPlacementEngine,
}


def get_placement_engine(name: str) -> PlacementEngine:
    """
    Instantiate a registered placement engine.

    Raises:
        ConfigurationError: If no engine is registered under ``name``
    """
    engine_cls = PLACEMENT_ENGINES.get(name)
    if engine_cls is None:
        raise ConfigurationError(
            f"Unknown placement engine '{name}'. Available: {', '.join(sorted(PLACEMENT_ENGINES))}"
        )
    return engine_cls()
