"""
Orientation selection.

The solar target angle comes from a pluggable policy (by default gutters run
east-west). Candidate angles inside the allowed tolerance are scored by the
area a quick greedy packing can cover at that angle.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from polyplan.services.block_grid import BlockGrid, pack_largest_first
from polyplan.services.buildable_region import BuildableRegion
from polyplan.services.candidates import Candidate
from polyplan.services.configuration import OrientationStrategy, PlannerConfiguration
from polyplan.services.geometry import Rectangle

logger = logging.getLogger(__name__)

# Number of fitting catalog sizes a coverage estimate packs
COVERAGE_SAMPLE_SIZES = 4

# Sweep used to pick a secondary angle for the varied strategy
SECONDARY_SWEEP_STEP_DEG = 15.0
MIN_SECONDARY_SEPARATION_DEG = 15.0


@dataclass(frozen=True)
class SolarTarget:
    """Preferred rotation and the tolerance used when none is configured."""
    angle_deg: float
    auto_tolerance_deg: float


SolarPolicy = Callable[[float], SolarTarget]


def auto_tolerance(latitude: float) -> float:
    """Orientation tolerance by latitude band; tighter away from the equator."""
    lat = abs(latitude)
    if lat < 15:
        return 30.0
    if lat < 30:
        return 20.0
    if lat < 45:
        return 15.0
    return 10.0


def east_west_gutter_policy(latitude: float) -> SolarTarget:
    """Structure length (and gutters) running east-west."""
    return SolarTarget(angle_deg=0.0, auto_tolerance_deg=auto_tolerance(latitude))


def normalize_angle(angle_deg: float) -> float:
    """Fold an angle into [0, 180); rectangles repeat every half turn."""
    folded = round(angle_deg % 180.0, 9)
    return 0.0 if folded >= 180.0 else folded


def angular_distance(a: float, b: float) -> float:
    diff = abs(normalize_angle(a) - normalize_angle(b))
    return min(diff, 180.0 - diff)


@dataclass(frozen=True)
class OrientationPlan:
    """Chosen primary angle, optional secondary angles and the scores behind them."""
    primary_angle_deg: float
    solar_target_deg: float
    tolerance_deg: float
    strategy: OrientationStrategy
    secondary_angles_deg: tuple[float, ...] = ()
    scores: tuple[tuple[float, float], ...] = field(default_factory=tuple)

    @property
    def angles(self) -> tuple[float, ...]:
        return (self.primary_angle_deg,) + self.secondary_angles_deg


def estimate_coverage(
    region: BuildableRegion,
    angle_deg: float,
    candidates: Sequence[Candidate],
    config: PlannerConfiguration,
    sample_sizes: Optional[int] = COVERAGE_SAMPLE_SIZES,
    check: Optional[Callable[[], None]] = None,
    placed: Sequence[Rectangle] = (),
) -> float:
    """
    Area a quick largest-first packing covers at ``angle_deg``.

    Only the first ``sample_sizes`` catalog sizes that fit somewhere are packed
    (all of them when None). Rectangles in ``placed`` are treated as taken and
    their area is not counted.
    """
    return sum(
        rect.area
        for rect, _ in _pack(region, angle_deg, candidates, config, sample_sizes, check, placed)
    )


def _pack(
    region: BuildableRegion,
    angle_deg: float,
    candidates: Sequence[Candidate],
    config: PlannerConfiguration,
    sample_sizes: Optional[int],
    check: Optional[Callable[[], None]],
    placed: Sequence[Rectangle] = (),
) -> list[tuple[Rectangle, Candidate]]:
    grid = BlockGrid(region.geometry, angle_deg, config.module_width, config.module_height)
    if grid.is_empty:
        return []
    return pack_largest_first(
        grid,
        candidates,
        config.clearance,
        placed,
        before_attempt=None if check is None else (lambda: check() or True),
        max_fitting_sizes=sample_sizes,
    )


def _trial_angles(target: float, tolerance: float, strategy: OrientationStrategy, step: float) -> list[float]:
    if tolerance <= 0:
        return [normalize_angle(target)]
    if strategy == OrientationStrategy.OPTIMIZED:
        steps = int(math.floor(tolerance / step + 1e-9))
        offsets = [0.0]
        for k in range(1, steps + 1):
            offsets.extend([-k * step, k * step])
    else:
        offsets = [0.0, -tolerance, tolerance]
    angles = []
    for offset in offsets:
        angle = normalize_angle(target + offset)
        if angle not in angles:
            angles.append(angle)
    return angles


def _best(scores: dict[float, float], target: float) -> float:
    # Highest coverage; ties go to the angle nearest the solar target
    return max(scores, key=lambda a: (round(scores[a], 6), -angular_distance(a, target)))


def select_orientation(
    region: BuildableRegion,
    latitude: float,
    config: PlannerConfiguration,
    candidates: Sequence[Candidate],
    solar_policy: Optional[SolarPolicy] = None,
    check: Optional[Callable[[], None]] = None,
) -> OrientationPlan:
    """
    Choose structure rotation angle(s) for a buildable region.

    Args:
        region: Resolved buildable region
        latitude: Parcel latitude for the solar policy
        config: Resolved configuration
        candidates: Candidate catalog, largest first
        solar_policy: Solar target policy (defaults to east-west gutters)
        check: Called between packing attempts; may raise to abort

    Returns:
        OrientationPlan
    """
    policy = solar_policy or east_west_gutter_policy
    target = policy(latitude)
    target_angle = normalize_angle(target.angle_deg)
    tolerance = config.solar.allowed_deviation_deg or target.auto_tolerance_deg
    strategy = config.optimization.orientation_strategy

    scores: dict[float, float] = {}
    for angle in _trial_angles(target_angle, tolerance, strategy, config.optimization.sweep_step_deg):
        scores[angle] = estimate_coverage(region, angle, candidates, config, check=check)
    primary = _best(scores, target_angle)

    secondary: tuple[float, ...] = ()
    if strategy == OrientationStrategy.VARIED:
        # Sweep angles compete for what a full primary packing leaves open
        primary_rects = [
            rect for rect, _ in _pack(region, primary, candidates, config, None, check)
        ]
        sweep_scores: dict[float, float] = {}
        angle = 0.0
        while angle < 180.0:
            if angular_distance(angle, primary) >= MIN_SECONDARY_SEPARATION_DEG - 1e-9:
                sweep_scores[angle] = estimate_coverage(
                    region, angle, candidates, config, None, check, placed=primary_rects
                )
            angle += SECONDARY_SWEEP_STEP_DEG
        if sweep_scores:
            best_secondary = _best(sweep_scores, primary)
            if sweep_scores[best_secondary] > 0:
                secondary = (best_secondary,)
            logger.debug(f"Secondary sweep (added coverage): {sweep_scores}")

    logger.info(
        f"Orientation: primary {primary:.1f} deg (solar target {target_angle:.1f}, "
        f"tolerance {tolerance:.1f}, strategy {strategy.value})"
        + (f", secondary {secondary[0]:.1f} deg" if secondary else "")
    )

    return OrientationPlan(
        primary_angle_deg=primary,
        solar_target_deg=target_angle,
        tolerance_deg=tolerance,
        strategy=strategy,
        secondary_angles_deg=secondary,
        scores=tuple(sorted(scores.items())),
    )
