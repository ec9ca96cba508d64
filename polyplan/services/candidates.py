"""
Candidate structure sizes.

A candidate is a rectangle made of whole modules. The catalog depends only on
the configuration, so it is built once per configuration and cached.
"""
from dataclasses import dataclass
from functools import lru_cache

from polyplan.services.configuration import PlannerConfiguration
from polyplan.services.geometry import EPSILON

# Smallest structure that is still a valid polyhouse (used by infill)
INFILL_MIN_MODULES = 2


@dataclass(frozen=True)
class Candidate:
    """An unplaced structure size."""
    module_count_x: int
    module_count_y: int
    length: float
    width: float

    @property
    def module_count(self) -> int:
        return self.module_count_x * self.module_count_y

    @property
    def area(self) -> float:
        return self.length * self.width

    @property
    def aspect_ratio(self) -> float:
        """Short side over long side (1.0 = square)."""
        return min(self.length, self.width) / max(self.length, self.width)

    def fits_within(self, other: "Candidate") -> bool:
        """True when this footprint fits inside ``other`` at the same rotation."""
        return self.length <= other.length + EPSILON and self.width <= other.width + EPSILON


def _sort_key(candidate: Candidate) -> tuple[float, float, float]:
    # Larger area first, then squarer (less perimeter), then longer
    return (-round(candidate.area, 6), -round(candidate.aspect_ratio, 9), -candidate.length)


@lru_cache(maxsize=64)
def _catalog(
    module_width: float,
    module_height: float,
    min_side: float,
    max_side: float,
    max_area: float,
    min_modules: int,
    max_modules: int | None,
) -> tuple[Candidate, ...]:
    sizes = []
    max_x = int((max_side + EPSILON) // module_width)
    max_y = int((max_side + EPSILON) // module_height)
    for nx in range(1, max_x + 1):
        length = nx * module_width
        if length < min_side - EPSILON:
            continue
        for ny in range(1, max_y + 1):
            width = ny * module_height
            if width < min_side - EPSILON:
                continue
            count = nx * ny
            if count < min_modules:
                continue
            if max_modules is not None and count >= max_modules:
                continue
            if length * width > max_area + EPSILON:
                continue
            sizes.append(Candidate(nx, ny, length, width))
    sizes.sort(key=_sort_key)
    return tuple(sizes)


def build_candidate_catalog(config: PlannerConfiguration, min_modules: int | None = None) -> list[Candidate]:
    """
    Enumerate candidate sizes for a configuration, largest first.

    Args:
        config: Resolved configuration
        min_modules: Module-count floor (defaults to min_modules_per_structure)

    Returns:
        Candidates sorted by area descending, then squareness
    """
    floor = config.min_modules_per_structure if min_modules is None else min_modules
    return list(_catalog(
        config.module_width,
        config.module_height,
        config.min_side_length,
        config.max_side_length,
        config.max_structure_area,
        floor,
        None,
    ))


def infill_catalog(config: PlannerConfiguration) -> list[Candidate]:
    """Sizes below the regular module floor, down to the smallest valid structure."""
    if config.min_modules_per_structure <= INFILL_MIN_MODULES:
        return []
    return list(_catalog(
        config.module_width,
        config.module_height,
        config.min_side_length,
        config.max_side_length,
        config.max_structure_area,
        INFILL_MIN_MODULES,
        config.min_modules_per_structure,
    ))
