"""
Rotated block grid used to scan for structure positions.

The buildable region is rotated into the structure frame (structure length
along +x), so every footprint at that angle is an axis-aligned box. Candidate
centres lie on a lattice stepped by the module size, scanned left-to-right,
top-to-bottom. Containment is checked for all lattice positions at once with
shapely's vectorized predicates.
"""
import math
from typing import Callable, Iterable, Optional, Sequence

import numpy as np
import shapely
from shapely.affinity import rotate
from shapely.geometry.base import BaseGeometry

from polyplan.services.candidates import Candidate
from polyplan.services.geometry import EPSILON, Rectangle, rectangles_intersect, rotate_points


def same_angle(a: float, b: float, tolerance: float = 1e-9) -> bool:
    """Rectangles are symmetric, so angles are compared modulo 180 degrees."""
    diff = (a - b) % 180.0
    return diff < tolerance or 180.0 - diff < tolerance


class BlockGrid:
    """
    Scan lattice over a buildable region at one rotation angle.

    Args:
        region: Buildable region in local planar coordinates
        angle_deg: Structure rotation (counter-clockwise from east)
        step_x: Lattice step along the structure length
        step_y: Lattice step along the structure width
    """

    def __init__(self, region: BaseGeometry, angle_deg: float, step_x: float, step_y: float):
        self.angle_deg = angle_deg
        self.step_x = step_x
        self.step_y = step_y
        if angle_deg % 360.0 != 0:
            self.frame_region = rotate(region, -angle_deg, origin=(0, 0))
        else:
            self.frame_region = region
        self.is_empty = self.frame_region.is_empty
        if not self.is_empty:
            shapely.prepare(self.frame_region)
            self.bounds = self.frame_region.bounds
        else:
            self.bounds = (0.0, 0.0, 0.0, 0.0)

    def to_frame(self, x: float, y: float) -> tuple[float, float]:
        fx, fy = rotate_points(np.array([x]), np.array([y]), -self.angle_deg)
        return float(fx[0]), float(fy[0])

    def to_local(self, x: float, y: float) -> tuple[float, float]:
        lx, ly = rotate_points(np.array([x]), np.array([y]), self.angle_deg)
        return float(lx[0]), float(ly[0])

    def positions(self, length: float, width: float) -> tuple[np.ndarray, np.ndarray]:
        """
        Frame-coordinate centres for a ``length`` x ``width`` footprint.

        Ordered row by row from the top of the region, each row left to right.
        """
        empty = (np.empty(0), np.empty(0))
        if self.is_empty:
            return empty
        minx, miny, maxx, maxy = self.bounds
        # fit_mask shrinks each box by EPSILON, so edge-aligned footprints still fit
        span_x = (maxx - minx) - length
        span_y = (maxy - miny) - width
        if span_x < -EPSILON or span_y < -EPSILON:
            return empty

        count_x = int(math.floor(max(span_x, 0.0) / self.step_x + EPSILON)) + 1
        count_y = int(math.floor(max(span_y, 0.0) / self.step_y + EPSILON)) + 1
        xs = minx + length / 2 + np.arange(count_x) * self.step_x
        ys = maxy - width / 2 - np.arange(count_y) * self.step_y
        grid_y, grid_x = np.meshgrid(ys, xs, indexing="ij")
        return grid_x.ravel(), grid_y.ravel()

    def fit_mask(self, length: float, width: float, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """Which positions keep the footprint entirely inside the region."""
        if len(xs) == 0:
            return np.zeros(0, dtype=bool)
        half_l = length / 2 - EPSILON
        half_w = width / 2 - EPSILON
        boxes = shapely.box(xs - half_l, ys - half_w, xs + half_l, ys + half_w)
        return np.asarray(shapely.covers(self.frame_region, boxes), dtype=bool)

    def conflict_mask(
        self,
        length: float,
        width: float,
        xs: np.ndarray,
        ys: np.ndarray,
        placed: Iterable[Rectangle],
        clearance: float,
    ) -> np.ndarray:
        """
        Positions whose clearance-expanded footprint overlaps a placed one.

        Only rectangles at this grid's angle are considered; the test is the
        separating-axis test on both footprints expanded by ``clearance``.
        """
        mask = np.zeros(len(xs), dtype=bool)
        for rect in placed:
            if not same_angle(rect.angle_deg, self.angle_deg):
                continue
            px, py = self.to_frame(rect.cx, rect.cy)
            reach_x = (length + rect.length) / 2 + 2 * clearance - EPSILON
            reach_y = (width + rect.width) / 2 + 2 * clearance - EPSILON
            mask |= (np.abs(xs - px) < reach_x) & (np.abs(ys - py) < reach_y)
        return mask

    def rectangle_at(self, x: float, y: float, length: float, width: float) -> Rectangle:
        """Local-coordinate rectangle for a frame-coordinate centre."""
        lx, ly = self.to_local(x, y)
        return Rectangle(cx=lx, cy=ly, length=length, width=width, angle_deg=self.angle_deg)


def pack_largest_first(
    grid: BlockGrid,
    sizes: Sequence[Candidate],
    clearance: float,
    placed: Sequence[Rectangle] = (),
    before_attempt: Optional[Callable[[], bool]] = None,
    after_size: Optional[Callable[[Candidate], None]] = None,
    max_fitting_sizes: Optional[int] = None,
) -> list[tuple[Rectangle, Candidate]]:
    """
    Greedy largest-first packing on one grid.

    Each size is committed at the first free lattice position in scan order
    and retried until it no longer fits, then the next size is tried. A size
    that cannot be placed anywhere rules out every larger-or-equal footprint,
    since the placed set only grows.

    Args:
        grid: Scan grid at the pass angle
        sizes: Candidate sizes, largest first
        clearance: Margin each footprint is expanded by for spacing
        placed: Rectangles already committed (any angle)
        before_attempt: Called before each attempt; returning False stops packing
        after_size: Called after each size has been processed
        max_fitting_sizes: Stop after this many sizes had a containing position

    Returns:
        Newly committed (rectangle, candidate) pairs in commit order
    """
    committed = list(placed)
    new: list[tuple[Rectangle, Candidate]] = []
    exhausted: list[Candidate] = []
    fitting_sizes = 0

    for size in sizes:
        if any(done.fits_within(size) for done in exhausted):
            if after_size:
                after_size(size)
            continue
        if max_fitting_sizes is not None and fitting_sizes >= max_fitting_sizes:
            break
        if before_attempt and not before_attempt():
            break

        xs, ys = grid.positions(size.length, size.width)
        free = grid.fit_mask(size.length, size.width, xs, ys)
        if free.any():
            fitting_sizes += 1
            free &= ~grid.conflict_mask(size.length, size.width, xs, ys, committed, clearance)
            cross = [
                r.expanded(clearance) for r in committed
                if not same_angle(r.angle_deg, grid.angle_deg)
            ]
            stopped = False
            while True:
                hits = np.flatnonzero(free)
                if len(hits) == 0:
                    break
                if before_attempt and not before_attempt():
                    stopped = True
                    break
                idx = hits[0]
                rect = grid.rectangle_at(xs[idx], ys[idx], size.length, size.width)
                grown = rect.expanded(clearance)
                if any(rectangles_intersect(grown, other) for other in cross):
                    free[idx] = False
                    continue
                committed.append(rect)
                new.append((rect, size))
                free &= ~grid.conflict_mask(size.length, size.width, xs, ys, [rect], clearance)
            if stopped:
                break

        exhausted.append(size)
        if after_size:
            after_size(size)

    return new
