"""
Star Patterns and Exposures
Builds lattice-shaped star fields in normalized logical coordinates and
groups them with a calibration model into exposures.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
from scipy.spatial import cKDTree

from .distortion_core import LegendreCalibration
from .distortion_mission import Mission
from .distortion_transforms import Point, observed_pixel, prepare

DUPLICATE_TOL = 1.0e-6


@dataclass
class LatticeLine:
    points: List[Point]
    main: bool


def lerp(a: float, b: float, t: float) -> float:
    return a + t * (b - a)


def make_phase_noise(
    count: int, amplitude: float, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Uniform shifts in [-amplitude, amplitude] of the position along each lattice line."""
    if rng is None:
        rng = np.random.default_rng()
    return (rng.random(count) * 2.0 - 1.0) * amplitude


def create_line(
    start, end, n: int, scale: float, phase_noise=None, offset: int = 0
) -> List[Point]:
    """n points from start to end, (x, y) pairs in normalized logical coordinates."""
    result = []
    steps = n - 1
    for i in range(n):
        t = i / steps if steps > 0 else 0.0
        if phase_noise is not None:
            t += phase_noise[offset + i]
        t = min(max(t, 0.0), 1.0)
        result.append(
            Point(lerp(start[0], end[0], t), lerp(start[1], end[1], t), scale)
        )
    return result


def is_main_line(i: int, n: int) -> bool:
    return i == 0 or i == n - 1 or i == n // 2


def create_lattice(
    n: int, rows: int, cols: int, scale: float, phase_noise=None
) -> List[LatticeLine]:
    """
    `rows` horizontal lines followed by `cols` vertical lines of n points each.

    phase_noise, when given, must hold n * (rows + cols) entries, consumed
    line by line.
    """
    if phase_noise is not None and len(phase_noise) < n * (rows + cols):
        raise ValueError(
            f"Phase noise has {len(phase_noise)} entries, need {n * (rows + cols)}."
        )
    result = []
    offset = 0
    for i in range(rows):
        y = i / (rows - 1) if rows > 1 else 0.5
        line = create_line((0.0, y), (1.0, y), n, scale, phase_noise, offset)
        result.append(LatticeLine(line, is_main_line(i, rows)))
        offset += n
    for i in range(cols):
        x = i / (cols - 1) if cols > 1 else 0.5
        line = create_line((x, 0.0), (x, 1.0), n, scale, phase_noise, offset)
        result.append(LatticeLine(line, is_main_line(i, cols)))
        offset += n
    return result


def flatten_unique(lines: List[LatticeLine], tol: float = DUPLICATE_TOL) -> List[Point]:
    """All lattice points in line order, dropping later copies of coincident points."""
    points = [p for line in lines for p in line.points]
    if not points:
        return []
    xy = np.array([[p.x, p.y] for p in points])
    tree = cKDTree(xy)
    duplicate = np.zeros(len(points), dtype=bool)
    for i, j in sorted(tree.query_pairs(tol, p=np.inf)):
        # Pairs come with i < j; j repeats an earlier point.
        if not duplicate[i]:
            duplicate[j] = True
    return [p for p, dup in zip(points, duplicate) if not dup]


class Exposure:
    """A star pattern with its own calibration model (the catalog or one simulated exposure)."""

    def __init__(self, name: str, scale: float, calib: Optional[LegendreCalibration] = None):
        self.name = name
        self.scale = scale
        self.visible = True
        self.calib = calib if calib is not None else LegendreCalibration()
        self.lines: List[LatticeLine] = []
        self.center = Point(0.5, 0.5, scale)

    def build(self, n: int, rows: int, cols: int, phase_noise=None):
        self.lines = create_lattice(n, rows, cols, self.scale, phase_noise)
        return self

    def prepare(self, mission: Mission, detector: int = 0):
        for line in self.lines:
            for pt in line.points:
                prepare(pt, self.calib, mission, detector)
        prepare(self.center, self.calib, mission, detector)

    def points(self) -> List[Point]:
        return flatten_unique(self.lines)

    def count_visible(
        self,
        default_mission: Mission,
        default_n: int,
        target_mission: Mission,
        target_n: int,
    ) -> int:
        count = 0
        for pt in self.points():
            if observed_pixel(
                pt, self.calib, default_mission, default_n, target_mission, target_n
            ) is not None:
                count += 1
        return count

    def copy(self, name: str) -> "Exposure":
        other = Exposure(name, self.scale, self.calib.copy())
        other.visible = self.visible
        return other

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "scale": self.scale,
            "visible": self.visible,
            "calib": self.calib.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "Exposure":
        try:
            exposure = cls(
                d["name"], float(d["scale"]), LegendreCalibration.from_dict(d["calib"])
            )
        except KeyError as e:
            raise ValueError(f"Exposure document is missing {e}.")
        exposure.visible = bool(d.get("visible", True))
        return exposure
