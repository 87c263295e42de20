"""
Mission / Detector Geometry
---------------------------
Immutable description of a focal plane: the pixel grid shared by all detectors,
the optics (focal length, pixel scale) and, per detector, its center offset
and 2x2 orientation matrix flattened row-major as
(R_etaKappa, R_etaMu, R_zetaKappa, R_zetaMu).

Invalid geometry is rejected at construction so that transforms never divide
by zero.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Dict, Tuple

import numpy as np

ORTHOGONALITY_TOL = 1e-9
SPAN_TOL = 1e-12


@dataclass(frozen=True)
class Mission:
    """Focal-plane geometry record shared by every transform call."""

    detector_count: int
    n_col: int
    n_row: int
    scale_x: float  # physical pixel size along mu
    scale_y: float  # physical pixel size along kappa
    focal_length: float
    kappa0: float
    mu0: float
    x_center: Tuple[float, ...]
    y_center: Tuple[float, ...]
    rotation: Tuple[Tuple[float, float, float, float], ...]
    x0: float = 0.0
    y0: float = 0.0
    # Metadata carried into exported mission documents.
    attitude: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    a_param: int = 2
    epoch_ms: int = 1837209600000
    extras: Dict = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "x_center", tuple(float(v) for v in self.x_center))
        object.__setattr__(self, "y_center", tuple(float(v) for v in self.y_center))
        object.__setattr__(
            self, "rotation", tuple(tuple(float(v) for v in row) for row in self.rotation)
        )
        object.__setattr__(self, "attitude", tuple(float(v) for v in self.attitude))

        if self.detector_count < 1:
            raise ValueError(f"detector_count must be positive, got {self.detector_count}.")
        if self.n_col < 1 or self.n_row < 1:
            raise ValueError(f"Pixel grid must be non-empty, got {self.n_col} x {self.n_row}.")
        for name in ("focal_length", "scale_x", "scale_y"):
            value = getattr(self, name)
            if not math.isfinite(value) or value == 0.0:
                raise ValueError(f"{name} must be finite and non-zero, got {value}.")
        for name in ("x_center", "y_center", "rotation"):
            n = len(getattr(self, name))
            if n != self.detector_count:
                raise ValueError(
                    f"{name} has {n} entries but the mission has {self.detector_count} detectors."
                )
        for n, row in enumerate(self.rotation):
            if len(row) != 4:
                raise ValueError(f"Rotation row of detector {n} must have 4 elements.")
            R = np.array(row).reshape(2, 2)
            if not np.allclose(R @ R.T, np.eye(2), rtol=0.0, atol=ORTHOGONALITY_TOL):
                raise ValueError(f"Rotation matrix of detector {n} is not orthogonal: {row}")
            # Field span between the pixel corners (0, 0) and (1, 1); normalize divides by it.
            dk = self.scale_y * self.n_col
            dm = self.scale_x * self.n_row
            span_eta = (row[0] * dk + row[1] * dm) / self.focal_length
            span_zeta = (row[2] * dk + row[3] * dm) / self.focal_length
            limit = SPAN_TOL * (abs(dk) + abs(dm)) / abs(self.focal_length)
            if abs(span_eta) <= limit or abs(span_zeta) <= limit:
                raise ValueError(
                    f"Detector {n} has a degenerate field span "
                    f"(eta {span_eta}, zeta {span_zeta}); its field cannot be normalized."
                )

    @property
    def kappa_c(self) -> float:
        return self.kappa0 + (self.n_col - 1) / 2.0

    @property
    def mu_c(self) -> float:
        return self.mu0 + (self.n_row - 1) / 2.0

    def check_detector(self, n: int) -> int:
        if not 0 <= n < self.detector_count:
            raise IndexError(f"Detector {n} is outside 0..{self.detector_count - 1}.")
        return n

    def with_counts(self, n_observations: int, n_sources: int) -> "Mission":
        extras = dict(self.extras)
        extras.update({"L": n_observations, "Lambda": n_sources})
        return replace(self, extras=extras)

    def to_dict(self) -> Dict:
        """Mission document with the keys used by exported observation files."""
        return {
            "N": self.detector_count,
            "nCol": self.n_col,
            "nRow": self.n_row,
            "sX": self.scale_x,
            "sY": self.scale_y,
            "F": self.focal_length,
            "kappa0": self.kappa0,
            "mu0": self.mu0,
            "xC": list(self.x_center),
            "yC": list(self.y_center),
            "x0": self.x0,
            "y0": self.y0,
            "R": [list(row) for row in self.rotation],
            "A": self.a_param,
            "L": self.extras.get("L", 0),
            "Tc": self.epoch_ms,
            "Lambda": self.extras.get("Lambda", 0),
            "q_j": list(self.attitude),
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "Mission":
        try:
            return cls(
                detector_count=int(d["N"]),
                n_col=int(d["nCol"]),
                n_row=int(d["nRow"]),
                scale_x=float(d["sX"]),
                scale_y=float(d["sY"]),
                focal_length=float(d["F"]),
                kappa0=float(d["kappa0"]),
                mu0=float(d["mu0"]),
                x_center=d["xC"],
                y_center=d["yC"],
                rotation=d["R"],
                x0=float(d.get("x0", 0.0)),
                y0=float(d.get("y0", 0.0)),
                attitude=d.get("q_j", (0.0, 0.0, 0.0, 1.0)),
                a_param=int(d.get("A", 2)),
                epoch_ms=int(d.get("Tc", 1837209600000)),
                extras={k: d[k] for k in ("L", "Lambda") if k in d},
            )
        except KeyError as e:
            raise ValueError(f"Mission document is missing {e}.")


SINGLE_DETECTOR_MISSION = Mission(
    detector_count=1,
    n_col=1952,
    n_row=1952,
    scale_x=1.0e-5,
    scale_y=1.0e-5,
    focal_length=4.3704,
    kappa0=8,
    mu0=8,
    x_center=(0.0,),
    y_center=(0.0,),
    rotation=((0.0, 1.0, -1.0, 0.0),),
)

_OFFSET = 11.40e-3

QUAD_DETECTOR_MISSION = Mission(
    detector_count=4,
    n_col=1952,
    n_row=1952,
    scale_x=1.0e-5,
    scale_y=1.0e-5,
    focal_length=4.3704,
    kappa0=8,
    mu0=8,
    x_center=(+_OFFSET, +_OFFSET, -_OFFSET, -_OFFSET),
    y_center=(+_OFFSET, -_OFFSET, +_OFFSET, -_OFFSET),
    rotation=(
        (-1.0, 0.0, 0.0, -1.0),
        (0.0, -1.0, 1.0, 0.0),
        (0.0, 1.0, -1.0, 0.0),
        (1.0, 0.0, 0.0, 1.0),
    ),
)
