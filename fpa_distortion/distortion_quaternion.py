"""
Quaternion Algebra
------------------
Minimal unit-quaternion support for converting field-of-view angles into sky
angles. The quaternion is written q = x*i + y*j + z*k + w.

Normalization is never enforced: rotations are angle-preserving only when the
caller supplies unit quaternions.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class Quaternion:
    x: float
    y: float
    z: float
    w: float

    @classmethod
    def identity(cls) -> "Quaternion":
        return cls(0.0, 0.0, 0.0, 1.0)

    def __str__(self):
        return f"[{self.x}, {self.y}, {self.z}, {self.w}]"

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z, self.w])

    def multiply(self, other: "Quaternion") -> "Quaternion":
        """Grassmann (Hamilton) product self * other."""
        return Quaternion(
            self.x * other.w + self.y * other.z - self.z * other.y + self.w * other.x,
            -self.x * other.z + self.y * other.w + self.z * other.x + self.w * other.y,
            self.x * other.y - self.y * other.x + self.z * other.w + self.w * other.z,
            -self.x * other.x - self.y * other.y - self.z * other.z + self.w * other.w,
        )

    def __mul__(self, other: "Quaternion") -> "Quaternion":
        return self.multiply(other)

    def inverse(self) -> "Quaternion":
        # Conjugate; equals the inverse only for unit quaternions.
        return Quaternion(-self.x, -self.y, -self.z, self.w)

    def rotate_angular(self, vec) -> Tuple[float, float]:
        """
        Rotate a direction given as a pair of spherical angles (radians).

        The angles are embedded as the unit vector
        (cos a cos d, sin a cos d, sin d), rotated by q v q^-1 and converted
        back with atan2/asin. Works elementwise on numpy arrays.
        """
        alpha, delta = vec
        cos_delta = np.cos(delta)
        v = Quaternion(
            np.cos(alpha) * cos_delta, np.sin(alpha) * cos_delta, np.sin(delta), 0.0
        )
        r = self.multiply(v).multiply(self.inverse())
        # Clamp rounding excursions past |z| = 1 before asin.
        return np.arctan2(r.y, r.x), np.arcsin(np.clip(r.z, -1.0, 1.0))
