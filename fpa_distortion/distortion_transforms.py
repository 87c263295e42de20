"""
Coordinate Transform Pipeline
-----------------------------
Pure functions carrying a single 2D sample through the coordinate spaces of
the focal plane:

    (xTilde, yTilde) --scale/shift--> (x, y) --denormalize--> (kappa, mu)
    --unproject--> (eta, zeta) --normalize--> (etaTilde, zetaTilde)
    --calibrate--> (etaD, zetaD) --project/clip--> observed (kappa, mu)
                                 --normalize--> (etaDTilde, zetaDTilde)
                                 --sky_coordinates--> (alpha, delta)

Angles are radians, pixel coordinates use the pixel-center convention.
All geometry is passed explicitly; nothing here keeps state apart from the
memoized normalization bounds per (mission, detector).
"""

from functools import lru_cache
from typing import NamedTuple, Optional, Tuple

from .distortion_mission import Mission
from .distortion_quaternion import Quaternion


class PixelCoords(NamedTuple):
    kappa: float
    mu: float


class FieldCoords(NamedTuple):
    eta: float
    zeta: float


class NormalizedFieldCoords(NamedTuple):
    eta_tilde: float
    zeta_tilde: float


class SkyCoords(NamedTuple):
    alpha: float
    delta: float


class CalibrationTerms(NamedTuple):
    delta_eta: float
    delta_zeta: float


class Point:
    """
    A sample of the idealized pattern.

    Built from normalized logical coordinates; only the logical coordinates
    (x, y) are kept. `prepared` holds the last normalized distorted field
    coordinates computed by `prepare`, or None.
    """

    def __init__(self, x_tilde: float, y_tilde: float, scale: float = 1.0):
        self.x = scale * (x_tilde - 0.5) + 0.5
        self.y = scale * (y_tilde - 0.5) + 0.5
        self.prepared: Optional[NormalizedFieldCoords] = None

    def __repr__(self):
        return f"Point(x={self.x!r}, y={self.y!r})"


def denormalize(k, m, mission: Mission) -> PixelCoords:
    """Maps the unit square onto the pixel grid."""
    return PixelCoords(
        k * mission.n_col + mission.kappa0 - 0.5,
        m * mission.n_row + mission.mu0 - 0.5,
    )


def unproject(pixel: PixelCoords, mission: Mission, n: int) -> FieldCoords:
    """Pixel coordinates of detector n to undistorted field angles."""
    mission.check_detector(n)
    r_eta_kappa, r_eta_mu, r_zeta_kappa, r_zeta_mu = mission.rotation[n]
    F = mission.focal_length
    dk = mission.scale_y * (pixel.kappa - mission.kappa_c)
    dm = mission.scale_x * (pixel.mu - mission.mu_c)
    eta_n0 = (mission.x_center[n] - mission.x0) / F
    zeta_n0 = (mission.y_center[n] - mission.y0) / F
    return FieldCoords(
        eta_n0 + (r_eta_kappa * dk + r_eta_mu * dm) / F,
        zeta_n0 + (r_zeta_kappa * dk + r_zeta_mu * dm) / F,
    )


@lru_cache(maxsize=64)
def normalization_bounds(mission: Mission, n: int) -> Tuple[FieldCoords, FieldCoords]:
    """Field images of the pixel-space corners (0, 0) and (1, 1)."""
    pt_min = unproject(denormalize(0.0, 0.0, mission), mission, n)
    pt_max = unproject(denormalize(1.0, 1.0, mission), mission, n)
    return pt_min, pt_max


def normalize(field: FieldCoords, mission: Mission, n: int) -> NormalizedFieldCoords:
    pt_min, pt_max = normalization_bounds(mission, n)
    return NormalizedFieldCoords(
        (field.eta - pt_min.eta) / (pt_max.eta - pt_min.eta),
        (field.zeta - pt_min.zeta) / (pt_max.zeta - pt_min.zeta),
    )


def undistorted(point: Point, mission: Mission, n: int) -> FieldCoords:
    return unproject(denormalize(point.x, point.y, mission), mission, n)


def calibrate(point: Point, calib, mission: Mission, n: int) -> FieldCoords:
    """Distorted field coordinates of a point; the model is evaluated on normalized field coordinates."""
    field = undistorted(point, mission, n)
    delta = calib.terms(normalize(field, mission, n))
    return FieldCoords(field.eta + delta.delta_eta, field.zeta + delta.delta_zeta)


def project(field: FieldCoords, mission: Mission, n: int) -> PixelCoords:
    """Field angles to pixel coordinates of detector n (inverse of unproject)."""
    mission.check_detector(n)
    r_eta_kappa, r_eta_mu, r_zeta_kappa, r_zeta_mu = mission.rotation[n]
    F = mission.focal_length
    u = field.eta * F - mission.x_center[n] + mission.x0
    v = field.zeta * F - mission.y_center[n] + mission.y0
    return PixelCoords(
        mission.kappa_c + (r_eta_kappa * u + r_zeta_kappa * v) / mission.scale_y,
        mission.mu_c + (r_eta_mu * u + r_zeta_mu * v) / mission.scale_x,
    )


def inside_detector(kappa, mu, mission: Mission):
    min_k = mission.kappa0 - 0.5
    min_m = mission.mu0 - 0.5
    return (
        (kappa >= min_k)
        & (kappa <= min_k + mission.n_col)
        & (mu >= min_m)
        & (mu <= min_m + mission.n_row)
    )


def clip(pixel: PixelCoords, mission: Mission) -> Optional[PixelCoords]:
    """Returns the pixel unchanged when it lies on the detector, None otherwise."""
    if inside_detector(pixel.kappa, pixel.mu, mission):
        return pixel
    return None


def prepare(point: Point, calib, mission: Mission, n: int) -> NormalizedFieldCoords:
    distorted = calibrate(point, calib, mission, n)
    point.prepared = normalize(distorted, mission, n)
    return point.prepared


def observed_pixel(
    point: Point,
    calib,
    default_mission: Mission,
    default_n: int,
    target_mission: Mission,
    target_n: int,
) -> Optional[PixelCoords]:
    """
    Pixel position at which detector `target_n` of `target_mission` observes
    the point, or None when it falls outside that detector.

    The distortion is always applied in the frame of the default mission and
    detector, so every target detector sees the same distortion law.
    """
    distorted = calibrate(point, calib, default_mission, default_n)
    return clip(project(distorted, target_mission, target_n), target_mission)


def sky_coordinates(field: FieldCoords, attitude: Quaternion) -> SkyCoords:
    alpha, delta = attitude.inverse().rotate_angular((field.eta, field.zeta))
    return SkyCoords(alpha, delta)

