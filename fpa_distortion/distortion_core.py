"""
Focal-Plane Distortion Core Logic
Legendre calibration model:
- Fixed highest order 5, i.e. 21 (r, s) terms with an eta and a zeta coefficient each.
- Every order carries a decimal scale exponent applied at evaluation time.
- Terms can be disabled without losing their stored coefficients.
- Robust least-squares recovery of a model from simulated offsets.
"""

from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
from astropy.stats import mad_std, sigma_clip

from .distortion_transforms import CalibrationTerms, NormalizedFieldCoords

HIGHEST_ORDER = 5
N_TERMS = (HIGHEST_ORDER + 1) * (HIGHEST_ORDER + 2) // 2

# Exponents of 10 applied per order, and the per-order coefficient range a
# controlling collaborator may offer (e.g. slider limits).
DEFAULT_ORDER_SCALE = (-2, -3, -4, -4, -5, -6)
COEFFICIENT_RANGE = (1.0, 2.0, 6.0, 1.5, 3.0, 6.0)


def legendre(order: int, x):
    """
    Legendre polynomial of the given order shifted to [0, 1].

    Evaluated at t = x - 0.5. Orders outside 0..5 give 0 so that loop bounds
    may run past the supported range.
    """
    t = np.asarray(x, dtype=float) - 0.5
    if order == 0:
        return t * 0.0 + 1.0
    if order == 1:
        return 2.0 * t
    if order == 2:
        return 6.0 * t * t - 0.5
    if order == 3:
        return 20.0 * t**3 - 3.0 * t
    if order == 4:
        return 70.0 * t**4 - 15.0 * t * t + 3.0 / 8.0
    if order == 5:
        return 252.0 * t**5 - 70.0 * t**3 + 15.0 / 4.0 * t
    return t * 0.0


def iter_terms(highest_order: int = HIGHEST_ORDER) -> Iterator[Tuple[int, int, int]]:
    """Yields (order, r, s) ascending by order, then by split s."""
    for o in range(highest_order + 1):
        for s in range(o + 1):
            yield o, o - s, s


def term_key(r: int, s: int) -> str:
    return f"{r}{s}"


def basis(r: int, s: int, eta_tilde, zeta_tilde):
    # The model is defined in the frame of a detector rotated by [[0, 1], [-1, 0]]:
    # its kappa axis is -zeta and its mu axis is eta, so the r index runs along
    # zeta and the s index along eta.
    return legendre(r, zeta_tilde) * legendre(s, eta_tilde)


class LegendreCalibration:
    """Per-exposure calibration model of 2D Legendre terms up to order 5."""

    def __init__(self, order_scale: Optional[List[int]] = None):
        if order_scale is None:
            order_scale = DEFAULT_ORDER_SCALE
        self.order_scale = self._check_order_scale(order_scale)
        size = HIGHEST_ORDER + 1
        self.enabled = np.zeros((size, size), dtype=bool)
        self.eta_coeff = np.zeros((size, size))
        self.zeta_coeff = np.zeros((size, size))
        self.reset()

    @staticmethod
    def _check_order_scale(order_scale) -> List[int]:
        if len(order_scale) != HIGHEST_ORDER + 1:
            raise ValueError(
                f"orderScale must have {HIGHEST_ORDER + 1} entries, got {len(order_scale)}."
            )
        exponents = []
        for e in order_scale:
            try:
                value = float(e)
            except (TypeError, ValueError):
                raise ValueError(f"orderScale exponent is not numeric: {e!r}")
            if not value.is_integer():
                raise ValueError(f"orderScale exponent must be an integer, got {e!r}.")
            exponents.append(int(value))
        return exponents

    @staticmethod
    def _check_term(r: int, s: int):
        if r < 0 or s < 0 or r + s > HIGHEST_ORDER:
            raise KeyError(f"No calibration term ({r}, {s}) for order <= {HIGHEST_ORDER}.")

    def reset(self):
        """Enables every term and zeroes its coefficients. orderScale is kept."""
        self.enabled[:] = False
        self.eta_coeff[:] = 0.0
        self.zeta_coeff[:] = 0.0
        for _, r, s in iter_terms():
            self.enabled[r, s] = True

    def term(self, r: int, s: int) -> Dict:
        self._check_term(r, s)
        return {
            "enabled": bool(self.enabled[r, s]),
            "eta": float(self.eta_coeff[r, s]),
            "zeta": float(self.zeta_coeff[r, s]),
        }

    def set_term(
        self,
        r: int,
        s: int,
        eta: Optional[float] = None,
        zeta: Optional[float] = None,
        enabled: Optional[bool] = None,
    ):
        self._check_term(r, s)
        if eta is not None:
            self.eta_coeff[r, s] = float(eta)
        if zeta is not None:
            self.zeta_coeff[r, s] = float(zeta)
        if enabled is not None:
            self.enabled[r, s] = bool(enabled)

    def scale_factor(self, order: int) -> float:
        return 10.0 ** self.order_scale[order]

    def terms(self, pt: NormalizedFieldCoords) -> CalibrationTerms:
        """
        Calculates (deltaEta, deltaZeta) at normalized field coordinates.

        Disabled terms contribute nothing regardless of their coefficients.
        Accepts scalars or numpy arrays for the coordinates.
        """
        delta_eta = 0.0
        delta_zeta = 0.0
        for o in range(HIGHEST_ORDER + 1):
            os_ = self.scale_factor(o)
            for s in range(o + 1):
                r = o - s
                if self.enabled[r, s]:
                    psi = basis(r, s, pt.eta_tilde, pt.zeta_tilde)
                    delta_eta = delta_eta + self.eta_coeff[r, s] * psi * os_
                    delta_zeta = delta_zeta + self.zeta_coeff[r, s] * psi * os_
        return CalibrationTerms(delta_eta, delta_zeta)

    def data(self) -> List[Dict[str, float]]:
        """Effective (scale-applied) coefficients, one record per order."""
        result = []
        for o in range(HIGHEST_ORDER + 1):
            os_ = self.scale_factor(o)
            order = {}
            for s in range(o + 1):
                r = o - s
                rs = term_key(r, s)
                if self.enabled[r, s]:
                    order[f"eta{rs}"] = float(self.eta_coeff[r, s] * os_)
                    order[f"zeta{rs}"] = float(self.zeta_coeff[r, s] * os_)
                else:
                    order[f"eta{rs}"] = 0.0
                    order[f"zeta{rs}"] = 0.0
            result.append(order)
        return result

    def to_dict(self) -> Dict:
        enabled, eta, zeta = {}, {}, {}
        for _, r, s in iter_terms():
            rs = term_key(r, s)
            enabled[rs] = bool(self.enabled[r, s])
            eta[rs] = float(self.eta_coeff[r, s])
            zeta[rs] = float(self.zeta_coeff[r, s])
        return {
            "orderScale": list(self.order_scale),
            "enabled": enabled,
            "etaCoeff": eta,
            "zetaCoeff": zeta,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "LegendreCalibration":
        """
        Rebuilds a model from `to_dict` output.

        Documents using the psi/eta/zeta names and [mantissa, exponent]
        orderScale pairs are accepted too. Any missing or malformed entry
        raises ValueError.
        """
        aliases = {"enabled": "psi", "etaCoeff": "eta", "zetaCoeff": "zeta"}
        if "orderScale" not in d:
            raise ValueError("Calibration document is missing 'orderScale'.")
        maps = {}
        for name, alias in aliases.items():
            if name in d:
                maps[name] = d[name]
            elif alias in d:
                maps[name] = d[alias]
            else:
                raise ValueError(f"Calibration document is missing '{name}'.")

        exponents = []
        for entry in d["orderScale"]:
            if isinstance(entry, (list, tuple)):
                if len(entry) != 2:
                    raise ValueError(f"Malformed orderScale entry: {entry!r}")
                entry = entry[1]
            exponents.append(entry)

        calib = cls(order_scale=exponents)
        for _, r, s in iter_terms():
            rs = term_key(r, s)
            for name in aliases:
                if rs not in maps[name]:
                    raise ValueError(f"Calibration '{name}' has no term '{rs}'.")
            flag = maps["enabled"][rs]
            if not isinstance(flag, (bool, np.bool_)):
                raise ValueError(f"Enable flag of term '{rs}' is not a boolean: {flag!r}")
            try:
                eta = float(maps["etaCoeff"][rs])
                zeta = float(maps["zetaCoeff"][rs])
            except (TypeError, ValueError) as e:
                raise ValueError(f"Coefficient of term '{rs}' is not numeric: {e}")
            calib.set_term(r, s, eta=eta, zeta=zeta, enabled=bool(flag))
        return calib

    def copy(self) -> "LegendreCalibration":
        other = LegendreCalibration(order_scale=self.order_scale)
        other.enabled = self.enabled.copy()
        other.eta_coeff = self.eta_coeff.copy()
        other.zeta_coeff = self.zeta_coeff.copy()
        return other


class LegendreFitter:
    def __init__(self, sigma: float = 2.5, max_iters: int = 5):
        self.sigma = sigma
        self.max_iters = max_iters

    def build_design_matrix(self, eta_tilde: np.ndarray, zeta_tilde: np.ndarray) -> np.ndarray:
        eta_tilde = np.asarray(eta_tilde, dtype=float)
        zeta_tilde = np.asarray(zeta_tilde, dtype=float)
        A = np.zeros((len(eta_tilde), N_TERMS))
        for idx, (_, r, s) in enumerate(iter_terms()):
            A[:, idx] = basis(r, s, eta_tilde, zeta_tilde)
        return A

    def fit_robust(self, A: np.ndarray, target: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        if len(target) < N_TERMS + 5:
            raise ValueError(f"Need at least {N_TERMS + 5} samples, got {len(target)}.")
        mask = np.ones(len(target), dtype=bool)
        coeffs = np.zeros(N_TERMS)
        for _ in range(self.max_iters):
            try:
                coeffs, _, _, _ = np.linalg.lstsq(A[mask], target[mask], rcond=None)
            except np.linalg.LinAlgError:
                break
            residuals = target - A @ coeffs
            clipped = sigma_clip(
                residuals[mask],
                sigma=self.sigma,
                maxiters=1,
                cenfunc="median",
                stdfunc=mad_std,
            )
            new_inliers = np.where(mask)[0][~np.ma.getmaskarray(clipped)]
            if len(new_inliers) < N_TERMS + 5:
                break
            new_mask = np.zeros_like(mask)
            new_mask[new_inliers] = True
            if np.array_equal(mask, new_mask):
                break
            mask = new_mask
        return coeffs, mask

    def fit(
        self,
        eta_tilde: np.ndarray,
        zeta_tilde: np.ndarray,
        delta_eta: np.ndarray,
        delta_zeta: np.ndarray,
        order_scale: Optional[List[int]] = None,
    ) -> Tuple[LegendreCalibration, Dict]:
        """
        Recovers a calibration model from offsets sampled at normalized field
        positions. Returns the model and fit statistics.
        """
        A = self.build_design_matrix(eta_tilde, zeta_tilde)
        delta_eta = np.asarray(delta_eta, dtype=float)
        delta_zeta = np.asarray(delta_zeta, dtype=float)
        c_eta, mask_eta = self.fit_robust(A, delta_eta)
        c_zeta, mask_zeta = self.fit_robust(A, delta_zeta)

        calib = LegendreCalibration(order_scale=order_scale)
        for idx, (o, r, s) in enumerate(iter_terms()):
            os_ = calib.scale_factor(o)
            calib.set_term(r, s, eta=c_eta[idx] / os_, zeta=c_zeta[idx] / os_, enabled=True)

        mask = mask_eta & mask_zeta
        res_eta = delta_eta - A @ c_eta
        res_zeta = delta_zeta - A @ c_zeta
        stats = {
            "rms_eta": float(np.std(res_eta[mask])) if np.any(mask) else 0.0,
            "rms_zeta": float(np.std(res_zeta[mask])) if np.any(mask) else 0.0,
            "n_points": int(np.sum(mask)),
            "mask": mask,
        }
        return calib, stats
