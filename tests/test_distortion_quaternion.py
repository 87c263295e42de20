"""
test_distortion_quaternion.py - Unit tests for quaternion algebra

Run with:
    python -m pytest tests/test_distortion_quaternion.py -v
"""

import numpy as np
import pytest

from fpa_distortion.distortion_quaternion import Quaternion


def z_rotation(theta):
    return Quaternion(0.0, 0.0, np.sin(theta / 2.0), np.cos(theta / 2.0))


class TestMultiply:
    """Hamilton product of basis and unit quaternions."""

    def test_basis_products(self):
        i = Quaternion(1.0, 0.0, 0.0, 0.0)
        j = Quaternion(0.0, 1.0, 0.0, 0.0)
        k = Quaternion(0.0, 0.0, 1.0, 0.0)
        assert i * j == k
        assert j * i == Quaternion(0.0, 0.0, -1.0, 0.0)
        assert j * k == i
        assert k * i == j
        assert i * i == Quaternion(0.0, 0.0, 0.0, -1.0)

    def test_identity_is_neutral(self):
        q = Quaternion(0.1, -0.2, 0.3, 0.9)
        assert q.multiply(Quaternion.identity()) == q
        assert Quaternion.identity().multiply(q) == q

    def test_unit_quaternion_times_inverse(self):
        q = z_rotation(0.7)
        np.testing.assert_allclose((q * q.inverse()).as_array(), [0.0, 0.0, 0.0, 1.0], atol=1e-15)

    def test_inverse_is_conjugate(self):
        q = Quaternion(1.0, 2.0, 3.0, 4.0)
        assert q.inverse() == Quaternion(-1.0, -2.0, -3.0, 4.0)

    def test_str(self):
        assert str(Quaternion.identity()) == "[0.0, 0.0, 0.0, 1.0]"


class TestRotateAngular:
    """Rotation of directions given as spherical angles."""

    @pytest.mark.parametrize("alpha", [-3.0, -1.2, 0.0, 0.4, 2.9])
    @pytest.mark.parametrize("delta", [-1.5, -0.3, 0.0, 0.8, 1.4])
    def test_identity_rotation(self, alpha, delta):
        a, d = Quaternion.identity().rotate_angular([alpha, delta])
        assert a == pytest.approx(alpha, abs=1e-12)
        assert d == pytest.approx(delta, abs=1e-12)

    def test_quarter_turn_about_z(self):
        a, d = z_rotation(np.pi / 2.0).rotate_angular((0.0, 0.0))
        assert a == pytest.approx(np.pi / 2.0, abs=1e-12)
        assert d == pytest.approx(0.0, abs=1e-12)

    def test_rotation_about_x_moves_declination(self):
        theta = 0.3
        q = Quaternion(np.sin(theta / 2.0), 0.0, 0.0, np.cos(theta / 2.0))
        a, d = q.rotate_angular((np.pi / 2.0, 0.0))
        assert a == pytest.approx(np.pi / 2.0, abs=1e-12)
        assert d == pytest.approx(theta, abs=1e-12)

    def test_vectorized(self):
        alpha = np.linspace(-1.0, 1.0, 7)
        delta = np.linspace(-0.5, 0.5, 7)
        a, d = Quaternion.identity().rotate_angular((alpha, delta))
        np.testing.assert_allclose(a, alpha, atol=1e-12)
        np.testing.assert_allclose(d, delta, atol=1e-12)
