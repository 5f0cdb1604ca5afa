"""ΛCDM cosmic ages used to time snapshots and stellar populations."""
from __future__ import annotations

import logging
import math
from functools import lru_cache

from scipy.integrate import quad

from . import constants
from .schema import CosmologyConfig

logger = logging.getLogger(__name__)


class Cosmology:
    """Friedmann cosmology with matter, curvature and a cosmological constant."""

    def __init__(self, parameters: CosmologyConfig) -> None:
        self.parameters = parameters
        self.omega_k = 1.0 - parameters.omega_m - parameters.omega_l
        self._age = lru_cache(maxsize=1024)(self._compute_age)

    def efunc(self, z: float) -> float:
        """Return ``H(z) / H0``."""

        p = self.parameters
        zp1 = 1.0 + z
        return math.sqrt(p.omega_m * zp1**3 + self.omega_k * zp1**2 + p.omega_l)

    def _compute_age(self, z: float) -> float:
        p = self.parameters

        # dt = da / (a H(a)), written to stay finite at a = 0.
        def integrand(a: float) -> float:
            return math.sqrt(a / (p.omega_m + self.omega_k * a + p.omega_l * a**3))

        a_upper = 1.0 / (1.0 + z)
        value, _ = quad(integrand, 0.0, a_upper, limit=200)
        age = value * constants.HUBBLE_TIME_GYR / p.hubble_h
        logger.debug("convert_redshift_to_age: z=%.4f age=%.4f Gyr", z, age)
        return age

    def convert_redshift_to_age(self, z: float) -> float:
        """Return the cosmic age at redshift ``z`` in Gyr."""

        if z < 0.0:
            raise ValueError(f"redshift must be non-negative, got {z}")
        return self._age(float(z))


__all__ = ["Cosmology"]
