"""Gas cooling from the hot halo onto central galaxies.

Hot halo gas cools on a multiple ``tau_cool`` of the halo dynamical time
``t_dyn = R_vir / V_vir``.  The gas that cools during a step is moved, with
its metals and specific angular momentum, into the subhalo's
``cold_halo_gas`` reservoir, from where the ODE system feeds it to the disk
at the rate returned by :meth:`GasCooling.cooling_rate`.
"""
from __future__ import annotations

import logging
import math

from .. import constants
from ..components import BaryonComponent, Galaxy, Subhalo
from ..schema import GasCoolingConfig

logger = logging.getLogger(__name__)


def virial_radius(mvir: float, vvir: float) -> float:
    """Return ``R_vir = G M_vir / V_vir^2`` in Mpc."""

    if mvir <= 0.0 or vvir <= 0.0:
        return 0.0
    return constants.G * mvir / vvir**2


def dynamical_time(mvir: float, vvir: float) -> float:
    """Return the halo dynamical time in Gyr (0 for empty halos)."""

    rvir = virial_radius(mvir, vvir)
    if rvir <= 0.0:
        return 0.0
    return rvir / vvir * constants.MPC_KMS_IN_GYR


class GasCooling:
    """Cooling of the hot halo gas on a fixed multiple of the dynamical time."""

    def __init__(self, parameters: GasCoolingConfig) -> None:
        self.parameters = parameters

    def cooling_rate(self, subhalo: Subhalo, galaxy: Galaxy, z: float, delta_t: float) -> float:
        """Cool hot gas into ``subhalo.cold_halo_gas`` and return its infall rate [Msun/Gyr]."""

        hot = subhalo.hot_halo_gas
        t_dyn = dynamical_time(subhalo.Mvir, subhalo.Vvir)
        mcooled = 0.0
        if hot.mass > 0.0 and t_dyn > 0.0:
            fraction = min(1.0, delta_t / (self.parameters.tau_cool * t_dyn))
            mcooled = hot.mass * fraction
            jcool = hot.sAM
            if jcool <= 0.0:
                rvir = virial_radius(subhalo.Mvir, subhalo.Vvir)
                jcool = math.sqrt(2.0) * subhalo.lambda_ * subhalo.Vvir * rvir
            cooled = BaryonComponent(mass=mcooled, mass_metals=hot.mass_metals * fraction, sAM=jcool)
            subhalo.cold_halo_gas += cooled
            hot.mass -= cooled.mass
            hot.mass_metals -= cooled.mass_metals
            if hot.mass <= constants.tolerance:
                hot.restore_baryon()

        subhalo.cooling_subhalo_tracking.record(mcooled, delta_t)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "cooling_rate: subhalo=%d galaxy=%d z=%.3f t_dyn=%.3e mcooled=%.3e",
                subhalo.id,
                galaxy.id,
                z,
                t_dyn,
                mcooled,
            )
        return subhalo.cold_halo_gas.mass / delta_t


__all__ = ["GasCooling", "virial_radius", "dynamical_time"]
