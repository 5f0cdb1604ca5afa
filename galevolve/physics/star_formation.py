"""Star formation rate laws.

The reference law follows the pressure-regulated molecular fraction of
Blitz & Rosolowsky (2006, BR06).  Gas and stars are distributed in
exponential disks; at each radius the midplane pressure sets the ratio of
molecular to atomic gas and the molecular gas is consumed at the rate
``nu_sf``:

``Σ_SFR(r) = nu_sf · f_mol(r) · Σ_gas(r)``,
``f_mol = R_mol / (1 + R_mol)``,  ``R_mol = (P / P_o)^β_press``,
``P = (π/2) G Σ_gas [Σ_gas + (σ_gas / σ_*) Σ_*]``.

The star formation rate is the radial integral of ``Σ_SFR`` performed with
:func:`scipy.integrate.quad`.  The angular momentum transferred from gas to
stars is integrated in the same way assuming a flat rotation curve, and
rescaled so that it is consistent with the current specific angular
momentum of the gas.

The ``constant`` model consumes the whole gas reservoir at ``nu_sf`` and is
mainly useful for tests and quick runs.
"""
from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Tuple

from scipy.integrate import quad

from .. import constants
from ..schema import StarFormationConfig

logger = logging.getLogger(__name__)

# Ratio between the exponential scale length and the scale height of
# stellar disks (Kregel et al. 2002).
STELLAR_DISK_FLATTENING: float = 7.3


@dataclass(frozen=True)
class MolecularGas:
    """Molecular and atomic gas masses of the disk and the bulge [Msun]."""

    m_mol: float = 0.0
    m_atom: float = 0.0
    m_mol_b: float = 0.0
    m_atom_b: float = 0.0


class StarFormation:
    """Star formation rate law evaluated on exponential disks."""

    def __init__(self, parameters: StarFormationConfig) -> None:
        self.parameters = parameters
        self._lock = threading.Lock()
        self._integration_intervals = 0

    # ------------------------------------------------------------------
    # surface densities and pressure
    # ------------------------------------------------------------------
    @staticmethod
    def _surface_density(mass: float, scale_length: float, r: float) -> float:
        if mass <= 0.0 or scale_length <= 0.0:
            return 0.0
        return mass / (2.0 * math.pi * scale_length**2) * math.exp(-r / scale_length)

    def _molecular_fraction(
        self,
        r: float,
        mgas: float,
        re_gas: float,
        mstars: float,
        re_star: float,
    ) -> float:
        sigma_gas = self._surface_density(mgas, re_gas, r)
        if sigma_gas <= 0.0:
            return 0.0
        sigma_star = self._surface_density(mstars, re_star, r)

        pressure = sigma_gas * sigma_gas
        if sigma_star > 0.0:
            h_star = re_star / STELLAR_DISK_FLATTENING
            veldisp_star = math.sqrt(math.pi * constants.G * h_star * sigma_star)
            if veldisp_star > 0.0:
                pressure += self.parameters.gas_velocity_dispersion / veldisp_star * sigma_gas * sigma_star
        pressure *= 0.5 * math.pi * constants.G * constants.PRESSURE_CODE_TO_K_CM3

        rmol = (pressure / self.parameters.Po) ** self.parameters.beta_press
        return rmol / (1.0 + rmol)

    def _integrate(self, integrand, upper: float) -> float:
        p = self.parameters
        result = quad(integrand, 0.0, upper, epsabs=p.epsabs, epsrel=p.epsrel, limit=100, full_output=1)
        value, _abserr, info = result[:3]
        with self._lock:
            self._integration_intervals += int(info["last"])
        return value

    def _molecular_mass(self, mgas: float, mstars: float, rgas: float, rstars: float) -> float:
        if mgas <= 0.0 or rgas <= 0.0:
            return 0.0
        re_gas = rgas / constants.RDISK_HALF_SCALE
        re_star = rstars / constants.RDISK_HALF_SCALE if rstars > 0.0 else 0.0

        def integrand(r: float) -> float:
            sigma_gas = self._surface_density(mgas, re_gas, r)
            fmol = self._molecular_fraction(r, mgas, re_gas, mstars, re_star)
            return fmol * sigma_gas * 2.0 * math.pi * r

        return self._integrate(integrand, self.parameters.radial_range * re_gas)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def star_formation_rate(
        self,
        mgas: float,
        mstars: float,
        rgas: float,
        rstars: float,
        zgas: float,
        z: float,
        burst: bool,
        vgal: float,
        jgas: float,
    ) -> Tuple[float, float]:
        """Return the star formation rate and the angular momentum transfer rate.

        Parameters
        ----------
        mgas, mstars:
            Cold gas and stellar mass of the star-forming component [Msun].
        rgas, rstars:
            Half-mass radii of the gas and stellar components [Mpc].
        zgas:
            Metallicity of the cold gas.
        z:
            Redshift.
        burst:
            ``True`` for starbursts in the bulge.
        vgal:
            Circular velocity of the gas [km/s].
        jgas:
            Specific angular momentum of the cold gas [Mpc km/s].

        Returns
        -------
        tuple
            ``(sfr, jrate)`` in Msun/Gyr and Msun Mpc km/s Gyr^-1.
        """

        if mgas <= 0.0 or rgas <= 0.0:
            return 0.0, 0.0

        p = self.parameters
        nu_sf = p.nu_sf * (p.boost_starburst if burst else 1.0)

        if p.model == "constant":
            sfr = nu_sf * mgas
            return sfr, sfr * jgas

        re_gas = rgas / constants.RDISK_HALF_SCALE
        re_star = rstars / constants.RDISK_HALF_SCALE if rstars > 0.0 else 0.0
        upper = p.radial_range * re_gas

        def sfr_integrand(r: float) -> float:
            sigma_gas = self._surface_density(mgas, re_gas, r)
            fmol = self._molecular_fraction(r, mgas, re_gas, mstars, re_star)
            return nu_sf * fmol * sigma_gas * 2.0 * math.pi * r

        sfr = self._integrate(sfr_integrand, upper)
        if sfr <= 0.0:
            return 0.0, 0.0

        if burst or not p.angular_momentum_transfer or vgal <= 0.0:
            return sfr, sfr * jgas

        def jrate_integrand(r: float) -> float:
            return sfr_integrand(r) * r * vgal

        jrate = self._integrate(jrate_integrand, upper)
        # An exponential disk with a flat rotation curve has j = 2 v re.
        jrate *= jgas / (2.0 * vgal * re_gas)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "star_formation_rate: mgas=%.3e rgas=%.3e sfr=%.3e jrate=%.3e zgas=%.3e",
                mgas,
                rgas,
                sfr,
                jrate,
                zgas,
            )
        return sfr, jrate

    def molecular_gas(self, galaxy, z: float) -> MolecularGas:
        """Split the disk and bulge gas of ``galaxy`` into molecular and atomic gas."""

        if self.parameters.model == "constant":
            return MolecularGas(
                m_mol=galaxy.disk_gas.mass,
                m_atom=0.0,
                m_mol_b=galaxy.bulge_gas.mass,
                m_atom_b=0.0,
            )

        m_mol = self._molecular_mass(
            galaxy.disk_gas.mass,
            galaxy.disk_stars.mass,
            galaxy.disk_gas.rscale,
            galaxy.disk_stars.rscale,
        )
        m_mol_b = self._molecular_mass(
            galaxy.bulge_gas.mass,
            galaxy.bulge_stars.mass,
            galaxy.bulge_gas.rscale,
            galaxy.bulge_stars.rscale,
        )
        m_atom = max(galaxy.disk_gas.mass - m_mol, 0.0)
        m_atom_b = max(galaxy.bulge_gas.mass - m_mol_b, 0.0)
        return MolecularGas(m_mol=m_mol, m_atom=m_atom, m_mol_b=m_mol_b, m_atom_b=m_atom_b)

    def get_integration_intervals(self) -> int:
        with self._lock:
            return self._integration_intervals

    def reset_integration_intervals(self) -> None:
        with self._lock:
            self._integration_intervals = 0


__all__ = ["MolecularGas", "StarFormation", "STELLAR_DISK_FLATTENING"]
