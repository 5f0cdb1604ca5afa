"""Physical model: the ODE system that evolves the baryons of one galaxy.

For every galaxy and snapshot the model

1. maps the galaxy and its subhalo reservoirs into a state vector
   (:meth:`BasicPhysicalModel.from_galaxy`),
2. integrates the rate equations of :meth:`BasicPhysicalModel.evaluate`
   over ``delta_t`` with :class:`~galevolve.ode_solver.ODESolver`, and
3. writes the result back, enforcing the physical invariants of every
   reservoir (:meth:`BasicPhysicalModel.to_galaxy`).

State vector of the basic model (17 equations)::

    0  stellar mass               1  disk cold gas mass
    2  cooling halo gas mass      3  hot halo gas mass
    4  ejected gas mass           5  stellar metals
    6  disk cold gas metals       7  cooling halo gas metals
    8  hot halo gas metals        9  ejected gas metals
    10 stellar mass formed        11 metals locked in stars formed
    12 stellar angular momentum   13 disk gas angular momentum
    14 cooling halo gas a.m.      15 hot halo gas a.m.
    16 ejected gas a.m.

Starbursts reuse the same system with the bulge components, no cooling
(indices 2 and 7 held at zero) and without angular momentum exchange.
"""
from __future__ import annotations

import logging
import math
import threading
import warnings
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from . import constants
from .components import BaryonComponent, Galaxy, GalaxyType, Subhalo
from .errors import DimensionMismatch, PhysicalInvariantViolation
from .ode_solver import ODESolver
from .physics.cooling import GasCooling
from .physics.feedback import StellarFeedback
from .physics.star_formation import StarFormation
from .schema import GasCoolingConfig, Numerics, Recycling
from .warnings import PhysicsWarning

logger = logging.getLogger(__name__)


@dataclass
class SolverParams:
    """Physical context of one integration call.

    Attributes
    ----------
    rgas, rstar : float
        Half-mass radii of the star-forming gas and of the stars [Mpc].
    mcoolrate : float
        Cooling rate onto the galaxy [Msun/Gyr]; 0 for starbursts.
    jcold_halo : float
        Specific angular momentum of the cooling gas [Mpc km/s].
    delta_t : float
        Time step [Gyr].
    redshift : float
        Redshift of the snapshot being evolved.
    vsubh, vgal : float
        Virial velocity of the subhalo and circular velocity of the gas [km/s].
    burst : bool
        ``True`` when the bulge is evolved in a starburst.
    """

    rgas: float
    rstar: float
    mcoolrate: float
    jcold_halo: float
    delta_t: float
    redshift: float
    vsubh: float
    vgal: float
    burst: bool


def _specific_am(angular_momentum: float, mass: float) -> float:
    if mass <= 0.0:
        return 0.0
    return angular_momentum / mass


def _scale_radius(sAM: float, vmax: float) -> float:
    if vmax <= 0.0:
        return math.nan
    return sAM / vmax * constants.EAGLEJconv


def _clean_reservoirs(reservoirs: Sequence[BaryonComponent]) -> None:
    for reservoir in reservoirs:
        if reservoir.mass_metals < constants.tolerance:
            reservoir.mass_metals = 0.0
    for reservoir in reservoirs:
        if reservoir.mass < constants.tolerance:
            reservoir.restore_baryon()


def _check_metals(galaxy: Galaxy, named: Sequence[tuple]) -> None:
    for name, reservoir in named:
        if reservoir.mass_metals > reservoir.mass:
            raise PhysicalInvariantViolation(
                f"Galaxy {galaxy.id} has more mass in metals than total mass in {name}: "
                f"{reservoir.mass_metals:.6e} > {reservoir.mass:.6e}"
            )


class PhysicalModel:
    """Base class owning the solver plumbing and the evaluation counters.

    Subclasses define the number of equations, the rate equations
    (:meth:`evaluate`) and the mapping between galaxies and state vectors.
    """

    num_equations: int = 0

    def __init__(
        self,
        ode_solver_precision: float,
        gas_cooling: GasCooling,
        numerics: Optional[Numerics] = None,
    ) -> None:
        self.ode_solver_precision = ode_solver_precision
        self.gas_cooling = gas_cooling
        self.numerics = numerics if numerics is not None else Numerics(ode_solver_precision=ode_solver_precision)
        self._counter_lock = threading.Lock()
        self.galaxy_ode_evaluations = 0
        self.galaxy_starburst_ode_evaluations = 0
        self.ode_soft_failures = 0

    # ------------------------------------------------------------------
    # interface implemented by concrete models
    # ------------------------------------------------------------------
    def evaluate(self, t: float, y: np.ndarray, f: np.ndarray, params: SolverParams) -> int:
        raise NotImplementedError

    def from_galaxy(self, subhalo: Subhalo, galaxy: Galaxy) -> np.ndarray:
        raise NotImplementedError

    def to_galaxy(self, y: np.ndarray, subhalo: Subhalo, galaxy: Galaxy, delta_t: float) -> None:
        raise NotImplementedError

    def from_galaxy_starburst(self, subhalo: Subhalo, galaxy: Galaxy) -> np.ndarray:
        raise NotImplementedError

    def to_galaxy_starburst(
        self,
        y: np.ndarray,
        subhalo: Subhalo,
        galaxy: Galaxy,
        delta_t: float,
        from_galaxy_merger: bool,
    ) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # integration
    # ------------------------------------------------------------------
    def get_solver(self, delta_t: float, y0: Sequence[float], params: SolverParams) -> ODESolver:
        """Return a solver for ``y0`` bound to ``params``.

        Raises
        ------
        DimensionMismatch
            If ``len(y0)`` differs from the number of equations of the model.
        """

        if len(y0) != self.num_equations:
            raise DimensionMismatch(
                f"# initial values != ODE components: {len(y0)} != {self.num_equations}"
            )

        def evaluator(t: float, y: np.ndarray, f: np.ndarray) -> int:
            return self.evaluate(t, y, f, params)

        n = self.numerics
        return ODESolver(
            y0,
            0.0,
            delta_t,
            self.ode_solver_precision,
            evaluator,
            method=n.method,
            atol=n.atol,
            min_step=n.min_step,
            max_steps=n.max_steps,
        )

    def _count(self, solver: ODESolver, *, starburst: bool) -> None:
        with self._counter_lock:
            if starburst:
                self.galaxy_starburst_ode_evaluations += solver.num_evaluations()
            else:
                self.galaxy_ode_evaluations += solver.num_evaluations()
            self.ode_soft_failures += solver.soft_failures

    def evolve_galaxy(self, subhalo: Subhalo, galaxy: Galaxy, z: float, delta_t: float) -> None:
        """Evolve the disk of ``galaxy`` and the reservoirs of ``subhalo`` by ``delta_t``."""

        mcoolrate = 0.0
        if galaxy.galaxy_type is GalaxyType.CENTRAL:
            mcoolrate = self.gas_cooling.cooling_rate(subhalo, galaxy, z, delta_t)

        rgas = galaxy.disk_gas.rscale
        if rgas > 0.0:
            vgal = galaxy.disk_gas.sAM / rgas * constants.EAGLEJconv
        elif galaxy.vmax > 0.0:
            # No gas disk yet: size it from the gas that is cooling onto it.
            rgas = subhalo.cold_halo_gas.sAM / galaxy.vmax * constants.EAGLEJconv
            vgal = galaxy.vmax
        else:
            warnings.warn(
                f"Galaxy {galaxy.id} has no gas disk and vmax <= 0; star formation is disabled this step",
                PhysicsWarning,
                stacklevel=2,
            )
            rgas = 0.0
            vgal = 0.0

        params = SolverParams(
            rgas=rgas,
            rstar=galaxy.disk_stars.rscale,
            mcoolrate=mcoolrate,
            jcold_halo=subhalo.cold_halo_gas.sAM,
            delta_t=delta_t,
            redshift=z,
            vsubh=subhalo.Vvir,
            vgal=vgal,
            burst=False,
        )
        y0 = self.from_galaxy(subhalo, galaxy)
        solver = self.get_solver(delta_t, y0, params)
        y1 = solver.evolve()
        self._count(solver, starburst=False)
        self.to_galaxy(y1, subhalo, galaxy, delta_t)

    def evolve_galaxy_starburst(
        self,
        subhalo: Subhalo,
        galaxy: Galaxy,
        z: float,
        delta_t: float,
        from_galaxy_merger: bool,
    ) -> None:
        """Evolve a starburst in the bulge of ``galaxy``.

        Cooling gas always settles in the disk, so no cooling and no
        angular momentum exchange are considered.
        """

        rgas = galaxy.bulge_gas.rscale
        if rgas > 0.0:
            vgal = galaxy.bulge_gas.sAM / rgas
        else:
            vgal = galaxy.vmax

        params = SolverParams(
            rgas=rgas,
            rstar=galaxy.bulge_stars.rscale,
            mcoolrate=0.0,
            jcold_halo=0.0,
            delta_t=delta_t,
            redshift=z,
            vsubh=subhalo.Vvir,
            vgal=vgal,
            burst=True,
        )
        y0 = self.from_galaxy_starburst(subhalo, galaxy)
        solver = self.get_solver(delta_t, y0, params)
        y1 = solver.evolve()
        self._count(solver, starburst=True)
        self.to_galaxy_starburst(y1, subhalo, galaxy, delta_t, from_galaxy_merger)

    # ------------------------------------------------------------------
    # counters
    # ------------------------------------------------------------------
    def get_galaxy_ode_evaluations(self) -> int:
        with self._counter_lock:
            return self.galaxy_ode_evaluations

    def get_galaxy_starburst_ode_evaluations(self) -> int:
        with self._counter_lock:
            return self.galaxy_starburst_ode_evaluations

    def get_ode_soft_failures(self) -> int:
        with self._counter_lock:
            return self.ode_soft_failures

    def reset_ode_evaluations(self) -> None:
        with self._counter_lock:
            self.galaxy_ode_evaluations = 0
            self.galaxy_starburst_ode_evaluations = 0
            self.ode_soft_failures = 0


class BasicPhysicalModel(PhysicalModel):
    """Cooling, star formation, recycling and stellar feedback of one galaxy."""

    num_equations = constants.NUM_BASIC_EQUATIONS

    def __init__(
        self,
        ode_solver_precision: float,
        gas_cooling: GasCooling,
        stellar_feedback: StellarFeedback,
        star_formation: StarFormation,
        recycling: Recycling,
        gas_cooling_parameters: GasCoolingConfig,
        numerics: Optional[Numerics] = None,
    ) -> None:
        super().__init__(ode_solver_precision, gas_cooling, numerics)
        self.stellar_feedback = stellar_feedback
        self.star_formation = star_formation
        self.recycling = recycling
        self.gas_cooling_parameters = gas_cooling_parameters

    def evaluate(self, t: float, y: np.ndarray, f: np.ndarray, params: SolverParams) -> int:
        R = self.recycling.recycle
        yield_ = self.recycling.yield_
        mcoolrate = params.mcoolrate

        zcold = self.gas_cooling_parameters.pre_enrich_z
        zhot = self.gas_cooling_parameters.pre_enrich_z
        jgas = 2.0 * params.vgal * params.rgas / constants.RDISK_HALF_SCALE

        if y[1] > 0.0 and y[6] > 0.0:
            zcold = y[6] / y[1]
            if not params.burst:
                jgas = y[13] / y[1]
        if y[2] > 0.0 and y[7] > 0.0:
            zhot = y[7] / y[2]

        SFR, jrate = self.star_formation.star_formation_rate(
            y[1], y[0], params.rgas, params.rstar, zcold, params.redshift, params.burst, params.vgal, jgas
        )
        loadings = self.stellar_feedback.outflow_rate(SFR, params.vsubh, params.vgal, params.redshift)
        beta1, beta2 = loadings.beta1, loadings.beta2
        betaj_1, betaj_2 = loadings.betaj_1, loadings.betaj_2

        rsub = 1.0 - R

        # Mass exchange.
        f[0] = SFR * rsub
        f[1] = mcoolrate - (rsub + beta1) * SFR
        f[2] = -mcoolrate
        f[3] = (beta1 - beta2) * SFR
        f[4] = beta2 * SFR

        # Metals.
        f[5] = rsub * zcold * SFR
        f[6] = mcoolrate * zhot + SFR * (yield_ - (rsub + beta1) * zcold)
        f[7] = -mcoolrate * zhot
        f[8] = (beta1 - beta2) * zcold * SFR
        f[9] = beta2 * zcold * SFR

        # Stellar mass and metals formed, without recycling.
        f[10] = SFR
        f[11] = zcold * SFR

        # Angular momentum.
        f[12] = rsub * jrate
        f[13] = mcoolrate * params.jcold_halo - (rsub + betaj_1) * jrate
        f[14] = -mcoolrate * params.jcold_halo
        f[15] = (betaj_1 - betaj_2) * jrate
        f[16] = betaj_2 * jrate
        return 0

    def from_galaxy(self, subhalo: Subhalo, galaxy: Galaxy) -> np.ndarray:
        y = np.zeros(self.num_equations)

        y[0] = galaxy.disk_stars.mass
        y[1] = galaxy.disk_gas.mass
        y[2] = subhalo.cold_halo_gas.mass
        y[3] = subhalo.hot_halo_gas.mass
        y[4] = subhalo.ejected_galaxy_gas.mass

        y[5] = galaxy.disk_stars.mass_metals
        y[6] = galaxy.disk_gas.mass_metals
        y[7] = subhalo.cold_halo_gas.mass_metals
        y[8] = subhalo.hot_halo_gas.mass_metals
        y[9] = subhalo.ejected_galaxy_gas.mass_metals

        y[12] = galaxy.disk_stars.angular_momentum()
        y[13] = galaxy.disk_gas.angular_momentum()
        y[14] = subhalo.cold_halo_gas.angular_momentum()
        y[15] = subhalo.hot_halo_gas.angular_momentum()
        y[16] = subhalo.ejected_galaxy_gas.angular_momentum()
        return y

    def to_galaxy(self, y: np.ndarray, subhalo: Subhalo, galaxy: Galaxy, delta_t: float) -> None:
        if y[0] < galaxy.disk_stars.mass:
            raise PhysicalInvariantViolation(
                f"Galaxy {galaxy.id} decreased its stellar mass after disk star formation: "
                f"{galaxy.disk_stars.mass:.6e} -> {y[0]:.6e}"
            )

        disk_stars, disk_gas = galaxy.disk_stars, galaxy.disk_gas
        cold, hot, ejected = subhalo.cold_halo_gas, subhalo.hot_halo_gas, subhalo.ejected_galaxy_gas

        disk_stars.mass = float(y[0])
        disk_gas.mass = float(y[1])
        cold.mass = float(y[2])
        hot.mass = float(y[3])
        ejected.mass = float(y[4])

        disk_stars.mass_metals = float(y[5])
        disk_gas.mass_metals = float(y[6])
        cold.mass_metals = float(y[7])
        hot.mass_metals = float(y[8])
        ejected.mass_metals = float(y[9])

        galaxy.sfr_disk += y[10] / delta_t
        galaxy.sfr_z_disk += y[11] / delta_t

        # Angular momenta are only updated while both stars and gas keep some.
        if y[12] > 0.0 and y[13] > 0.0:
            disk_stars.sAM = _specific_am(y[12], disk_stars.mass)
            disk_gas.sAM = _specific_am(y[13], disk_gas.mass)
            cold.sAM = _specific_am(y[14], cold.mass)
            hot.sAM = _specific_am(y[15], hot.mass)
            ejected.sAM = _specific_am(y[16], ejected.mass)

            disk_stars.rscale = _scale_radius(disk_stars.sAM, galaxy.vmax)
            disk_gas.rscale = _scale_radius(disk_gas.sAM, galaxy.vmax)

            for name, value in (
                ("disk_stars.sAM", disk_stars.sAM),
                ("disk_stars.rscale", disk_stars.rscale),
                ("disk_gas.sAM", disk_gas.sAM),
                ("disk_gas.rscale", disk_gas.rscale),
                ("cold_halo_gas.sAM", cold.sAM),
                ("hot_halo_gas.sAM", hot.sAM),
                ("ejected_galaxy_gas.sAM", ejected.sAM),
            ):
                if math.isnan(value):
                    raise PhysicalInvariantViolation(
                        f"Galaxy {galaxy.id}: {name} is NaN after disk star formation"
                    )

            if disk_stars.rscale <= constants.tolerance and disk_stars.mass > 0.0:
                raise PhysicalInvariantViolation(
                    f"Galaxy {galaxy.id} with extremely small stellar disk, "
                    f"disk_stars.rscale={disk_stars.rscale:.3e} <= {constants.tolerance:g}"
                )

        _clean_reservoirs((disk_stars, disk_gas, cold, hot, ejected))
        _check_metals(
            galaxy,
            (
                ("disk_stars", disk_stars),
                ("disk_gas", disk_gas),
                ("cold_halo_gas", cold),
                ("hot_halo_gas", hot),
                ("ejected_galaxy_gas", ejected),
            ),
        )

    def from_galaxy_starburst(self, subhalo: Subhalo, galaxy: Galaxy) -> np.ndarray:
        y = np.zeros(self.num_equations)

        y[0] = galaxy.bulge_stars.mass
        y[1] = galaxy.bulge_gas.mass
        y[3] = subhalo.hot_halo_gas.mass
        y[4] = subhalo.ejected_galaxy_gas.mass

        y[5] = galaxy.bulge_stars.mass_metals
        y[6] = galaxy.bulge_gas.mass_metals
        y[8] = subhalo.hot_halo_gas.mass_metals
        y[9] = subhalo.ejected_galaxy_gas.mass_metals
        return y

    def to_galaxy_starburst(
        self,
        y: np.ndarray,
        subhalo: Subhalo,
        galaxy: Galaxy,
        delta_t: float,
        from_galaxy_merger: bool,
    ) -> None:
        bulge_stars, bulge_gas = galaxy.bulge_stars, galaxy.bulge_gas
        hot, ejected = subhalo.hot_halo_gas, subhalo.ejected_galaxy_gas

        if y[0] < bulge_stars.mass:
            raise PhysicalInvariantViolation(
                f"Galaxy {galaxy.id} decreased its stellar mass after a starburst: "
                f"{bulge_stars.mass:.6e} -> {y[0]:.6e}"
            )

        if from_galaxy_merger:
            galaxy.galaxymergers_burst_stars.mass += y[0] - bulge_stars.mass
            galaxy.galaxymergers_burst_stars.mass_metals += y[5] - bulge_stars.mass_metals
            galaxy.sfr_bulge_mergers += y[10] / delta_t
            galaxy.sfr_z_bulge_mergers += y[11] / delta_t
        else:
            galaxy.diskinstabilities_burst_stars.mass += y[0] - bulge_stars.mass
            galaxy.diskinstabilities_burst_stars.mass_metals += y[5] - bulge_stars.mass_metals
            galaxy.sfr_bulge_diskins += y[10] / delta_t
            galaxy.sfr_z_bulge_diskins += y[11] / delta_t

        bulge_stars.mass = float(y[0])
        bulge_gas.mass = float(y[1])
        hot.mass = float(y[3])
        ejected.mass = float(y[4])

        bulge_stars.mass_metals = float(y[5])
        bulge_gas.mass_metals = float(y[6])
        hot.mass_metals = float(y[8])
        ejected.mass_metals = float(y[9])

        _clean_reservoirs((bulge_stars, bulge_gas, hot, ejected))
        _check_metals(
            galaxy,
            (
                ("bulge_stars", bulge_stars),
                ("bulge_gas", bulge_gas),
                ("hot_halo_gas", hot),
                ("ejected_galaxy_gas", ejected),
            ),
        )

    def reset_ode_evaluations(self) -> None:
        super().reset_ode_evaluations()
        self.star_formation.reset_integration_intervals()

    def get_star_formation_integration_intervals(self) -> int:
        return self.star_formation.get_integration_intervals()


__all__ = ["SolverParams", "PhysicalModel", "BasicPhysicalModel"]
