"""Configuration schema for galaxy evolution runs.

This module defines Pydantic models that mirror the structure of the YAML
configuration files read by :func:`galevolve.config_utils.load_config`.
Units follow :mod:`galevolve.constants`: Msun, Mpc, km/s and Gyr.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import constants
from .errors import ConfigurationError

FEEDBACK_MODELS = ("FIRE", "GALFORM", "LGALAXIES", "LAGOS13", "LAGOS13Trunc", "GALFORMFIRE")

FeedbackModelName = Literal["FIRE", "GALFORM", "LGALAXIES", "LAGOS13", "LAGOS13Trunc", "GALFORMFIRE"]


class StellarFeedback(BaseModel):
    """Stellar feedback outflow parameters.

    ``e_sn`` is the energy released per supernova [erg] and ``epsilon_cc``
    the number of core-collapse supernovae per unit stellar mass formed.
    Their product is converted to Msun (km/s)^2 per Msun at load time and
    exposed as :attr:`energy_per_unit_mass`.
    """

    model: FeedbackModelName = Field(..., description="Outflow law of the parametrized variant.")
    variant: Literal["parametrized", "simple"] = Field(
        "parametrized",
        description="'parametrized' uses the named law family, 'simple' a single power law.",
    )
    galaxy_scaling: bool = Field(False, description="Scale outflows with the galaxy instead of the subhalo velocity.")
    beta_disk: float = Field(..., description="Power-law index of the velocity scaling.")
    v_sn: float = Field(..., gt=0.0, description="Normalisation velocity of the loading [km/s].")
    eps_halo: float = Field(1.0, ge=0.0)
    eps_disk: float = Field(1.0, ge=0.0)
    redshift_power: float = 0.0
    vkin_sn: float = Field(0.0, ge=0.0, description="Kinetic supernova velocity [km/s]; accepted, no law reads it.")
    beta_halo: float = Field(0.0, description="Halo loading index; accepted, no law reads it.")
    e_sn: float = Field(0.0, ge=0.0, description="Energy per supernova [erg].")
    epsilon_cc: float = Field(0.0, ge=0.0, description="Core-collapse supernovae per Msun formed.")
    eta_cc: float = Field(0.0, ge=0.0, description="Core-collapse efficiency; accepted, no law reads it.")

    @property
    def energy_per_unit_mass(self) -> float:
        """Supernova energy per Msun formed in Msun (km/s)^2.

        The outflow laws do not use it; they work with ``eps_halo`` and
        ``eps_disk`` directly.
        """

        return self.epsilon_cc * self.e_sn / constants.MSOLAR_g / constants.KM2CM**2


class Recycling(BaseModel):
    """Instantaneous recycling approximation."""

    model_config = ConfigDict(populate_by_name=True)

    recycle: float = Field(0.4588, ge=0.0, lt=1.0, description="Returned mass fraction R.")
    yield_: float = Field(0.02908, ge=0.0, alias="yield", description="Metal yield per unit mass formed.")


class GasCoolingConfig(BaseModel):
    """Reference gas cooling law parameters."""

    pre_enrich_z: float = Field(1.27e-5, ge=0.0, description="Metallicity floor of the gas.")
    tau_cool: float = Field(1.0, gt=0.0, description="Cooling time in units of the halo dynamical time.")


class StarFormationConfig(BaseModel):
    """Reference star formation law parameters."""

    model: Literal["BR06", "constant"] = "BR06"
    nu_sf: float = Field(1.0, gt=0.0, description="Molecular gas depletion rate [Gyr^-1].")
    Po: float = Field(34673.0, gt=0.0, description="Reference midplane pressure [K cm^-3].")
    beta_press: float = Field(0.92, gt=0.0, description="Pressure power-law index.")
    boost_starburst: float = Field(10.0, gt=0.0)
    gas_velocity_dispersion: float = Field(10.0, gt=0.0, description="[km/s]")
    radial_range: float = Field(10.0, gt=0.0, description="Integration limit in disk scale lengths.")
    angular_momentum_transfer: bool = True
    epsabs: float = Field(1e-14, gt=0.0)
    epsrel: float = Field(1e-3, gt=0.0)


class Numerics(BaseModel):
    """Integrator control parameters."""

    ode_solver_precision: float = Field(0.05, description="Relative tolerance of the adaptive steps.")
    atol: float = 1e-10
    method: Literal["RK45", "DOP853"] = "RK45"
    min_step: float = Field(0.0, ge=0.0, description="Smallest internal step accepted [Gyr]; 0 disables.")
    max_steps: int = Field(100_000, gt=0)

    @field_validator("ode_solver_precision", "atol")
    def _check_tol(cls, value: float) -> float:
        if value <= 0.0:
            raise ConfigurationError("numerics tolerances must be positive")
        return value


class Execution(BaseModel):
    """Run-time execution switches."""

    output_sf_histories: bool = False
    workers: int = Field(1, ge=1, description="Threads evolving independent subhalos.")


class CosmologyConfig(BaseModel):
    omega_m: float = Field(0.3121, gt=0.0)
    omega_l: float = Field(0.6879, ge=0.0)
    hubble_h: float = Field(0.6751, gt=0.0)


class Simulation(BaseModel):
    """Snapshot layout of the merger trees."""

    redshifts: Dict[int, float] = Field(..., description="Redshift of every snapshot.")
    min_snapshot: Optional[int] = None
    max_snapshot: Optional[int] = None

    @field_validator("redshifts")
    def _check_redshifts(cls, value: Dict[int, float]) -> Dict[int, float]:
        if len(value) < 2:
            raise ConfigurationError("simulation.redshifts needs at least two snapshots")
        ordered = [value[k] for k in sorted(value)]
        for z in ordered:
            if z < 0.0:
                raise ConfigurationError("simulation.redshifts must be non-negative")
        for earlier, later in zip(ordered, ordered[1:]):
            if later >= earlier:
                raise ConfigurationError("simulation.redshifts must decrease with snapshot number")
        return value

    @model_validator(mode="after")
    def _check_range(self) -> "Simulation":
        snapshots = sorted(self.redshifts)
        if self.min_snapshot is None:
            self.min_snapshot = snapshots[0]
        if self.max_snapshot is None:
            self.max_snapshot = snapshots[-1]
        if self.min_snapshot not in self.redshifts or self.max_snapshot not in self.redshifts:
            raise ConfigurationError("simulation.min_snapshot/max_snapshot must have a redshift")
        if self.min_snapshot >= self.max_snapshot:
            raise ConfigurationError("simulation.min_snapshot must be smaller than max_snapshot")
        return self


class IO(BaseModel):
    outdir: Path = Path("out")
    write_parquet: bool = True
    compression: Literal["snappy", "gzip", "zstd", "none"] = "snappy"


class Config(BaseModel):
    """Top-level configuration object."""

    stellar_feedback: StellarFeedback
    recycling: Recycling = Recycling()
    gas_cooling: GasCoolingConfig = GasCoolingConfig()
    star_formation: StarFormationConfig = StarFormationConfig()
    numerics: Numerics = Numerics()
    execution: Execution = Execution()
    cosmology: CosmologyConfig = CosmologyConfig()
    simulation: Simulation
    io: IO = IO()


__all__ = [
    "FEEDBACK_MODELS",
    "StellarFeedback",
    "Recycling",
    "GasCoolingConfig",
    "StarFormationConfig",
    "Numerics",
    "Execution",
    "CosmologyConfig",
    "Simulation",
    "IO",
    "Config",
]
