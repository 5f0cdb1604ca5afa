from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from galevolve.components import BaryonComponent, Galaxy, GalaxyType, Subhalo, SubhaloType  # noqa: E402
from galevolve.config_utils import config_from_mapping  # noqa: E402
from galevolve.schema import Config  # noqa: E402

BASE_CONFIG: Dict[str, Any] = {
    "stellar_feedback": {
        "model": "GALFORM",
        "galaxy_scaling": False,
        "beta_disk": 3.2,
        "v_sn": 110.0,
        "eps_halo": 1.0,
        "eps_disk": 1.0,
    },
    "recycling": {"recycle": 0.4588, "yield": 0.02908},
    "gas_cooling": {"pre_enrich_z": 1.27e-5, "tau_cool": 1.0},
    "star_formation": {"model": "constant", "nu_sf": 1.0},
    "numerics": {"ode_solver_precision": 1e-4},
    "simulation": {"redshifts": {0: 3.0, 1: 2.0, 2: 1.0}},
}


@pytest.fixture
def config_dict() -> Dict[str, Any]:
    """Return a fresh, mutable copy of a minimal valid configuration."""

    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def config(config_dict: Dict[str, Any], tmp_path: Path) -> Config:
    config_dict["io"] = {"outdir": str(tmp_path / "out")}
    return config_from_mapping(config_dict)


def make_galaxy(galaxy_id: int = 1, galaxy_type: GalaxyType = GalaxyType.CENTRAL, **overrides: Any) -> Galaxy:
    """Return a star-forming disk galaxy with realistic masses and sizes."""

    galaxy = Galaxy(
        id=galaxy_id,
        galaxy_type=galaxy_type,
        vmax=200.0,
        disk_gas=BaryonComponent(mass=1.0e10, mass_metals=1.0e8, sAM=0.5, rscale=0.5 / 200.0 * 0.67714),
        disk_stars=BaryonComponent(mass=1.0e9, mass_metals=1.0e7, sAM=0.4, rscale=0.4 / 200.0 * 0.67714),
    )
    for name, value in overrides.items():
        setattr(galaxy, name, value)
    return galaxy


@pytest.fixture
def galaxy_factory():
    return make_galaxy


def make_subhalo(
    subhalo_id: int = 10,
    snapshot: int = 0,
    subhalo_type: SubhaloType = SubhaloType.CENTRAL,
    **overrides: Any,
) -> Subhalo:
    """Return a Milky-Way-like subhalo with some hot gas and no galaxies."""

    subhalo = Subhalo(
        id=subhalo_id,
        haloID=subhalo_id // 10,
        snapshot=snapshot,
        subhalo_type=subhalo_type,
        Mvir=1.0e12,
        Vvir=200.0,
        vmax=220.0,
        concentration=10.0,
        lambda_=0.03,
        hot_halo_gas=BaryonComponent(mass=1.0e11, mass_metals=1.0e8, sAM=0.0),
    )
    for name, value in overrides.items():
        setattr(subhalo, name, value)
    return subhalo


@pytest.fixture
def subhalo_factory():
    return make_subhalo
