"""Orchestrator layer for galaxy evolution runs.

This module coordinates the per-snapshot workflow.  It separates the
control flow from the physics and from the I/O:

1. **Orchestrator (this module)**
   - Physical model construction from the configuration
   - Snapshot time steps from the configured redshifts
   - Galaxy evolution over all subhalos of a snapshot
   - Baryon accounting and the transfer to the next snapshot

2. **Physics (galevolve.physical_model, galevolve.physics.*)**
   - ODE system of one galaxy and the rate laws feeding it

3. **I/O (galevolve.io.*)**
   - Parquet and JSON output
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .components import Galaxy, Halo, HaloArena, Subhalo
from .cosmology import Cosmology
from .errors import ConfigurationError
from .evolve_halos import SnapshotBaryons, TotalBaryon, track_total_baryons, transfer_galaxies_to_next_snapshot
from .io import writer
from .physical_model import BasicPhysicalModel
from .physics.cooling import GasCooling
from .physics.feedback import StellarFeedback
from .physics.star_formation import MolecularGas, StarFormation
from .schema import Config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotStep:
    """Redshift and duration of the interval from ``snapshot`` to ``snapshot + 1``.

    Attributes
    ----------
    snapshot : int
        Snapshot whose galaxies are evolved.
    redshift : float
        Redshift at the start of the interval.
    delta_t : float
        Cosmic time elapsed until the next snapshot [Gyr].
    """

    snapshot: int
    redshift: float
    delta_t: float


def build_physical_model(cfg: Config) -> BasicPhysicalModel:
    """Assemble the basic physical model described by ``cfg``."""

    model = BasicPhysicalModel(
        cfg.numerics.ode_solver_precision,
        GasCooling(cfg.gas_cooling),
        StellarFeedback(cfg.stellar_feedback),
        StarFormation(cfg.star_formation),
        cfg.recycling,
        cfg.gas_cooling,
        numerics=cfg.numerics,
    )
    logger.info(
        "build_physical_model: precision=%g method=%s feedback=%s/%s star_formation=%s",
        cfg.numerics.ode_solver_precision,
        cfg.numerics.method,
        cfg.stellar_feedback.variant,
        cfg.stellar_feedback.model,
        cfg.star_formation.model,
    )
    return model


def snapshot_step(cfg: Config, cosmology: Cosmology, snapshot: int) -> SnapshotStep:
    """Return the :class:`SnapshotStep` that evolves ``snapshot`` to the next one."""

    redshifts = cfg.simulation.redshifts
    if snapshot not in redshifts or snapshot + 1 not in redshifts:
        raise ConfigurationError(
            f"simulation.redshifts needs snapshots {snapshot} and {snapshot + 1} to evolve snapshot {snapshot}"
        )
    z = redshifts[snapshot]
    delta_t = cosmology.convert_redshift_to_age(redshifts[snapshot + 1]) - cosmology.convert_redshift_to_age(z)
    return SnapshotStep(snapshot=snapshot, redshift=z, delta_t=delta_t)


def snapshot_schedule(
    cfg: Config,
    cosmology: Cosmology,
    first: Optional[int] = None,
    last: Optional[int] = None,
) -> List[SnapshotStep]:
    """Return the steps evolving snapshots ``first`` to ``last`` inclusive."""

    sim = cfg.simulation
    first = sim.min_snapshot if first is None else first
    last = sim.max_snapshot - 1 if last is None else last
    if first > last:
        raise ConfigurationError(f"Cannot run snapshots {first}..{last}")
    return [snapshot_step(cfg, cosmology, snapshot) for snapshot in range(first, last + 1)]


def _evolve_subhalo(model: BasicPhysicalModel, subhalo: Subhalo, z: float, delta_t: float) -> int:
    # Galaxies of one subhalo share its halo gas and are evolved in order.
    for galaxy in subhalo.galaxies:
        model.evolve_galaxy(subhalo, galaxy, z, delta_t)
        if galaxy.bulge_gas.mass <= 0.0:
            continue
        interaction = galaxy.interaction
        if interaction.mergers() > 0:
            model.evolve_galaxy_starburst(subhalo, galaxy, z, delta_t, from_galaxy_merger=True)
        elif interaction.disk_instabilities > 0:
            model.evolve_galaxy_starburst(subhalo, galaxy, z, delta_t, from_galaxy_merger=False)
    return subhalo.galaxy_count()


def evolve_halos(
    model: BasicPhysicalModel,
    halos: Sequence[Halo],
    z: float,
    delta_t: float,
    *,
    workers: int = 1,
) -> int:
    """Evolve every galaxy hosted by ``halos`` and return how many were evolved.

    Subhalos are independent and run on a thread pool when ``workers > 1``.
    The call returns only when all of them are done; the first error in
    submission order is re-raised.
    """

    subhalos = [subhalo for halo in halos for subhalo in halo.all_subhalos() if subhalo.galaxies]
    if workers <= 1 or len(subhalos) <= 1:
        return sum(_evolve_subhalo(model, subhalo, z, delta_t) for subhalo in subhalos)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(_evolve_subhalo, model, subhalo, z, delta_t) for subhalo in subhalos]
    return sum(future.result() for future in futures)


def molecular_gas_per_galaxy(
    star_formation: StarFormation,
    halos: Sequence[Halo],
    z: float,
) -> Dict[Galaxy, MolecularGas]:
    """Return the molecular/atomic gas split of every galaxy in ``halos``."""

    molgas: Dict[Galaxy, MolecularGas] = {}
    for halo in halos:
        for subhalo in halo.all_subhalos():
            for galaxy in subhalo.galaxies:
                molgas[galaxy] = star_formation.molecular_gas(galaxy, z)
    return molgas


class SimulationRun:
    """Evolve the galaxies of a merger tree snapshot by snapshot.

    Parameters
    ----------
    cfg:
        Validated run configuration.
    arena:
        Halos and subhalos of every snapshot, populated with the initial
        galaxies.
    model:
        Physical model; built from ``cfg`` when omitted.
    """

    def __init__(
        self,
        cfg: Config,
        arena: HaloArena,
        *,
        model: Optional[BasicPhysicalModel] = None,
        cosmology: Optional[Cosmology] = None,
    ) -> None:
        self.cfg = cfg
        self.arena = arena
        self.model = model if model is not None else build_physical_model(cfg)
        self.cosmology = cosmology if cosmology is not None else Cosmology(cfg.cosmology)
        self.all_baryons = TotalBaryon()
        self.outdir: Optional[Path] = None
        self.snapshots_evolved: List[int] = []
        self.galaxies_evolved = 0
        self.galaxy_ode_evaluations = 0
        self.galaxy_starburst_ode_evaluations = 0
        self.star_formation_integration_intervals = 0
        self.ode_soft_failures = 0
        self.wall_time_s = 0.0

    def run_snapshot(self, snapshot: int) -> SnapshotBaryons:
        """Evolve ``snapshot``, record its baryon budget and move galaxies on.

        The budget is recorded before the transfer, which resets the star
        formation rates and interaction counts it reports.
        """

        start = time.perf_counter()
        cfg = self.cfg
        step = snapshot_step(cfg, self.cosmology, snapshot)
        halos = self.arena.halos_at(snapshot)

        n_galaxies = evolve_halos(
            self.model,
            halos,
            step.redshift,
            step.delta_t,
            workers=cfg.execution.workers,
        )
        molgas = molecular_gas_per_galaxy(self.model.star_formation, halos, step.redshift)
        record = track_total_baryons(
            halos,
            snapshot,
            self.all_baryons,
            delta_t=step.delta_t,
            redshifts=cfg.simulation.redshifts,
            cosmology=self.cosmology,
            output_sf_histories=cfg.execution.output_sf_histories,
            molgas=molgas,
        )
        if self.outdir is not None and cfg.io.write_parquet:
            writer.write_parquet(
                writer.galaxy_table(halos),
                self.outdir / "galaxies" / f"galaxies_{snapshot:03d}.parquet",
                compression=cfg.io.compression,
            )
        transfer_galaxies_to_next_snapshot(halos, snapshot, self.all_baryons, self.arena)

        evaluations = self.model.get_galaxy_ode_evaluations()
        starburst_evaluations = self.model.get_galaxy_starburst_ode_evaluations()
        intervals = self.model.get_star_formation_integration_intervals()
        soft_failures = self.model.get_ode_soft_failures()
        self.model.reset_ode_evaluations()

        elapsed = time.perf_counter() - start
        self.galaxies_evolved += n_galaxies
        self.galaxy_ode_evaluations += evaluations
        self.galaxy_starburst_ode_evaluations += starburst_evaluations
        self.star_formation_integration_intervals += intervals
        self.ode_soft_failures += soft_failures
        self.wall_time_s += elapsed
        self.snapshots_evolved.append(snapshot)

        logger.info(
            "snapshot %d: z=%.4f dt=%.4f Gyr galaxies=%d ode_evaluations=%d starburst_evaluations=%d "
            "sf_intervals=%d soft_failures=%d (%.3f s)",
            snapshot,
            step.redshift,
            step.delta_t,
            n_galaxies,
            evaluations,
            starburst_evaluations,
            intervals,
            soft_failures,
            elapsed,
        )
        return record

    def run(
        self,
        first: Optional[int] = None,
        last: Optional[int] = None,
        *,
        write_outputs: bool = True,
    ) -> TotalBaryon:
        """Evolve snapshots ``first`` to ``last`` inclusive.

        By default the run spans ``simulation.min_snapshot`` up to the
        snapshot before ``simulation.max_snapshot``, the last one that still
        has a successor.
        """

        steps = snapshot_schedule(self.cfg, self.cosmology, first, last)
        if write_outputs:
            self.outdir = Path(self.cfg.io.outdir)

        for step in steps:
            self.run_snapshot(step.snapshot)

        if write_outputs:
            outdir = Path(self.cfg.io.outdir)
            if self.cfg.io.write_parquet:
                writer.write_total_baryons(
                    self.all_baryons,
                    outdir / "total_baryons.parquet",
                    compression=self.cfg.io.compression,
                )
            writer.write_summary(self.summary(), outdir / "summary.json")
            writer.write_run_config(self.cfg.model_dump(mode="json"), outdir / "run_config.json")
        return self.all_baryons

    def summary(self) -> Dict[str, Any]:
        """Return run-level diagnostics."""

        lost = self.all_baryons.baryon_total_lost
        return {
            "snapshots": list(self.snapshots_evolved),
            "galaxies_evolved": self.galaxies_evolved,
            "galaxy_ode_evaluations": self.galaxy_ode_evaluations,
            "galaxy_starburst_ode_evaluations": self.galaxy_starburst_ode_evaluations,
            "star_formation_integration_intervals": self.star_formation_integration_intervals,
            "ode_soft_failures": self.ode_soft_failures,
            "baryon_total_lost": {str(snapshot): mass for snapshot, mass in sorted(lost.items())},
            "subhalos_without_descendant": {
                str(snapshot): count
                for snapshot, count in sorted(self.all_baryons.subhalos_without_descendant.items())
            },
            "wall_time_s": self.wall_time_s,
        }


__all__ = [
    "SnapshotStep",
    "build_physical_model",
    "snapshot_step",
    "snapshot_schedule",
    "evolve_halos",
    "molecular_gas_per_galaxy",
    "SimulationRun",
]
