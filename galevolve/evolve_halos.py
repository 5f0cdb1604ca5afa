"""Snapshot boundary bookkeeping: galaxy transfer and total baryon accounting.

:func:`transfer_galaxies_to_next_snapshot` moves every galaxy and halo gas
reservoir from its subhalo to the descendant subhalo at the next snapshot,
reclassifying the main galaxy of each subhalo on the way.
:func:`track_total_baryons` aggregates the baryon content of all halos at a
snapshot into an immutable :class:`SnapshotBaryons` record.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from .components import BaryonComponent, GalaxyType, Halo, HaloArena, HistoryItem, Subhalo, SubhaloType
from .cosmology import Cosmology
from .errors import TreeConsistencyError
from .physics.star_formation import MolecularGas

logger = logging.getLogger(__name__)

_NO_MOLECULAR_GAS = MolecularGas()


@dataclass(frozen=True)
class BaryonTotals:
    """Total mass and metal mass of one reservoir summed over all galaxies."""

    mass: float = 0.0
    mass_metals: float = 0.0

    @classmethod
    def from_component(cls, component: BaryonComponent) -> "BaryonTotals":
        return cls(mass=component.mass, mass_metals=component.mass_metals)


@dataclass(frozen=True)
class SnapshotBaryons:
    """Global baryon budget of one snapshot."""

    snapshot: int
    mDM: float
    mhot_halo: BaryonTotals
    mcold_halo: BaryonTotals
    mejected_halo: BaryonTotals
    mcold: BaryonTotals
    mstars: BaryonTotals
    mstars_burst_galaxymergers: BaryonTotals
    mstars_burst_diskinstabilities: BaryonTotals
    mBH: float
    mHI: float
    mH2: float
    SFR_disk: float
    SFR_bulge: float
    major_mergers: int
    minor_mergers: int
    disk_instabil: int

    def flat(self) -> Dict[str, float]:
        """Return the record as a flat mapping (``mstars_metals`` etc.)."""

        row: Dict[str, float] = {}
        for key, value in asdict(self).items():
            if isinstance(value, dict):
                row[key] = value["mass"]
                row[f"{key}_metals"] = value["mass_metals"]
            else:
                row[key] = value
        return row


@dataclass
class TotalBaryon:
    """Append-only, snapshot-indexed log of the global baryon budget."""

    records: List[SnapshotBaryons] = field(default_factory=list)
    baryon_total_lost: Dict[int, float] = field(default_factory=dict)
    subhalos_without_descendant: Dict[int, int] = field(default_factory=dict)

    def append(self, record: SnapshotBaryons) -> None:
        self.records.append(record)

    def __len__(self) -> int:
        return len(self.records)

    def to_frame(self):
        """Return the log as a :class:`pandas.DataFrame` indexed by snapshot."""

        import pandas as pd

        rows = []
        for record in self.records:
            row = record.flat()
            row["baryon_total_lost"] = self.baryon_total_lost.get(record.snapshot, 0.0)
            rows.append(row)
        frame = pd.DataFrame(rows)
        if not frame.empty:
            frame = frame.set_index("snapshot")
        return frame


def adjust_main_galaxy(parent: Subhalo, descendant: Subhalo) -> None:
    """Reclassify the main galaxy of ``parent`` for its life in ``descendant``.

    Only the main progenitor passes its main galaxy on as the CENTRAL (or
    TYPE1) galaxy of the descendant; every other main galaxy becomes a
    TYPE2 and keeps a copy of the properties of its last subhalo.
    """

    if parent.subhalo_type is SubhaloType.CENTRAL:
        main_galaxy = parent.central_galaxy()
    else:
        main_galaxy = parent.type1_galaxy()
    if main_galaxy is None:
        return

    if descendant.subhalo_type is SubhaloType.CENTRAL:
        main_galaxy.galaxy_type = GalaxyType.CENTRAL if parent.main_progenitor else GalaxyType.TYPE2
    else:
        main_galaxy.galaxy_type = GalaxyType.TYPE1 if parent.main_progenitor else GalaxyType.TYPE2

    if main_galaxy.galaxy_type is GalaxyType.TYPE2:
        main_galaxy.concentration_type2 = parent.concentration
        main_galaxy.msubhalo_type2 = parent.Mvir
        main_galaxy.lambda_type2 = parent.lambda_


def transfer_galaxies_to_next_snapshot(
    halos: Sequence[Halo],
    snapshot: int,
    all_baryons: TotalBaryon,
    arena: HaloArena,
) -> None:
    """Move galaxies and halo gas of every subhalo into its descendant.

    Raises
    ------
    TreeConsistencyError
        If a descendant already hosts galaxies before the transfer or is not
        at the following snapshot.
    GalaxyCompositionError
        If a subhalo has an invalid galaxy composition before or after the
        transfer.
    """

    for halo in halos:
        for subhalo in halo.all_subhalos():
            descendant = arena.descendant_of(subhalo)
            if descendant is not None and descendant.galaxy_count() != 0:
                raise TreeConsistencyError(
                    f"Descendant subhalo {descendant.id} of subhalo {subhalo.id} already hosts "
                    f"{descendant.galaxy_count()} galaxies before the transfer"
                )

    subhalos_without_descendant = 0
    baryon_mass_loss = 0.0
    descendants: Dict[int, Subhalo] = {}

    for halo in halos:
        for subhalo in halo.all_subhalos():
            for galaxy in subhalo.galaxies:
                galaxy.reset_snapshot_rates()
                galaxy.interaction.restore_interaction_item()

            # Satellites merging at this snapshot already handed their galaxies over.
            if (
                subhalo.subhalo_type is SubhaloType.SATELLITE
                and subhalo.last_snapshot_identified == subhalo.snapshot
            ):
                continue

            descendant = arena.descendant_of(subhalo)
            if descendant is None:
                subhalos_without_descendant += 1
                baryon_mass_loss += subhalo.total_baryon_mass()
                continue

            if descendant.snapshot != subhalo.snapshot + 1:
                raise TreeConsistencyError(
                    f"Descendant subhalo {descendant.id} is at snapshot {descendant.snapshot}, "
                    f"expected {subhalo.snapshot + 1} for subhalo {subhalo.id}"
                )

            subhalo.check_subhalo_galaxy_composition()
            adjust_main_galaxy(subhalo, descendant)
            subhalo.transfer_galaxies_to(descendant)

            descendant.cold_halo_gas += subhalo.cold_halo_gas
            descendant.hot_halo_gas += subhalo.hot_halo_gas
            descendant.ejected_galaxy_gas += subhalo.ejected_galaxy_gas
            if subhalo.main_progenitor:
                descendant.cooling_subhalo_tracking = subhalo.cooling_subhalo_tracking
            descendants[descendant.id] = descendant

    for descendant in descendants.values():
        descendant.check_subhalo_galaxy_composition()

    if subhalos_without_descendant:
        all_baryons.baryon_total_lost[snapshot] = baryon_mass_loss
        all_baryons.subhalos_without_descendant[snapshot] = subhalos_without_descendant
        logger.warning(
            "Found %d subhalos without descendant while transferring galaxies at snapshot %d "
            "(%.6e Msun of baryons leave the tree)",
            subhalos_without_descendant,
            snapshot,
            baryon_mass_loss,
        )


def track_total_baryons(
    halos: Sequence[Halo],
    snapshot: int,
    all_baryons: TotalBaryon,
    *,
    delta_t: float,
    redshifts: Optional[Mapping[int, float]] = None,
    cosmology: Optional[Cosmology] = None,
    output_sf_histories: bool = False,
    molgas: Optional[Mapping[object, MolecularGas]] = None,
) -> SnapshotBaryons:
    """Aggregate the baryon content of ``halos`` and append it to ``all_baryons``.

    With ``output_sf_histories`` every galaxy also updates its mass-weighted
    stellar age (using the mean cosmic age of the snapshot interval) and
    records a :class:`~galevolve.components.HistoryItem`.
    """

    mean_age = 0.0
    if output_sf_histories:
        if redshifts is None or cosmology is None:
            raise ValueError("output_sf_histories requires redshifts and a cosmology")
        z1 = redshifts[snapshot]
        z2 = redshifts.get(snapshot + 1, z1)
        mean_age = 0.5 * (cosmology.convert_redshift_to_age(z1) + cosmology.convert_redshift_to_age(z2))

    molgas = molgas or {}

    mDM = 0.0
    mhot_halo = BaryonComponent()
    mcold_halo = BaryonComponent()
    mejected_halo = BaryonComponent()
    mcold = BaryonComponent()
    mstars = BaryonComponent()
    mbursts_mergers = BaryonComponent()
    mbursts_diskins = BaryonComponent()
    mBH = mHI = mH2 = 0.0
    sfr_disk = sfr_bulge = 0.0
    major_mergers = minor_mergers = disk_instabil = 0

    for halo in halos:
        mDM += halo.Mvir
        for subhalo in halo.all_subhalos():
            mhot_halo.mass += subhalo.hot_halo_gas.mass
            mhot_halo.mass_metals += subhalo.hot_halo_gas.mass_metals
            mcold_halo.mass += subhalo.cold_halo_gas.mass
            mcold_halo.mass_metals += subhalo.cold_halo_gas.mass_metals
            mejected_halo.mass += subhalo.ejected_galaxy_gas.mass
            mejected_halo.mass_metals += subhalo.ejected_galaxy_gas.mass_metals

            for galaxy in subhalo.galaxies:
                major_mergers += galaxy.interaction.major_mergers
                minor_mergers += galaxy.interaction.minor_mergers
                disk_instabil += galaxy.interaction.disk_instabilities

                if output_sf_histories:
                    formed = galaxy.sfr() * delta_t
                    galaxy.mean_stellar_age += formed * mean_age
                    galaxy.total_stellar_mass_ever_formed += formed
                    galaxy.history.append(
                        HistoryItem(
                            snapshot=snapshot,
                            sfr_disk=galaxy.sfr_disk,
                            sfr_bulge_mergers=galaxy.sfr_bulge_mergers,
                            sfr_bulge_diskins=galaxy.sfr_bulge_diskins,
                            sfr_z_disk=galaxy.sfr_z_disk,
                            sfr_z_bulge_mergers=galaxy.sfr_z_bulge_mergers,
                            sfr_z_bulge_diskins=galaxy.sfr_z_bulge_diskins,
                        )
                    )

                molecular = molgas.get(galaxy, _NO_MOLECULAR_GAS)
                mHI += molecular.m_atom + molecular.m_atom_b
                mH2 += molecular.m_mol + molecular.m_mol_b

                mcold.mass += galaxy.disk_gas.mass + galaxy.bulge_gas.mass
                mcold.mass_metals += galaxy.disk_gas.mass_metals + galaxy.bulge_gas.mass_metals
                mstars.mass += galaxy.disk_stars.mass + galaxy.bulge_stars.mass
                mstars.mass_metals += galaxy.disk_stars.mass_metals + galaxy.bulge_stars.mass_metals
                mbursts_mergers.mass += galaxy.galaxymergers_burst_stars.mass
                mbursts_mergers.mass_metals += galaxy.galaxymergers_burst_stars.mass_metals
                mbursts_diskins.mass += galaxy.diskinstabilities_burst_stars.mass
                mbursts_diskins.mass_metals += galaxy.diskinstabilities_burst_stars.mass_metals

                sfr_disk += galaxy.sfr_disk
                sfr_bulge += galaxy.sfr_bulge_mergers + galaxy.sfr_bulge_diskins
                mBH += galaxy.smbh.mass

    record = SnapshotBaryons(
        snapshot=snapshot,
        mDM=mDM,
        mhot_halo=BaryonTotals.from_component(mhot_halo),
        mcold_halo=BaryonTotals.from_component(mcold_halo),
        mejected_halo=BaryonTotals.from_component(mejected_halo),
        mcold=BaryonTotals.from_component(mcold),
        mstars=BaryonTotals.from_component(mstars),
        mstars_burst_galaxymergers=BaryonTotals.from_component(mbursts_mergers),
        mstars_burst_diskinstabilities=BaryonTotals.from_component(mbursts_diskins),
        mBH=mBH,
        mHI=mHI,
        mH2=mH2,
        SFR_disk=sfr_disk,
        SFR_bulge=sfr_bulge,
        major_mergers=major_mergers,
        minor_mergers=minor_mergers,
        disk_instabil=disk_instabil,
    )
    all_baryons.append(record)
    logger.info(
        "track_total_baryons: snapshot=%d mstars=%.4e mcold=%.4e mhot=%.4e SFR_disk=%.4e SFR_bulge=%.4e",
        snapshot,
        record.mstars.mass,
        record.mcold.mass,
        record.mhot_halo.mass,
        sfr_disk,
        sfr_bulge,
    )
    return record


__all__ = [
    "BaryonTotals",
    "SnapshotBaryons",
    "TotalBaryon",
    "adjust_main_galaxy",
    "transfer_galaxies_to_next_snapshot",
    "track_total_baryons",
]
