"""Snapshot baryon budget and its Parquet serialisation."""
from __future__ import annotations

import json
from pathlib import Path

import pyarrow.parquet as pq
import pytest

from galevolve.components import BaryonComponent, GalaxyType, Halo
from galevolve.cosmology import Cosmology
from galevolve.evolve_halos import TotalBaryon, track_total_baryons
from galevolve.io import writer
from galevolve.physics.star_formation import MolecularGas
from galevolve.schema import CosmologyConfig


@pytest.fixture
def populated_halo(galaxy_factory, subhalo_factory) -> Halo:
    subhalo = subhalo_factory(10, snapshot=3)
    subhalo.cold_halo_gas = BaryonComponent(mass=2e9, mass_metals=2e6)
    subhalo.ejected_galaxy_gas = BaryonComponent(mass=4e8, mass_metals=4e5)

    central = galaxy_factory(1)
    central.bulge_stars = BaryonComponent(mass=5e9, mass_metals=5e7)
    central.bulge_gas = BaryonComponent(mass=1e8, mass_metals=1e6)
    central.galaxymergers_burst_stars = BaryonComponent(mass=3e8, mass_metals=3e6)
    central.smbh = BaryonComponent(mass=1e7)
    central.sfr_disk = 2.0e9
    central.sfr_bulge_mergers = 5.0e8
    central.interaction.major_mergers = 1

    satellite = galaxy_factory(2, GalaxyType.TYPE2)
    satellite.diskinstabilities_burst_stars = BaryonComponent(mass=1e8, mass_metals=1e6)
    satellite.sfr_bulge_diskins = 1.0e8
    satellite.interaction.disk_instabilities = 2
    subhalo.galaxies = [central, satellite]

    halo = Halo(id=1, snapshot=3, Mvir=1e12)
    halo.add_subhalo(subhalo)
    return halo


def test_budget_sums_every_reservoir(populated_halo: Halo) -> None:
    all_baryons = TotalBaryon()
    record = track_total_baryons([populated_halo], 3, all_baryons, delta_t=0.5)

    assert len(all_baryons) == 1
    assert all_baryons.records[0] is record
    assert record.snapshot == 3
    assert record.mDM == pytest.approx(1e12)
    assert record.mhot_halo.mass == pytest.approx(1e11)
    assert record.mcold_halo.mass == pytest.approx(2e9)
    assert record.mejected_halo.mass_metals == pytest.approx(4e5)
    assert record.mcold.mass == pytest.approx(2e10 + 1e8)
    assert record.mcold.mass_metals == pytest.approx(2e8 + 1e6)
    assert record.mstars.mass == pytest.approx(2e9 + 5e9)
    assert record.mstars_burst_galaxymergers.mass == pytest.approx(3e8)
    assert record.mstars_burst_diskinstabilities.mass == pytest.approx(1e8)
    assert record.mBH == pytest.approx(1e7)
    assert record.SFR_disk == pytest.approx(2.0e9)
    assert record.SFR_bulge == pytest.approx(6.0e8)
    assert (record.major_mergers, record.minor_mergers, record.disk_instabil) == (1, 0, 2)
    assert (record.mHI, record.mH2) == (0.0, 0.0)


def test_budget_uses_molecular_gas_split(populated_halo: Halo) -> None:
    central, satellite = populated_halo.central_subhalo.galaxies
    molgas = {
        central: MolecularGas(m_mol=6e9, m_atom=4e9, m_mol_b=1e8, m_atom_b=0.0),
        satellite: MolecularGas(m_mol=2e9, m_atom=8e9),
    }
    record = track_total_baryons([populated_halo], 3, TotalBaryon(), delta_t=0.5, molgas=molgas)
    assert record.mH2 == pytest.approx(8.1e9)
    assert record.mHI == pytest.approx(1.2e10)


def test_star_formation_histories_are_recorded(populated_halo: Halo) -> None:
    cosmology = Cosmology(CosmologyConfig())
    redshifts = {3: 1.0, 4: 0.5}
    central = populated_halo.central_subhalo.galaxies[0]

    track_total_baryons(
        [populated_halo],
        3,
        TotalBaryon(),
        delta_t=0.5,
        redshifts=redshifts,
        cosmology=cosmology,
        output_sf_histories=True,
    )

    mean_age = 0.5 * (cosmology.convert_redshift_to_age(1.0) + cosmology.convert_redshift_to_age(0.5))
    assert central.total_stellar_mass_ever_formed == pytest.approx(2.5e9 * 0.5)
    assert central.stellar_age() == pytest.approx(mean_age)
    assert len(central.history) == 1
    assert central.history[0].snapshot == 3
    assert central.history[0].sfr_bulge_mergers == pytest.approx(5.0e8)


def test_star_formation_histories_need_a_cosmology(populated_halo: Halo) -> None:
    with pytest.raises(ValueError):
        track_total_baryons([populated_halo], 3, TotalBaryon(), delta_t=0.5, output_sf_histories=True)


def test_frame_is_indexed_by_snapshot(populated_halo: Halo) -> None:
    all_baryons = TotalBaryon()
    track_total_baryons([populated_halo], 3, all_baryons, delta_t=0.5)
    all_baryons.baryon_total_lost[3] = 1e9

    frame = all_baryons.to_frame()

    assert list(frame.index) == [3]
    assert frame.loc[3, "mstars"] == pytest.approx(7e9)
    assert frame.loc[3, "mstars_metals"] == pytest.approx(2e7 + 5e7)
    assert frame.loc[3, "baryon_total_lost"] == pytest.approx(1e9)
    assert TotalBaryon().to_frame().empty


def test_parquet_output_carries_units(populated_halo: Halo, tmp_path: Path) -> None:
    all_baryons = TotalBaryon()
    track_total_baryons([populated_halo], 3, all_baryons, delta_t=0.5)
    path = tmp_path / "nested" / "total_baryons.parquet"

    writer.write_total_baryons(all_baryons, path)

    table = pq.read_table(path)
    assert "snapshot" in table.column_names
    assert table.column("mcold_halo").to_pylist() == pytest.approx([2e9])
    units = json.loads(table.schema.metadata[b"units"])
    assert units["mstars"] == "Msun"
    assert units["SFR_disk"] == "Msun Gyr^-1"
    definitions = json.loads(table.schema.metadata[b"definitions"])
    assert "baryon_total_lost" in definitions


def test_galaxy_catalogue(populated_halo: Halo, tmp_path: Path) -> None:
    frame = writer.galaxy_table([populated_halo])
    assert list(frame["id_galaxy"]) == [1, 2]
    assert list(frame["type"]) == [0, 2]
    assert frame["sfr_burst"].iloc[0] == pytest.approx(5.0e8)

    path = tmp_path / "galaxies.parquet"
    writer.write_parquet(frame, path, compression="none")
    assert pq.read_table(path).num_rows == 2
