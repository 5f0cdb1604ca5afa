"""End-to-end evolution of a small merger tree over two snapshot intervals."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from galevolve.components import BaryonComponent, GalaxyType, Halo, HaloArena, SubhaloType
from galevolve.config_utils import config_from_mapping
from galevolve.cosmology import Cosmology
from galevolve.errors import ConfigurationError
from galevolve.orchestrator import SimulationRun, evolve_halos, snapshot_step


def build_tree(galaxy_factory, subhalo_factory) -> HaloArena:
    """Three snapshots: two subhalos merge at snapshot 1, one branch ends at snapshot 0."""

    central = subhalo_factory(10, snapshot=0, main_progenitor=True, descendant_id=20)
    bursting = galaxy_factory(1)
    bursting.bulge_gas = BaryonComponent(mass=1e9, mass_metals=1e7, sAM=0.01, rscale=1e-3)
    bursting.interaction.major_mergers = 1
    central.galaxies = [bursting]

    satellite = subhalo_factory(11, snapshot=0, subhalo_type=SubhaloType.SATELLITE, descendant_id=20)
    satellite.galaxies = [galaxy_factory(2, GalaxyType.TYPE1)]

    orphan = subhalo_factory(40, snapshot=0)
    orphan.galaxies = [galaxy_factory(5)]

    middle = subhalo_factory(20, snapshot=1, main_progenitor=True, descendant_id=30)
    final = subhalo_factory(30, snapshot=2)

    arena = HaloArena()
    layout = ((1, 0, (central, satellite)), (4, 0, (orphan,)), (2, 1, (middle,)), (3, 2, (final,)))
    for halo_id, snapshot, subhalos in layout:
        halo = Halo(id=halo_id, snapshot=snapshot, Mvir=1e12)
        for subhalo in subhalos:
            halo.add_subhalo(subhalo)
        arena.add_halo(halo)
    return arena


def _total_baryons(arena: HaloArena, snapshot=None) -> float:
    return sum(
        subhalo.total_baryon_mass()
        for halo in arena
        if snapshot is None or halo.snapshot == snapshot
        for subhalo in halo.all_subhalos()
    )


def test_run_conserves_baryons(config, galaxy_factory, subhalo_factory) -> None:
    arena = build_tree(galaxy_factory, subhalo_factory)
    initial = _total_baryons(arena)

    run = SimulationRun(config, arena)
    all_baryons = run.run(write_outputs=False)

    assert [record.snapshot for record in all_baryons.records] == [0, 1]
    assert all_baryons.subhalos_without_descendant == {0: 1}
    final = _total_baryons(arena, snapshot=2)
    lost = sum(all_baryons.baryon_total_lost.values())
    assert final + lost == pytest.approx(initial, rel=1e-6)
    assert sorted(g.id for g in arena.subhalo(30).galaxies) == [1, 2]


def test_run_forms_stars_and_tracks_bursts(config, galaxy_factory, subhalo_factory) -> None:
    arena = build_tree(galaxy_factory, subhalo_factory)
    bursting = arena.subhalo(10).galaxies[0]
    stars_before = bursting.stellar_mass()

    run = SimulationRun(config, arena)
    all_baryons = run.run(write_outputs=False)

    assert bursting.stellar_mass() > stars_before
    assert bursting.galaxymergers_burst_stars.mass > 0.0
    # No instability was recorded, so the leftover bulge gas waits for a trigger.
    assert bursting.diskinstabilities_burst_stars.mass == 0.0
    assert bursting.bulge_gas.mass > 0.0
    first = all_baryons.records[0]
    assert first.SFR_disk > 0.0
    assert first.SFR_bulge > 0.0
    assert first.major_mergers == 1
    assert first.mH2 == pytest.approx(first.mcold.mass)
    assert first.mstars_burst_galaxymergers.mass == pytest.approx(bursting.galaxymergers_burst_stars.mass)


def test_run_counters_and_summary(config, galaxy_factory, subhalo_factory) -> None:
    run = SimulationRun(config, build_tree(galaxy_factory, subhalo_factory))
    run.run(write_outputs=False)

    summary = run.summary()
    assert summary["snapshots"] == [0, 1]
    assert summary["galaxies_evolved"] == 3 + 2
    assert summary["galaxy_ode_evaluations"] > 0
    assert summary["galaxy_starburst_ode_evaluations"] > 0
    assert summary["baryon_total_lost"].keys() == {"0"}
    assert run.model.get_galaxy_ode_evaluations() == 0
    assert run.model.get_galaxy_starburst_ode_evaluations() == 0


def test_threaded_run_matches_serial_run(config_dict, galaxy_factory, subhalo_factory) -> None:
    results = []
    for workers in (1, 2):
        config_dict["execution"] = {"workers": workers}
        arena = build_tree(galaxy_factory, subhalo_factory)
        SimulationRun(config_from_mapping(config_dict), arena).run(write_outputs=False)
        results.append(sorted((g.id, g.stellar_mass(), g.gas_mass()) for g in arena.subhalo(30).galaxies))

    serial, threaded = results
    assert [row[0] for row in serial] == [row[0] for row in threaded]
    for a, b in zip(serial, threaded):
        assert b[1:] == pytest.approx(a[1:], rel=1e-12)


def test_run_writes_outputs(config, galaxy_factory, subhalo_factory) -> None:
    SimulationRun(config, build_tree(galaxy_factory, subhalo_factory)).run()

    outdir = Path(config.io.outdir)
    assert (outdir / "total_baryons.parquet").exists()
    assert (outdir / "galaxies" / "galaxies_000.parquet").exists()
    assert (outdir / "galaxies" / "galaxies_001.parquet").exists()
    summary = json.loads((outdir / "summary.json").read_text(encoding="utf-8"))
    assert summary["snapshots"] == [0, 1]
    run_config = json.loads((outdir / "run_config.json").read_text(encoding="utf-8"))
    assert run_config["stellar_feedback"]["model"] == "GALFORM"


def test_snapshot_step_spans_the_interval_to_the_next_snapshot(config) -> None:
    cosmology = Cosmology(config.cosmology)
    step = snapshot_step(config, cosmology, 1)
    assert step.redshift == pytest.approx(2.0)
    expected = cosmology.convert_redshift_to_age(1.0) - cosmology.convert_redshift_to_age(2.0)
    assert step.delta_t == pytest.approx(expected)
    with pytest.raises(ConfigurationError):
        snapshot_step(config, cosmology, 2)


def test_empty_snapshot_range_is_rejected(config, galaxy_factory, subhalo_factory) -> None:
    with pytest.raises(ConfigurationError):
        SimulationRun(config, build_tree(galaxy_factory, subhalo_factory)).run(1, 0, write_outputs=False)


class _FailingModel:
    def evolve_galaxy(self, subhalo, galaxy, z, delta_t):
        if subhalo.id == 11:
            raise RuntimeError(f"boom in subhalo {subhalo.id}")

    def evolve_galaxy_starburst(self, subhalo, galaxy, z, delta_t, from_galaxy_merger):
        pass


def test_worker_errors_are_reraised(galaxy_factory, subhalo_factory) -> None:
    arena = build_tree(galaxy_factory, subhalo_factory)
    with pytest.raises(RuntimeError, match="subhalo 11"):
        evolve_halos(_FailingModel(), arena.halos_at(0), 3.0, 1.0, workers=2)


class _RecordingModel:
    def __init__(self):
        self.bursts = []

    def evolve_galaxy(self, subhalo, galaxy, z, delta_t):
        pass

    def evolve_galaxy_starburst(self, subhalo, galaxy, z, delta_t, from_galaxy_merger):
        self.bursts.append((galaxy.id, from_galaxy_merger))


def test_starbursts_need_a_recorded_trigger(galaxy_factory, subhalo_factory) -> None:
    subhalo = subhalo_factory(10)
    merged = galaxy_factory(1)
    unstable, quiet, gasless = (galaxy_factory(i, GalaxyType.TYPE2) for i in (2, 3, 4))
    for galaxy in (merged, unstable, quiet):
        galaxy.bulge_gas = BaryonComponent(mass=1e9, mass_metals=1e7, sAM=0.01, rscale=1e-3)
    merged.interaction.minor_mergers = 1
    merged.interaction.disk_instabilities = 1
    unstable.interaction.disk_instabilities = 1
    gasless.interaction.major_mergers = 1
    subhalo.galaxies = [merged, unstable, quiet, gasless]
    halo = Halo(id=1, snapshot=0, Mvir=1e12)
    halo.add_subhalo(subhalo)

    model = _RecordingModel()
    assert evolve_halos(model, [halo], 3.0, 1.0) == 4
    assert model.bursts == [(1, True), (2, False)]
