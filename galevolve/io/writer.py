"""Output helper utilities.

The routines in this module provide thin wrappers around :mod:`pandas`
functionality to serialise simulation results.  Parquet is used for the
snapshot-indexed baryon budget and the galaxy catalogues, JSON for run
summaries.  All functions ensure that destination directories are created
when necessary.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from ..components import Halo
from ..evolve_halos import TotalBaryon

_MASS_COLUMNS = (
    "mDM",
    "mhot_halo",
    "mcold_halo",
    "mejected_halo",
    "mcold",
    "mstars",
    "mstars_burst_galaxymergers",
    "mstars_burst_diskinstabilities",
    "mBH",
    "mHI",
    "mH2",
    "baryon_total_lost",
    "mstars_disk",
    "mstars_bulge",
    "mgas_disk",
    "mgas_bulge",
)

UNITS = {
    **{name: "Msun" for name in _MASS_COLUMNS},
    **{f"{name}_metals": "Msun" for name in _MASS_COLUMNS},
    "snapshot": "count",
    "redshift": "dimensionless",
    "age": "Gyr",
    "delta_t": "Gyr",
    "SFR_disk": "Msun Gyr^-1",
    "SFR_bulge": "Msun Gyr^-1",
    "sfr_disk": "Msun Gyr^-1",
    "sfr_burst": "Msun Gyr^-1",
    "major_mergers": "count",
    "minor_mergers": "count",
    "disk_instabil": "count",
    "rdisk_star": "Mpc",
    "rdisk_gas": "Mpc",
    "vmax": "km s^-1",
    "Vvir_subhalo": "km s^-1",
    "mean_stellar_age": "Gyr",
}

DEFINITIONS = {
    "mDM": "Virial mass summed over all halos of the snapshot.",
    "mhot_halo": "Hot halo gas not yet cooled onto a galaxy.",
    "mcold_halo": "Halo gas that has cooled and is falling onto the central galaxy.",
    "mejected_halo": "Gas expelled from the halo by stellar feedback.",
    "mcold": "Cold gas in disks and bulges.",
    "mstars": "Stellar mass in disks and bulges.",
    "mstars_burst_galaxymergers": "Stellar mass formed in starbursts triggered by galaxy mergers.",
    "mstars_burst_diskinstabilities": "Stellar mass formed in starbursts triggered by disk instabilities.",
    "mHI": "Atomic gas mass in disks and bulges.",
    "mH2": "Molecular gas mass in disks and bulges.",
    "SFR_disk": "Star formation rate in disks, averaged over the snapshot interval.",
    "SFR_bulge": "Star formation rate in starbursts, averaged over the snapshot interval.",
    "baryon_total_lost": "Baryons in subhalos whose merger-tree branch ends at this snapshot.",
}


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_parquet(df: pd.DataFrame, path: Path, *, compression: str = "snappy") -> None:
    """Write a DataFrame to a Parquet file using ``pyarrow``.

    Column units and definitions are stored as JSON in the schema metadata
    under the ``units`` and ``definitions`` keys.
    """
    _ensure_parent(path)
    units = {name: unit for name, unit in UNITS.items() if name in df.columns}
    definitions = {name: text for name, text in DEFINITIONS.items() if name in df.columns}
    table = pa.Table.from_pandas(df, preserve_index=False)
    metadata = dict(table.schema.metadata or {})
    metadata.update(
        {
            b"units": json.dumps(units, sort_keys=True).encode("utf-8"),
            b"definitions": json.dumps(definitions, sort_keys=True).encode("utf-8"),
        }
    )
    table = table.replace_schema_metadata(metadata)
    compression_arg = None if compression == "none" else compression
    pq.write_table(table, path, compression=compression_arg)


def write_total_baryons(all_baryons: TotalBaryon, path: Path, *, compression: str = "snappy") -> None:
    """Write the snapshot-indexed baryon budget to ``path``."""

    frame = all_baryons.to_frame()
    if not frame.empty:
        frame = frame.reset_index()
    write_parquet(frame, path, compression=compression)


def galaxy_table(halos: Iterable[Halo]) -> pd.DataFrame:
    """Return one row per galaxy hosted by ``halos``."""

    rows = []
    for halo in halos:
        for subhalo in halo.all_subhalos():
            for galaxy in subhalo.galaxies:
                rows.append(
                    {
                        "snapshot": subhalo.snapshot,
                        "id_halo": halo.id,
                        "id_subhalo": subhalo.id,
                        "id_galaxy": galaxy.id,
                        "type": galaxy.galaxy_type.value,
                        "mstars_disk": galaxy.disk_stars.mass,
                        "mstars_bulge": galaxy.bulge_stars.mass,
                        "mgas_disk": galaxy.disk_gas.mass,
                        "mgas_bulge": galaxy.bulge_gas.mass,
                        "mstars_disk_metals": galaxy.disk_stars.mass_metals,
                        "mgas_disk_metals": galaxy.disk_gas.mass_metals,
                        "rdisk_star": galaxy.disk_stars.rscale,
                        "rdisk_gas": galaxy.disk_gas.rscale,
                        "sfr_disk": galaxy.sfr_disk,
                        "sfr_burst": galaxy.sfr_bulge_mergers + galaxy.sfr_bulge_diskins,
                        "vmax": galaxy.vmax,
                        "Vvir_subhalo": subhalo.Vvir,
                        "mean_stellar_age": galaxy.stellar_age(),
                    }
                )
    return pd.DataFrame(rows)


def write_summary(summary: Mapping[str, Any], path: Path) -> None:
    """Write a summary dictionary to ``summary.json``.

    The JSON file is formatted with a small indentation for human
    readability.
    """
    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(summary, fh, indent=2, sort_keys=True)


def write_run_config(config: Mapping[str, Any], path: Path) -> None:
    """Persist the resolved run configuration."""

    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, sort_keys=True, default=str)


__all__ = [
    "UNITS",
    "DEFINITIONS",
    "write_parquet",
    "write_total_baryons",
    "galaxy_table",
    "write_summary",
    "write_run_config",
]
