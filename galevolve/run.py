"""Command line entry point.

Merger trees are supplied by the calling code, so the command line validates
a run configuration and reports the snapshot schedule that
:class:`~galevolve.orchestrator.SimulationRun` will follow::

    python -m galevolve.run --config run.yml --override numerics.method=DOP853
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from . import config_utils
from .cosmology import Cosmology
from .errors import ConfigurationError
from .io import writer
from .orchestrator import snapshot_schedule
from .schema import Config

logger = logging.getLogger(__name__)


def schedule_frame(cfg: Config, cosmology: Cosmology) -> pd.DataFrame:
    """Return the snapshot schedule as a table (one row per evolved snapshot)."""

    rows = []
    for step in snapshot_schedule(cfg, cosmology):
        rows.append(
            {
                "snapshot": step.snapshot,
                "redshift": step.redshift,
                "age": cosmology.convert_redshift_to_age(step.redshift),
                "delta_t": step.delta_t,
            }
        )
    return pd.DataFrame(rows)


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point."""

    parser = argparse.ArgumentParser(description="Validate a galaxy evolution run configuration")
    parser.add_argument("--config", type=Path, required=True, help="Path to YAML configuration")
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help="Apply configuration overrides using dotted paths; e.g. --override stellar_feedback.v_sn=110",
    )
    parser.add_argument(
        "--overrides-file",
        action="append",
        type=Path,
        help="Load overrides from a file (one PATH=VALUE per line).",
    )
    parser.add_argument(
        "--write",
        action="store_true",
        help="Write run_config.json and the snapshot schedule to io.outdir.",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress INFO logs and Python warnings.")
    args = parser.parse_args(argv)

    config_utils.configure_logging(
        logging.WARNING if args.quiet else logging.INFO,
        suppress_warnings=args.quiet,
    )

    override_list: List[str] = []
    if args.overrides_file:
        for override_path in args.overrides_file:
            override_list.extend(config_utils.read_overrides_file(override_path))
    if args.override:
        for group in args.override:
            override_list.extend(group)

    try:
        cfg = config_utils.load_config(args.config, overrides=override_list)
        schedule = schedule_frame(cfg, Cosmology(cfg.cosmology))
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2

    print(schedule.to_string(index=False))
    if args.write:
        outdir = Path(cfg.io.outdir)
        writer.write_run_config(cfg.model_dump(mode="json"), outdir / "run_config.json")
        writer.write_parquet(schedule, outdir / "snapshot_schedule.parquet", compression=cfg.io.compression)
        logger.info("Wrote run configuration and schedule to %s", outdir)
    return 0


if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    sys.exit(main())
