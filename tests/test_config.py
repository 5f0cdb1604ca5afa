import logging
import math
import warnings
from pathlib import Path

import pytest

from galevolve.config_utils import (
    apply_overrides_dict,
    config_from_mapping,
    configure_logging,
    load_config,
    parse_override_value,
)
from galevolve.errors import ConfigurationError

CONFIG_YAML = """
stellar_feedback:
  model: LAGOS13
  beta_disk: 3.2
  v_sn: 110.0
  redshift_power: 0.4
recycling:
  recycle: 0.4588
  yield: 0.02908
star_formation:
  model: BR06
  nu_sf: 0.5
simulation:
  redshifts:
    10: 4.0
    11: 3.5
    12: 3.0
"""


def _write(tmp_path: Path, text: str = CONFIG_YAML) -> Path:
    path = tmp_path / "run.yml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_reads_yaml(tmp_path: Path) -> None:
    cfg = load_config(_write(tmp_path))
    assert cfg.stellar_feedback.model == "LAGOS13"
    assert cfg.recycling.yield_ == pytest.approx(0.02908)
    assert cfg.star_formation.nu_sf == pytest.approx(0.5)
    assert cfg.simulation.min_snapshot == 10
    assert cfg.simulation.max_snapshot == 12
    assert cfg.numerics.method == "RK45"


def test_load_config_applies_overrides(tmp_path: Path) -> None:
    cfg = load_config(
        _write(tmp_path),
        overrides=["stellar_feedback.galaxy_scaling=true", "numerics.ode_solver_precision=1e-3", "execution.workers=4"],
    )
    assert cfg.stellar_feedback.galaxy_scaling is True
    assert cfg.numerics.ode_solver_precision == pytest.approx(1e-3)
    assert cfg.execution.workers == 4


def test_load_config_rejects_unknown_feedback_law(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(_write(tmp_path), overrides=["stellar_feedback.model=NotALaw"])


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="mapping"):
        load_config(_write(tmp_path, "- 1\n- 2\n"))


def test_redshifts_must_decrease(config_dict) -> None:
    config_dict["simulation"]["redshifts"] = {0: 1.0, 1: 2.0}
    with pytest.raises(ConfigurationError):
        config_from_mapping(config_dict)


def test_snapshot_range_must_have_redshifts(config_dict) -> None:
    config_dict["simulation"]["max_snapshot"] = 7
    with pytest.raises(ConfigurationError):
        config_from_mapping(config_dict)


def test_tolerances_must_be_positive(config_dict) -> None:
    config_dict["numerics"]["ode_solver_precision"] = 0.0
    with pytest.raises(ConfigurationError):
        config_from_mapping(config_dict)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("true", True),
        ("False", False),
        ("none", None),
        ("3", 3),
        ("2.5e-3", 2.5e-3),
        ("'GALFORM'", "GALFORM"),
        ("FIRE", "FIRE"),
        ("'110'", "110"),
    ],
)
def test_parse_override_value(raw, expected) -> None:
    assert parse_override_value(raw) == expected


def test_parse_override_value_special_floats() -> None:
    assert math.isnan(parse_override_value("nan"))
    assert parse_override_value("-inf") == float("-inf")


def test_apply_overrides_creates_sections() -> None:
    payload = {"numerics": None}
    apply_overrides_dict(payload, ["numerics.method=DOP853", "io.outdir=results"])
    assert payload == {"numerics": {"method": "DOP853"}, "io": {"outdir": "results"}}


@pytest.mark.parametrize("override", ["no_equals_sign", "=3"])
def test_apply_overrides_rejects_malformed(override: str) -> None:
    with pytest.raises(ConfigurationError):
        apply_overrides_dict({}, [override])


def test_configure_logging_sets_level_and_silences_warnings(monkeypatch) -> None:
    root = logging.getLogger()
    monkeypatch.setattr(root, "level", root.level)
    try:
        configure_logging(logging.WARNING, suppress_warnings=True)
        assert root.level == logging.WARNING
        assert warnings.filters[0][0] == "ignore"
    finally:
        logging.captureWarnings(False)
