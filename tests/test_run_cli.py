from pathlib import Path

import pyarrow.parquet as pq
import pytest

from galevolve.config_utils import read_overrides_file
from galevolve.run import main

CONFIG_YAML = """
stellar_feedback:
  model: GALFORM
  beta_disk: 3.2
  v_sn: 110.0
simulation:
  redshifts:
    0: 3.0
    1: 2.0
    2: 1.0
    3: 0.5
"""


def _config(tmp_path: Path) -> Path:
    path = tmp_path / "run.yml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


def test_cli_prints_snapshot_schedule(tmp_path: Path, capsys) -> None:
    assert main(["--config", str(_config(tmp_path))]) == 0
    out = capsys.readouterr().out
    assert "delta_t" in out
    assert len(out.strip().splitlines()) == 1 + 3


def test_cli_writes_outputs(tmp_path: Path) -> None:
    outdir = tmp_path / "out"
    overrides = tmp_path / "overrides.txt"
    overrides.write_text(f"# output\nio.outdir={outdir}\n\nsimulation.max_snapshot=2\n", encoding="utf-8")

    code = main(["--config", str(_config(tmp_path)), "--overrides-file", str(overrides), "--write"])

    assert code == 0
    assert (outdir / "run_config.json").exists()
    table = pq.read_table(outdir / "snapshot_schedule.parquet")
    assert table.column("snapshot").to_pylist() == [0, 1]
    assert all(dt > 0.0 for dt in table.column("delta_t").to_pylist())


def test_cli_reports_invalid_configuration(tmp_path: Path) -> None:
    code = main(["--config", str(_config(tmp_path)), "--override", "stellar_feedback.model=Unknown"])
    assert code == 2


def test_read_overrides_file_skips_comments(tmp_path: Path) -> None:
    path = tmp_path / "overrides.txt"
    path.write_text("# comment\n\n  numerics.method=DOP853  \nexecution.workers=2\n", encoding="utf-8")
    assert read_overrides_file(path) == ["numerics.method=DOP853", "execution.workers=2"]


def test_cli_requires_config() -> None:
    with pytest.raises(SystemExit):
        main([])
