"""Helper utilities for loading and normalising configuration inputs."""
from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .errors import ConfigurationError
from .schema import Config

logger = logging.getLogger(__name__)


_LITERALS: Dict[str, Any] = {
    "true": True,
    "false": False,
    "none": None,
    "null": None,
    "nan": float("nan"),
    "inf": float("inf"),
    "+inf": float("inf"),
    "infinity": float("inf"),
    "+infinity": float("inf"),
    "-inf": float("-inf"),
    "-infinity": float("-inf"),
}


def parse_override_value(raw: str) -> Any:
    """Parse the value of a ``--override`` into a Python object.

    Flags such as ``io.write_parquet=false`` become booleans, parameters such
    as ``stellar_feedback.v_sn=110`` or ``numerics.ode_solver_precision=1e-4``
    become numbers, and law names (``stellar_feedback.model=FIRE``) stay
    strings.  Quotes force a string.
    """

    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    lower = text.lower()
    if lower in _LITERALS:
        return _LITERALS[lower]
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            continue
    return text


def apply_overrides_dict(payload: Dict[str, Any], overrides: Sequence[str]) -> Dict[str, Any]:
    """Apply dotted-path overrides such as ``stellar_feedback.v_sn=110``."""

    if not overrides:
        return payload
    for item in overrides:
        key, sep, value_str = item.partition("=")
        if not sep:
            raise ConfigurationError(f"Invalid override '{item}'; expected path=value")
        parts = [segment for segment in key.strip().split(".") if segment]
        if not parts:
            raise ConfigurationError(f"Invalid override '{item}'; empty path")
        target: Any = payload
        for segment in parts[:-1]:
            if not isinstance(target, dict):
                raise ConfigurationError(
                    f"Cannot traverse into non-mapping for override '{item}' at '{segment}'"
                )
            if segment not in target or target[segment] is None:
                target[segment] = {}
            target = target[segment]
        if not isinstance(target, dict):
            raise ConfigurationError(f"Cannot set override '{item}'; target is not a mapping")
        target[parts[-1]] = parse_override_value(value_str)
    return payload


def read_overrides_file(path: Path) -> List[str]:
    """Return the ``PATH=VALUE`` overrides listed in ``path``, one per line.

    Blank lines and lines starting with ``#`` are ignored.
    """

    overrides: List[str] = []
    with Path(path).open("r", encoding="utf-8") as fh:
        for line in fh:
            text = line.strip()
            if text and not text.startswith("#"):
                overrides.append(text)
    return overrides


def config_from_mapping(data: Dict[str, Any]) -> Config:
    """Validate a configuration mapping, raising :class:`ConfigurationError`."""

    try:
        return Config(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def load_config(path: Path, overrides: Optional[Sequence[str]] = None) -> Config:
    """Load a YAML configuration file into a :class:`Config` instance."""

    from ruamel.yaml import YAML

    yaml = YAML(typ="safe")
    source_path = Path(path).resolve()
    with source_path.open("r", encoding="utf-8") as fh:
        data = yaml.load(fh)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration root in {source_path} must be a mapping")
    if overrides:
        data = apply_overrides_dict(data, overrides)
    cfg = config_from_mapping(data)
    logger.info(
        "load_config: %s (feedback=%s/%s, star formation=%s)",
        source_path,
        cfg.stellar_feedback.variant,
        cfg.stellar_feedback.model,
        cfg.star_formation.model,
    )
    return cfg


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int, suppress_warnings: bool = False) -> None:
    """Route galevolve logs and Python warnings to the root logger.

    :class:`~galevolve.warnings.NumericalWarning` and
    :class:`~galevolve.warnings.PhysicsWarning` raised while galaxies are
    evolved are logged through ``py.warnings`` unless ``suppress_warnings``
    silences them.
    """

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
    if suppress_warnings:
        warnings.filterwarnings("ignore")
    logging.captureWarnings(True)


__all__ = [
    "parse_override_value",
    "apply_overrides_dict",
    "read_overrides_file",
    "config_from_mapping",
    "load_config",
    "configure_logging",
]
