"""Custom exceptions for the :mod:`galevolve` package."""
from __future__ import annotations


class GalEvolveError(Exception):
    """Base exception for galaxy evolution errors."""


class ConfigurationError(GalEvolveError, ValueError):
    """Invalid configuration file or parameter value."""


class DimensionMismatch(GalEvolveError, ValueError):
    """Initial state vector does not match the number of ODE equations."""


class NumericalError(GalEvolveError, RuntimeError):
    """Unrecoverable failure of the ODE integration."""


class PhysicalInvariantViolation(GalEvolveError, ValueError):
    """A baryon reservoir reached a non-physical state after integration."""


class TreeConsistencyError(GalEvolveError, RuntimeError):
    """The merger tree linking subhalos across snapshots is inconsistent."""


class GalaxyCompositionError(TreeConsistencyError):
    """A subhalo hosts an invalid combination of galaxy types."""


__all__ = [
    "GalEvolveError",
    "ConfigurationError",
    "DimensionMismatch",
    "NumericalError",
    "PhysicalInvariantViolation",
    "TreeConsistencyError",
    "GalaxyCompositionError",
]
