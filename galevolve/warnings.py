"""Structured warning classes for the :mod:`galevolve` package."""
from __future__ import annotations


class GalEvolveWarning(UserWarning):
    """Base warning class for galevolve."""


class NumericalWarning(GalEvolveWarning):
    """Numerical accuracy warnings (forced acceptance of an ODE step)."""


class PhysicsWarning(GalEvolveWarning):
    """Physical parameter or regime warnings."""


__all__ = [
    "GalEvolveWarning",
    "NumericalWarning",
    "PhysicsWarning",
]
