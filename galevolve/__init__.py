"""Core package for galaxy baryonic evolution on merger trees."""
from . import constants
from .errors import GalEvolveError

__all__ = ["constants", "GalEvolveError"]
