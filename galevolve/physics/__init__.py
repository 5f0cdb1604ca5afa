"""Physical processes feeding the galaxy rate equations."""
from .cooling import GasCooling
from .feedback import NO_OUTFLOW, OutflowRates, StellarFeedback
from .star_formation import MolecularGas, StarFormation

__all__ = [
    "GasCooling",
    "NO_OUTFLOW",
    "OutflowRates",
    "StellarFeedback",
    "MolecularGas",
    "StarFormation",
]
