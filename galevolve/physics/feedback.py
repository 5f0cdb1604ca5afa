"""Stellar feedback outflow laws.

Supernova-driven outflows are described by two mass-loading factors: the
gas reheated out of the galaxy into the hot halo per unit star formation
(``beta1``) and the part of it that escapes the halo altogether
(``beta2``).  Angular-momentum loadings accompany them so the ODE system
can track the angular momentum carried by the outflow.

Two strategies are available and chosen once at construction:

``parametrized``
    The family of named laws (FIRE, GALFORM, LGALAXIES, LAGOS13,
    LAGOS13Trunc, GALFORMFIRE) with an energy budget deciding how much of
    the reheated gas is ejected.
``simple``
    A single power law in circular velocity that only reheats gas.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .. import constants
from ..errors import ConfigurationError
from ..schema import FEEDBACK_MODELS, StellarFeedback as StellarFeedbackConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutflowRates:
    """Mass and angular-momentum loading factors of a stellar outflow."""

    beta1: float = 0.0
    beta2: float = 0.0
    betaj_1: float = 0.0
    betaj_2: float = 0.0


NO_OUTFLOW = OutflowRates()


class FeedbackLaw(Protocol):
    def outflow_rate(self, sfr: float, vsubh: float, vgal: float, z: float) -> OutflowRates:
        ...


class _FeedbackBase:
    def __init__(self, parameters: StellarFeedbackConfig) -> None:
        self.parameters = parameters

    def _velocity(self, vsubh: float, vgal: float) -> float:
        return vgal if self.parameters.galaxy_scaling else vsubh


class ParametrizedFeedback(_FeedbackBase):
    """Outflow loadings from one of the named, velocity-scaled laws."""

    def __init__(self, parameters: StellarFeedbackConfig) -> None:
        if parameters.model not in FEEDBACK_MODELS:
            raise ConfigurationError(
                f"stellar_feedback.model option value invalid: {parameters.model}. "
                f"Supported values are {', '.join(FEEDBACK_MODELS)}"
            )
        super().__init__(parameters)

    def loading_coefficient(self, v: float, z: float) -> float:
        """Return the dimensionless loading ``const_sn`` of the selected law."""

        p = self.parameters
        power_index = p.beta_disk
        model = p.model
        if model == "FIRE":
            if v > p.v_sn:
                power_index = 1.0
            return (1.0 + z) ** p.redshift_power * (p.v_sn / v) ** power_index
        if model == "LAGOS13":
            vhot = p.v_sn * (1.0 + z) ** p.redshift_power
            return (vhot / v) ** power_index
        if model == "LAGOS13Trunc":
            vhot = p.v_sn * (1.0 + z) ** p.redshift_power
            if v > p.v_sn:
                power_index = 1.0
            return (vhot / v) ** power_index
        if model == "GALFORM":
            return (p.v_sn / v) ** power_index
        if model == "LGALAXIES":
            return 0.5 + (p.v_sn / v) ** power_index
        if model == "GALFORMFIRE":
            if v > p.v_sn:
                power_index = 1.0
            return (1.0 + z) ** p.redshift_power * (p.v_sn / v) ** power_index
        raise ConfigurationError(f"Unknown stellar feedback model {model!r}")

    def outflow_rate(self, sfr: float, vsubh: float, vgal: float, z: float) -> OutflowRates:
        v = self._velocity(vsubh, vgal)
        if sfr <= 0.0 or v <= 0.0:
            return NO_OUTFLOW

        p = self.parameters
        const_sn = self.loading_coefficient(v, z)
        b1 = p.eps_disk * const_sn
        b2 = 0.0

        vsn = 1.9 * v**1.1
        eps_halo = p.eps_halo * const_sn * 0.5 * vsn**2
        energ_halo = 0.5 * v**2

        mreheat = b1 * sfr
        mejected = eps_halo / energ_halo * sfr - mreheat

        if mejected > 0.0:
            b2 = mejected / sfr
            if b2 >= b1:
                b2 = b1
                b1 += constants.EPS3
        else:
            b1 = eps_halo / energ_halo
        return OutflowRates(beta1=b1, beta2=b2, betaj_1=b1, betaj_2=b2)


class SimpleFeedback(_FeedbackBase):
    """Reheating-only outflow ``beta1 = eps_disk (v_sn / v)^beta_disk``."""

    def outflow_rate(self, sfr: float, vsubh: float, vgal: float, z: float) -> OutflowRates:
        v = self._velocity(vsubh, vgal)
        if sfr <= 0.0 or v <= 0.0:
            return NO_OUTFLOW
        p = self.parameters
        b1 = p.eps_disk * (p.v_sn / v) ** p.beta_disk
        return OutflowRates(beta1=b1, beta2=0.0, betaj_1=b1, betaj_2=0.0)


class StellarFeedback:
    """Stellar feedback model delegating to the configured strategy."""

    def __init__(self, parameters: StellarFeedbackConfig) -> None:
        self.parameters = parameters
        if parameters.variant == "simple":
            self.law: FeedbackLaw = SimpleFeedback(parameters)
        else:
            self.law = ParametrizedFeedback(parameters)
        logger.debug(
            "StellarFeedback: variant=%s model=%s galaxy_scaling=%s",
            parameters.variant,
            parameters.model,
            parameters.galaxy_scaling,
        )

    def outflow_rate(self, sfr: float, vsubh: float, vgal: float, z: float) -> OutflowRates:
        """Return mass and angular-momentum loadings for the given SFR.

        Parameters
        ----------
        sfr:
            Star formation rate [Msun/Gyr].
        vsubh:
            Virial velocity of the host subhalo [km/s].
        vgal:
            Circular velocity of the star-forming component [km/s].
        z:
            Redshift.
        """

        return self.law.outflow_rate(sfr, vsubh, vgal, z)


__all__ = [
    "OutflowRates",
    "NO_OUTFLOW",
    "ParametrizedFeedback",
    "SimpleFeedback",
    "StellarFeedback",
]
