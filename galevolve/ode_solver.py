"""Adaptive Runge–Kutta solver for the galaxy ODE systems.

The solver advances a state vector by a fixed external time step
``delta_t``.  Inside each step an embedded Runge–Kutta pair from
:mod:`scipy.integrate` adapts the internal step size so that the local
error stays within ``precision`` (relative tolerance).

Degraded integrations never abort a run: when the internal step underflows,
drops below ``min_step`` or exceeds ``max_steps`` the best available state
is accepted and a :class:`~galevolve.warnings.NumericalWarning` is emitted.
Only an evaluator failure or an unexpected solver status raises
:class:`~galevolve.errors.NumericalError`.
"""
from __future__ import annotations

import logging
import warnings
from typing import Callable, Sequence

import numpy as np
from scipy.integrate import DOP853, RK45

from .errors import NumericalError
from .warnings import NumericalWarning

logger = logging.getLogger(__name__)

#: Signature of derivative evaluators: ``(t, y, f) -> status``.  The
#: evaluator writes the rates into ``f`` and returns 0 on success.
OdeEvaluator = Callable[[float, np.ndarray, np.ndarray], int]

_METHODS = {
    "RK45": RK45,
    "DOP853": DOP853,
}

DEFAULT_ATOL = 1e-10
DEFAULT_MAX_STEPS = 100_000


class _EvaluatorFailure(Exception):
    """Raised internally when the evaluator returns a non-zero status."""

    def __init__(self, status: int) -> None:
        super().__init__(status)
        self.status = status


class ODESolver:
    """Solver of an ODE system evaluated at ``t0 + n * delta_t``.

    Parameters
    ----------
    y0:
        Initial values; one per equation produced by ``evaluator``.
    t0:
        Time associated with ``y0``.
    delta_t:
        Time advanced by every call to :meth:`evolve`.
    precision:
        Relative tolerance targeted by the adaptive step-size control.
    evaluator:
        Callable filling the rates ``f`` for ``(t, y)``.
    method:
        Embedded Runge–Kutta pair, ``"RK45"`` (Dormand–Prince 5(4)) or
        ``"DOP853"``.
    atol:
        Absolute tolerance floor, keeps empty reservoirs from stalling the
        error control.
    min_step:
        Internal steps smaller than this are not attempted; 0 disables the
        check.
    max_steps:
        Maximum number of internal steps per call to :meth:`evolve`.
    """

    def __init__(
        self,
        y0: Sequence[float],
        t0: float,
        delta_t: float,
        precision: float,
        evaluator: OdeEvaluator,
        *,
        method: str = "RK45",
        atol: float = DEFAULT_ATOL,
        min_step: float = 0.0,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        if not delta_t > 0.0:
            raise NumericalError(f"delta_t must be positive, got {delta_t}")
        if method not in _METHODS:
            raise NumericalError(f"Unsupported ODE method {method!r}; expected one of {sorted(_METHODS)}")
        self._y = np.array(y0, dtype=float)
        self._t = float(t0)
        self._t0 = float(t0)
        self._delta_t = float(delta_t)
        self._precision = float(precision)
        self._evaluator = evaluator
        self._method = method
        self._atol = float(atol)
        self._min_step = float(min_step)
        self._max_steps = int(max_steps)
        self._step = 0
        self._evaluations = 0
        self.soft_failures = 0

    def _rhs(self, t: float, y: np.ndarray) -> np.ndarray:
        f = np.zeros_like(y)
        self._evaluations += 1
        status = self._evaluator(t, y, f)
        if status != 0:
            raise _EvaluatorFailure(status)
        return f

    def _force_accept(self, reason: str) -> None:
        self.soft_failures += 1
        warnings.warn(
            f"ODE: {reason}. Will force integration to finish regardless of desired accuracy not reached.",
            NumericalWarning,
            stacklevel=3,
        )

    def evolve(self) -> np.ndarray:
        """Evolve the system to ``t = t0 + step * delta_t`` and return ``y``."""

        y_start = self._y.copy()
        t_start = self._t
        self._step += 1
        t_target = self._t0 + self._step * self._delta_t

        try:
            integrator = _METHODS[self._method](
                self._rhs,
                self._t,
                self._y,
                t_target,
                first_step=t_target - self._t,
                rtol=self._precision,
                atol=self._atol,
            )
            n_steps = 0
            while integrator.status == "running":
                message = integrator.step()
                n_steps += 1
                if integrator.status == "failed":
                    if message == integrator.TOO_SMALL_STEP:
                        self._force_accept("step size decreases below machine precision")
                        break
                    raise NumericalError(f"Error while solving ODE system: unexpected solver error: {message}")
                if integrator.status != "running":
                    break
                if self._min_step > 0.0 and integrator.step_size < self._min_step:
                    self._force_accept("step size dropped below minimum value")
                    break
                if n_steps >= self._max_steps:
                    self._force_accept("maximum number of steps reached")
                    break
        except _EvaluatorFailure as exc:
            self._y = y_start
            self._t = t_start
            self._step -= 1
            raise NumericalError(
                f"Error while solving ODE system: user function signaled an error (status={exc.status})"
            ) from None

        self._y = np.array(integrator.y, dtype=float)
        self._t = t_target
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "ODESolver.evolve: t=%g steps=%d evaluations=%d",
                self._t,
                n_steps,
                self._evaluations,
            )
        return self._y.copy()

    def num_evaluations(self) -> int:
        """Return how many times the ODE system has been evaluated so far."""

        return self._evaluations

    def current_t(self) -> float:
        return self._t


__all__ = ["ODESolver", "OdeEvaluator", "DEFAULT_ATOL", "DEFAULT_MAX_STEPS"]
