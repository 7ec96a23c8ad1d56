"""
Exogenous forcing for Ecosim simulations.

Forcing series are sampled at arbitrary times by linear interpolation.
NaN marks "not forced": it is returned outside the series' time range and
wherever the interpolated points are NaN, and the simulation then falls
back to the endogenous value.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class ForcingSeries:
    """Time series of forced values.

    Attributes
    ----------
    times : np.ndarray
        Increasing sample times (nt)
    values : np.ndarray
        Forced values, one row per sample time (nt) or (nt x ncol)
    """

    times: np.ndarray
    values: np.ndarray

    def __post_init__(self):
        self.times = np.asarray(self.times, dtype=float).ravel()
        self.values = np.asarray(self.values, dtype=float)
        if self.values.shape[0] != len(self.times):
            raise ValueError(
                f"Forcing has {self.values.shape[0]} rows but "
                f"{len(self.times)} sample times"
            )
        if np.any(np.diff(self.times) <= 0):
            raise ValueError("Forcing sample times must be strictly increasing")

    @property
    def ncol(self) -> int:
        return 1 if self.values.ndim == 1 else self.values.shape[1]

    def get_value(self, t: float):
        """Get forced value(s) at time ``t`` (with interpolation).

        Parameters
        ----------
        t : float
            Simulation time

        Returns
        -------
        float or np.ndarray
            Interpolated value, or one value per column; NaN outside the
            series' time range.
        """
        if self.values.ndim == 1:
            return float(self._interp(t, self.values))
        return np.array([self._interp(t, col) for col in self.values.T])

    def _interp(self, t: float, column: np.ndarray) -> float:
        if t < self.times[0] or t > self.times[-1]:
            return np.nan

        # Interpolate only between neighbours, so NaN samples propagate
        idx = np.searchsorted(self.times, t, side='right') - 1
        if idx >= len(self.times) - 1:
            return column[-1]
        t0, t1 = self.times[idx], self.times[idx + 1]
        frac = (t - t0) / (t1 - t0)
        if frac == 0:
            return column[idx]
        return column[idx] + frac * (column[idx + 1] - column[idx])


@dataclass
class IngestionForcing:
    """Forced consumption of one prey by one predator.

    Attributes
    ----------
    prey, pred : int
        Indices of the prey and predator groups
    series : ForcingSeries
        Forced consumption (M A^-1 T^-1) over time
    """

    prey: int
    pred: int
    series: ForcingSeries

    def get_value(self, t: float) -> float:
        return self.series.get_value(t)
