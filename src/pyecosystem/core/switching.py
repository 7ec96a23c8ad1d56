"""
Prey switching.

A predator with switching exponent ``sw`` spreads its search effort over
its prey in proportion to ``a * B_prey ** sw``. The switching scale ``k`` is
chosen so that at the calibration biomass the switched search rate equals
the non-switching one:

    k = a / (a B^sw / sum_prey(a B^sw))

sw = 0 means no switching; sw = 1 proportional; sw = 2 strong switching.
"""

import numpy as np


def _switching_weights(a: np.ndarray, b: np.ndarray, sw: np.ndarray) -> np.ndarray:
    """Relative search weight of each prey, normalized per predator column."""
    sw = np.broadcast_to(np.asarray(sw, dtype=float), (a.shape[1],))
    with np.errstate(divide='ignore', invalid='ignore'):
        absw = a * np.asarray(b, dtype=float)[:, np.newaxis] ** sw[np.newaxis, :]
        return absw / np.sum(absw, axis=0)[np.newaxis, :]


def switching_scale(a: np.ndarray, b: np.ndarray, sw) -> np.ndarray:
    """Switching scale that leaves ``a`` unchanged at biomass ``b``.

    Parameters
    ----------
    a : np.ndarray
        Non-switching search rate (prey x predator)
    b : np.ndarray
        Calibration biomass of each group
    sw : float or np.ndarray
        Switching exponent of each predator

    Returns
    -------
    np.ndarray
        Switching scale; entries where a division by zero occurs are 0.
    """
    a = np.asarray(a, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        k = a / _switching_weights(a, b, sw)
    k[~np.isfinite(k)] = 0.0
    return k


def switched_search_rate(a: np.ndarray, k: np.ndarray, b: np.ndarray, sw) -> np.ndarray:
    """Search rate corrected for prey switching at biomass ``b``.

    Returns ``k * a * B^sw / sum_prey(a * B^sw)``; entries where a division
    by zero occurs are 0.
    """
    a = np.asarray(a, dtype=float)
    with np.errstate(invalid='ignore'):
        asw = np.asarray(k, dtype=float) * _switching_weights(a, b, sw)
    asw[~np.isfinite(asw)] = 0.0
    return asw
