"""
Functional responses for the Ecosim predator-prey interaction.

Four families are supported, all expressed in terms of the search rate
``a``, the prey biomass ``B``, the predator biomass ``P``, the vulnerability
exchange rate ``v`` and the predator handling time ``h``:

- ``lv``: Lotka-Volterra, ``I = a B P``
- ``lvforage``: Lotka-Volterra feeding on a foraging arena,
  ``I = a V P`` with ``v (B - 2V) = I``
- ``type2``: Holling type II, ``I = a B P / (1 + h a B)``
- ``type2forage``: Holling type II feeding on a foraging arena,
  ``I = a V P / (1 + h a V)`` with ``v (B - 2V) = I``

V is the vulnerable part of the prey biomass at the steady state of the
arena exchange. Each family has a closed-form inverse giving the search
rate that reproduces a known consumption; that inverse is used to
calibrate the model at the Ecopath equilibrium.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

import numpy as np

from pyecosystem.core.switching import switched_search_rate


class FunctionalResponse(Enum):
    """Functional response families."""

    LV = "lv"
    LV_FORAGE = "lvforage"
    TYPE2 = "type2"
    TYPE2_FORAGE = "type2forage"

    @classmethod
    def parse(cls, value: Union[str, "FunctionalResponse"]) -> "FunctionalResponse":
        """Convert a name (case-insensitive) into a FunctionalResponse.

        Raises
        ------
        ValueError
            If the name is not one of the supported families.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(f.value for f in cls)
            raise ValueError(
                f"Unknown functional response '{value}'; expected one of: {valid}"
            ) from None


def search_rate(funcres, q, b_prey, b_pred, v, h):
    """Search rate reproducing a given consumption.

    Parameters
    ----------
    funcres : FunctionalResponse or str
        Functional response family
    q : array_like
        Consumption of prey by predator (M A^-1 T^-1)
    b_prey, b_pred : array_like
        Prey and predator biomass
    v : array_like
        Vulnerability exchange rate (T^-1); unused by ``lv`` and ``type2``
    h : array_like
        Predator handling time (T M^-1 A); unused by ``lv`` and ``lvforage``

    Returns
    -------
    np.ndarray
        Search rate ``a``; arrays broadcast against each other.
    """
    funcres = FunctionalResponse.parse(funcres)
    q = np.asarray(q, dtype=float)
    b_prey = np.asarray(b_prey, dtype=float)
    b_pred = np.asarray(b_pred, dtype=float)
    v = np.asarray(v, dtype=float)
    h = np.asarray(h, dtype=float)

    with np.errstate(divide='ignore', invalid='ignore'):
        istar = q / b_pred  # consumption per unit predator
        if funcres is FunctionalResponse.LV:
            return istar / b_prey
        if funcres is FunctionalResponse.LV_FORAGE:
            return 2 * v * istar / (v * b_prey - istar * b_pred)
        if funcres is FunctionalResponse.TYPE2:
            return istar / (b_prey * (1 - h * istar))
        return (2 * v * istar
                / ((v * b_prey - istar * b_pred) * (1 - h * istar)))


def ingestion(funcres, a, b_prey, b_pred, v, h):
    """Consumption of prey by predator for a given search rate.

    Parameters are as for :func:`search_rate`, with ``a`` the (switched)
    search rate in place of the consumption.

    Returns
    -------
    np.ndarray
        Consumption (M A^-1 T^-1)
    """
    funcres = FunctionalResponse.parse(funcres)
    a = np.asarray(a, dtype=float)
    b_prey = np.asarray(b_prey, dtype=float)
    b_pred = np.asarray(b_pred, dtype=float)
    v = np.asarray(v, dtype=float)
    h = np.asarray(h, dtype=float)

    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        if funcres is FunctionalResponse.LV:
            return a * b_prey * b_pred
        if funcres is FunctionalResponse.LV_FORAGE:
            return a * v * b_prey * b_pred / (2 * v + a * b_pred)
        if funcres is FunctionalResponse.TYPE2:
            return a * b_prey * b_pred / (1 + h * a * b_prey)

        # Vulnerable biomass is the positive root of
        # 2 v h a V^2 + c1 V - v B = 0, written to stay finite for h = 0
        c1 = 2 * v + a * b_pred - v * h * a * b_prey
        vuln = 2 * v * b_prey / (c1 + np.sqrt(c1 ** 2 + 8 * v ** 2 * h * a * b_prey))
        return a * vuln * b_pred / (1 + h * a * vuln)


def ecosim_feed(funcres, b, a, k, v, h, sw) -> np.ndarray:
    """Evaluate the functional response at the current biomass.

    The search rate is first corrected for prey switching at ``b`` (see
    :func:`pyecosystem.core.switching.switched_search_rate`), then the
    family's ingestion formula is applied to every prey-predator pair.

    Parameters
    ----------
    funcres : FunctionalResponse or str
        Functional response family
    b : np.ndarray
        Biomass of each group (ngroup)
    a : np.ndarray
        Non-switching search rate (prey x predator)
    k : np.ndarray
        Switching scale (prey x predator)
    v : np.ndarray
        Vulnerability exchange rate (prey x predator)
    h : np.ndarray
        Handling time of each predator (ngroup); infinite for non-consumers
    sw : np.ndarray
        Switching exponent of each predator (ngroup)

    Returns
    -------
    np.ndarray
        Ingestion (prey x predator)
    """
    b = np.asarray(b, dtype=float)
    a = np.asarray(a, dtype=float)
    h = np.asarray(h, dtype=float)

    asw = switched_search_rate(a, k, b, sw)
    ing = ingestion(
        funcres, asw, b[:, np.newaxis], b[np.newaxis, :], v, h[np.newaxis, :]
    )

    links = a != 0

    # Non-consumers: infinite handling time and no search rate at all
    nonconsumer = np.isinf(h) & ~np.any(links, axis=0)
    ing[:, nonconsumer] = 0.0

    # Predators whose possible prey are all gone (avoids 0/0)
    prey_present = links & (b[:, np.newaxis] > 0)
    starved = np.any(links, axis=0) & ~np.any(prey_present, axis=0)
    ing[:, starved] = 0.0

    # No predation link, whatever the other terms say
    ing[~links] = 0.0

    return ing
