"""
Ecosim derivative calculation and integration routines.

This module contains the core numerical routines of the dynamic model:
- ecosystem_fluxes: all biomass fluxes at one point in time
- ecosystem_ode: net rate of change of each group
- rk4_step / ecosim_rk4_step: fixed-step Runge-Kutta integration, the
  latter with the fast-turnover approximation
- adaptive_step: adaptive integration of a single step (fallback)

Fluxes are held in square matrices over ngroup + ngear + 1 nodes: the
functional groups, then the fishing gears, then one node outside the
system that supplies primary production and receives excretion. Entry
[i, j] is the flux from node i to node j.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Callable, Dict

import numpy as np
from scipy.integrate import solve_ivp

from pyecosystem.core.constants import (
    FALLBACK_METHOD,
    INTEGRATION_ATOL,
    INTEGRATION_RTOL,
    PP_DETRITUS,
    PP_PRODUCER,
    STABILITY_THRESHOLD,
)
from pyecosystem.core.functional_response import ecosim_feed

if TYPE_CHECKING:
    from pyecosystem.core.ecosim import EcosimParams


@dataclass
class FluxSet:
    """Biomass fluxes between all nodes at one point in time.

    Attributes
    ----------
    ingest : np.ndarray
        Consumption of prey (rows) by predators (columns)
    egest : np.ndarray
        Unassimilated consumption routed to detritus
    excrete : np.ndarray
        Assimilated consumption not used for growth, to the outside node
    fish : np.ndarray
        Catch, from groups to gears
    nonpred : np.ndarray
        Non-predatory mortality routed to detritus
    pp : np.ndarray
        Primary production, from the outside node to producers
    """

    ingest: np.ndarray
    egest: np.ndarray
    excrete: np.ndarray
    fish: np.ndarray
    nonpred: np.ndarray
    pp: np.ndarray

    def total(self) -> np.ndarray:
        """Sum of all six flux matrices."""
        return (self.ingest + self.egest + self.excrete
                + self.fish + self.nonpred + self.pp)

    def net_rate(self, ngroup: int) -> np.ndarray:
        """Net rate of change (inflow - outflow) of the first ngroup nodes."""
        total = self.total()
        fluxin = np.sum(total, axis=0)
        fluxout = np.sum(total, axis=1)
        return fluxin[:ngroup] - fluxout[:ngroup]

    def as_dict(self) -> Dict[str, np.ndarray]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def ecosystem_fluxes(t: float, b: np.ndarray, params: "EcosimParams") -> FluxSet:
    """Calculate all biomass fluxes for biomass ``b`` at time ``t``.

    Parameters
    ----------
    t : float
        Simulation time (used for forcing)
    b : np.ndarray
        Biomass of each group
    params : EcosimParams
        Dynamic model parameters

    Returns
    -------
    FluxSet
        Fluxes over ngroup + ngear + 1 nodes
    """
    b = np.asarray(b, dtype=float)
    ng = params.ngroup
    nss = ng + params.ngear + 1
    outside = nss - 1
    det_idx = np.where(params.pp == PP_DETRITUS)[0]

    ingest, egest, excrete, fish, nonpred, pp = (
        np.zeros((nss, nss)) for _ in range(6)
    )

    # Ingestion, with forced links overriding the functional response
    ing = ecosim_feed(
        params.funcres, b, params.a, params.k, params.v, params.h, params.sw
    )
    for forced in params.ingforce:
        value = forced.get_value(t)
        if not np.isnan(value):
            ing[forced.prey, forced.pred] = value
    ingest[:ng, :ng] = ing

    suming = np.sum(ing, axis=0)
    df_total = np.sum(params.df, axis=1)

    # Egestion to detritus; any fate fraction not assigned to a pool leaves
    # the system
    egested = suming * params.gs
    egest[np.ix_(np.arange(ng), det_idx)] = egested[:, np.newaxis] * params.df
    egest[:ng, outside] = egested * (1.0 - df_total)

    excrete[:ng, outside] = suming * (1.0 - params.ge - params.gs)

    fish[:ng, ng:outside] = b[:, np.newaxis] * params.fish

    # Other mortality, routed like egestion
    dying = b * params.m0
    nonpred[np.ix_(np.arange(ng), det_idx)] = dying[:, np.newaxis] * params.df
    nonpred[:ng, outside] += dying * (1.0 - df_total)

    pp[outside, :ng] = primary_production(t, b, params)

    return FluxSet(ingest, egest, excrete, fish, nonpred, pp)


def primary_production(t: float, b: np.ndarray, params: "EcosimParams") -> np.ndarray:
    """Production of each group from outside the system.

    For each producer the first available of: forced production, forced
    P/B times biomass, and the saturating ``r B / (1 + hpp B)``.
    """
    ispp = params.pp == PP_PRODUCER
    prod = np.zeros(params.ngroup)
    with np.errstate(divide='ignore', invalid='ignore'):
        prod[ispp] = (params.r * b / (1.0 + params.hpp * b))[ispp]

    if params.pbforce is not None:
        pb = np.atleast_1d(params.pbforce.get_value(t))
        forced = pb * b[ispp]
        use = ~np.isnan(forced)
        prod[np.where(ispp)[0][use]] = forced[use]

    if params.ppforce is not None:
        forced = np.atleast_1d(params.ppforce.get_value(t))
        use = ~np.isnan(forced)
        prod[np.where(ispp)[0][use]] = forced[use]

    return prod


def ecosystem_ode(t: float, b: np.ndarray, params: "EcosimParams") -> np.ndarray:
    """Net rate of change of the biomass of each group."""
    return ecosystem_fluxes(t, b, params).net_rate(params.ngroup)


def rk4_step(
    fun: Callable[[float, np.ndarray], np.ndarray],
    t: float,
    y: np.ndarray,
    dt: float
) -> np.ndarray:
    """
    Runge-Kutta 4th order integration step.

    Parameters
    ----------
    fun : callable
        Derivative function ``fun(t, y)``
    t : float
        Time at the start of the step
    y : np.ndarray
        State at the start of the step
    dt : float
        Time step

    Returns
    -------
    np.ndarray
        State at ``t + dt``
    """
    k1 = dt * fun(t, y)
    k2 = dt * fun(t + dt / 2, y + k1 / 2)
    k3 = dt * fun(t + dt / 2, y + k2 / 2)
    k4 = dt * fun(t + dt, y + k3)
    return y + k1 / 6 + k2 / 3 + k3 / 3 + k4 / 6


def production_balance(fluxes: FluxSet, ngroup: int):
    """Production entering and biomass leaving each group.

    Production is everything entering the group minus what it egests and
    excretes; the loss is everything leaving the group (predation, catch
    and other mortality) minus the same terms.

    Returns
    -------
    inflow, outflow : np.ndarray
    """
    total = fluxes.total()
    own = (np.sum(fluxes.egest, axis=1) + np.sum(fluxes.excrete, axis=1))[:ngroup]
    inflow = np.sum(total, axis=0)[:ngroup] - own
    outflow = np.sum(total, axis=1)[:ngroup] - own
    return inflow, outflow


def ecosim_rk4_step(
    params: "EcosimParams", t: float, b: np.ndarray, dt: float
) -> np.ndarray:
    """
    Runge-Kutta step with the fast-turnover approximation.

    Groups whose production per unit biomass exceeds
    ``STABILITY_THRESHOLD`` at the start of the step turn over too fast for
    the step size; their new biomass is set to
    ``inflow / outflow * b`` instead of the Runge-Kutta estimate.

    Parameters
    ----------
    params : EcosimParams
        Dynamic model parameters
    t : float
        Time at the start of the step
    b : np.ndarray
        Biomass at the start of the step
    dt : float
        Time step

    Returns
    -------
    np.ndarray
        Biomass at ``t + dt``
    """
    b = np.asarray(b, dtype=float)
    new_b = rk4_step(lambda tt, bb: ecosystem_ode(tt, bb, params), t, b, dt)

    inflow, outflow = production_balance(
        ecosystem_fluxes(t, b, params), params.ngroup
    )
    with np.errstate(divide='ignore', invalid='ignore'):
        fast = (b > 0) & (outflow > 0) & (inflow / b > STABILITY_THRESHOLD)
    new_b[fast] = inflow[fast] / outflow[fast] * b[fast]
    return new_b


def adaptive_step(
    params: "EcosimParams", t: float, b: np.ndarray, dt: float
) -> np.ndarray:
    """
    Integrate one step with scipy's adaptive Runge-Kutta solver.

    Returns
    -------
    np.ndarray
        Biomass at ``t + dt``; filled with NaN if the solver fails or the
        starting biomass is not finite.
    """
    b = np.asarray(b, dtype=float)
    if not np.all(np.isfinite(b)):
        return np.full(len(b), np.nan)
    sol = solve_ivp(
        ecosystem_ode,
        (t, t + dt),
        b,
        method=FALLBACK_METHOD,
        args=(params,),
        rtol=INTEGRATION_RTOL,
        atol=INTEGRATION_ATOL,
    )
    if not sol.success:
        return np.full(len(b), np.nan)
    return sol.y[:, -1]
