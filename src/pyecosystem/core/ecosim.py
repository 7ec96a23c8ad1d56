"""
Ecosim dynamic simulation implementation.

This module derives the dynamic-model parameters from a balanced Ecopath
model (handling times, vulnerability exchange rates and search rates
calibrated so that the functional response reproduces the Ecopath
consumption) and drives the time integration.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from pyecosystem.core.constants import (
    DEFAULT_FUNCTIONAL_RESPONSE,
    DEFAULT_SWITCHING,
    MAX_SWITCHING,
    MIN_SWITCHING,
    PP_DETRITUS,
    PP_PRODUCER,
    PROGRESS_LOG_INTERVAL,
)
from pyecosystem.core.ecopath import EcopathResult, ecopath
from pyecosystem.core.ecosim_deriv import (
    FluxSet,
    adaptive_step,
    ecosim_rk4_step,
    ecosystem_fluxes,
)
from pyecosystem.core.forcing import ForcingSeries, IngestionForcing
from pyecosystem.core.functional_response import FunctionalResponse, search_rate
from pyecosystem.core.params import FoodWebParams
from pyecosystem.core.switching import switching_scale
from pyecosystem.exceptions import DiscardWarning, IntegrationError
from pyecosystem.logger import get_logger

logger = get_logger('ecosim')

FLUX_NAMES = ("ingest", "egest", "excrete", "fish", "nonpred", "pp")


@dataclass
class EcosimParams:
    """Dynamic simulation parameters.

    Contains all parameters needed to run an Ecosim simulation, derived
    from a balanced Ecopath model. Matrices are indexed [prey, predator].

    Attributes
    ----------
    name : list of str
        Group names
    gear_name : list of str
        Gear names
    pp : np.ndarray
        Primary production indicator
    b : np.ndarray
        Ecopath (calibration) biomass
    ge, gs : np.ndarray
        Growth efficiency and unassimilated fraction
    df : np.ndarray
        Detritus fate (ngroup x ndet)
    m0 : np.ndarray
        Other mortality rate, PB * (1 - EE)
    q0 : np.ndarray
        Ecopath consumption, with flows to detritus removed
    h : np.ndarray
        Handling time of each predator, 1 / (QB * qbmaxqb0)
    v : np.ndarray
        Vulnerability exchange rate, kv * Q0 / B_prey
    a : np.ndarray
        Non-switching search rate
    k : np.ndarray
        Switching scale
    sw : np.ndarray
        Switching exponent of each predator (0-2)
    funcres : FunctionalResponse
        Functional response family
    r : np.ndarray
        Maximum P/B of producers (0 for other groups)
    hpp : np.ndarray
        Producer saturation constant, (r / PB - 1) / B
    fish : np.ndarray
        Fishing mortality rate by gear (ngroup x ngear)
    ppforce, pbforce : ForcingSeries, optional
        Forced production or P/B, one column per producer
    ingforce : list of IngestionForcing
        Forced consumption links
    binit : np.ndarray, optional
        Initial biomass (defaults to ``b``)
    diagflag : bool
        Whether to keep the fluxes of every time step
    """

    name: List[str]
    gear_name: List[str]
    pp: np.ndarray
    b: np.ndarray
    ge: np.ndarray
    gs: np.ndarray
    df: np.ndarray
    m0: np.ndarray
    q0: np.ndarray
    h: np.ndarray
    v: np.ndarray
    a: np.ndarray
    k: np.ndarray
    sw: np.ndarray
    funcres: FunctionalResponse
    r: np.ndarray
    hpp: np.ndarray
    fish: np.ndarray
    ppforce: Optional[ForcingSeries] = None
    pbforce: Optional[ForcingSeries] = None
    ingforce: List[IngestionForcing] = field(default_factory=list)
    binit: Optional[np.ndarray] = None
    diagflag: bool = False

    @property
    def ngroup(self) -> int:
        return len(self.name)

    @property
    def nlive(self) -> int:
        return int(np.sum(self.pp < PP_DETRITUS))

    @property
    def ngear(self) -> int:
        return self.fish.shape[1]

    @property
    def nproducer(self) -> int:
        return int(np.sum(self.pp == PP_PRODUCER))

    @property
    def start_biomass(self) -> np.ndarray:
        return (self.b if self.binit is None else self.binit).copy()


@dataclass
class EcosystemOutput:
    """Output from an Ecosim simulation run.

    Attributes
    ----------
    time : np.ndarray
        Simulation times (nt)
    biomass : np.ndarray
        Biomass at each time (nt x ngroup)
    name : list of str
        Group names
    fluxes : dict of np.ndarray, optional
        When diagnostics are on, each flux type at each time point
        (nt x nss x nss), evaluated from the biomass at that time
    used_fallback : list of int
        Indices of the steps that needed the adaptive integrator
    """

    time: np.ndarray
    biomass: np.ndarray
    name: List[str]
    fluxes: Optional[Dict[str, np.ndarray]] = None
    used_fallback: List[int] = field(default_factory=list)

    def to_dataframe(self) -> pd.DataFrame:
        """Biomass trajectories as a table indexed by time."""
        return pd.DataFrame(
            self.biomass,
            index=pd.Index(self.time, name='Time'),
            columns=self.name,
        )


def ecosim_params(
    params: FoodWebParams,
    result: Optional[EcopathResult] = None,
    *,
    funcres: Union[str, FunctionalResponse] = DEFAULT_FUNCTIONAL_RESPONSE,
    switching: Union[float, Sequence[float]] = DEFAULT_SWITCHING,
    binit: Optional[Sequence[float]] = None,
    ppforce: Union[ForcingSeries, np.ndarray, None] = None,
    pbforce: Union[ForcingSeries, np.ndarray, None] = None,
    ingforce: Sequence[IngestionForcing] = (),
    diagflag: bool = False,
) -> EcosimParams:
    """Convert an Ecopath model to Ecosim simulation parameters.

    Parameters
    ----------
    params : FoodWebParams
        Food web description, including ``kv``, ``qbmaxqb0`` and
        ``maxrelpb``
    result : EcopathResult, optional
        Balanced model; computed with :func:`ecopath` if not given
    funcres : str or FunctionalResponse
        Functional response: 'lv', 'lvforage', 'type2' (default) or
        'type2forage'
    switching : float or array_like
        Prey switching exponent, scalar or one per group (0-2)
    binit : array_like, optional
        Initial biomass; defaults to the Ecopath biomass
    ppforce : ForcingSeries or np.ndarray, optional
        Forced primary production. An array has times in its first column
        and one column per producer after that.
    pbforce : ForcingSeries or np.ndarray, optional
        Forced producer P/B, same layout as ``ppforce``
    ingforce : list of IngestionForcing
        Forced consumption of specific prey-predator links
    diagflag : bool
        Keep the fluxes of every time step in the output

    Returns
    -------
    EcosimParams
        Parameters object for simulation
    """
    if result is None:
        result = ecopath(params)
    if result.unresolved or not np.all(np.isfinite(result.b)):
        raise ValueError(
            "Ecopath model is unresolved for group(s) "
            f"{result.unresolved_groups}; balance it before building Ecosim "
            "parameters"
        )

    funcres = FunctionalResponse.parse(funcres)
    ngroup = params.ngroup
    ispp = params.pp == PP_PRODUCER

    sw = np.asarray(switching, dtype=float)
    if sw.ndim == 0:
        sw = np.full(ngroup, float(sw))
    if sw.shape != (ngroup,):
        raise ValueError(
            f"switching must be a scalar or have {ngroup} values, got {sw.shape}"
        )
    if np.any((sw < MIN_SWITCHING) | (sw > MAX_SWITCHING)):
        raise ValueError(
            f"switching exponents must be between {MIN_SWITCHING:g} and "
            f"{MAX_SWITCHING:g}"
        )

    if binit is not None:
        binit = np.asarray(binit, dtype=float)
        if binit.shape != (ngroup,):
            raise ValueError(f"binit must have {ngroup} values")
        if not np.all(np.isfinite(binit)):
            bad = [params.name[i] for i in np.where(~np.isfinite(binit))[0]]
            raise ValueError(f"binit is not finite for group(s) {bad}")

    ppforce = _as_forcing(ppforce, "ppforce", int(np.sum(ispp)))
    pbforce = _as_forcing(pbforce, "pbforce", int(np.sum(ispp)))
    ingforce = list(ingforce)
    for forced in ingforce:
        if not (0 <= forced.prey < ngroup and 0 <= forced.pred < ngroup):
            raise ValueError(
                f"Ingestion forcing link ({forced.prey}, {forced.pred}) is "
                "outside the food web"
            )

    b = result.b

    with np.errstate(divide='ignore', invalid='ignore'):
        h = 1.0 / (result.qb * params.qbmaxqb0)

        # Flow to detritus is not consumption
        q0 = result.q0.copy()
        q0[:, params.pp == PP_DETRITUS] = 0.0

        v = np.broadcast_to(params.kv, q0.shape) * q0 / b[:, np.newaxis]
        v = np.array(v)

    a = search_rate(funcres, q0, b[:, np.newaxis], b[np.newaxis, :], v,
                    h[np.newaxis, :])
    a[~np.isfinite(a)] = 0.0
    k = switching_scale(a, b, sw)

    # Saturating primary production, r B / (1 + hpp B) = PB B at Ecopath B
    r = np.zeros(ngroup)
    hpp = np.zeros(ngroup)
    r[ispp] = params.maxrelpb[ispp] * result.pb[ispp]
    with np.errstate(divide='ignore', invalid='ignore'):
        hpp[ispp] = (r[ispp] / result.pb[ispp] - 1.0) / b[ispp]
    hpp[ispp & (result.pb == 0)] = 0.0

    fish = np.nan_to_num(result.fish_mort_rate, nan=0.0)
    if np.any(params.discard > 0):
        warnings.warn(
            "Discards are not modelled dynamically; assuming all catch is landed",
            DiscardWarning,
        )

    logger.debug("Ecosim parameters: %d groups, %d gears, %s response",
                 ngroup, params.ngear, funcres.value)

    return EcosimParams(
        name=list(params.name),
        gear_name=list(params.gear_name),
        pp=params.pp.copy(),
        b=b.copy(),
        ge=result.ge.copy(),
        gs=result.gs.copy(),
        df=np.nan_to_num(params.df, nan=0.0),
        m0=np.nan_to_num(result.other_mort_rate, nan=0.0),
        q0=q0,
        h=h,
        v=v,
        a=a,
        k=k,
        sw=sw,
        funcres=funcres,
        r=r,
        hpp=hpp,
        fish=fish,
        ppforce=ppforce,
        pbforce=pbforce,
        ingforce=ingforce,
        binit=binit,
        diagflag=diagflag,
    )


def _as_forcing(forcing, label: str, nproducer: int) -> Optional[ForcingSeries]:
    if forcing is None:
        return None
    if not isinstance(forcing, ForcingSeries):
        table = np.asarray(forcing, dtype=float)
        if table.ndim != 2:
            raise ValueError(f"{label} must be a 2-D table of times and values")
        forcing = ForcingSeries(table[:, 0], table[:, 1:])
    if forcing.ncol != nproducer:
        raise ValueError(
            f"{label} has {forcing.ncol} value columns but the model has "
            f"{nproducer} primary producers"
        )
    return forcing


def run_ecosystem(
    params: EcosimParams,
    tlim: Sequence[float],
    dt: float,
    callback: Optional[Callable[[int, float, np.ndarray, Optional[FluxSet]], None]] = None,
) -> EcosystemOutput:
    """Run an Ecosim simulation.

    Each step is first taken with the fixed-step Runge-Kutta integrator
    (with the fast-turnover approximation). If that gives NaN, infinite or
    negative biomass, the step is redone with the adaptive integrator.

    Parameters
    ----------
    params : EcosimParams
        Dynamic model parameters
    tlim : sequence of float
        Start and end time
    dt : float
        Time step
    callback : callable, optional
        Called at every time point as ``callback(index, time, biomass,
        fluxes)``, ``fluxes`` being None unless ``params.diagflag`` is set

    Returns
    -------
    EcosystemOutput
        Simulation results

    Raises
    ------
    IntegrationError
        If the adaptive integrator also gives invalid biomass
    """
    if dt <= 0:
        raise ValueError("dt must be positive")
    t0, t1 = float(tlim[0]), float(tlim[-1])
    time = np.arange(t0, t1 + dt / 2, dt)
    nt = len(time)
    ngroup = params.ngroup
    nss = ngroup + params.ngear + 1

    biomass = np.zeros((nt, ngroup))
    biomass[0] = params.start_biomass

    fluxes = None
    if params.diagflag:
        fluxes = {name: np.zeros((nt, nss, nss)) for name in FLUX_NAMES}

    used_fallback = []
    logger.info("Running ecosystem: %d steps from t = %g to %g", nt - 1, t0, time[-1])

    for it in range(nt):
        b = biomass[it]
        t = time[it]

        step_fluxes = None
        if params.diagflag:
            step_fluxes = ecosystem_fluxes(t, b, params)
            for name, flux in step_fluxes.as_dict().items():
                fluxes[name][it] = flux
        if callback is not None:
            callback(it, t, b.copy(), step_fluxes)

        if it == nt - 1:
            break
        if it > 0 and it % PROGRESS_LOG_INTERVAL == 0:
            logger.debug("t = %10.2f", t)

        new_b = ecosim_rk4_step(params, t, b, dt)
        if _invalid(new_b):
            logger.warning(
                "Invalid biomass at t = %g for %s; retrying step with "
                "adaptive integrator", t, _bad_groups(new_b, params.name),
            )
            used_fallback.append(it)
            new_b = adaptive_step(params, t, b, dt)
            if _invalid(new_b):
                raise IntegrationError(t, _bad_groups(new_b, params.name))
        biomass[it + 1] = new_b

    return EcosystemOutput(
        time=time,
        biomass=biomass,
        name=list(params.name),
        fluxes=fluxes,
        used_fallback=used_fallback,
    )


def _invalid(b: np.ndarray) -> bool:
    return bool(np.any(~np.isfinite(b) | (b < 0)))


def _bad_groups(b: np.ndarray, names: List[str]) -> List[str]:
    with np.errstate(invalid='ignore'):
        bad = ~np.isfinite(b) | (b < 0)
    return [names[i] for i in np.where(bad)[0]]
