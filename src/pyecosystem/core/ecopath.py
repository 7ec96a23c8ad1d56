"""
Ecopath mass-balance model implementation.

This module contains the EcopathResult class and the ecopath() function
that fills in the unknown parameters of a food web and derives its
steady-state flows.

The balance solved for every living group i is:

    B_i * PB_i * EE_i = Y_i + E_i + BA_i + sum_j(B_j * QB_j * DC_ij)

where Y is the catch, E the net migration and BA the biomass accumulation.
Unknowns are estimated with an escalating sequence of rules (Christensen &
Pauly 1992; EwE5 help, Appendix 4), applied in fixed order every pass until
nothing changes; the generalized inverse is only tried once a full pass of
the simpler rules fills nothing.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import linalg

from pyecosystem.core.constants import (
    CANNIBALISM_RTOL,
    PP_DETRITUS,
    PP_PRODUCER,
    RANK_RTOL,
)
from pyecosystem.core.params import FoodWebParams
from pyecosystem.exceptions import (
    CannibalismWarning,
    MissingParameterError,
    UnresolvedWarning,
)
from pyecosystem.logger import get_logger

logger = get_logger('ecopath')


@dataclass
class EcopathResult:
    """Mass-balanced (or partially balanced) Ecopath model.

    Attributes
    ----------
    name : list of str
        Group names
    pp : np.ndarray
        Primary production indicator (0 consumer, 1 producer, 2 detritus)
    trophic : np.ndarray
        Trophic level of each group
    areafrac : np.ndarray
        Fraction of habitat area occupied by each group
    bh : np.ndarray
        Biomass in habitable area (M A^-1)
    b, pb, qb, ee, ge, gs : np.ndarray
        Resolved biomass, P/B, Q/B, ecotrophic efficiency, growth
        efficiency and unassimilated fraction
    df : np.ndarray
        Detritus fate (ngroup x ndet)
    ba : np.ndarray
        Biomass accumulation (M A^-1 T^-1); for detrital pools this is the
        surplus detritus that stays in the pool
    ba_rate : np.ndarray
        Biomass accumulation per unit biomass (T^-1)
    migration : np.ndarray
        Net migration, emigration - immigration (M A^-1 T^-1)
    migration_rate : np.ndarray
        Net migration per unit biomass (T^-1)
    flowtodet : np.ndarray
        Flow to detritus from each group and each gear (ngroup + ngear)
    fish_mort_rate : np.ndarray
        Fishing mortality per unit biomass by gear (ngroup x ngear)
    pred_mort_rate : np.ndarray
        Predation mortality per unit biomass, M2 (T^-1)
    pred_mort : np.ndarray
        Predation mortality rate by prey (rows) and predator (columns)
    other_mort_rate : np.ndarray
        Non-predatory, non-fishing mortality rate, PB * (1 - EE)
    q0 : np.ndarray
        Biomass flux from group i (rows) to group j (columns); for detrital
        columns this is non-predatory mortality plus egestion
    q0_sum : np.ndarray
        Total inflow to each group
    respiration : np.ndarray
        Respiration (M A^-1 T^-1), zero for producers and detritus
    search_rate : np.ndarray
        Search rate assuming linear dynamics, Q_ij = a * B_i * B_j
    detexport : np.ndarray
        Detritus exported out of the system from each pool
    landing, discard : np.ndarray
        Catch by group and gear
    unresolved : bool
        True if some unknowns could not be filled in
    iterations : int
        Number of passes through the estimation rules
    """
    name: List[str]
    pp: np.ndarray
    trophic: np.ndarray
    areafrac: np.ndarray
    bh: np.ndarray
    b: np.ndarray
    pb: np.ndarray
    qb: np.ndarray
    ee: np.ndarray
    ge: np.ndarray
    gs: np.ndarray
    df: np.ndarray
    ba: np.ndarray
    ba_rate: np.ndarray
    migration: np.ndarray
    migration_rate: np.ndarray
    flowtodet: np.ndarray
    fish_mort_rate: np.ndarray
    pred_mort_rate: np.ndarray
    pred_mort: np.ndarray
    other_mort_rate: np.ndarray
    q0: np.ndarray
    q0_sum: np.ndarray
    respiration: np.ndarray
    search_rate: np.ndarray
    detexport: np.ndarray
    landing: np.ndarray
    discard: np.ndarray
    unresolved: bool = False
    iterations: int = 0

    @property
    def ngroup(self) -> int:
        return len(self.name)

    @property
    def nlive(self) -> int:
        return int(np.sum(self.pp < PP_DETRITUS))

    @property
    def ngear(self) -> int:
        return self.landing.shape[1]

    @property
    def catches(self) -> np.ndarray:
        """Total catch (landings + discards) of each group."""
        return np.sum(self.landing + self.discard, axis=1)

    @property
    def unresolved_groups(self) -> List[str]:
        """Names of groups still missing B, P/B, Q/B or EE."""
        live = self.pp < PP_DETRITUS
        cons = self.pp < PP_PRODUCER
        missing = (
            np.isnan(self.b)
            | (live & (np.isnan(self.pb) | np.isnan(self.ee)))
            | (cons & np.isnan(self.qb))
        )
        return [self.name[i] for i in np.where(missing)[0]]

    def __repr__(self) -> str:
        live = self.pp < PP_DETRITUS
        status = "Unresolved!" if self.unresolved else "Balanced"
        over = np.where(live & (self.ee > 1))[0]
        status_detail = ""
        if len(over) > 0:
            status_detail = f"\nGroups with EE > 1: {[self.name[i] for i in over]}"
        return (
            f"Ecopath model\n"
            f"     Status: {status}{status_detail}\n"
            f"     Groups: {self.ngroup} "
            f"(living={self.nlive}, dead={self.ngroup - self.nlive}, "
            f"gears={self.ngear})"
        )

    def summary(self) -> pd.DataFrame:
        """Get summary table of model results.

        Returns
        -------
        pd.DataFrame
            Summary with Group, PP, TL, Biomass, PB, QB, EE, GE and Removals.
        """
        return pd.DataFrame({
            'Group': self.name,
            'PP': self.pp,
            'TL': self.trophic,
            'Biomass': self.b,
            'PB': self.pb,
            'QB': self.qb,
            'EE': self.ee,
            'GE': self.ge,
            'Removals': self.catches,
        })


@dataclass
class _SolverState:
    """Working copy of the food web owned by a single ecopath() call."""
    name: List[str]
    pp: np.ndarray
    islive: np.ndarray
    dc: np.ndarray
    catches: np.ndarray
    immig: np.ndarray
    b: np.ndarray
    pb: np.ndarray
    qb: np.ndarray
    ee: np.ndarray
    ge: np.ndarray
    emig: np.ndarray
    emig_rate: np.ndarray
    ba: np.ndarray
    ba_rate: np.ndarray

    @property
    def isconsumer(self) -> np.ndarray:
        return self.pp < PP_PRODUCER

    @property
    def net_migration(self) -> np.ndarray:
        return self.emig - self.immig

    def snapshot(self) -> np.ndarray:
        return np.column_stack([self.b, self.pb, self.qb, self.ee, self.ge])

    def unchanged(self, snapshot: np.ndarray) -> bool:
        return np.array_equal(snapshot, self.snapshot(), equal_nan=True)

    def all_known(self) -> bool:
        live = self.islive
        cons = self.isconsumer
        return not (
            np.any(np.isnan(self.b))
            or np.any(np.isnan(self.pb[live]))
            or np.any(np.isnan(self.qb[cons]))
            or np.any(np.isnan(self.ee[live]))
            or np.any(np.isnan(self.ge[cons]))
        )

    def names(self, mask: np.ndarray) -> List[str]:
        return [self.name[i] for i in np.where(mask)[0]]


def ecopath(params: FoodWebParams) -> EcopathResult:
    """Balance an Ecopath model.

    Fills in the unknown (NaN) biomass, P/B, Q/B, EE and GE values of the
    food web and calculates the resulting flows, mortalities and detritus
    budget.

    Parameters
    ----------
    params : FoodWebParams
        Food web description; not modified.

    Returns
    -------
    EcopathResult
        Balanced model. If some unknowns could not be filled in, a
        :class:`UnresolvedWarning` (or :class:`CannibalismWarning`) is
        issued and ``result.unresolved`` is True; the values that could be
        estimated are still returned.

    Raises
    ------
    MissingParameterError
        If a group is missing both B and Q/B once the generalized inverse
        is needed.

    Examples
    --------
    >>> params = create_foodweb_params(['Phyto', 'Zoo', 'Det'], [1, 0, 2])
    >>> # Fill in parameter values
    >>> model = ecopath(params)
    >>> print(model)
    """
    s = _setup_state(params)

    iterations, unresolved = _solve(s)

    b, pb, qb, ee, ge = s.b, s.pb, s.qb, s.ee, s.ge
    pp = s.pp
    islive = s.islive
    isdet = ~islive

    # Fill in biomass-in-habitat-area

    bh = params.bh.copy()
    need_bh = np.isnan(bh) & ~np.isnan(b)
    bh[need_bh] = b[need_bh] / params.areafrac[need_bh]

    # Set some values to 0 that haven't been corrected

    gs = params.gs.copy()
    pb[pp == PP_DETRITUS] = 0.0   # No production for detritus
    qb[pp >= PP_PRODUCER] = 0.0   # No consumption for producers
    ge[pp >= PP_PRODUCER] = 0.0   # P/Q undefined, placeholder
    gs[pp >= PP_PRODUCER] = 0.0   # Unassimilated irrelevant without Q

    # Detritus budget

    det = _detritus_budget(params, s, gs)
    ba = s.ba.copy()
    ba[isdet] = det['self_accumulation']
    need_ee = isdet & np.isnan(ee)
    ee[need_ee] = det['ee'][need_ee[isdet]]

    # Mortalities and rates

    with np.errstate(divide='ignore', invalid='ignore'):
        migration = s.emig - s.immig
        migration_rate = migration / b
        ba_rate = ba / b

        fish_mort_rate = (params.landing + params.discard) / b[:, np.newaxis]

        bq = b * qb
        pred_mort_total = s.dc @ bq                   # M2 * B
        pred_mort_rate = pred_mort_total / b          # M2
        pred_mort = (bq[np.newaxis, :] * s.dc) / b[:, np.newaxis]

        other_mort_rate = pb * (1.0 - ee)

        q0 = det['q0']
        search_rate = q0 / np.outer(b, b)
        search_rate[:, isdet] = 0.0

    return EcopathResult(
        name=list(s.name),
        pp=pp.copy(),
        trophic=trophic_level(s.dc, pp),
        areafrac=params.areafrac.copy(),
        bh=bh,
        b=b,
        pb=pb,
        qb=qb,
        ee=ee,
        ge=ge,
        gs=gs,
        df=params.df.copy(),
        ba=ba,
        ba_rate=ba_rate,
        migration=migration,
        migration_rate=migration_rate,
        flowtodet=det['flowtodet'],
        fish_mort_rate=fish_mort_rate,
        pred_mort_rate=pred_mort_rate,
        pred_mort=pred_mort,
        other_mort_rate=other_mort_rate,
        q0=q0,
        q0_sum=np.sum(q0, axis=0),
        respiration=det['respiration'],
        search_rate=search_rate,
        detexport=det['export'],
        landing=params.landing.copy(),
        discard=params.discard.copy(),
        unresolved=unresolved,
        iterations=iterations,
    )


def _setup_state(params: FoodWebParams) -> _SolverState:
    """Copy the inputs into a private working state and run the setup algebra."""
    islive = params.pp < PP_DETRITUS
    catches = np.nansum(params.landing + params.discard, axis=1)

    b = params.b.copy()
    from_bh = np.isnan(b) & ~np.isnan(params.bh)
    b[from_bh] = params.bh[from_bh] * params.areafrac[from_bh]

    s = _SolverState(
        name=list(params.name),
        pp=params.pp.copy(),
        islive=islive,
        dc=np.nan_to_num(params.dc, nan=0.0),
        catches=catches,
        immig=np.nan_to_num(params.immig, nan=0.0),
        b=b,
        pb=params.pb.copy(),
        qb=params.qb.copy(),
        ee=params.ee.copy(),
        ge=params.ge.copy(),
        emig=np.nan_to_num(params.emig, nan=0.0),
        emig_rate=np.nan_to_num(params.emig_rate, nan=0.0),
        ba=np.nan_to_num(params.ba, nan=0.0),
        ba_rate=np.nan_to_num(params.ba_rate, nan=0.0),
    )

    if np.any(np.isnan(s.b) & ((s.emig_rate != 0) | (s.ba_rate != 0))):
        warnings.warn(
            "Missing b combined with assigned emigration and/or BA rate: "
            "the rate is ignored until b is known",
            UnresolvedWarning,
        )

    _convert_rates(s)
    _pbq(s)
    return s


def _solve(s: _SolverState) -> Tuple[int, bool]:
    """Run the estimation rules until all unknowns are filled.

    Returns
    -------
    iterations : int
        Number of passes made
    unresolved : bool
        True if the loop stopped with unknowns remaining
    """
    iterations = 0
    while not s.all_known():
        iterations += 1
        logger.debug("Iteration %d", iterations)

        param = s.snapshot()

        # Run the P/B-Q/B-GE algebra and the rate conversions again, in
        # case new values have been filled in
        _pbq(s)
        _convert_rates(s)

        _log_rule("A1", _estimate_pb(s), s)
        _log_rule("A2", _estimate_ee(s), s)
        _log_rule("A3", _estimate_b_or_qb_from_prey(s), s)

        filled = _estimate_b(s)
        if filled is None:
            return iterations, True
        _log_rule("A4", filled, s)

        # Only try the generalized inverse once the first four rules are
        # exhausted
        if s.unchanged(param):
            filled, complete = _generalized_inverse(s)
            _log_rule("A5", filled, s)
            if not complete:
                warnings.warn(
                    "Generalized inverse could not constrain all unknown "
                    "biomass and Q/B values", UnresolvedWarning,
                )
                return iterations, True

        if s.unchanged(param):
            warnings.warn("Unable to fill in all unknowns", UnresolvedWarning)
            return iterations, True

    _pbq(s)
    return iterations, False


def _log_rule(label: str, filled: np.ndarray, s: _SolverState) -> None:
    if np.any(filled):
        logger.debug(" %s: %s", label, ",".join(s.names(filled)))


# ============================================================================
# SETUP ALGEBRA
# ============================================================================

def _pbq(s: _SolverState) -> None:
    """Fill P/B, Q/B or GE from the other two, for living groups."""
    live = s.islive
    fill = live & np.isnan(s.pb) & ~np.isnan(s.qb) & ~np.isnan(s.ge)
    s.pb[fill] = s.ge[fill] * s.qb[fill]

    fill = live & np.isnan(s.qb) & ~np.isnan(s.pb) & ~np.isnan(s.ge) & (s.ge != 0)
    s.qb[fill] = s.pb[fill] / s.ge[fill]

    fill = live & ~np.isnan(s.qb) & ~np.isnan(s.pb) & (s.qb != 0)
    s.ge[fill] = s.pb[fill] / s.qb[fill]


def _convert_rates(s: _SolverState) -> None:
    """Convert emigration and BA between totals and per-biomass rates."""
    known = s.islive & ~np.isnan(s.b)

    e2er = known & (s.emig != 0) & (s.emig_rate == 0)
    er2e = known & (s.emig_rate != 0) & (s.emig == 0)
    ba2bar = known & (s.ba != 0) & (s.ba_rate == 0)
    bar2ba = known & (s.ba_rate != 0) & (s.ba == 0)

    s.emig_rate[e2er] = s.emig[e2er] / s.b[e2er]
    s.emig[er2e] = s.emig_rate[er2e] * s.b[er2e]
    s.ba_rate[ba2bar] = s.ba[ba2bar] / s.b[ba2bar]
    s.ba[bar2ba] = s.ba_rate[bar2ba] * s.b[bar2ba]


def _predation(s: _SolverState, exclude_self: bool = False) -> np.ndarray:
    """Total predation loss of each prey, ignoring unknown predators."""
    cons = s.dc * (s.b * s.qb)[np.newaxis, :]
    if exclude_self:
        np.fill_diagonal(cons, 0.0)
    return np.nansum(cons, axis=1)


def _know_pred_info(s: _SolverState, exclude_self: bool = False) -> np.ndarray:
    """True for prey whose predators all have known B and Q/B."""
    ispred = s.dc > 0
    if exclude_self:
        ispred = ispred & ~np.eye(len(s.b), dtype=bool)
    unknown = np.isnan(s.b) | np.isnan(s.qb)
    return ~np.any(ispred & unknown[np.newaxis, :], axis=1)


def _exports(s: _SolverState) -> np.ndarray:
    """Catch, net migration and biomass accumulation of each group."""
    return s.catches + s.net_migration + s.ba


# ============================================================================
# ESTIMATION RULES
# ============================================================================

def _estimate_pb(s: _SolverState) -> np.ndarray:
    """Rule 1: P/B from B, EE and the predation on the group."""
    m2 = _predation(s)
    can_run = (
        s.islive
        & np.isnan(s.pb)
        & ~np.isnan(s.b)
        & ~np.isnan(s.ee)
        & _know_pred_info(s)
    )
    s.pb[can_run] = (_exports(s) + m2)[can_run] / (s.b * s.ee)[can_run]
    return can_run


def _estimate_ee(s: _SolverState) -> np.ndarray:
    """Rule 2: EE from B, P/B and the predation on the group."""
    m2 = _predation(s)
    can_run = (
        s.islive
        & np.isnan(s.ee)
        & ~np.isnan(s.b)
        & ~np.isnan(s.pb)
        & _know_pred_info(s)
    )
    s.ee[can_run] = (_exports(s) + m2)[can_run] / (s.b * s.pb)[can_run]
    return can_run


def _estimate_b_or_qb_from_prey(s: _SolverState) -> np.ndarray:
    """Rule 3: B or Q/B of a predator from the balance of one of its prey.

    For a group missing exactly one of B and Q/B whose other predators are
    all known, find a living prey k with known B, P/B and EE whose
    predators other than the group are all known. The balance of k then
    gives the group's total consumption of k, and dividing by the diet
    fraction DC[k, group] gives B * Q/B of the group.
    """
    ngroup = len(s.b)
    filled = np.zeros(ngroup, dtype=bool)

    missing_b = np.isnan(s.b)
    missing_qb = np.isnan(s.qb)
    candidates = (
        s.islive
        & (missing_b ^ missing_qb)
        & _know_pred_info(s, exclude_self=True)
    )
    if not np.any(candidates):
        return filled

    unknown_pred = missing_b | missing_qb
    bq = np.where(unknown_pred, 0.0, s.b * s.qb)
    exports = _exports(s)
    prey_known = (
        s.islive & ~np.isnan(s.b) & ~np.isnan(s.pb) & ~np.isnan(s.ee)
    )

    new_b = s.b.copy()
    new_qb = s.qb.copy()
    for g in np.where(candidates)[0]:
        for k in np.where((s.dc[:, g] > 0) & prey_known)[0]:
            if k == g:
                continue
            others = s.dc[k, :] > 0
            others[g] = False
            if np.any(others & unknown_pred):
                continue
            eaten = s.b[k] * s.pb[k] * s.ee[k] - exports[k] - np.sum(
                bq[others] * s.dc[k, others]
            )
            flux = eaten / s.dc[k, g]
            if missing_b[g]:
                new_b[g] = flux / s.qb[g]
            else:
                new_qb[g] = flux / s.b[g]
            filled[g] = True
            break

    s.b[:] = new_b
    s.qb[:] = new_qb
    return filled


def _estimate_b(s: _SolverState) -> Optional[np.ndarray]:
    """Rule 4: B from P/B, EE and Q/B, accounting for cannibalism.

    Returns None, after warning, when self-predation makes the estimate
    impossible; the caller stops solving.
    """
    can_run = (
        s.islive
        & np.isnan(s.b)
        & ~np.isnan(s.pb)
        & ~np.isnan(s.ee)
        & ~np.isnan(s.qb)
        & _know_pred_info(s, exclude_self=True)
    )

    part_m2 = _predation(s, exclude_self=True)
    dc_cannib = np.diag(s.dc)
    with np.errstate(invalid='ignore'):
        pbee = s.pb * s.ee
        qbdc = s.qb * dc_cannib

    only_self = can_run & np.isclose(pbee, qbdc, rtol=CANNIBALISM_RTOL, atol=0.0)
    too_high = can_run & ~only_self & (pbee < qbdc)
    if np.any(only_self):
        warnings.warn(
            f"Group(s) ({','.join(s.names(only_self))}) are missing biomass "
            "but are only preyed on by themselves; group(s) must be split in "
            "two to solve. Exiting without solution",
            CannibalismWarning,
        )
        return None
    if np.any(too_high):
        warnings.warn(
            f"Group(s) ({','.join(s.names(too_high))}) have cannibalism "
            "losses that exceed predation mortality. Exiting without solution",
            CannibalismWarning,
        )
        return None

    s.b[can_run] = (_exports(s) + part_m2)[can_run] / (pbee - qbdc)[can_run]
    return can_run


def _generalized_inverse(s: _SolverState) -> Tuple[np.ndarray, bool]:
    """Rule 5: solve for all remaining unknown B and Q/B at once.

    One equation is written for every living group with known P/B and EE
    (and non-negative catch), with one unknown column for every group whose
    B (or, for consumers, Q/B) is missing:

        B_i PB_i EE_i - sum_j B_j QB_j DC_ij = Y_i + E_i + BA_i

    The system is solved in the least-squares (generalized inverse) sense.

    Returns
    -------
    filled : np.ndarray
        Mask of groups that received a value
    complete : bool
        False if some unknown column could not be constrained
    """
    ngroup = len(s.b)
    filled = np.zeros(ngroup, dtype=bool)

    missing_b = s.islive & np.isnan(s.b)
    missing_qb = s.isconsumer & np.isnan(s.qb)

    both = missing_b & missing_qb
    if np.any(both):
        raise MissingParameterError(s.names(both))

    b_col = missing_b
    qb_col = missing_qb & ~missing_b
    cols = np.where(b_col | qb_col)[0]
    if len(cols) == 0:
        return filled, True

    rows = np.where(
        s.islive & ~np.isnan(s.pb) & ~np.isnan(s.ee) & (s.catches >= 0)
    )[0]

    qb_known = np.nan_to_num(s.qb, nan=0.0)
    b_known = np.nan_to_num(s.b, nan=0.0)

    A = np.zeros((len(rows), len(cols)))
    for c, j in enumerate(cols):
        if b_col[j]:
            A[:, c] = -qb_known[j] * s.dc[rows, j]
            A[rows == j, c] += s.pb[j] * s.ee[j]
        else:
            A[:, c] = -b_known[j] * s.dc[rows, j]

    known_bq = ~(np.isnan(s.b) | np.isnan(s.qb))
    bq = np.where(known_bq, s.b * s.qb, 0.0)
    rhs = _exports(s)[rows] + s.dc[rows, :] @ bq
    own = ~np.isnan(s.b[rows])
    rhs[own] -= (s.b * s.pb * s.ee)[rows][own]

    constrained = np.any(A != 0, axis=0)
    if not np.any(constrained):
        return filled, False

    Ac = A[:, constrained]
    x, _, rank, sv = linalg.lstsq(Ac, rhs)
    if len(sv) > 0:
        rank = int(np.sum(sv > RANK_RTOL * sv[0]))
    if rank < Ac.shape[1]:
        logger.debug(" A5: system is under-determined (rank %d < %d)",
                     rank, Ac.shape[1])
        return filled, False

    for c, j in enumerate(cols[constrained]):
        if b_col[j]:
            s.b[j] = x[c]
        else:
            s.qb[j] = x[c]
        filled[j] = True

    return filled, bool(np.all(constrained))


# ============================================================================
# DETRITUS AND TROPHIC LEVELS
# ============================================================================

def _detritus_budget(params: FoodWebParams, s: _SolverState, gs: np.ndarray) -> dict:
    """Route non-predatory losses, egestion and discards through detritus.

    Surplus detritus (input not eaten) of each pool is passed on to other
    pools or kept (as biomass accumulation) according to the pools' rows of
    the detritus fate matrix; the remainder of a row that does not sum to 1
    is exported. Surplus passed between pools is itself part of the
    receiving pool's surplus, so surpluses are solved simultaneously.
    """
    b, pb, qb, ee, pp = s.b, s.pb, s.qb, s.ee, s.pp
    islive = s.islive
    isdet = ~islive
    ndet = int(np.sum(isdet))
    df = np.nan_to_num(params.df, nan=0.0)

    # Detritus produced from mortality and egestion
    with np.errstate(invalid='ignore'):
        mort = (np.where(islive, b * pb * (1.0 - ee), 0.0))[:, np.newaxis] * df
        egest = (b * qb * gs)[:, np.newaxis] * df
    detgroups = mort + egest
    detgroups[isdet, :] = 0.0

    # Detritus produced from fisheries discards
    detfisheries = np.sum(params.discard, axis=0)[:, np.newaxis] * params.discard_fate

    input_direct = (
        np.sum(detgroups, axis=0)
        + np.sum(detfisheries, axis=0)
        + np.nan_to_num(params.dt_imp[isdet], nan=0.0)
    )

    # Consumption grid
    q0 = s.dc * np.nan_to_num(qb * b, nan=0.0)[np.newaxis, :]
    q0[:, isdet] = detgroups
    q0[np.ix_(isdet, isdet)] = 0.0
    deteaten = np.sum(q0[isdet, :], axis=1)

    # Respiration
    assim = np.where(pp < PP_PRODUCER, 1.0 - pp, 1.0)
    respiration = b * qb - assim * (ee * b * pb + np.sum(detgroups, axis=1))
    respiration[pp >= PP_PRODUCER] = 0.0

    # Fate of surplus detritus
    fate = df[isdet, :]
    passing = fate * ~np.eye(ndet, dtype=bool)
    direct_surplus = input_direct - deteaten - respiration[isdet]
    surplus = np.zeros(ndet)
    if ndet > 0:
        system = np.eye(ndet) - passing.T
        try:
            surplus = linalg.solve(system, direct_surplus)
        except linalg.LinAlgError:
            surplus = linalg.lstsq(system, direct_surplus)[0]

    surplusfate = fate * surplus[:, np.newaxis]
    self_accumulation = np.diag(surplusfate).copy()
    passed = surplusfate * ~np.eye(ndet, dtype=bool)

    inputtodet = input_direct + np.sum(passed, axis=0)
    detpassedon = np.sum(passed, axis=1)

    detgroups[isdet, :] = passed
    q0[np.ix_(isdet, isdet)] = passed
    flowtodet = np.concatenate([
        np.sum(detgroups, axis=1),
        np.sum(detfisheries, axis=1),
    ])

    has_export = np.sum(fate, axis=1) < 1
    export = np.zeros(ndet)
    export[has_export] = (
        inputtodet - deteaten - self_accumulation - detpassedon
        - respiration[isdet]
    )[has_export]

    with np.errstate(divide='ignore', invalid='ignore'):
        det_ee = np.where(inputtodet != 0, deteaten / inputtodet, 0.0)

    return {
        'q0': q0,
        'flowtodet': flowtodet,
        'respiration': respiration,
        'self_accumulation': self_accumulation,
        'export': export,
        'ee': det_ee,
    }


def trophic_level(dc: np.ndarray, pp: np.ndarray) -> np.ndarray:
    """Calculate trophic levels.

    Producers and detritus have TL = 1; every other group has
    TL = 1 + the diet-weighted average TL of its prey, solved as the
    linear system (I - D^T) TL = 1 where D is the column-normalized diet.

    Parameters
    ----------
    dc : np.ndarray
        Diet composition (prey x predator)
    pp : np.ndarray
        Primary production indicator

    Returns
    -------
    np.ndarray
        Trophic level of each group
    """
    n = len(pp)
    diet = np.nan_to_num(dc, nan=0.0).copy()
    diet[:, pp >= PP_PRODUCER] = 0.0
    total = np.sum(diet, axis=0)
    eats = total > 0
    diet[:, eats] = diet[:, eats] / total[eats]

    tl_matrix = np.eye(n) - diet.T
    b_tl = np.ones(n)
    try:
        return linalg.solve(tl_matrix, b_tl)
    except linalg.LinAlgError:
        return linalg.lstsq(tl_matrix, b_tl)[0]
