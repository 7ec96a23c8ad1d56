"""
Parameter data structures for PyEcosystem.

This module contains the FoodWebParams class and functions for creating,
reading and writing the inputs of the Ecopath mass-balance solver.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from pyecosystem.core.constants import (
    DEFAULT_AREA_FRACTION,
    DEFAULT_MAX_REL_PB,
    DEFAULT_QBMAX_QB0,
    DEFAULT_UNASSIM,
    DEFAULT_VULNERABILITY,
    PP_DETRITUS,
    PP_PRODUCER,
)


# Per-group fields and the column names used in the groups table
GROUP_COLUMNS = {
    "pp": "PP",
    "b": "Biomass",
    "pb": "PB",
    "qb": "QB",
    "ee": "EE",
    "ge": "GE",
    "gs": "GS",
    "areafrac": "AreaFrac",
    "bh": "BH",
    "dt_imp": "DetImport",
    "immig": "Immig",
    "emig": "Emig",
    "emig_rate": "EmigRate",
    "ba": "BA",
    "ba_rate": "BARate",
    "qbmaxqb0": "QBmaxQB0",
    "maxrelpb": "MaxRelPB",
}


@dataclass
class FoodWebParams:
    """Container for the parameters of a food web.

    Groups are ordered with all living groups (consumers and producers)
    first, followed by the detrital pools. Unknown values of ``b``, ``pb``,
    ``qb``, ``ee``, ``ge`` (and ``bh``) are marked with NaN; they are filled
    in by :func:`pyecosystem.core.ecopath.ecopath`.

    Units are expressed in mass M, area (or volume) A and time T; any
    consistent choice works.

    Attributes
    ----------
    name : list of str
        Group names
    pp : np.ndarray
        Primary production indicator: 0 = consumer, 1 = producer,
        2 = detritus. Values between 0 and 1 mark mixotrophs (fraction of
        diet from primary production).
    b : np.ndarray
        Biomass (M A^-1)
    pb : np.ndarray
        Production/biomass ratio (T^-1)
    qb : np.ndarray
        Consumption/biomass ratio (T^-1)
    ee : np.ndarray
        Ecotrophic efficiency (0-1)
    ge : np.ndarray
        Growth efficiency, production/consumption
    gs : np.ndarray
        Fraction of consumption that is not assimilated (egested)
    dc : np.ndarray
        Diet composition, ``dc[i, j]`` is the fraction of predator j's diet
        made up of prey i (ngroup x ngroup)
    df : np.ndarray
        Detritus fate, fraction of each group's non-predatory loss going to
        each detrital pool (ngroup x ndet)
    areafrac : np.ndarray
        Fraction of habitat area occupied by each group
    bh : np.ndarray
        Habitat biomass, ``b / areafrac`` (M A^-1)
    dt_imp : np.ndarray
        Detritus import (M A^-1 T^-1), zero for living groups
    immig, emig : np.ndarray
        Immigration and emigration (M A^-1 T^-1)
    emig_rate : np.ndarray
        Emigration per unit biomass (T^-1)
    ba : np.ndarray
        Biomass accumulation (M A^-1 T^-1)
    ba_rate : np.ndarray
        Biomass accumulation per unit biomass (T^-1)
    landing, discard : np.ndarray
        Landings and discards of each group by each gear (ngroup x ngear)
    discard_fate : np.ndarray
        Fraction of each gear's discards going to each detrital pool
        (ngear x ndet)
    gear_name : list of str
        Fishing gear names
    kv : float or np.ndarray
        Vulnerability multiplier used by the dynamic model, scalar or
        prey x predator matrix
    qbmaxqb0 : np.ndarray
        Ratio of maximum to mass-balance consumption per unit biomass
    maxrelpb : np.ndarray
        Ratio of maximum to mass-balance P/B for primary producers
    """

    name: List[str]
    pp: np.ndarray
    b: np.ndarray
    pb: np.ndarray
    qb: np.ndarray
    ee: np.ndarray
    ge: np.ndarray
    gs: np.ndarray
    dc: np.ndarray
    df: np.ndarray
    areafrac: np.ndarray
    bh: np.ndarray
    dt_imp: np.ndarray
    immig: np.ndarray
    emig: np.ndarray
    emig_rate: np.ndarray
    ba: np.ndarray
    ba_rate: np.ndarray
    landing: np.ndarray
    discard: np.ndarray
    discard_fate: np.ndarray
    gear_name: List[str] = field(default_factory=list)
    kv: Union[float, np.ndarray] = DEFAULT_VULNERABILITY
    qbmaxqb0: Optional[np.ndarray] = None
    maxrelpb: Optional[np.ndarray] = None

    def __post_init__(self):
        self.name = [str(n) for n in self.name]
        self.gear_name = [str(g) for g in self.gear_name]
        for attr in (
            "pp", "b", "pb", "qb", "ee", "ge", "gs", "dc", "df", "areafrac",
            "bh", "dt_imp", "immig", "emig", "emig_rate", "ba", "ba_rate",
            "landing", "discard", "discard_fate",
        ):
            setattr(self, attr, np.array(getattr(self, attr), dtype=float))
        if self.qbmaxqb0 is None:
            self.qbmaxqb0 = np.full(self.ngroup, DEFAULT_QBMAX_QB0)
        if self.maxrelpb is None:
            self.maxrelpb = np.full(self.ngroup, DEFAULT_MAX_REL_PB)
        self.qbmaxqb0 = np.array(self.qbmaxqb0, dtype=float)
        self.maxrelpb = np.array(self.maxrelpb, dtype=float)
        if not np.isscalar(self.kv):
            self.kv = np.array(self.kv, dtype=float)

    @property
    def ngroup(self) -> int:
        return len(self.name)

    @property
    def nlive(self) -> int:
        return int(np.sum(self.pp < PP_DETRITUS))

    @property
    def ndet(self) -> int:
        return self.ngroup - self.nlive

    @property
    def ngear(self) -> int:
        return self.landing.shape[1] if self.landing.ndim == 2 else 0

    def copy(self) -> "FoodWebParams":
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        n_prod = int(np.sum(self.pp == PP_PRODUCER))
        return (
            f"FoodWebParams(\n"
            f"  groups={self.ngroup} (living={self.nlive}, producers={n_prod}, "
            f"detritus={self.ndet})\n"
            f"  gears={self.ngear}\n"
            f"  unknowns={self._count_unknowns()}\n"
            f")"
        )

    def _count_unknowns(self) -> int:
        live = self.pp < PP_DETRITUS
        consumer = self.pp < PP_PRODUCER
        return int(
            np.sum(np.isnan(self.b))
            + np.sum(np.isnan(self.pb[live]))
            + np.sum(np.isnan(self.ee[live]))
            + np.sum(np.isnan(self.qb[consumer]))
        )

    def to_frames(self) -> Dict[str, pd.DataFrame]:
        """Convert the parameters to pandas tables.

        Returns
        -------
        dict of pd.DataFrame
            ``groups``, ``diet``, ``detfate``, ``landing``, ``discard``,
            ``discard_fate`` and ``vulnerability`` tables, in the layout
            accepted by :func:`foodweb_params_from_frames`.
        """
        det_names = self.name[self.nlive:]
        groups = pd.DataFrame({"Group": self.name})
        for attr, col in GROUP_COLUMNS.items():
            groups[col] = getattr(self, attr)

        kv = np.array(np.broadcast_to(self.kv, (self.ngroup, self.ngroup)))
        return {
            "groups": groups,
            "diet": pd.DataFrame(self.dc, index=self.name, columns=self.name),
            "detfate": pd.DataFrame(self.df, index=self.name, columns=det_names),
            "landing": pd.DataFrame(
                self.landing, index=self.name, columns=self.gear_name
            ),
            "discard": pd.DataFrame(
                self.discard, index=self.name, columns=self.gear_name
            ),
            "discard_fate": pd.DataFrame(
                self.discard_fate, index=self.gear_name, columns=det_names
            ),
            "vulnerability": pd.DataFrame(kv, index=self.name, columns=self.name),
        }


def create_foodweb_params(
    names: Sequence[str],
    pp: Sequence[float],
    gears: Sequence[str] = (),
) -> FoodWebParams:
    """Create a shell FoodWebParams object with unknown parameter values.

    Biomass, P/B, Q/B, EE and GE are set to NaN (unknown). All other fields
    get neutral defaults: no migration, accumulation, catch or import;
    consumers egest ``DEFAULT_UNASSIM`` of their consumption; non-predatory
    losses of living groups and all discards go to the first detrital pool.

    Parameters
    ----------
    names : list of str
        Names of all groups, living groups first, then detrital pools.
    pp : list of float
        Primary production indicator for each group (0 = consumer,
        1 = producer, 2 = detritus, in between = mixotroph).
    gears : list of str, optional
        Names of the fishing gears.

    Returns
    -------
    FoodWebParams
        Parameter object with NaN values ready to be filled in.

    Examples
    --------
    >>> params = create_foodweb_params(
    ...     names=['Phyto', 'Zoo', 'Fish', 'Detritus'],
    ...     pp=[1, 0, 0, 2],
    ...     gears=['Trawl'],
    ... )
    >>> params.b[:] = [10.0, 5.0, 2.0, 100.0]
    """
    if len(names) != len(pp):
        raise ValueError("names and pp must have the same length")

    pp = np.asarray(pp, dtype=float)
    ngroup = len(names)
    ngear = len(gears)
    nlive = int(np.sum(pp < PP_DETRITUS))
    ndet = ngroup - nlive

    unknown = np.full(ngroup, np.nan)
    zeros = np.zeros(ngroup)

    df = np.zeros((ngroup, ndet))
    discard_fate = np.zeros((ngear, ndet))
    if ndet > 0:
        df[:nlive, 0] = 1.0
        discard_fate[:, 0] = 1.0

    return FoodWebParams(
        name=list(names),
        pp=pp,
        b=unknown.copy(),
        pb=unknown.copy(),
        qb=unknown.copy(),
        ee=unknown.copy(),
        ge=unknown.copy(),
        gs=np.where(pp < PP_PRODUCER, DEFAULT_UNASSIM, 0.0),
        dc=np.zeros((ngroup, ngroup)),
        df=df,
        areafrac=np.full(ngroup, DEFAULT_AREA_FRACTION),
        bh=unknown.copy(),
        dt_imp=zeros.copy(),
        immig=zeros.copy(),
        emig=zeros.copy(),
        emig_rate=zeros.copy(),
        ba=zeros.copy(),
        ba_rate=zeros.copy(),
        landing=np.zeros((ngroup, ngear)),
        discard=np.zeros((ngroup, ngear)),
        discard_fate=discard_fate,
        gear_name=list(gears),
    )


def foodweb_params_from_frames(
    groups: pd.DataFrame,
    diet: Optional[pd.DataFrame] = None,
    detfate: Optional[pd.DataFrame] = None,
    landing: Optional[pd.DataFrame] = None,
    discard: Optional[pd.DataFrame] = None,
    discard_fate: Optional[pd.DataFrame] = None,
    vulnerability: Optional[pd.DataFrame] = None,
) -> FoodWebParams:
    """Build FoodWebParams from pandas tables.

    Parameters
    ----------
    groups : pd.DataFrame
        One row per group with a ``Group`` and a ``PP`` column, plus any of
        the columns in ``GROUP_COLUMNS`` (missing columns take the defaults
        of :func:`create_foodweb_params`).
    diet : pd.DataFrame, optional
        Diet matrix indexed by prey name with one column per predator.
        Missing rows/columns are treated as zero.
    detfate : pd.DataFrame, optional
        Detritus fate indexed by group name with one column per pool.
    landing, discard : pd.DataFrame, optional
        Catch indexed by group name with one column per gear.
    discard_fate : pd.DataFrame, optional
        Discard fate indexed by gear name with one column per pool.
    vulnerability : pd.DataFrame, optional
        Vulnerability multipliers indexed by prey with predator columns.

    Returns
    -------
    FoodWebParams
    """
    names = groups["Group"].astype(str).tolist()
    gears: List[str] = []
    for table in (landing, discard):
        if table is not None:
            gears = [str(c) for c in table.columns]
            break

    params = create_foodweb_params(names, groups["PP"].values, gears)
    det_names = names[params.nlive:]

    for attr, col in GROUP_COLUMNS.items():
        if attr != "pp" and col in groups.columns:
            setattr(params, attr, groups[col].values.astype(float))

    if diet is not None:
        params.dc = _reindex(diet, names, names)
    if detfate is not None:
        params.df = _reindex(detfate, names, det_names)
    if landing is not None:
        params.landing = _reindex(landing, names, gears)
    if discard is not None:
        params.discard = _reindex(discard, names, gears)
    if discard_fate is not None:
        params.discard_fate = _reindex(discard_fate, gears, det_names)
    if vulnerability is not None:
        params.kv = _reindex(vulnerability, names, names)

    return params


def _reindex(table: pd.DataFrame, rows: List[str], cols: List[str]) -> np.ndarray:
    table = table.copy()
    table.index = table.index.astype(str)
    table.columns = table.columns.astype(str)
    return table.reindex(index=rows, columns=cols).fillna(0.0).values.astype(float)


_TABLES = ("groups", "diet", "detfate", "landing", "discard",
           "discard_fate", "vulnerability")


def read_foodweb_params(eco_name: str, path: Union[str, Path] = "") -> FoodWebParams:
    """Read food web parameters from CSV files.

    Reads ``{eco_name}_groups.csv`` (required) and, when present,
    ``{eco_name}_diet.csv``, ``{eco_name}_detfate.csv``,
    ``{eco_name}_landing.csv``, ``{eco_name}_discard.csv``,
    ``{eco_name}_discard_fate.csv`` and ``{eco_name}_vulnerability.csv``.
    Matrix tables carry row names in their first column.

    Parameters
    ----------
    eco_name : str
        Ecosystem name used in file names.
    path : str or Path
        Directory holding the files.

    Returns
    -------
    FoodWebParams
        Parameter object populated from files.
    """
    path = Path(path)
    groups = pd.read_csv(path / f"{eco_name}_groups.csv")

    tables = {}
    for table in _TABLES[1:]:
        file = path / f"{eco_name}_{table}.csv"
        if file.exists():
            tables[table] = pd.read_csv(file, index_col=0)

    return foodweb_params_from_frames(groups, **tables)


def write_foodweb_params(
    params: FoodWebParams, eco_name: str, path: Union[str, Path] = ""
) -> None:
    """Write food web parameters to CSV files.

    Parameters
    ----------
    params : FoodWebParams
        Parameter object to write.
    eco_name : str
        Ecosystem name used in file names.
    path : str or Path
        Directory path for output files.
    """
    path = Path(path)
    frames = params.to_frames()

    frames["groups"].to_csv(path / f"{eco_name}_groups.csv", index=False)
    for table in _TABLES[1:]:
        if frames[table].size == 0:
            continue
        frames[table].to_csv(path / f"{eco_name}_{table}.csv")
