"""
Core module for PyEcosystem.

Contains the Ecopath mass-balance solver and the Ecosim dynamic model.
"""

from pyecosystem.core.params import (
    FoodWebParams,
    create_foodweb_params,
    foodweb_params_from_frames,
    read_foodweb_params,
    write_foodweb_params,
)
from pyecosystem.core.ecopath import EcopathResult, ecopath, trophic_level
from pyecosystem.core.functional_response import (
    FunctionalResponse,
    ecosim_feed,
    ingestion,
    search_rate,
)
from pyecosystem.core.switching import switched_search_rate, switching_scale
from pyecosystem.core.forcing import ForcingSeries, IngestionForcing
from pyecosystem.core.ecosim_deriv import (
    FluxSet,
    adaptive_step,
    ecosim_rk4_step,
    ecosystem_fluxes,
    ecosystem_ode,
    rk4_step,
)
from pyecosystem.core.ecosim import (
    EcosimParams,
    EcosystemOutput,
    ecosim_params,
    run_ecosystem,
)

__all__ = [
    # Ecopath
    "FoodWebParams",
    "create_foodweb_params",
    "foodweb_params_from_frames",
    "read_foodweb_params",
    "write_foodweb_params",
    "EcopathResult",
    "ecopath",
    "trophic_level",
    # Functional response
    "FunctionalResponse",
    "search_rate",
    "ingestion",
    "ecosim_feed",
    "switching_scale",
    "switched_search_rate",
    # Ecosim
    "ForcingSeries",
    "IngestionForcing",
    "FluxSet",
    "ecosystem_fluxes",
    "ecosystem_ode",
    "rk4_step",
    "ecosim_rk4_step",
    "adaptive_step",
    "EcosimParams",
    "EcosystemOutput",
    "ecosim_params",
    "run_ecosystem",
]
