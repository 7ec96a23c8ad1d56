"""
PyEcosystem - food web mass balance and dynamics

Ecopath-style mass-balance solving and Ecosim-style simulation of
functional-group food webs.
"""

__version__ = "0.1.0"
__author__ = "PyEcosystem Development Team"

# Core imports
from pyecosystem.core.params import (
    FoodWebParams,
    create_foodweb_params,
    read_foodweb_params,
    write_foodweb_params,
)
from pyecosystem.core.ecopath import EcopathResult, ecopath
from pyecosystem.core.ecosim import (
    EcosimParams,
    EcosystemOutput,
    ecosim_params,
    run_ecosystem,
)
from pyecosystem.core.forcing import ForcingSeries, IngestionForcing
from pyecosystem.core.functional_response import FunctionalResponse
from pyecosystem.exceptions import (
    CannibalismWarning,
    DiscardWarning,
    IntegrationError,
    MissingParameterError,
    UnresolvedWarning,
)
from pyecosystem.logger import get_logger, log_to_file, set_log_level

__all__ = [
    # Version
    "__version__",
    "__author__",
    # Ecopath
    "FoodWebParams",
    "create_foodweb_params",
    "read_foodweb_params",
    "write_foodweb_params",
    "EcopathResult",
    "ecopath",
    # Ecosim
    "EcosimParams",
    "EcosystemOutput",
    "ecosim_params",
    "run_ecosystem",
    "ForcingSeries",
    "IngestionForcing",
    "FunctionalResponse",
    # Errors
    "MissingParameterError",
    "IntegrationError",
    "UnresolvedWarning",
    "CannibalismWarning",
    "DiscardWarning",
    # Logging
    "get_logger",
    "set_log_level",
    "log_to_file",
]
