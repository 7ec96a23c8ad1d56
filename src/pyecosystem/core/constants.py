"""Numerical and biological constants for ecosystem modeling.

This module centralizes magic numbers and default values used throughout
PyEcosystem, so that the Ecopath solver, the Ecosim parameter setup and the
integrator agree on them.
"""

# ============================================================================
# GROUP TYPE CODES (primary production indicator)
# ============================================================================

PP_CONSUMER = 0  # Consumer (fractions between 0 and 1 are mixotrophs)
PP_PRODUCER = 1  # Primary producer
PP_DETRITUS = 2  # Detrital pool

# ============================================================================
# BIOLOGICAL DEFAULTS
# ============================================================================

DEFAULT_UNASSIM = 0.2  # Fraction of consumption egested by consumers
DEFAULT_AREA_FRACTION = 1.0  # Fraction of habitat area occupied

# Vulnerability multiplier: v = kv * Q0 / B_prey (2 = mixed response)
DEFAULT_VULNERABILITY = 2.0

# Ratio of maximum to mass-balance consumption per unit biomass
# (large value = handling time effectively off)
DEFAULT_QBMAX_QB0 = 1000.0

# Ratio of maximum to mass-balance P/B for primary producers
DEFAULT_MAX_REL_PB = 2.0

# Prey switching exponent (0 = no switching, 1 = proportional)
DEFAULT_SWITCHING = 1.0
MIN_SWITCHING = 0.0
MAX_SWITCHING = 2.0

# Functional response used when none is requested
DEFAULT_FUNCTIONAL_RESPONSE = "type2"

# ============================================================================
# INTEGRATION
# ============================================================================

# Groups whose inflow per unit biomass exceeds this (T^-1) are advanced with
# the inflow/outflow approximation instead of Runge-Kutta
STABILITY_THRESHOLD = 6.0

# Adaptive (fallback) integrator
FALLBACK_METHOD = "RK45"
INTEGRATION_RTOL = 1e-5  # Relative tolerance
INTEGRATION_ATOL = 1e-8  # Absolute tolerance

# Simulation driver logs progress every this many steps
PROGRESS_LOG_INTERVAL = 10

# ============================================================================
# CONVERGENCE AND TOLERANCE
# ============================================================================

# Tolerance used for the cannibalism checks of the biomass estimate
CANNIBALISM_RTOL = 1e-12

# Singular values below this fraction of the largest are treated as zero
# when judging whether the generalized inverse is fully determined
RANK_RTOL = 1e-10
