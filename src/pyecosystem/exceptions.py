"""
Errors and warnings raised by the PyEcosystem solvers.

Fatal conditions raise exceptions; conditions that still leave a usable
(partial) result are reported through ``warnings.warn`` so callers can
decide whether to escalate them.
"""


class MissingParameterError(ValueError):
    """A group lacks both biomass and Q/B and no rule can resolve either."""

    def __init__(self, groups):
        self.groups = list(groups)
        super().__init__(
            f"Missing B and QB for group(s) ({', '.join(self.groups)}); "
            "cannot solve"
        )


class IntegrationError(RuntimeError):
    """Biomass became NaN, infinite or negative and the retry failed."""

    def __init__(self, time, groups):
        self.time = time
        self.groups = list(groups)
        super().__init__(
            f"NaN, Inf, or negative biomass at t = {time:g} for group(s) "
            f"({', '.join(self.groups)}); simulation aborted"
        )


class UnresolvedWarning(UserWarning):
    """Some unknowns of the mass-balance could not be filled in."""


class CannibalismWarning(UserWarning):
    """Self-predation prevents estimating a group's biomass."""


class DiscardWarning(UserWarning):
    """Discards are treated as landings by the dynamic model."""
