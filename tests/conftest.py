"""
Shared food web fixtures.
"""

import pytest

from pyecosystem.core.params import create_foodweb_params


@pytest.fixture
def simple_web():
    """Balanced four-group web: Phyto -> Zoo -> Fish, plus detritus and a trawl.

    Zoo eats 80% Phyto and 20% Detritus, Fish eats only Zoo and is caught
    (0.5) by the trawl. The ecotrophic efficiencies consistent with the
    other values are Phyto 0.8, Zoo 0.2 and Fish 0.25.
    """
    params = create_foodweb_params(
        ['Phyto', 'Zoo', 'Fish', 'Detritus'], [1, 0, 0, 2], gears=['Trawl']
    )
    params.b[:] = [10.0, 5.0, 2.0, 50.0]
    params.pb[:3] = [20.0, 10.0, 1.0]
    params.qb[1:3] = [40.0, 5.0]
    params.ee[:3] = [0.8, 0.2, 0.25]
    params.dc[0, 1] = 0.8
    params.dc[3, 1] = 0.2
    params.dc[1, 2] = 1.0
    params.landing[2, 0] = 0.5
    return params


@pytest.fixture
def two_group_web():
    """Producer (B=10, PB=2, EE=0.5) fully eaten by a consumer with QB=3."""
    params = create_foodweb_params(['Algae', 'Grazer'], [1, 0])
    params.b[0] = 10.0
    params.pb[:] = [2.0, 1.0]
    params.ee[0] = 0.5
    params.qb[1] = 3.0
    params.dc[0, 1] = 1.0
    return params


@pytest.fixture
def producer_only():
    """Single fast-turnover producer with no losses to predators."""
    params = create_foodweb_params(['Algae'], [1])
    params.b[0] = 1.0
    params.pb[0] = 100.0
    params.ee[0] = 0.0
    return params

