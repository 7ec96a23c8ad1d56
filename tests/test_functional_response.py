"""
Tests for functional responses and prey switching.
"""

import numpy as np
import pytest

from pyecosystem.core.functional_response import (
    FunctionalResponse,
    ecosim_feed,
    ingestion,
    search_rate,
)
from pyecosystem.core.switching import switched_search_rate, switching_scale


ALL_FAMILIES = list(FunctionalResponse)


class TestFunctionalResponseParse:

    @pytest.mark.parametrize("name", ["lv", "lvforage", "type2", "type2forage"])
    def test_names(self, name):
        assert FunctionalResponse.parse(name).value == name

    def test_case_insensitive(self):
        assert FunctionalResponse.parse("Type2") is FunctionalResponse.TYPE2

    def test_passthrough(self):
        fr = FunctionalResponse.LV_FORAGE
        assert FunctionalResponse.parse(fr) is fr

    def test_unknown_raises(self):
        with pytest.raises(ValueError, match="Unknown functional response"):
            FunctionalResponse.parse("type3")


class TestClosedForms:
    """Search rates reproduce the consumption they were derived from."""

    @pytest.mark.parametrize("funcres", ALL_FAMILIES)
    def test_round_trip(self, funcres):
        q, b_prey, b_pred, v, h = 2.0, 10.0, 3.0, 0.5, 0.1
        a = search_rate(funcres, q, b_prey, b_pred, v, h)

        assert a > 0
        assert ingestion(funcres, a, b_prey, b_pred, v, h) == pytest.approx(q, rel=1e-9)

    @pytest.mark.parametrize("funcres", ALL_FAMILIES)
    def test_round_trip_arrays(self, funcres):
        q = np.array([[1.0, 0.5], [2.0, 0.0]])
        b_prey = np.array([[4.0], [8.0]])
        b_pred = np.array([[2.0, 1.5]])
        v = 2.0 * q / b_prey + 0.1
        h = np.array([[0.05, 0.2]])

        a = search_rate(funcres, q, b_prey, b_pred, v, h)
        np.testing.assert_allclose(
            ingestion(funcres, a, b_prey, b_pred, v, h), q, rtol=1e-9, atol=1e-12
        )

    def test_lv(self):
        assert search_rate("lv", 6.0, 2.0, 3.0, 0.0, 0.0) == pytest.approx(1.0)

    def test_type2_saturates(self):
        h = 0.5
        big = ingestion("type2", 1.0, 1e9, 1.0, 0.0, h)
        assert big == pytest.approx(1.0 / h, rel=1e-6)

    def test_type2forage_without_handling_matches_lvforage(self):
        a, b_prey, b_pred, v = 0.7, 5.0, 2.0, 1.5
        assert ingestion("type2forage", a, b_prey, b_pred, v, 0.0) == pytest.approx(
            ingestion("lvforage", a, b_prey, b_pred, v, 0.0)
        )

    def test_arena_limited_by_vulnerability(self):
        # With a huge search rate, consumption is limited to v * B
        v, b_prey = 0.4, 10.0
        eaten = ingestion("lvforage", 1e9, b_prey, 1.0, v, 0.0)
        assert eaten == pytest.approx(v * b_prey, rel=1e-6)


class TestSwitching:
    """Prey switching scale and switched search rates."""

    @pytest.fixture
    def rates(self):
        a = np.array([
            [0.5, 0.0, 0.2],
            [0.1, 0.3, 0.0],
            [0.0, 0.6, 0.0],
        ])
        b = np.array([4.0, 1.5, 9.0])
        return a, b

    @pytest.mark.parametrize("sw", [0.0, 0.5, 1.0, 2.0])
    def test_weights_sum_to_one(self, rates, sw):
        a, _ = rates
        b = np.array([0.7, 3.0, 12.0])
        weights = switched_search_rate(a, np.ones_like(a), b, sw)

        np.testing.assert_allclose(np.sum(weights, axis=0), 1.0)
        assert np.all(weights[a == 0] == 0)

    @pytest.mark.parametrize("sw", [0.0, 1.0, 2.0])
    def test_no_change_at_calibration(self, rates, sw):
        a, b = rates
        k = switching_scale(a, b, sw)

        np.testing.assert_allclose(switched_search_rate(a, k, b, sw), a)

    def test_per_predator_exponent(self, rates):
        a, b = rates
        sw = np.array([0.0, 2.0, 1.0])
        k = switching_scale(a, b, sw)

        np.testing.assert_allclose(switched_search_rate(a, k, b, sw), a)

    def test_no_switching_scale(self, rates):
        a, b = rates
        k = switching_scale(a, b, 0.0)

        # sw = 0: k is the column sum wherever there is a link
        expected = np.where(a > 0, np.sum(a, axis=0)[np.newaxis, :], 0.0)
        np.testing.assert_allclose(k, expected)

    def test_division_by_zero_zeroed(self, rates):
        a, b = rates
        k = switching_scale(a, b, 1.0)

        assert np.all(np.isfinite(k))
        assert np.all(k[:, 1][a[:, 1] == 0] == 0)

    def test_switching_favours_abundant_prey(self, rates):
        a, b = rates
        k = switching_scale(a, b, 2.0)
        more_prey0 = b.copy()
        more_prey0[0] *= 2

        asw = switched_search_rate(a, k, more_prey0, 2.0)
        assert asw[0, 0] > a[0, 0]
        assert asw[1, 0] < a[1, 0]


class TestEcosimFeed:
    """Ingestion at arbitrary biomass."""

    @pytest.fixture
    def web(self):
        # Prey 0 and 1 eaten by predator 2; group 3 is a producer
        a = np.zeros((4, 4))
        a[0, 2] = 0.2
        a[1, 2] = 0.1
        b = np.array([5.0, 3.0, 2.0, 8.0])
        h = np.array([np.inf, np.inf, 0.1, np.inf])
        v = np.full((4, 4), 1.0)
        sw = np.ones(4)
        k = switching_scale(a, b, sw)
        return a, b, h, v, sw, k

    @pytest.mark.parametrize("funcres", ALL_FAMILIES)
    def test_matches_ingestion(self, web, funcres):
        a, b, h, v, sw, k = web
        ing = ecosim_feed(funcres, b, a, k, v, h, sw)

        expected = ingestion(funcres, a[0, 2], b[0], b[2], v[0, 2], h[2])
        assert ing[0, 2] == pytest.approx(expected)
        assert ing[1, 2] > 0

    @pytest.mark.parametrize("funcres", ALL_FAMILIES)
    def test_non_consumers_eat_nothing(self, web, funcres):
        a, b, h, v, sw, k = web
        ing = ecosim_feed(funcres, b, a, k, v, h, sw)

        assert np.all(ing[:, [0, 1, 3]] == 0)
        assert np.all(np.isfinite(ing))

    @pytest.mark.parametrize("funcres", ALL_FAMILIES)
    def test_prey_gone(self, web, funcres):
        a, b, h, v, sw, k = web
        b = b.copy()
        b[:2] = 0.0
        ing = ecosim_feed(funcres, b, a, k, v, h, sw)

        assert np.all(ing == 0)

    @pytest.mark.parametrize("funcres", ALL_FAMILIES)
    def test_no_link_no_ingestion(self, web, funcres):
        a, b, h, v, sw, k = web
        k = k.copy()
        k[3, 2] = 5.0   # stray scale without a search rate
        ing = ecosim_feed(funcres, b, a, k, v, h, sw)

        assert ing[3, 2] == 0
