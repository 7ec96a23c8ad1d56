"""
Tests for exogenous forcing time series.
"""

import numpy as np
import pytest

from pyecosystem.core.forcing import ForcingSeries, IngestionForcing


class TestForcingSeries:
    """Interpolation of forcing series."""

    def test_get_value_at_samples(self):
        """Should return exact value at data points."""
        series = ForcingSeries([0.0, 5.0, 10.0], [10.0, 15.0, 20.0])

        assert series.get_value(0.0) == 10.0
        assert series.get_value(5.0) == 15.0
        assert series.get_value(10.0) == 20.0

    def test_linear_interpolation(self):
        series = ForcingSeries([0.0, 10.0], [10.0, 20.0])

        assert series.get_value(2.5) == pytest.approx(12.5)

    def test_outside_range_is_nan(self):
        series = ForcingSeries([1.0, 2.0], [10.0, 20.0])

        assert np.isnan(series.get_value(0.5))
        assert np.isnan(series.get_value(2.5))

    def test_nan_samples_propagate(self):
        series = ForcingSeries([0.0, 1.0, 2.0], [1.0, np.nan, 3.0])

        assert np.isnan(series.get_value(0.5))
        assert np.isnan(series.get_value(1.5))
        assert series.get_value(0.0) == 1.0
        assert series.get_value(2.0) == 3.0

    def test_multiple_columns(self):
        series = ForcingSeries(
            [0.0, 1.0], np.array([[1.0, 10.0], [3.0, np.nan]])
        )
        values = series.get_value(0.5)

        assert series.ncol == 2
        assert values.shape == (2,)
        assert values[0] == pytest.approx(2.0)
        assert np.isnan(values[1])

    def test_single_sample(self):
        series = ForcingSeries([3.0], [7.0])

        assert series.get_value(3.0) == 7.0
        assert np.isnan(series.get_value(3.1))

    def test_row_count_mismatch_raises(self):
        with pytest.raises(ValueError, match="rows"):
            ForcingSeries([0.0, 1.0], [1.0, 2.0, 3.0])

    def test_times_must_increase(self):
        with pytest.raises(ValueError, match="increasing"):
            ForcingSeries([0.0, 0.0], [1.0, 2.0])


class TestIngestionForcing:

    def test_get_value(self):
        forced = IngestionForcing(
            prey=0, pred=1, series=ForcingSeries([0.0, 10.0], [5.0, 15.0])
        )

        assert forced.get_value(5.0) == pytest.approx(10.0)
        assert np.isnan(forced.get_value(11.0))
