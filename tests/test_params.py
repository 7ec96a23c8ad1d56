"""
Tests for food web parameter containers and I/O.
"""

import numpy as np
import pandas as pd
import pytest

from pyecosystem.core.params import (
    FoodWebParams,
    create_foodweb_params,
    foodweb_params_from_frames,
    read_foodweb_params,
    write_foodweb_params,
)


def nan_equal(a, b):
    return np.array_equal(np.asarray(a), np.asarray(b), equal_nan=True)


class TestCreateFoodWebParams:
    """Tests for create_foodweb_params function."""

    def test_basic_creation(self):
        """Test basic parameter creation."""
        params = create_foodweb_params(
            ['Phyto', 'Zoo', 'Fish', 'Detritus'], [1, 0, 0, 2], gears=['Trawl']
        )

        assert isinstance(params, FoodWebParams)
        assert params.ngroup == 4
        assert params.nlive == 3
        assert params.ndet == 1
        assert params.ngear == 1
        assert params.dc.shape == (4, 4)
        assert params.df.shape == (4, 1)
        assert params.landing.shape == (4, 1)
        assert params.discard_fate.shape == (1, 1)

    def test_unknowns_are_nan(self):
        params = create_foodweb_params(['Phyto', 'Zoo', 'Det'], [1, 0, 2])

        for attr in ('b', 'pb', 'qb', 'ee', 'ge', 'bh'):
            assert np.all(np.isnan(getattr(params, attr)))

    def test_defaults(self):
        params = create_foodweb_params(['Phyto', 'Zoo', 'Det'], [1, 0, 2], ['Net'])

        np.testing.assert_allclose(params.gs, [0.0, 0.2, 0.0])
        np.testing.assert_allclose(params.df[:, 0], [1.0, 1.0, 0.0])
        np.testing.assert_allclose(params.discard_fate, [[1.0]])
        np.testing.assert_allclose(params.areafrac, 1.0)
        np.testing.assert_allclose(params.qbmaxqb0, 1000.0)
        np.testing.assert_allclose(params.maxrelpb, 2.0)
        assert params.kv == 2.0

    def test_length_mismatch_raises(self):
        """Test that mismatched lengths raise error."""
        with pytest.raises(ValueError):
            create_foodweb_params(['A', 'B', 'C'], [1, 0])

    def test_repr(self):
        """Test string representation."""
        params = create_foodweb_params(['Phyto', 'Zoo', 'Det'], [1, 0, 2])

        repr_str = repr(params)
        assert 'FoodWebParams' in repr_str
        assert 'groups=3' in repr_str

    def test_copy_is_independent(self, simple_web):
        clone = simple_web.copy()
        clone.b[0] = 99.0

        assert simple_web.b[0] == 10.0


class TestFrames:
    """Conversion to and from pandas tables."""

    def test_to_frames_tables(self, simple_web):
        frames = simple_web.to_frames()

        assert set(frames) == {
            'groups', 'diet', 'detfate', 'landing', 'discard',
            'discard_fate', 'vulnerability',
        }
        assert list(frames['groups']['Group']) == simple_web.name
        assert frames['diet'].loc['Phyto', 'Zoo'] == 0.8
        assert frames['landing'].loc['Fish', 'Trawl'] == 0.5
        assert list(frames['detfate'].columns) == ['Detritus']

    def test_frames_round_trip(self, simple_web):
        simple_web.kv = np.full((4, 4), 3.0)
        restored = foodweb_params_from_frames(**simple_web.to_frames())

        assert restored.name == simple_web.name
        assert restored.gear_name == ['Trawl']
        for attr in ('pp', 'b', 'pb', 'qb', 'ee', 'gs', 'dc', 'df', 'landing'):
            assert nan_equal(getattr(restored, attr), getattr(simple_web, attr))
        np.testing.assert_allclose(restored.kv, 3.0)

    def test_partial_tables(self):
        groups = pd.DataFrame({
            'Group': ['Phyto', 'Zoo', 'Det'],
            'PP': [1, 0, 2],
            'Biomass': [10.0, 2.0, 5.0],
        })
        diet = pd.DataFrame({'Zoo': [1.0]}, index=['Phyto'])
        params = foodweb_params_from_frames(groups, diet)

        np.testing.assert_allclose(params.b, [10.0, 2.0, 5.0])
        assert params.dc[0, 1] == 1.0
        assert params.dc.sum() == 1.0
        assert np.all(np.isnan(params.pb))
        assert params.ngear == 0


class TestFileIO:
    """Reading and writing CSV files."""

    def test_write_and_read(self, simple_web, tmp_path):
        write_foodweb_params(simple_web, 'simple', tmp_path)

        assert (tmp_path / 'simple_groups.csv').exists()
        assert (tmp_path / 'simple_diet.csv').exists()

        restored = read_foodweb_params('simple', tmp_path)
        assert restored.name == simple_web.name
        np.testing.assert_allclose(restored.dc, simple_web.dc)
        np.testing.assert_allclose(restored.landing, simple_web.landing)
        assert nan_equal(restored.qb, simple_web.qb)

    def test_no_gear_files_without_gears(self, two_group_web, tmp_path):
        write_foodweb_params(two_group_web, 'tiny', tmp_path)

        assert not (tmp_path / 'tiny_landing.csv').exists()
        restored = read_foodweb_params('tiny', tmp_path)
        assert restored.ngear == 0
        assert restored.dc[0, 1] == 1.0
