"""
Unit tests for the exposure planning of response datasets.
"""

import math

import numpy as np
import pytest

from photocal_core.calibration.exposure_planner import (plan_exposures, linear_exposures, merged_exposures,
                                                        InvalidRange, STRATEGIES)

BOUNDS = [(50.0, 51200.0, 120), (19.0, 32754.0, 10), (0.5, 2.0, 1), (100.0, 100.5, 7), (8.0, 1.0e6, 250)]


class TestGeometricPlan:

    def test_scenario_flea3_range(self):
        values = plan_exposures(50.0, 51200.0, 120, strategy='geometric')

        assert len(values) == 121
        assert values[0] == pytest.approx(50.0)
        assert values[120] == pytest.approx(51200.0, rel=1e-4)
        ratios = values[1:] / values[:-1]
        assert np.allclose(ratios, (51200.0 / 50.0) ** (1 / 120), rtol=1e-6)
        assert ratios[0] == pytest.approx(1.0591, abs=1e-3)

    @pytest.mark.parametrize('exposure_min,exposure_max,sample_count', BOUNDS)
    def test_spans_bounds_strictly_increasing(self, exposure_min, exposure_max, sample_count):
        values = plan_exposures(exposure_min, exposure_max, sample_count, strategy='geometric')

        assert len(values) == sample_count + 1
        assert values[0] == pytest.approx(exposure_min)
        assert values[-1] == exposure_max
        assert np.all(np.diff(values) > 0)
        assert np.all(values <= exposure_max)

    def test_is_default_strategy(self):
        assert np.array_equal(plan_exposures(50.0, 51200.0, 120), plan_exposures(50.0, 51200.0, 120, 'geometric'))

    @pytest.mark.parametrize('exposure_min', [0.0, -10.0])
    def test_non_positive_minimum_raises(self, exposure_min):
        with pytest.raises(InvalidRange):
            plan_exposures(exposure_min, 1000.0, 120, strategy='geometric')

    def test_non_finite_bounds_raise(self):
        with pytest.raises(InvalidRange):
            plan_exposures(50.0, math.inf, 120)
        with pytest.raises(InvalidRange):
            plan_exposures(math.nan, 1000.0, 120)

    def test_invalid_range_is_value_error(self):
        with pytest.raises(ValueError):
            plan_exposures(0.0, 1000.0, 120)

    def test_sample_count_must_be_positive(self):
        with pytest.raises(InvalidRange):
            plan_exposures(50.0, 1000.0, 0)


class TestDegeneratePlans:

    @pytest.mark.parametrize('strategy', STRATEGIES)
    def test_inverted_bounds_give_single_value(self, strategy):
        values = plan_exposures(100.0, 50.0, 120, strategy=strategy)

        assert values.tolist() == [100.0]

    def test_equal_bounds_give_single_value(self):
        assert plan_exposures(100.0, 100.0, 5).tolist() == [100.0]

    def test_plan_is_read_only(self):
        values = plan_exposures(50.0, 51200.0, 120)

        with pytest.raises(ValueError):
            values[0] = 1.0

    def test_unknown_strategy(self):
        with pytest.raises(InvalidRange, match='not implemented'):
            plan_exposures(50.0, 51200.0, 120, strategy='random')


class TestLinearPlan:

    @pytest.mark.parametrize('exposure_min,exposure_max,increment', [(19.0, 1000.0, 10.0), (50.0, 51200.0, 10.0),
                                                                     (1.0, 2.0, 0.3), (10.0, 100.0, 10.0)])
    def test_steps_of_increment_up_to_maximum(self, exposure_min, exposure_max, increment):
        values = plan_exposures(exposure_min, exposure_max, strategy='linear', increment=increment)
        steps = np.diff(values)

        assert values[0] == exposure_min
        assert np.all(steps > 0)
        assert np.all(values <= exposure_max)
        assert np.allclose(steps[:-1], increment)
        assert steps[-1] <= increment + 1e-9

    def test_maximum_appended_as_shorter_last_step(self):
        values = plan_exposures(19.0, 1000.0, strategy='linear', increment=10.0)

        assert values[-2] == pytest.approx(999.0)
        assert values[-1] == 1000.0

    def test_exact_grid_has_no_extra_step(self):
        values = plan_exposures(10.0, 100.0, strategy='linear', increment=10.0)

        assert np.allclose(values, np.arange(10.0, 101.0, 10.0))

    def test_default_increment_is_ten(self):
        values = plan_exposures(20.0, 100.0, strategy='linear')

        assert np.allclose(np.diff(values), 10.0)

    def test_non_positive_increment_raises(self):
        with pytest.raises(InvalidRange):
            linear_exposures(10.0, 100.0, increment=0.0)


class TestMergedPlan:

    def test_camera_steps_closest_below_reference_grid(self):
        values = plan_exposures(20.0, 5000.0, strategy='merged', increment=10.0, reference_min=50.0,
                                reference_ratio=1.05)
        reference = 50.0 * 1.05 ** np.arange(len(values))

        assert len(values) == 95
        assert values[0] == 50.0
        assert np.all(np.diff(values) >= 0)
        assert np.all(values <= reference + 1e-9)
        assert np.all(reference - values < 10.0)
        assert np.allclose((values - 20.0) % 10.0, 0.0)

    def test_camera_step_equal_to_reference_is_kept(self):
        values = merged_exposures(20.0, 100.0, increment=10.0, reference_min=50.0, reference_ratio=1.05)

        assert values[0] == 50.0
        assert values.tolist() == [50.0, 50.0, 50.0, 50.0, 60.0, 60.0, 60.0, 70.0, 70.0, 70.0, 80.0, 80.0, 80.0, 90.0,
                                   90.0]

    def test_values_within_bounds(self):
        values = plan_exposures(19.0, 32754.0, strategy='merged')

        assert values.min() >= 19.0
        assert values.max() <= 32754.0

    def test_reference_above_range_falls_back_to_minimum(self):
        values = merged_exposures(1.0, 20.0, increment=1.0, reference_min=50.0)

        assert values.tolist() == [1.0]

    def test_invalid_reference_ratio(self):
        with pytest.raises(InvalidRange):
            merged_exposures(20.0, 5000.0, reference_ratio=1.0)
