"""
PURPOSE: Unit tests for outputs.py module.

Tests cover:
1. Percentile index selection, including the clamp at q=1.0
2. Evenly spaced downsampling of sorted outcomes
3. SimulationResult assembly and rounding in to_dict
4. Error handling for invalid inputs
"""

import numpy as np
import pytest

from oracle_internal.monte_carlo.outputs import (
    SimulationResult,
    downsample,
    percentile_at,
    summarize_outcomes,
)


class TestPercentileAt:
    """Tests for percentile_at."""

    def test_floor_index(self):
        data = np.arange(10000, dtype=float)
        assert percentile_at(data, 0.5) == 5000.0
        assert percentile_at(data, 0.9) == 9000.0
        assert percentile_at(data, 0.99) == 9900.0

    def test_small_array_floors(self):
        data = [1.0, 2.0, 3.0]
        # floor(3 * 0.5) = 1
        assert percentile_at(data, 0.5) == 2.0
        assert percentile_at(data, 0.0) == 1.0

    def test_quantile_one_is_clamped(self):
        assert percentile_at([4.0, 5.0, 6.0], 1.0) == 6.0

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            percentile_at([], 0.5)

    def test_quantile_out_of_range(self):
        with pytest.raises(ValueError):
            percentile_at([1.0], 1.5)
        with pytest.raises(ValueError):
            percentile_at([1.0], -0.1)


class TestDownsample:
    """Tests for downsample."""

    def test_ten_thousand_to_hundred(self):
        data = np.arange(10000, dtype=float)
        points = downsample(data)
        assert len(points) == 100
        assert points[0] == 0.0
        assert points[1] == 101.0
        assert points[-1] == 9999.0

    def test_order_is_preserved(self):
        data = np.sort(np.random.default_rng(3).random(5000))
        points = downsample(data, 100)
        assert points == sorted(points)

    def test_short_input_returned_whole(self):
        assert downsample([1.0, 2.0, 3.0], 100) == [1.0, 2.0, 3.0]

    def test_uneven_length_keeps_the_tail(self):
        for n in (101, 199, 250, 9999):
            data = np.arange(n, dtype=float)
            points = downsample(data, 100)
            assert len(points) == 100
            assert points[0] == 0.0
            assert points[-1] == data[-1]

    def test_invalid_buckets(self):
        with pytest.raises(ValueError):
            downsample([1.0], 0)


class TestSummarizeOutcomes:
    """Tests for summarize_outcomes and SimulationResult."""

    def test_fields(self):
        data = np.arange(1, 10001, dtype=float)
        result = summarize_outcomes(data, 0.25, 0.2)
        assert isinstance(result, SimulationResult)
        assert result.p10 == 1001.0
        assert result.p50 == 5001.0
        assert result.p90 == 9001.0
        assert result.p99 == 9901.0
        assert result.p10 <= result.p50 <= result.p90 <= result.p99
        assert result.iterations == 10000
        assert result.probability_of_success == 0.25
        assert result.volatility_factor_used == 0.2
        assert len(result.distribution) == 100
        assert result.mean == pytest.approx(5000.5)
        assert result.std_dev == pytest.approx(np.std(data))
        assert result.run_id is None

    def test_equal_summaries_compare_equal(self):
        data = np.arange(1, 1001, dtype=float)
        assert summarize_outcomes(data, 0.5, 0.2) == summarize_outcomes(data, 0.5, 0.2)
        assert not hasattr(summarize_outcomes(data, 0.5, 0.2), "percentiles_dict")

    def test_point_mass(self):
        result = summarize_outcomes(np.zeros(10000), 1.0, 0.2)
        assert result.p10 == result.p50 == result.p90 == result.p99 == 0.0
        assert result.std_dev == 0.0
        assert result.distribution == [0.0] * 100

    def test_invalid_probability(self):
        with pytest.raises(ValueError):
            summarize_outcomes(np.arange(10, dtype=float), 1.5, 0.2)

    def test_to_dict_rounds(self):
        result = summarize_outcomes(np.array([1.234567, 2.345678, 3.456789]), 2 / 3, 0.123456789)
        result_dict = result.to_dict()
        assert result_dict["p50"] == 2.35
        assert result_dict["probability_of_success"] == 0.6667
        assert result_dict["volatility_factor_used"] == 0.123457
        assert result_dict["distribution"] == [1.23, 2.35, 3.46]
        assert result_dict["run_id"] is None

    def test_with_run_id(self):
        result = summarize_outcomes(np.arange(10, dtype=float), 0.5, 0.2)
        stored = result.with_run_id("run-1")
        assert stored.run_id == "run-1"
        assert result.run_id is None
        assert stored.p50 == result.p50
