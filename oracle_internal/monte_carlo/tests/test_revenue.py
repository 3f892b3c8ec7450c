"""
PURPOSE: Unit tests for the revenue scenario simulator.

Tests cover:
1. Degenerate pipelines (certain deal, empty pipeline, zero-probability deal)
2. Outcomes restricted to achievable sums of won deals
3. The shared market condition widening the spread
4. Probability clamping and probability_of_success against the target
"""

import itertools
import unittest

import numpy as np

from oracle_internal.monte_carlo.errors import InvalidSimulationInputError
from oracle_internal.monte_carlo.models import Deal
from oracle_internal.monte_carlo.revenue import (
    RevenueSimulation,
    adjusted_probability,
    weighted_pipeline_value,
)

PIPELINE = [
    Deal(50000, 0.8, "acme"),
    Deal(100000, 0.5, "globex"),
    Deal(20000, 0.9, "initech"),
    Deal(200000, 0.3, "umbrella"),
]


def achievable_sums(deals):
    amounts = [deal.amount for deal in deals]
    return {
        float(sum(combo))
        for r in range(len(amounts) + 1)
        for combo in itertools.combinations(amounts, r)
    }


class TestRevenueHelpers(unittest.TestCase):

    def test_adjusted_probability_is_clamped(self):
        self.assertEqual(adjusted_probability(0.9, 1.5), 1.0)
        self.assertAlmostEqual(adjusted_probability(0.5, 0.5), 0.25)
        self.assertEqual(adjusted_probability(0.0, 10.0), 0.0)
        clamped = adjusted_probability(0.8, np.array([0.5, 1.0, 2.0]))
        np.testing.assert_allclose(clamped, [0.4, 0.8, 1.0])

    def test_weighted_pipeline_value(self):
        self.assertAlmostEqual(weighted_pipeline_value(PIPELINE), 168000.0)
        self.assertEqual(weighted_pipeline_value([]), 0.0)


class TestRevenueSimulation(unittest.TestCase):

    def test_certain_deal_without_volatility(self):
        for seed in range(3):
            sim = RevenueSimulation(random_source=np.random.default_rng(seed))
            result = sim.run([Deal(50000, 1.0)], 0.0)
            self.assertEqual(result.p50, 50000.0)
            self.assertEqual(result.p90, 50000.0)
            self.assertEqual(result.p99, 50000.0)
            self.assertEqual(result.probability_of_success, 1.0)

    def test_empty_pipeline(self):
        sim = RevenueSimulation(random_source=np.random.default_rng(1))
        result = sim.run([], 0.3)
        self.assertEqual((result.p10, result.p50, result.p90, result.p99), (0.0, 0.0, 0.0, 0.0))
        self.assertEqual(result.distribution, [0.0] * 100)
        self.assertEqual(result.probability_of_success, 1.0)
        self.assertEqual(result.mean, 0.0)

    def test_zero_probability_deal_never_closes(self):
        sim = RevenueSimulation(random_source=np.random.default_rng(2))
        result = sim.run([Deal(75000, 0.0)], 2.0)
        self.assertEqual(result.p99, 0.0)

    def test_outcomes_are_achievable_sums(self):
        sums = achievable_sums(PIPELINE)
        sim = RevenueSimulation(random_source=np.random.default_rng(3))
        result = sim.run(PIPELINE, 0.1)
        for value in (result.p10, result.p50, result.p90, result.p99, *result.distribution):
            self.assertIn(value, sums)
        self.assertLessEqual(result.p10, result.p50)
        self.assertLessEqual(result.p50, result.p90)
        self.assertLessEqual(result.p90, result.p99)

    def test_mean_tracks_weighted_value(self):
        sim = RevenueSimulation(random_source=np.random.default_rng(4))
        result = sim.run(PIPELINE, 0.1)
        self.assertAlmostEqual(result.mean / 168000.0, 1.0, delta=0.02)

    def test_market_volatility_widens_the_spread(self):
        """One market draw per trial moves every deal together."""
        calm = RevenueSimulation(random_source=np.random.default_rng(5)).run(PIPELINE, 0.1)
        stormy = RevenueSimulation(random_source=np.random.default_rng(5)).run(PIPELINE, 0.5)
        self.assertGreater(stormy.std_dev, calm.std_dev * 1.05)
        self.assertEqual(stormy.volatility_factor_used, 0.5)

    def test_high_volatility_clamps_probabilities(self):
        sim = RevenueSimulation(random_source=np.random.default_rng(6))
        result = sim.run([Deal(1000, 0.95)], 3.0)
        self.assertIn(result.p50, {0.0, 1000.0})
        self.assertTrue(0.0 <= result.probability_of_success <= 1.0)

    def test_default_target_is_weighted_value(self):
        default = RevenueSimulation(random_source=np.random.default_rng(7)).run(PIPELINE, 0.2)
        explicit = RevenueSimulation(random_source=np.random.default_rng(7)).run(
            PIPELINE, 0.2, target_revenue=168000.0
        )
        self.assertEqual(default.probability_of_success, explicit.probability_of_success)

    def test_target_counts_trials_at_or_above(self):
        sim = RevenueSimulation(random_source=np.random.default_rng(8))
        self.assertEqual(sim.run(PIPELINE, 0.2, target_revenue=0.0).probability_of_success, 1.0)
        self.assertEqual(sim.run(PIPELINE, 0.2, target_revenue=370001.0).probability_of_success, 0.0)

    def test_seeded_runs_are_reproducible(self):
        a = RevenueSimulation(num_workers=4, random_source=np.random.default_rng(9)).run(PIPELINE, 0.3)
        b = RevenueSimulation(num_workers=4, random_source=np.random.default_rng(9)).run(PIPELINE, 0.3)
        self.assertEqual(a.to_dict(), b.to_dict())

    def test_negative_volatility_rejected(self):
        sim = RevenueSimulation(random_source=np.random.default_rng(10))
        with self.assertRaises(InvalidSimulationInputError):
            sim.run(PIPELINE, -0.1)
        with self.assertRaises(InvalidSimulationInputError):
            sim.run(PIPELINE, float("nan"))

    def test_infinite_inputs_rejected(self):
        sim = RevenueSimulation(random_source=np.random.default_rng(10))
        with self.assertRaises(InvalidSimulationInputError):
            sim.run([Deal(50000.0, 1.0)], float("inf"))
        with self.assertRaises(InvalidSimulationInputError):
            sim.run([Deal(50000.0, 1.0)], 0.1, target_revenue=float("inf"))

    def test_invalid_deals_rejected(self):
        with self.assertRaises(InvalidSimulationInputError):
            Deal(-1.0, 0.5)
        with self.assertRaises(InvalidSimulationInputError):
            Deal(100.0, 1.2)


if __name__ == "__main__":
    unittest.main()
