"""
Revenue scenario simulation for a sales pipeline.

PURPOSE:
    Model each deal as a Bernoulli trial whose close probability is scaled by
    a shared "market condition" multiplier drawn once per trial. One draw per
    trial (not per deal) makes a bad market depress every deal at once, which
    widens the tails compared to independent Bernoulli sampling.

RESPONSIBILITIES:
    - Draw the per-trial market condition from a log-normal centred on 1.0
    - Clamp adjusted probabilities into [0, 1] before every Bernoulli draw
    - Sum won amounts per trial and reduce through the shared percentile machinery
    - NO persistence; a pure function of its inputs and the random source
"""

import logging
import math
import threading
from typing import Optional, Sequence

import numpy as np

from .config import MARKET_CONDITION_MEAN
from .distributions import LogNormalSampler
from .errors import InvalidSimulationInputError
from .models import Deal
from .outputs import SimulationResult, summarize_outcomes
from .simulation import MonteCarloRunner

logger = logging.getLogger(__name__)


def adjusted_probability(probability, market_condition):
    """Deal close probability under a market condition, clamped to [0, 1]."""
    return np.clip(np.multiply(probability, market_condition), 0.0, 1.0)


def weighted_pipeline_value(deals: Sequence[Deal]) -> float:
    """Probability-weighted pipeline value: sum(amount * probability)."""
    return float(sum(deal.amount * deal.probability for deal in deals))


class RevenueSimulation(MonteCarloRunner):
    """
    Monte Carlo engine for aggregate pipeline revenue.

    Percentiles are plain statistical percentiles of revenue: P10 is the
    downside ("safe") revenue, P90 the upside. Nothing is inverted.
    """

    def run(
        self,
        deals: Sequence[Deal],
        volatility_factor: float,
        target_revenue: Optional[float] = None,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationResult:
        """
        Execute the revenue simulation.

        Args:
            deals: Pipeline deals. An empty list yields a point mass at zero.
            volatility_factor: CV of the shared market condition (>= 0)
            target_revenue: Revenue the caller wants to reach. Defaults to the
                probability-weighted pipeline value.
            deadline: Optional time.monotonic() deadline
            cancel_event: Optional cancellation event

        Returns:
            SimulationResult where probability_of_success is the fraction of
            trials with revenue >= target_revenue.
        """
        if volatility_factor is None or not math.isfinite(volatility_factor) or volatility_factor < 0:
            raise InvalidSimulationInputError(
                f"volatility_factor must be finite and non-negative, got {volatility_factor}"
            )
        if target_revenue is not None and not math.isfinite(target_revenue):
            raise InvalidSimulationInputError(f"target_revenue must be finite, got {target_revenue}")
        deals = list(deals)
        amounts = np.array([deal.amount for deal in deals], dtype=float)
        probabilities = np.array([deal.probability for deal in deals], dtype=float)

        def draw_batch(size, rng):
            market = LogNormalSampler.sample_batch(MARKET_CONDITION_MEAN, volatility_factor, size, rng)
            totals = np.zeros(size)
            for amount, probability in zip(amounts, probabilities):
                won = rng.random(size) < adjusted_probability(probability, market)
                totals += np.where(won, amount, 0.0)
            return totals

        outcomes = self.sample_outcomes(draw_batch, deadline=deadline, cancel_event=cancel_event)

        if target_revenue is None:
            target_revenue = weighted_pipeline_value(deals)
        below_target = np.searchsorted(outcomes, target_revenue, side="left")
        probability_of_success = (len(outcomes) - below_target) / len(outcomes)

        result = summarize_outcomes(outcomes, probability_of_success, volatility_factor)
        logger.debug(
            "Revenue simulation: %d deal(s), P10=%.2f P50=%.2f P90=%.2f",
            len(deals), result.p10, result.p50, result.p90,
        )
        return result
