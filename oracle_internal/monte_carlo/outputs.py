"""
PURPOSE: Reduce sorted Monte Carlo outcomes into a SimulationResult.

This module is the "reduce" half of the simulation pipeline: it extracts
percentiles from a sorted outcome array, downsamples it for histogram
rendering, and serialises the result for API responses.

SRP/DRY: Single responsibility = result aggregation and formatting.
         No sampling, no persistence, no business thresholds.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

import numpy as np

from .config import (
    HISTOGRAM_BUCKETS,
    PERCENTILES,
    ROUND_FACTOR,
    ROUND_PROBABILITY,
    ROUND_VALUE,
)


@dataclass(frozen=True)
class SimulationResult:
    """Structured output of a cost/duration or revenue simulation.

    Attributes:
        p10 (float): 10th percentile outcome. Downside case for revenue.
        p50 (float): Median outcome.
        p90 (float): 90th percentile outcome. Pessimistic case for duration,
            upside case for revenue.
        p99 (float): 99th percentile outcome.
        probability_of_success (float): Fraction of trials meeting the target (0-1).
        distribution (list): Evenly spaced points of the sorted outcomes, min to max.
        volatility_factor_used (float): Volatility index the trials were drawn with.
        iterations (int): Number of trials.
        mean (float): Mean of all trial outcomes.
        std_dev (float): Population standard deviation of all trial outcomes.
        run_id (str): Id of the persisted simulation run, if one was written.
    """
    p10: float
    p50: float
    p90: float
    p99: float
    probability_of_success: float
    distribution: List[float]
    volatility_factor_used: float
    iterations: int
    mean: float = 0.0
    std_dev: float = 0.0
    run_id: Optional[str] = None

    def with_run_id(self, run_id: str) -> "SimulationResult":
        return replace(self, run_id=run_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert results to dictionary for JSON serialization."""
        return {
            "p10": round(self.p10, ROUND_VALUE),
            "p50": round(self.p50, ROUND_VALUE),
            "p90": round(self.p90, ROUND_VALUE),
            "p99": round(self.p99, ROUND_VALUE),
            "probability_of_success": round(self.probability_of_success, ROUND_PROBABILITY),
            "distribution": [round(v, ROUND_VALUE) for v in self.distribution],
            "volatility_factor_used": round(self.volatility_factor_used, ROUND_FACTOR),
            "iterations": self.iterations,
            "mean": round(self.mean, ROUND_VALUE),
            "std_dev": round(self.std_dev, ROUND_VALUE),
            "run_id": self.run_id,
        }


def percentile_at(sorted_outcomes, quantile: float) -> float:
    """
    Value at index floor(N * quantile) of an ascending array.

    The index is clamped to N - 1 so quantile=1.0 stays in range.

    Raises:
        ValueError: If the array is empty or quantile is outside [0, 1].
    """
    n = len(sorted_outcomes)
    if n == 0:
        raise ValueError("cannot take a percentile of an empty outcome array")
    if not 0.0 <= quantile <= 1.0:
        raise ValueError(f"quantile must be in [0, 1], got {quantile}")
    index = min(int(np.floor(n * quantile)), n - 1)
    return float(sorted_outcomes[index])


def downsample(sorted_outcomes, buckets: int = HISTOGRAM_BUCKETS) -> List[float]:
    """
    Evenly spaced, order-preserving downsample of a sorted array.

    Returns at most ``buckets`` points. The first and last points are always
    the smallest and largest outcomes, so the tail is never cut off. Shorter
    inputs are returned whole.
    """
    if buckets <= 0:
        raise ValueError(f"buckets must be positive, got {buckets}")
    n = len(sorted_outcomes)
    if n == 0:
        return []
    indices = np.linspace(0, n - 1, min(n, buckets)).astype(int)
    return [float(sorted_outcomes[i]) for i in indices]


def summarize_outcomes(
    sorted_outcomes: np.ndarray,
    probability_of_success: float,
    volatility_factor_used: float,
    buckets: int = HISTOGRAM_BUCKETS,
) -> SimulationResult:
    """
    Build a SimulationResult from outcomes that are already sorted ascending.

    Args:
        sorted_outcomes: All trial totals, ascending.
        probability_of_success: Fraction of trials meeting the caller's target.
        volatility_factor_used: Volatility index the trials were drawn with.
        buckets: Size of the downsampled distribution.

    Raises:
        ValueError: If probability_of_success is outside [0, 1].
    """
    if not 0.0 <= probability_of_success <= 1.0:
        raise ValueError(
            f"probability_of_success must be in [0, 1], got {probability_of_success}"
        )

    percentiles = {
        f"p{p}": percentile_at(sorted_outcomes, p / 100.0) for p in PERCENTILES
    }

    return SimulationResult(
        p10=percentiles["p10"],
        p50=percentiles["p50"],
        p90=percentiles["p90"],
        p99=percentiles["p99"],
        probability_of_success=float(probability_of_success),
        distribution=downsample(sorted_outcomes, buckets),
        volatility_factor_used=float(volatility_factor_used),
        iterations=len(sorted_outcomes),
        mean=float(np.mean(sorted_outcomes)),
        std_dev=float(np.std(sorted_outcomes)),
    )
