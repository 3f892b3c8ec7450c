"""
PURPOSE: Simulation constants and calibration parameters for the Monte Carlo engine.

RESPONSIBILITIES:
- Define simulation hyperparameters (number of iterations, sharding, batching)
- Default volatility profile used when a team has no history
- Complexity multipliers for the task duration model
- Truth loop (calibration) learning rate and adjustment multipliers
- Single responsibility: configuration only, no simulation logic
"""

import os

# Simulation Parameters
ITERATIONS = 10000  # Standard Monte Carlo sample size
RANDOM_SEED = None  # Set to int for reproducibility, None for random
BATCH_SIZE = 2500  # Trials per batch; cancellation is checked between batches
DEFAULT_NUM_WORKERS = min(8, os.cpu_count() or 1)

# Default Volatility Profile (used when the team store has no record)
DEFAULT_VOLATILITY_INDEX = 0.2  # Coefficient of variation
DEFAULT_MEDIAN_TOUCH_TIME = 4.0  # Hours of active work per effort unit
DEFAULT_MEDIAN_QUEUE_TIME = 12.0  # Hours spent waiting per task

# Task Duration Model
COMPLEXITY_MULTIPLIERS = {
    "LOW": 1.0,
    "MEDIUM": 1.5,
    "HIGH": 2.5,
}
QUEUE_VOLATILITY_MULTIPLIER = 1.5  # Queues swing harder than active work

# Revenue Simulation
MARKET_CONDITION_MEAN = 1.0  # Shared per-trial multiplier is centred on a neutral market

# Calibration (Truth Loop)
LEARNING_RATE = 0.1  # EMA weight of the newest observation
UNDERESTIMATE_MULTIPLIER = 1.2  # Actual landed above P90
OVERESTIMATE_MULTIPLIER = 0.95  # Actual landed below P50

# Percentile Outputs
PERCENTILES = [10, 50, 90, 99]  # P10, P50, P90, P99
HISTOGRAM_BUCKETS = 100  # Points in the downsampled distribution

# Output Configuration
ROUND_PROBABILITY = 4  # Decimal places for probabilities
ROUND_VALUE = 2  # Decimal places for durations and revenue
ROUND_FACTOR = 6  # Decimal places for volatility factors


def get_calibration_parameters():
    """Return the truth loop parameters."""
    return {
        "learning_rate": LEARNING_RATE,
        "underestimate_multiplier": UNDERESTIMATE_MULTIPLIER,
        "overestimate_multiplier": OVERESTIMATE_MULTIPLIER,
    }


def get_default_profile_values():
    """Return the fallback volatility profile values."""
    return {
        "median_touch_time": DEFAULT_MEDIAN_TOUCH_TIME,
        "median_queue_time": DEFAULT_MEDIAN_QUEUE_TIME,
        "volatility_index": DEFAULT_VOLATILITY_INDEX,
    }
