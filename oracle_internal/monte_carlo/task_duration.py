"""
PURPOSE: Task duration model combining touch time and queue time.

A task's duration in one trial is the time spent actively working on it
("touch time", scaled by effort and complexity) plus the time it spends
waiting in a queue. Queue time is sampled with 1.5x the team's volatility,
so long waits dominate the tail rather than effort variance.
"""

from .config import QUEUE_VOLATILITY_MULTIPLIER
from .distributions import LogNormalSampler
from .models import Complexity, TaskSpec, VolatilityProfile


def complexity_multiplier(complexity):
    """Return the effort multiplier for LOW/MEDIUM/HIGH complexity."""
    return Complexity.parse(complexity).multiplier


def _touch_and_queue_params(task: TaskSpec, profile: VolatilityProfile):
    base_effort = task.estimated_effort * task.complexity.multiplier
    touch_mean = base_effort * profile.median_touch_time
    queue_cv = profile.volatility_index * QUEUE_VOLATILITY_MULTIPLIER
    return touch_mean, profile.volatility_index, profile.median_queue_time, queue_cv


def simulate_task_duration(task: TaskSpec, profile: VolatilityProfile, random_source) -> float:
    """
    Simulate one task's duration for a single Monte Carlo trial.

    Args:
        task: Task effort and complexity
        profile: Team volatility profile
        random_source: Object with a ``random()`` method (see LogNormalSampler.sample)

    Returns:
        float: touch time + queue time
    """
    touch_mean, touch_cv, queue_mean, queue_cv = _touch_and_queue_params(task, profile)
    touch = LogNormalSampler.sample(touch_mean, touch_cv, random_source)
    queue = LogNormalSampler.sample(queue_mean, queue_cv, random_source)
    return touch + queue


def sample_task_durations(task: TaskSpec, profile: VolatilityProfile, size: int, rng):
    """Vectorised ``simulate_task_duration``: ``size`` independent trials for one task."""
    touch_mean, touch_cv, queue_mean, queue_cv = _touch_and_queue_params(task, profile)
    touch = LogNormalSampler.sample_batch(touch_mean, touch_cv, size, rng)
    queue = LogNormalSampler.sample_batch(queue_mean, queue_cv, size, rng)
    return touch + queue
