"""
PURPOSE: Core Monte Carlo engine for project cost/duration forecasting.

Runs 10,000 independent trials over a project scope and reduces them into
percentile outcomes and the probability of meeting a target.

SINGLE RESPONSIBILITY:
- Split the trials into shards, each with its own random generator (map)
- Sum the simulated duration of every task in each trial
- Sort all trial totals once and extract statistics (reduce)
- Return a SimulationResult (no I/O, no persistence, no formatting)

CONSTRAINTS:
- Trials never share mutable state; a seeded run is reproducible for a fixed
  (iterations, num_workers, batch_size)
- Cancellation and deadlines are checked between batches, never inside one
- Does NOT modify the input scope; reads only
"""

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, List, Optional

import numpy as np

from .config import BATCH_SIZE, DEFAULT_NUM_WORKERS, ITERATIONS, RANDOM_SEED
from .errors import (
    InvalidSimulationInputError,
    SimulationCancelledError,
    SimulationTimeoutError,
)
from .models import ProjectScope, VolatilityProfile
from .outputs import SimulationResult, summarize_outcomes
from .task_duration import sample_task_durations

logger = logging.getLogger(__name__)

DrawBatch = Callable[[int, np.random.Generator], np.ndarray]


class _ShardAborted(Exception):
    """Raised inside a shard when a sibling shard has already failed."""


def _as_generator(random_source, random_seed):
    if isinstance(random_source, np.random.Generator):
        return random_source
    if random_source is not None:
        return np.random.default_rng(random_source)
    return np.random.default_rng(random_seed)


class MonteCarloRunner:
    """
    Shared map/reduce machinery for every simulation mode.

    ``sample_outcomes`` shards ``iterations`` trials across a thread pool.
    Each shard gets an independent generator spawned from one SeedSequence
    drawn from the injected random source, produces its trials in batches,
    and the shard arrays are concatenated in shard order and sorted once.
    """

    def __init__(
        self,
        iterations=ITERATIONS,
        num_workers=DEFAULT_NUM_WORKERS,
        batch_size=BATCH_SIZE,
        random_source=None,
        random_seed=RANDOM_SEED,
        rng_lock=None,
    ):
        """
        Args:
            iterations: Number of Monte Carlo trials (default 10,000)
            num_workers: Number of shards / worker threads
            batch_size: Trials per batch; interruption is checked between batches
            random_source: numpy Generator, int seed, or None
            random_seed: Seed used when random_source is None (None = random)
            rng_lock: Lock guarding the generator when it is shared with another runner
        """
        if iterations < 1:
            raise InvalidSimulationInputError(f"iterations must be >= 1, got {iterations}")
        if num_workers < 1:
            raise InvalidSimulationInputError(f"num_workers must be >= 1, got {num_workers}")
        if batch_size < 1:
            raise InvalidSimulationInputError(f"batch_size must be >= 1, got {batch_size}")

        self.iterations = int(iterations)
        self.num_workers = int(num_workers)
        self.batch_size = int(batch_size)
        self.rng = _as_generator(random_source, random_seed)
        self.rng_lock = rng_lock or threading.Lock()

    def _spawn_generators(self, count: int) -> List[np.random.Generator]:
        with self.rng_lock:
            entropy = int(self.rng.integers(0, 2**63 - 1))
        children = np.random.SeedSequence(entropy).spawn(count)
        return [np.random.default_rng(child) for child in children]

    def _shard_sizes(self) -> List[int]:
        shards = min(self.num_workers, self.iterations)
        base, extra = divmod(self.iterations, shards)
        return [base + (1 if i < extra else 0) for i in range(shards)]

    @staticmethod
    def _check_interrupt(deadline, cancel_event, abort_event):
        if abort_event is not None and abort_event.is_set():
            raise _ShardAborted()
        if cancel_event is not None and cancel_event.is_set():
            raise SimulationCancelledError("Simulation cancelled by caller")
        if deadline is not None and time.monotonic() >= deadline:
            raise SimulationTimeoutError("Simulation exceeded its deadline")

    def _run_shard(self, draw_batch: DrawBatch, size, rng, deadline, cancel_event, abort_event):
        outcomes = np.empty(size)
        filled = 0
        while filled < size:
            self._check_interrupt(deadline, cancel_event, abort_event)
            n = min(self.batch_size, size - filled)
            outcomes[filled:filled + n] = draw_batch(n, rng)
            filled += n
        return outcomes

    def sample_outcomes(
        self,
        draw_batch: DrawBatch,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> np.ndarray:
        """
        Run all trials and return their outcomes sorted ascending.

        Args:
            draw_batch: Callable (size, rng) -> array of ``size`` trial outcomes
            deadline: time.monotonic() value after which the run is abandoned
            cancel_event: Event the caller may set to cancel the run

        Raises:
            SimulationTimeoutError: If the deadline passes between batches.
            SimulationCancelledError: If cancel_event is set between batches.
        """
        sizes = self._shard_sizes()
        generators = self._spawn_generators(len(sizes))
        started = time.perf_counter()

        if len(sizes) == 1:
            shards = [self._run_shard(draw_batch, sizes[0], generators[0], deadline, cancel_event, None)]
        else:
            abort_event = threading.Event()
            with ThreadPoolExecutor(max_workers=len(sizes)) as executor:
                futures = [
                    executor.submit(
                        self._run_shard, draw_batch, size, rng, deadline, cancel_event, abort_event
                    )
                    for size, rng in zip(sizes, generators)
                ]
                done, _ = wait(futures, return_when=FIRST_EXCEPTION)
                if any(f.exception() is not None for f in done):
                    abort_event.set()
                wait(futures)

            errors = [
                f.exception() for f in futures
                if f.exception() is not None and not isinstance(f.exception(), _ShardAborted)
            ]
            if errors:
                raise errors[0]
            shards = [f.result() for f in futures]

        outcomes = np.sort(np.concatenate(shards), kind="stable")
        logger.debug(
            "Sampled %d trials in %d shard(s) in %.3fs",
            self.iterations, len(sizes), time.perf_counter() - started,
        )
        return outcomes


class MonteCarloSimulation(MonteCarloRunner):
    """
    Monte Carlo engine for project cost/duration.

    Runs N trials (default 10,000) where each trial:
    - Samples every task's touch time and queue time from log-normal distributions
    - Sums the task durations into one project total
    Trial totals are sorted and reduced into P10/P50/P90/P99, the probability
    of finishing within the target, and a 100-point distribution.
    """

    def run(
        self,
        scope: ProjectScope,
        profile: VolatilityProfile,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationResult:
        """
        Execute the simulation for a project scope.

        Args:
            scope: Tasks and the target budget/time. An empty task list is valid
                and yields a point mass at zero.
            profile: Team volatility profile the trials are drawn with
            deadline: Optional time.monotonic() deadline
            cancel_event: Optional cancellation event

        Returns:
            SimulationResult
        """
        tasks = list(scope.tasks)

        def draw_batch(size, rng):
            totals = np.zeros(size)
            for task in tasks:
                totals += sample_task_durations(task, profile, size, rng)
            return totals

        outcomes = self.sample_outcomes(draw_batch, deadline=deadline, cancel_event=cancel_event)
        within_target = np.searchsorted(outcomes, scope.target_budget_or_time, side="right")
        probability_of_success = within_target / len(outcomes)

        result = summarize_outcomes(outcomes, probability_of_success, profile.volatility_index)
        logger.debug(
            "Cost simulation: %d task(s), P50=%.2f P90=%.2f P(success)=%.3f",
            len(tasks), result.p50, result.p90, result.probability_of_success,
        )
        return result
