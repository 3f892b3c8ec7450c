"""
PURPOSE: Truth loop that recalibrates a team's volatility from observed outcomes.

A stored simulation run recorded its P50 and P90. When the real outcome is
known, it is compared against that band:

- actual > P90: the model underestimated risk, implied volatility = current * 1.2
- actual < P50: the model overestimated risk, implied volatility = current * 0.95
- otherwise:    no signal, implied volatility = current

The team's factor then moves by an exponential moving average:
new = current * (1 - learning_rate) + implied * learning_rate.

A run is calibrated at most once. Calibrations for the same team are
serialised in-process, and the store applies the team write and the run
status flip in one transaction with both rows locked.
"""

import logging
import math
import threading
from collections import defaultdict
from datetime import UTC, datetime
from typing import Callable, Optional

from .config import LEARNING_RATE, OVERESTIMATE_MULTIPLIER, UNDERESTIMATE_MULTIPLIER
from .errors import InvalidSimulationInputError, RunAlreadyCalibratedError, RunNotFoundError
from .models import CalibrationOutcome, SimulationRunRecord

logger = logging.getLogger(__name__)

SIGNAL_UNDERESTIMATED = "UNDERESTIMATED"
SIGNAL_OVERESTIMATED = "OVERESTIMATED"
SIGNAL_WITHIN_BAND = "WITHIN_BAND"


def calibration_signal(actual_duration: float, p50: float, p90: float) -> str:
    """Classify an observed outcome against the predicted P50-P90 band."""
    if actual_duration > p90:
        return SIGNAL_UNDERESTIMATED
    if actual_duration < p50:
        return SIGNAL_OVERESTIMATED
    return SIGNAL_WITHIN_BAND


def implied_volatility(current: float, actual_duration: float, p50: float, p90: float) -> float:
    """Volatility implied by one observation."""
    signal = calibration_signal(actual_duration, p50, p90)
    if signal == SIGNAL_UNDERESTIMATED:
        return current * UNDERESTIMATE_MULTIPLIER
    if signal == SIGNAL_OVERESTIMATED:
        return current * OVERESTIMATE_MULTIPLIER
    return current


def blend_volatility(current: float, implied: float, learning_rate: float = LEARNING_RATE) -> float:
    """EMA update: current * (1 - learning_rate) + implied * learning_rate."""
    if not 0.0 <= learning_rate <= 1.0:
        raise ValueError(f"learning_rate must be in [0, 1], got {learning_rate}")
    return current * (1.0 - learning_rate) + implied * learning_rate


class CalibrationEngine:
    """
    Applies observed outcomes to stored simulation runs.

    The store must provide ``get_run(run_id)`` and
    ``apply_calibration(run_id, actual_duration, calibrated_at, compute)``;
    see oracle_database.simulation_store.SimulationStore.
    """

    def __init__(
        self,
        store,
        learning_rate: float = LEARNING_RATE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not 0.0 <= learning_rate <= 1.0:
            raise ValueError(f"learning_rate must be in [0, 1], got {learning_rate}")
        self.store = store
        self.learning_rate = learning_rate
        self.clock = clock or (lambda: datetime.now(UTC))
        self._registry_lock = threading.Lock()
        self._team_locks = defaultdict(threading.Lock)

    def _team_lock(self, team_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._team_locks[team_id]

    def compute_outcome(
        self,
        run: SimulationRunRecord,
        current_factor: float,
        actual_duration: float,
        calibrated_at: datetime,
    ) -> CalibrationOutcome:
        """Pure calibration step for one run, given the team's current factor."""
        implied = implied_volatility(current_factor, actual_duration, run.p50, run.p90)
        return CalibrationOutcome(
            run_id=run.id,
            team_id=run.team_id,
            previous_factor=current_factor,
            implied_factor=implied,
            new_factor=blend_volatility(current_factor, implied, self.learning_rate),
            actual_duration=actual_duration,
            calibrated_at=calibrated_at,
            signal=calibration_signal(actual_duration, run.p50, run.p90),
        )

    def calibrate(self, run_id: str, actual_duration: float) -> CalibrationOutcome:
        """
        Feed an observed outcome back into the owning team's volatility.

        Args:
            run_id: Id of a stored simulation run
            actual_duration: Observed outcome, finite and >= 0

        Returns:
            CalibrationOutcome describing the factor change

        Raises:
            InvalidSimulationInputError: If actual_duration is not a finite non-negative number.
            RunNotFoundError: If the run does not exist.
            TeamNotFoundError: If the run's team no longer exists.
            RunAlreadyCalibratedError: If the run was calibrated before.
        """
        try:
            actual = float(actual_duration)
        except (TypeError, ValueError):
            raise InvalidSimulationInputError(
                f"actual_duration must be a number, got {actual_duration!r}"
            )
        if not math.isfinite(actual) or actual < 0:
            raise InvalidSimulationInputError(
                f"actual_duration must be finite and non-negative, got {actual}"
            )

        run = self.store.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        if run.calibration_applied:
            raise RunAlreadyCalibratedError(run_id)

        with self._team_lock(run.team_id):
            outcome = self.store.apply_calibration(
                run_id,
                actual,
                self.clock(),
                lambda locked_run, current, at: self.compute_outcome(locked_run, current, actual, at),
            )

        logger.info(
            "Calibrated team %s from run %s (%s): %.3f -> %.3f",
            outcome.team_id, outcome.run_id, outcome.signal,
            outcome.previous_factor, outcome.new_factor,
        )
        return outcome
