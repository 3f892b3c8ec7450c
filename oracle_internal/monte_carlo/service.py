"""
PURPOSE: Service facade over the cost, revenue and calibration engines.

The service is constructed explicitly with its collaborators (a simulation
store and a random source) so tests can inject a seeded generator and an
in-memory database. There is no module-level instance.

RESPONSIBILITIES:
- Resolve a team's volatility profile, falling back to defaults
- Run cost/duration and revenue simulations with an optional timeout
- Persist a simulation run when the caller links one to a budget request
- Delegate calibration to the CalibrationEngine
"""

import logging
import threading
import time
from typing import Optional, Protocol, Sequence

from .calibration import CalibrationEngine
from .config import (
    BATCH_SIZE,
    DEFAULT_NUM_WORKERS,
    ITERATIONS,
    LEARNING_RATE,
    get_default_profile_values,
)
from .errors import (
    InvalidSimulationInputError,
    PersistenceUnavailableError,
    RunNotFoundError,
    TeamNotFoundError,
)
from .models import CalibrationOutcome, Deal, ProjectScope, SimulationRunRecord, VolatilityProfile
from .outputs import SimulationResult
from .revenue import RevenueSimulation
from .simulation import MonteCarloSimulation

logger = logging.getLogger(__name__)


class SimulationRunStore(Protocol):
    """Persistence collaborator for teams and simulation runs."""

    def get_volatility_profile(self, team_id: str) -> Optional[VolatilityProfile]: ...

    def create_run(
        self,
        team_id: str,
        p50: float,
        p90: float,
        volatility_factor_used: float,
        budget_request_id: Optional[str] = None,
    ) -> SimulationRunRecord: ...

    def get_run(self, run_id: str) -> Optional[SimulationRunRecord]: ...

    def apply_calibration(self, run_id, actual_duration, calibrated_at, compute) -> CalibrationOutcome: ...


def _deadline_from_timeout(timeout_seconds: Optional[float]) -> Optional[float]:
    if timeout_seconds is None:
        return None
    if not timeout_seconds > 0:
        raise InvalidSimulationInputError(
            f"timeout_seconds must be positive, got {timeout_seconds}"
        )
    return time.monotonic() + timeout_seconds


class SimulationService:
    """Entry point for the three engine operations."""

    def __init__(
        self,
        store: Optional[SimulationRunStore] = None,
        random_source=None,
        iterations: int = ITERATIONS,
        num_workers: int = DEFAULT_NUM_WORKERS,
        batch_size: int = BATCH_SIZE,
        learning_rate: float = LEARNING_RATE,
    ):
        self.store = store
        self.cost_simulation = MonteCarloSimulation(
            iterations=iterations,
            num_workers=num_workers,
            batch_size=batch_size,
            random_source=random_source,
        )
        # Share one generator so a single seed drives both modes
        self.revenue_simulation = RevenueSimulation(
            iterations=iterations,
            num_workers=num_workers,
            batch_size=batch_size,
            random_source=self.cost_simulation.rng,
            rng_lock=self.cost_simulation.rng_lock,
        )
        self.calibration_engine = (
            CalibrationEngine(store, learning_rate=learning_rate) if store is not None else None
        )

    def _require_store(self) -> SimulationRunStore:
        if self.store is None:
            raise PersistenceUnavailableError("No simulation store configured")
        return self.store

    def get_volatility_profile(self, team_id: str) -> VolatilityProfile:
        """Team profile from the store, or the default profile when there is none."""
        profile = None
        if self.store is not None:
            profile = self.store.get_volatility_profile(team_id)
        if profile is None:
            logger.warning("No volatility profile for team %s; using defaults", team_id)
            profile = VolatilityProfile(**get_default_profile_values())
        return profile

    def run_simulation(
        self,
        scope: ProjectScope,
        team_id: str,
        budget_request_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationResult:
        """
        Run the cost/duration simulation for a team.

        When ``budget_request_id`` is given, a simulation run recording P50,
        P90 and the volatility factor is persisted and its id is returned on
        the result so the outcome can be calibrated later.
        """
        deadline = _deadline_from_timeout(timeout_seconds)
        if budget_request_id is not None:
            # A persisted run must belong to a known team
            if self._require_store().get_volatility_profile(team_id) is None:
                raise TeamNotFoundError(team_id)

        profile = self.get_volatility_profile(team_id)
        result = self.cost_simulation.run(scope, profile, deadline=deadline, cancel_event=cancel_event)

        if budget_request_id is not None:
            run = self.store.create_run(
                team_id=team_id,
                p50=result.p50,
                p90=result.p90,
                volatility_factor_used=profile.volatility_index,
                budget_request_id=budget_request_id,
            )
            logger.info(
                "Persisted simulation run %s for team %s (budget request %s)",
                run.id, team_id, budget_request_id,
            )
            result = result.with_run_id(run.id)
        return result

    def run_revenue_simulation(
        self,
        deals: Sequence[Deal],
        volatility_factor: float,
        target_revenue: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationResult:
        """Run the revenue simulation; no persistence."""
        deadline = _deadline_from_timeout(timeout_seconds)
        return self.revenue_simulation.run(
            deals,
            volatility_factor,
            target_revenue=target_revenue,
            deadline=deadline,
            cancel_event=cancel_event,
        )

    def calibrate(self, run_id: str, actual_duration: float) -> CalibrationOutcome:
        """Apply an observed outcome to a stored run; see CalibrationEngine.calibrate."""
        self._require_store()
        return self.calibration_engine.calibrate(run_id, actual_duration)

    def get_run(self, run_id: str) -> SimulationRunRecord:
        run = self._require_store().get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run
