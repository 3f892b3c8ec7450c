"""
Store and retrieve teams and simulation runs from the database.

This module handles all database operations for the truth loop, providing
the simulation service with a clean interface to read volatility profiles,
record predictions, and apply calibrations atomically.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, UTC
from typing import Callable, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from oracle_database.model_simulation_run import SimulationRun
from oracle_database.model_team import Team
from oracle_internal.monte_carlo.config import (
    DEFAULT_MEDIAN_QUEUE_TIME,
    DEFAULT_MEDIAN_TOUCH_TIME,
    DEFAULT_VOLATILITY_INDEX,
)
from oracle_internal.monte_carlo.errors import (
    DuplicateRunError,
    RunAlreadyCalibratedError,
    RunNotFoundError,
    TeamNotFoundError,
)
from oracle_internal.monte_carlo.models import (
    CalibrationOutcome,
    SimulationRunRecord,
    VolatilityProfile,
)

logger = logging.getLogger(__name__)

__all__ = ["SimulationStore"]

ComputeCalibration = Callable[[SimulationRunRecord, float, datetime], CalibrationOutcome]


class SimulationStore:
    """
    Store and retrieve teams and simulation runs.

    Every public method opens its own session. Database errors are logged,
    the session is rolled back, and the error is re-raised to the caller.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error in SimulationStore: {e}", exc_info=True)
            session.rollback()
            raise
        finally:
            session.close()

    def create_team(
        self,
        name: str,
        volatility_factor: float = DEFAULT_VOLATILITY_INDEX,
        median_touch_time: float = DEFAULT_MEDIAN_TOUCH_TIME,
        median_queue_time: float = DEFAULT_MEDIAN_QUEUE_TIME,
        team_id: Optional[str] = None,
    ) -> str:
        """
        Insert a team and return its id.

        Teams are owned by the organisation service; this exists for seeding
        and tests.
        """
        with self._session() as session:
            team = Team(
                name=name,
                volatility_factor=float(volatility_factor),
                median_touch_time=float(median_touch_time),
                median_queue_time=float(median_queue_time),
            )
            if team_id is not None:
                team.id = team_id
            session.add(team)
            session.commit()
            logger.debug(f"Created team {team.id} ({name}) with volatility {volatility_factor}")
            return team.id

    def get_team_volatility(self, team_id: str) -> Optional[float]:
        """Current volatility factor of a team, or None if the team is unknown."""
        with self._session() as session:
            team = session.get(Team, team_id)
            return None if team is None else float(team.volatility_factor)

    def get_volatility_profile(self, team_id: str) -> Optional[VolatilityProfile]:
        """Volatility profile of a team, or None if the team is unknown."""
        with self._session() as session:
            team = session.get(Team, team_id)
            if team is None:
                return None
            return VolatilityProfile(
                median_touch_time=team.median_touch_time,
                median_queue_time=team.median_queue_time,
                volatility_index=team.volatility_factor,
            )

    def create_run(
        self,
        team_id: str,
        p50: float,
        p90: float,
        volatility_factor_used: float,
        budget_request_id: Optional[str] = None,
    ) -> SimulationRunRecord:
        """
        Record a prediction in state CREATED.

        Raises:
            TeamNotFoundError: If the team does not exist.
            DuplicateRunError: If the budget request already has a run.
        """
        with self._session() as session:
            if session.get(Team, team_id) is None:
                raise TeamNotFoundError(team_id)
            run = SimulationRun(
                team_id=team_id,
                budget_request_id=budget_request_id,
                p50=float(p50),
                p90=float(p90),
                volatility_factor_used=float(volatility_factor_used),
                predicted_at=datetime.now(UTC),
                calibration_applied=False,
            )
            session.add(run)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                if budget_request_id is not None and self._budget_request_taken(session, budget_request_id):
                    raise DuplicateRunError(budget_request_id)
                if session.scalars(select(Team.id).where(Team.id == team_id)).first() is None:
                    raise TeamNotFoundError(team_id)
                raise
            logger.debug(
                f"Recorded simulation run {run.id}: team={team_id}, p50={p50}, p90={p90}, "
                f"volatility={volatility_factor_used}"
            )
            return run.to_record()

    @staticmethod
    def _budget_request_taken(session: Session, budget_request_id: str) -> bool:
        query = select(SimulationRun.id).where(SimulationRun.budget_request_id == budget_request_id)
        return session.scalars(query).first() is not None

    def get_run(self, run_id: str) -> Optional[SimulationRunRecord]:
        with self._session() as session:
            run = session.get(SimulationRun, run_id)
            return None if run is None else run.to_record()

    def get_runs_for_team(self, team_id: str) -> List[SimulationRunRecord]:
        """All runs of a team, oldest prediction first."""
        with self._session() as session:
            runs = session.scalars(
                select(SimulationRun)
                .where(SimulationRun.team_id == team_id)
                .order_by(SimulationRun.predicted_at)
            ).all()
            return [run.to_record() for run in runs]

    def apply_calibration(
        self,
        run_id: str,
        actual_duration: float,
        calibrated_at: datetime,
        compute: ComputeCalibration,
    ) -> CalibrationOutcome:
        """
        Calibrate a run and update its team in a single transaction.

        The run and team rows are locked (SELECT ... FOR UPDATE) and the run's
        state is re-checked under the lock, so a run is calibrated at most
        once even when two callers race. Either both the team factor and the
        run status are written, or neither is.

        Args:
            run_id: Run to calibrate
            actual_duration: Observed outcome
            calibrated_at: Timestamp stored on the run
            compute: Callable (run_record, current_factor, calibrated_at) -> CalibrationOutcome

        Raises:
            RunNotFoundError, TeamNotFoundError, RunAlreadyCalibratedError
        """
        with self._session() as session:
            with session.begin():
                run = session.scalars(
                    select(SimulationRun).where(SimulationRun.id == run_id).with_for_update()
                ).one_or_none()
                if run is None:
                    raise RunNotFoundError(run_id)
                if run.calibration_applied:
                    raise RunAlreadyCalibratedError(run_id)

                team = session.scalars(
                    select(Team).where(Team.id == run.team_id).with_for_update()
                ).one_or_none()
                if team is None:
                    raise TeamNotFoundError(run.team_id)

                outcome = compute(run.to_record(), float(team.volatility_factor), calibrated_at)

                team.volatility_factor = float(outcome.new_factor)
                team.updated_at = calibrated_at
                run.actual_duration = float(actual_duration)
                run.calibration_applied = True
                run.calibrated_at = calibrated_at

            logger.debug(
                f"Applied calibration for run {run_id}: team {outcome.team_id} "
                f"{outcome.previous_factor:.4f} -> {outcome.new_factor:.4f}"
            )
            return outcome
