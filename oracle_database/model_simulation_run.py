import uuid
from datetime import datetime, UTC

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, String

from oracle_database.oracle_db import Base
from oracle_internal.monte_carlo.models import SimulationRunRecord


class SimulationRun(Base):
    """
    One stored prediction, waiting for the real outcome.

    Lifecycle:
    - Created when a simulation is linked to a budget request. Holds the P50/P90
      that were predicted and the volatility factor the trials used.
    - Calibrated exactly once, when the actual outcome is reported. This sets
      ``actual_duration``, ``calibration_applied`` and ``calibrated_at`` in the
      same transaction that updates the team's volatility factor.

    Important:
    - A calibrated run is terminal. Calibrating it again would count the same
      observation twice in the team's moving average.
    """
    __tablename__ = "simulation_run"

    # A unique identifier for the run.
    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Team whose volatility profile produced the prediction.
    team_id = Column(String(64), ForeignKey("team.id"), nullable=False, index=True)
    # Budget request the prediction was made for. At most one run per request.
    budget_request_id = Column(String(64), nullable=True, unique=True)
    # Volatility factor the trials were drawn with.
    volatility_factor_used = Column(Float, nullable=False)
    # Predicted median and pessimistic outcome.
    p50 = Column(Float, nullable=False)
    p90 = Column(Float, nullable=False)
    predicted_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    # Observed outcome, set on calibration.
    actual_duration = Column(Float, nullable=True)
    calibration_applied = Column(Boolean, nullable=False, default=False)
    calibrated_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"SimulationRun(id={self.id!r}, team_id={self.team_id!r}, "
            f"p50={self.p50}, p90={self.p90}, calibration_applied={self.calibration_applied})"
        )

    def to_record(self) -> SimulationRunRecord:
        """Detach into the engine's fixed-shape record."""
        return SimulationRunRecord(
            id=self.id,
            team_id=self.team_id,
            p50=self.p50,
            p90=self.p90,
            volatility_factor_used=self.volatility_factor_used,
            budget_request_id=self.budget_request_id,
            predicted_at=self.predicted_at,
            actual_duration=self.actual_duration,
            calibration_applied=bool(self.calibration_applied),
            calibrated_at=self.calibrated_at,
        )
