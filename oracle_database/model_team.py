import uuid
from datetime import datetime, UTC

from sqlalchemy import Column, DateTime, Float, String

from oracle_database.oracle_db import Base
from oracle_internal.monte_carlo.config import (
    DEFAULT_MEDIAN_QUEUE_TIME,
    DEFAULT_MEDIAN_TOUCH_TIME,
    DEFAULT_VOLATILITY_INDEX,
)


class Team(Base):
    """
    Minimal team record owned by the organisation service.

    Only ``volatility_factor`` is written by this project: the truth loop
    nudges it after every calibrated simulation run. The median touch and
    queue times describe how the team usually works and are read-only here.
    """
    __tablename__ = "team"

    # A unique identifier for the team.
    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Display name, used in calibration log lines.
    name = Column(String(256), nullable=False)
    # Coefficient of variation of the team's task durations.
    volatility_factor = Column(Float, nullable=False, default=DEFAULT_VOLATILITY_INDEX)
    # Median hours of active work per unit of estimated effort.
    median_touch_time = Column(Float, nullable=False, default=DEFAULT_MEDIAN_TOUCH_TIME)
    # Median hours a task waits in a queue.
    median_queue_time = Column(Float, nullable=False, default=DEFAULT_MEDIAN_QUEUE_TIME)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return f"Team(id={self.id!r}, name={self.name!r}, volatility_factor={self.volatility_factor})"
