"""
PURPOSE: Fixed-shape input and persistence records for the Monte Carlo engine.

RESPONSIBILITIES:
- Project scope inputs (tasks with effort and complexity)
- Sales pipeline inputs (deals with amount and close probability)
- Team volatility profile as read from the team store
- Snapshot of a persisted simulation run, and the outcome of calibrating it
- Validation of the invariants each record promises; no sampling here
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import (
    COMPLEXITY_MULTIPLIERS,
    DEFAULT_MEDIAN_QUEUE_TIME,
    DEFAULT_MEDIAN_TOUCH_TIME,
    DEFAULT_VOLATILITY_INDEX,
)
from .errors import InvalidSimulationInputError


def _require_finite(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidSimulationInputError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidSimulationInputError(f"{name} must be finite, got {value}")
    return value


class Complexity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def parse(cls, value: Any) -> "Complexity":
        """Accept an enum member or its name in any case."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise InvalidSimulationInputError(
            f"complexity must be one of {[c.value for c in cls]}, got {value!r}"
        )

    @property
    def multiplier(self) -> float:
        return COMPLEXITY_MULTIPLIERS[self.value]


class RunState(str, Enum):
    CREATED = "CREATED"
    CALIBRATED = "CALIBRATED"


@dataclass(frozen=True)
class TaskSpec:
    estimated_effort: float
    complexity: Complexity = Complexity.LOW
    task_id: Optional[str] = None

    def __post_init__(self):
        effort = _require_finite("estimated_effort", self.estimated_effort)
        if effort <= 0:
            raise InvalidSimulationInputError(
                f"estimated_effort must be positive, got {effort}"
            )
        object.__setattr__(self, "estimated_effort", effort)
        object.__setattr__(self, "complexity", Complexity.parse(self.complexity))


@dataclass(frozen=True)
class ProjectScope:
    tasks: List[TaskSpec] = field(default_factory=list)
    target_budget_or_time: float = 0.0

    def __post_init__(self):
        object.__setattr__(
            self,
            "target_budget_or_time",
            _require_finite("target_budget_or_time", self.target_budget_or_time),
        )
        object.__setattr__(self, "tasks", list(self.tasks))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectScope":
        """
        Build a scope from a plain dict.

        Args:
            data: {"tasks": [{"estimated_effort", "complexity", "id"?}, ...],
                   "target_budget_or_time": float}
        """
        tasks = [
            TaskSpec(
                estimated_effort=task["estimated_effort"],
                complexity=task.get("complexity", Complexity.LOW),
                task_id=task.get("id"),
            )
            for task in data.get("tasks", [])
        ]
        return cls(tasks=tasks, target_budget_or_time=data.get("target_budget_or_time", 0.0))


@dataclass(frozen=True)
class Deal:
    amount: float
    probability: float
    deal_id: Optional[str] = None

    def __post_init__(self):
        amount = _require_finite("amount", self.amount)
        probability = _require_finite("probability", self.probability)
        if amount < 0:
            raise InvalidSimulationInputError(f"amount must be non-negative, got {amount}")
        if not 0.0 <= probability <= 1.0:
            raise InvalidSimulationInputError(
                f"probability must be in [0, 1], got {probability}"
            )
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "probability", probability)


@dataclass(frozen=True)
class VolatilityProfile:
    """Team-level duration behaviour. Only ``volatility_index`` is ever recalibrated."""

    median_touch_time: float = DEFAULT_MEDIAN_TOUCH_TIME
    median_queue_time: float = DEFAULT_MEDIAN_QUEUE_TIME
    volatility_index: float = DEFAULT_VOLATILITY_INDEX

    def __post_init__(self):
        for name in ("median_touch_time", "median_queue_time"):
            value = _require_finite(name, getattr(self, name))
            if value <= 0:
                raise InvalidSimulationInputError(f"{name} must be positive, got {value}")
            object.__setattr__(self, name, value)
        volatility = _require_finite("volatility_index", self.volatility_index)
        if volatility < 0:
            raise InvalidSimulationInputError(
                f"volatility_index must be non-negative, got {volatility}"
            )
        object.__setattr__(self, "volatility_index", volatility)


@dataclass(frozen=True)
class SimulationRunRecord:
    id: str
    team_id: str
    p50: float
    p90: float
    volatility_factor_used: float
    budget_request_id: Optional[str] = None
    predicted_at: Optional[datetime] = None
    actual_duration: Optional[float] = None
    calibration_applied: bool = False
    calibrated_at: Optional[datetime] = None

    @property
    def state(self) -> RunState:
        return RunState.CALIBRATED if self.calibration_applied else RunState.CREATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "budget_request_id": self.budget_request_id,
            "p50": self.p50,
            "p90": self.p90,
            "volatility_factor_used": self.volatility_factor_used,
            "predicted_at": self.predicted_at.isoformat() if self.predicted_at else None,
            "actual_duration": self.actual_duration,
            "calibration_applied": self.calibration_applied,
            "calibrated_at": self.calibrated_at.isoformat() if self.calibrated_at else None,
            "state": self.state.value,
        }


@dataclass(frozen=True)
class CalibrationOutcome:
    run_id: str
    team_id: str
    previous_factor: float
    implied_factor: float
    new_factor: float
    actual_duration: float
    calibrated_at: datetime
    signal: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "team_id": self.team_id,
            "previous_factor": self.previous_factor,
            "implied_factor": self.implied_factor,
            "new_factor": self.new_factor,
            "actual_duration": self.actual_duration,
            "calibrated_at": self.calibrated_at.isoformat(),
            "signal": self.signal,
        }
