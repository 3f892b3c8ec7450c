from typing import Literal

from pydantic import BaseModel, Field, field_validator

from oracle_internal.monte_carlo.models import Complexity, Deal, ProjectScope, TaskSpec


class ErrorDetail(BaseModel):
    code: str
    message: str


class TaskInput(BaseModel):
    id: str | None = None
    estimated_effort: float = Field(gt=0, allow_inf_nan=False)
    complexity: Literal["LOW", "MEDIUM", "HIGH"] = "LOW"

    @field_validator("complexity", mode="before")
    @classmethod
    def normalize_complexity(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class ProjectScopeInput(BaseModel):
    tasks: list[TaskInput] = Field(default_factory=list)
    target_budget_or_time: float = Field(allow_inf_nan=False)

    def to_scope(self) -> ProjectScope:
        return ProjectScope(
            tasks=[
                TaskSpec(
                    estimated_effort=task.estimated_effort,
                    complexity=Complexity(task.complexity),
                    task_id=task.id,
                )
                for task in self.tasks
            ],
            target_budget_or_time=self.target_budget_or_time,
        )


class SimulationRequest(BaseModel):
    team_id: str = Field(min_length=1)
    scope: ProjectScopeInput
    budget_request_id: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0, allow_inf_nan=False)


class DealInput(BaseModel):
    id: str | None = None
    amount: float = Field(ge=0, allow_inf_nan=False)
    probability: float = Field(ge=0, le=1, allow_inf_nan=False)

    def to_deal(self) -> Deal:
        return Deal(amount=self.amount, probability=self.probability, deal_id=self.id)


class RevenueSimulationRequest(BaseModel):
    deals: list[DealInput] = Field(default_factory=list)
    volatility_factor: float = Field(ge=0, allow_inf_nan=False)
    target_revenue: float | None = Field(default=None, allow_inf_nan=False)
    timeout_seconds: float | None = Field(default=None, gt=0, allow_inf_nan=False)


class CalibrationRequest(BaseModel):
    actual_duration: float = Field(ge=0, allow_inf_nan=False)


class SimulationResultOutput(BaseModel):
    p10: float
    p50: float
    p90: float
    p99: float
    probability_of_success: float
    distribution: list[float]
    volatility_factor_used: float
    iterations: int
    mean: float
    std_dev: float
    run_id: str | None = None


class SimulationRunOutput(BaseModel):
    id: str
    team_id: str
    budget_request_id: str | None = None
    p50: float
    p90: float
    volatility_factor_used: float
    predicted_at: str | None = None
    actual_duration: float | None = None
    calibration_applied: bool
    calibrated_at: str | None = None
    state: Literal["CREATED", "CALIBRATED"]


class CalibrationOutput(BaseModel):
    run_id: str
    team_id: str
    previous_factor: float
    implied_factor: float
    new_factor: float
    actual_duration: float
    calibrated_at: str
    signal: Literal["UNDERESTIMATED", "OVERESTIMATED", "WITHIN_BAND"]
