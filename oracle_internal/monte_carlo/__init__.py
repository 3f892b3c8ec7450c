"""
Monte Carlo engine for project duration and pipeline revenue forecasting.

PURPOSE:
    Estimate outcome distributions by running 10,000 independent trials, and
    keep each team's volatility model honest by feeding observed outcomes
    back into it (the truth loop).

RESPONSIBILITIES:
    - Expose the log-normal sampler and the task duration model
    - Run cost/duration and revenue simulations and reduce them to percentiles
    - Recalibrate team volatility from prediction-vs-actual deltas

SRP/DRY CHECK:
    Each submodule has a single responsibility:
    - distributions.py: Log-normal sampling only
    - task_duration.py: Touch time + queue time per task only
    - simulation.py: Sharded trial execution and cost/duration aggregation
    - revenue.py: Correlated Bernoulli pipeline trials
    - outputs.py: Percentiles, downsampling and result formatting
    - calibration.py: EMA volatility updates
    - service.py: Wiring of the above with injected collaborators
"""

from .calibration import CalibrationEngine, blend_volatility, implied_volatility
from .distributions import LogNormalSampler, lognormal_params, sample_lognormal, sample_lognormal_batch
from .errors import (
    DuplicateRunError,
    InvalidSimulationInputError,
    OracleError,
    PersistenceUnavailableError,
    RunAlreadyCalibratedError,
    RunNotFoundError,
    SimulationCancelledError,
    SimulationTimeoutError,
    TeamNotFoundError,
)
from .models import (
    CalibrationOutcome,
    Complexity,
    Deal,
    ProjectScope,
    RunState,
    SimulationRunRecord,
    TaskSpec,
    VolatilityProfile,
)
from .outputs import SimulationResult
from .revenue import RevenueSimulation
from .service import SimulationService
from .simulation import MonteCarloSimulation
from .task_duration import complexity_multiplier, simulate_task_duration

__version__ = "0.1.0"

__all__ = [
    "sample_lognormal",
    "sample_lognormal_batch",
    "lognormal_params",
    "LogNormalSampler",
    "simulate_task_duration",
    "complexity_multiplier",
    "MonteCarloSimulation",
    "RevenueSimulation",
    "CalibrationEngine",
    "implied_volatility",
    "blend_volatility",
    "SimulationService",
    "SimulationResult",
    "Complexity",
    "TaskSpec",
    "ProjectScope",
    "Deal",
    "VolatilityProfile",
    "SimulationRunRecord",
    "RunState",
    "CalibrationOutcome",
    "OracleError",
    "DuplicateRunError",
    "InvalidSimulationInputError",
    "RunNotFoundError",
    "TeamNotFoundError",
    "RunAlreadyCalibratedError",
    "SimulationTimeoutError",
    "SimulationCancelledError",
    "PersistenceUnavailableError",
]
