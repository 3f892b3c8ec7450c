"""
Error types raised by the Monte Carlo engine and the truth loop.

Every error carries a stable ``code`` so the HTTP wrapper can map it to a
status without string matching.
"""


class OracleError(Exception):
    """Base class for all engine errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidSimulationInputError(OracleError, ValueError):
    code = "INVALID_INPUT"


class RunNotFoundError(OracleError, LookupError):
    code = "NOT_FOUND"

    def __init__(self, run_id: str):
        super().__init__(f"Simulation run not found: {run_id}")
        self.run_id = run_id


class TeamNotFoundError(OracleError, LookupError):
    code = "NOT_FOUND"

    def __init__(self, team_id: str):
        super().__init__(f"Team not found: {team_id}")
        self.team_id = team_id


class RunAlreadyCalibratedError(OracleError):
    """A run is terminal once calibrated; a second observation would be counted twice."""

    code = "ALREADY_CALIBRATED"

    def __init__(self, run_id: str):
        super().__init__(f"Simulation run already calibrated: {run_id}")
        self.run_id = run_id


class SimulationTimeoutError(OracleError, TimeoutError):
    code = "TIMEOUT"


class SimulationCancelledError(OracleError):
    code = "CANCELLED"


class PersistenceUnavailableError(OracleError):
    code = "PERSISTENCE_UNAVAILABLE"


class DuplicateRunError(OracleError):
    code = "ALREADY_EXISTS"

    def __init__(self, budget_request_id: str):
        super().__init__(f"Budget request already has a simulation run: {budget_request_id}")
        self.budget_request_id = budget_request_id
