"""
HTTP server for the volatility oracle.

Exposes the cost/duration simulation, the revenue simulation and the truth
loop calibration as JSON endpoints with optional API key authentication.
"""
import logging
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from oracle_database import SimulationStore, create_db_engine, create_session_factory, init_db
from oracle_internal.monte_carlo import OracleError, SimulationService
from oracle_internal.monte_carlo.config import DEFAULT_NUM_WORKERS, get_calibration_parameters
from oracle_server.api_models import (
    CalibrationOutput,
    CalibrationRequest,
    ErrorDetail,
    RevenueSimulationRequest,
    SimulationRequest,
    SimulationResultOutput,
    SimulationRunOutput,
)

# Load .env file early
from oracle_server.dotenv_utils import load_oracle_dotenv
_dotenv_loaded, _dotenv_paths = load_oracle_dotenv()

# Configure logging
log_level_name = os.environ.get("ORACLE_LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, None)
invalid_log_level = not isinstance(log_level, int)
if invalid_log_level:
    log_level = logging.INFO

logging.basicConfig(
    level=log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)
if invalid_log_level:
    logger.warning("Invalid ORACLE_LOG_LEVEL provided; defaulting to INFO.")
if not _dotenv_loaded:
    logger.debug(
        "No .env file found; searched: %s",
        ", ".join(str(path) for path in _dotenv_paths),
    )

STATUS_BY_ERROR_CODE = {
    "INVALID_INPUT": 422,
    "NOT_FOUND": 404,
    "ALREADY_CALIBRATED": 409,
    "ALREADY_EXISTS": 409,
    "TIMEOUT": 504,
    "CANCELLED": 503,
    "PERSISTENCE_UNAVAILABLE": 503,
}

PUBLIC_PATHS = {"/", "/healthcheck", "/docs", "/openapi.json"}


def _split_csv_env(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _optional_float_env(name: str) -> Optional[float]:
    value = os.environ.get(name)
    if not value:
        return None
    return float(value)


@dataclass
class ServerSettings:
    database_url: str = "sqlite:///oracle.db"
    api_key: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8010
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost", "http://127.0.0.1"])
    num_workers: int = DEFAULT_NUM_WORKERS
    default_timeout_seconds: Optional[float] = None

    @classmethod
    def from_env(cls) -> "ServerSettings":
        return cls(
            database_url=os.environ.get("ORACLE_DATABASE_URL", "sqlite:///oracle.db"),
            api_key=os.environ.get("ORACLE_API_KEY") or None,
            host=os.environ.get("ORACLE_HTTP_HOST", "127.0.0.1"),
            port=int(os.environ.get("PORT") or os.environ.get("ORACLE_HTTP_PORT", "8010")),
            cors_origins=_split_csv_env(os.environ.get("ORACLE_CORS_ORIGINS"))
            or ["http://localhost", "http://127.0.0.1"],
            num_workers=int(os.environ.get("ORACLE_SIM_WORKERS", str(DEFAULT_NUM_WORKERS))),
            default_timeout_seconds=_optional_float_env("ORACLE_SIM_TIMEOUT_SECONDS"),
        )


def build_service(settings: ServerSettings) -> SimulationService:
    """Wire a SimulationService to the configured database."""
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    store = SimulationStore(create_session_factory(engine))
    return SimulationService(store=store, num_workers=settings.num_workers)


def _extract_api_key(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header:
        parts = auth_header.split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer":
            token = parts[1].strip()
            if token:
                return token
    header_key = request.headers.get("X-API-Key")
    if header_key:
        return header_key
    return request.query_params.get("api_key") or None


def _validate_api_key(request: Request, required_key: Optional[str]) -> Optional[JSONResponse]:
    """Return an error response if API key validation fails."""
    if not required_key or request.url.path in PUBLIC_PATHS:
        return None

    provided_key = _extract_api_key(request)
    if not provided_key:
        return JSONResponse(
            status_code=401,
            content={
                "detail": "Missing API key. Use Authorization: Bearer <key>, X-API-Key, or ?api_key=."
            },
        )
    if provided_key != required_key:
        return JSONResponse(status_code=403, content={"detail": "Invalid API key"})
    return None


def _get_service(request: Request) -> SimulationService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Simulation service not initialized")
    return service


def _timeout(request_timeout: Optional[float], settings: ServerSettings) -> Optional[float]:
    return request_timeout if request_timeout is not None else settings.default_timeout_seconds


def create_app(
    service: Optional[SimulationService] = None,
    settings: Optional[ServerSettings] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Pre-built service (tests inject one with a seeded generator and
            an in-memory store). When omitted, one is built from ``settings`` at startup.
        settings: Server settings; read from the environment when omitted.
    """
    settings = settings or ServerSettings.from_env()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        if getattr(app.state, "service", None) is None:
            app.state.service = build_service(settings)
            logger.info("Simulation service connected to %s", settings.database_url.split("@")[-1])
        yield

    app = FastAPI(
        title="Volatility Oracle",
        description="Monte Carlo forecasting for project duration and pipeline revenue",
        version="0.1.0",
        lifespan=_lifespan,
    )
    app.state.service = service
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key"],
    )

    @app.middleware("http")
    async def enforce_api_key(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        error_response = _validate_api_key(request, settings.api_key)
        if error_response:
            return error_response
        return await call_next(request)

    @app.exception_handler(OracleError)
    async def handle_oracle_error(request: Request, exc: OracleError) -> JSONResponse:
        status_code = STATUS_BY_ERROR_CODE.get(exc.code, 500)
        if status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        detail = ErrorDetail(code=exc.code, message=exc.message)
        return JSONResponse(status_code=status_code, content={"detail": detail.model_dump()})

    @app.post("/simulations", response_model=SimulationResultOutput)
    def run_simulation(
        payload: SimulationRequest,
        service: SimulationService = Depends(_get_service),
    ) -> dict[str, Any]:
        """Run the cost/duration simulation for a team's project scope."""
        result = service.run_simulation(
            payload.scope.to_scope(),
            payload.team_id,
            budget_request_id=payload.budget_request_id,
            timeout_seconds=_timeout(payload.timeout_seconds, settings),
        )
        return result.to_dict()

    @app.post("/simulations/revenue", response_model=SimulationResultOutput)
    def run_revenue_simulation(
        payload: RevenueSimulationRequest,
        service: SimulationService = Depends(_get_service),
    ) -> dict[str, Any]:
        """Run the revenue simulation for a list of deals."""
        result = service.run_revenue_simulation(
            [deal.to_deal() for deal in payload.deals],
            payload.volatility_factor,
            target_revenue=payload.target_revenue,
            timeout_seconds=_timeout(payload.timeout_seconds, settings),
        )
        return result.to_dict()

    @app.post("/simulation-runs/{run_id}/calibrate", response_model=CalibrationOutput)
    def calibrate(
        run_id: str,
        payload: CalibrationRequest,
        service: SimulationService = Depends(_get_service),
    ) -> dict[str, Any]:
        """Feed an observed outcome back into the run's team volatility."""
        return service.calibrate(run_id, payload.actual_duration).to_dict()

    @app.get("/simulation-runs/{run_id}", response_model=SimulationRunOutput)
    def get_run(
        run_id: str,
        service: SimulationService = Depends(_get_service),
    ) -> dict[str, Any]:
        """Return a stored simulation run."""
        return service.get_run(run_id).to_dict()

    @app.get("/healthcheck")
    def healthcheck() -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "volatility-oracle-http",
            "api_key_configured": settings.api_key is not None,
        }

    @app.get("/")
    def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": "Volatility Oracle (HTTP)",
            "version": "0.1.0",
            "endpoints": {
                "simulate": "/simulations",
                "simulate_revenue": "/simulations/revenue",
                "calibrate": "/simulation-runs/{run_id}/calibrate",
                "run": "/simulation-runs/{run_id}",
                "health": "/healthcheck",
            },
            "calibration": get_calibration_parameters(),
            "documentation": "See /docs for OpenAPI documentation",
            "authentication": "Authorization: Bearer <key>, X-API-Key, or ?api_key= (set ORACLE_API_KEY)",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = app.state.settings
    logger.info(f"Starting Volatility Oracle HTTP server on {_settings.host}:{_settings.port}")
    if _settings.api_key:
        logger.info("API key authentication enabled")
    else:
        logger.warning("API key authentication disabled - set ORACLE_API_KEY")

    uvicorn.run(app, host=_settings.host, port=_settings.port, reload=False)
