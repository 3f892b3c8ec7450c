"""
Persistence for teams and simulation runs (SQLAlchemy).
"""
from oracle_database.oracle_db import Base, create_db_engine, create_session_factory, init_db
from oracle_database.model_simulation_run import SimulationRun
from oracle_database.model_team import Team
from oracle_database.simulation_store import SimulationStore

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "SimulationRun",
    "Team",
    "SimulationStore",
]
