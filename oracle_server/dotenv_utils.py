"""
Locate and load the .env file for the oracle HTTP server.

Search order: oracle_server/.env first, then the project root.
"""
from pathlib import Path

from dotenv import load_dotenv


def candidate_dotenv_paths() -> list[Path]:
    module_dir = Path(__file__).resolve().parent
    return [module_dir / ".env", module_dir.parent / ".env"]


def load_oracle_dotenv() -> tuple[bool, list[Path]]:
    """Load the first .env file found. Returns (loaded, searched_paths)."""
    paths = candidate_dotenv_paths()
    for path in paths:
        if path.is_file() and load_dotenv(path):
            return True, paths
    return False, paths
