"""Version of the study planner, from package metadata or pyproject.toml"""
from functools import lru_cache
from importlib import metadata
from pathlib import Path
import tomllib

DISTRIBUTION_NAME = "study-planner"


@lru_cache(maxsize=1)
def get_version() -> str:
    """Installed distribution version; a source checkout reads pyproject.toml instead."""
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        pass

    pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        with open(pyproject_path, "rb") as f:
            project = tomllib.load(f).get("project", {})
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return "unknown"
    if project.get("name") != DISTRIBUTION_NAME:
        return "unknown"
    return project.get("version", "unknown")
