from __future__ import annotations

from pathlib import Path
from typing import Optional


PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent
DATA_ROOT = PACKAGE_ROOT / "data"
DEFAULT_REGISTRY_PATH = DATA_ROOT / "instruments.yaml"


def resolve_project_path(path_value: str) -> Path:
    if not path_value:
        raise ValueError("Path is required.")
    path = Path(path_value)
    if path.is_absolute():
        return path.resolve()
    resolved = (PROJECT_ROOT / path).resolve()
    if resolved != PROJECT_ROOT and PROJECT_ROOT not in resolved.parents:
        raise ValueError("Path escapes project root.")
    return resolved


def resolve_registry_path(path_value: Optional[str]) -> Path:
    """Return the instrument registry file, defaulting to the packaged one."""
    if not path_value:
        return DEFAULT_REGISTRY_PATH
    candidate = resolve_project_path(path_value)
    if candidate.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError(f"Instrument registry must be a YAML file: {candidate.name}")
    if not candidate.exists():
        raise FileNotFoundError(f"Instrument registry not found: {candidate}")
    return candidate
