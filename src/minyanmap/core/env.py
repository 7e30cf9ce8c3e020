"""
Locating the project directory and its `.env`.

The events API token is usually kept in a `.env` next to `pyproject.toml`, and the
ledger store directory is configured as a relative path. Both must resolve the same
way whether the CLI runs from the repo, a subdirectory, or under uvicorn.

`MINYANMAP_PROJECT_ROOT` and `MINYANMAP_ENV_FILE` pin the lookup explicitly.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


def _is_project_dir(path: Path) -> bool:
    if (path / ".env").is_file() or (path / ".git").exists():
        return True
    return (path / "src").is_dir() and (path / "pyproject.toml").is_file()


def _search_up(start: Path) -> Path | None:
    start = start.resolve()
    for candidate in (start, *start.parents):
        if _is_project_dir(candidate):
            return candidate
    return None


@lru_cache
def get_project_root() -> Path:
    """Directory that relative settings paths are resolved against (cached)."""
    pinned = os.getenv("MINYANMAP_PROJECT_ROOT")
    if pinned:
        return Path(pinned).expanduser().resolve()

    env_file = os.getenv("MINYANMAP_ENV_FILE")
    if env_file:
        return Path(env_file).expanduser().resolve().parent

    # Working directory first, then the installed package location.
    found = _search_up(Path.cwd()) or _search_up(Path(__file__).parent)
    return found or Path.cwd().resolve()


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load the project's `.env` once; variables already in the environment win."""
    explicit = os.getenv("MINYANMAP_ENV_FILE")
    env_path = Path(explicit).expanduser().resolve() if explicit else get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    """Absolute paths pass through; relative ones are anchored at the project root."""
    p = Path(path).expanduser()
    if p.is_absolute():
        return p
    return (get_project_root() / p).resolve()
