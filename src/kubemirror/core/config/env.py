"""Layered .env loading.

Control plane credentials (notably ``KUBEMIRROR_TOKEN``) may live in .env
files instead of the shell. Files are merged in this order, later files
winning:

1. ``$XDG_CONFIG_HOME/kubemirror/.env``
2. ``.env`` in the project directory
3. ``.env.local`` in the project directory

Variables already set in the process environment are never replaced.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from dotenv import dotenv_values


def _user_env_file() -> Path:
    xdg_home = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    return xdg_home / "kubemirror" / ".env"


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
) -> list[str]:
    """
    Export variables from the user and project .env files.

    Args:
        project_dir: Directory holding .env and .env.local (defaults to cwd)
        user_env_paths: User-level files to read instead of the XDG default

    Returns:
        Names of the variables that were exported
    """
    project_dir = project_dir or Path.cwd()
    files = [*(user_env_paths if user_env_paths is not None else [_user_env_file()])]
    files += [project_dir / ".env", project_dir / ".env.local"]

    merged: dict[str, str] = {}
    for path in files:
        if Path(path).is_file():
            merged.update({k: v for k, v in dotenv_values(path).items() if v is not None})

    exported = [k for k in merged if k not in os.environ]
    for key in exported:
        os.environ[key] = merged[key]
    return exported
