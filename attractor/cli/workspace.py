"""Discovery locations for CLI commands.

The main callback loads :class:`AttractorConfig` once per invocation and
stores it on the Typer context as ``ctx.obj``; commands pass it to
:func:`current_workspace`.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from attractor.cli.config import AttractorConfig, load_config

logger = logging.getLogger(__name__)


def detect_repo_root(cwd: Path) -> Path | None:
    """Top-level directory of the git repository containing *cwd*, if any."""
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("git unavailable for repo detection: %s", exc)
        return None
    if proc.returncode != 0:
        return None
    top = proc.stdout.strip()
    return Path(top) if top else None


@dataclass(frozen=True)
class Workspace:
    """The three discovery roots for one CLI invocation."""

    cwd: Path
    repo_root: Optional[Path]
    home_dir: Optional[Path]


def current_workspace(config: AttractorConfig | None = None, cwd: Path | None = None) -> Workspace:
    """Discovery roots from *config*, loading it from disk when not given."""
    config = config if config is not None else load_config()
    here = (cwd or Path.cwd()).resolve()
    repo_root = config.repo_root or detect_repo_root(here)
    return Workspace(cwd=here, repo_root=repo_root, home_dir=config.home_dir)
