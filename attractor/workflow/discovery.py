"""Workflow discovery and resolution.

Workflow files (``*.awf.kdl``) are looked up in three locations, most
specific first:

    1. project  ``<cwd>/.attractor/workflows/``
    2. repo     ``<repo-root>/.attractor/workflows/``  (skipped when equal to 1)
    3. global   ``~/.attractor/workflows/``            (skipped when equal to 1 or 2)

Entries are keyed by filename stem (``deploy`` for ``deploy.awf.kdl``).  The
first tier to provide a stem wins; every later file with the same stem is
reported as shadowed.  Unreadable or unparseable files become warnings and
never abort a scan.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, Field

from attractor.engine.exceptions import ResolutionError
from attractor.workflow.definition import WorkflowDefinition
from attractor.workflow.parser import parse_workflow

logger = logging.getLogger(__name__)

WORKFLOW_SUFFIX = ".awf.kdl"
WORKFLOWS_SUBDIR = (".attractor", "workflows")

WorkflowSourceParser = Callable[[str], WorkflowDefinition]


class LocationTier(str, Enum):
    PROJECT = "project"
    REPO = "repo"
    GLOBAL = "global"


class WorkflowEntry(BaseModel):
    """A discovered workflow file."""

    stem: str = Field(description="Filename without the workflow suffix.")
    name: str = Field(description="Workflow name declared in the file.")
    path: Path = Field(description="Absolute path to the file.")
    description: Optional[str] = None
    stage_count: int = 0
    location: LocationTier

    model_config = {"frozen": True}


class DiscoveryResult(BaseModel):
    entries: list[WorkflowEntry] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def find(self, stem: str) -> WorkflowEntry | None:
        return next((e for e in self.entries if e.stem == stem), None)


class ResolveResult(BaseModel):
    path: Path
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def workflow_stem(filename: str) -> str:
    """``deploy.awf.kdl`` -> ``deploy``."""
    if filename.endswith(WORKFLOW_SUFFIX):
        return filename[: -len(WORKFLOW_SUFFIX)]
    return Path(filename).stem


def is_bare_ref(ref: str) -> bool:
    """True for a plain name: no path separator and no file extension."""
    return "/" not in ref and "\\" not in ref and Path(ref).suffix == ""


def search_dirs(
    cwd: Path, repo_root: Path | None = None, home_dir: Path | None = None
) -> list[tuple[Path, LocationTier]]:
    """Directories to search, in precedence order, without duplicates."""
    project_dir = Path(cwd).resolve().joinpath(*WORKFLOWS_SUBDIR)
    dirs = [(project_dir, LocationTier.PROJECT)]

    if repo_root is not None:
        repo_dir = Path(repo_root).resolve().joinpath(*WORKFLOWS_SUBDIR)
        if repo_dir != project_dir:
            dirs.append((repo_dir, LocationTier.REPO))

    home = Path(home_dir) if home_dir is not None else Path.home()
    global_dir = home.resolve().joinpath(*WORKFLOWS_SUBDIR)
    if all(global_dir != d for d, _ in dirs):
        dirs.append((global_dir, LocationTier.GLOBAL))
    return dirs


def _scan_directory(
    directory: Path, tier: LocationTier, parser: WorkflowSourceParser
) -> tuple[list[WorkflowEntry], list[str]]:
    entries: list[WorkflowEntry] = []
    warnings: list[str] = []

    try:
        files = sorted(
            p for p in directory.iterdir()
            if p.name.endswith(WORKFLOW_SUFFIX) and p.is_file()
        )
    except OSError:
        return entries, warnings

    for path in files:
        try:
            workflow = parser(path.read_text(encoding="utf-8"))
        except Exception as exc:
            message = f"Failed to parse {path.name}: {exc}"
            logger.warning("%s", message)
            warnings.append(message)
            continue
        entries.append(WorkflowEntry(
            stem=workflow_stem(path.name),
            name=workflow.name,
            path=path,
            description=workflow.description,
            stage_count=len(workflow.stages),
            location=tier,
        ))
    return entries, warnings


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def discover_workflows(
    cwd: Path,
    repo_root: Path | None = None,
    home_dir: Path | None = None,
    parser: WorkflowSourceParser = parse_workflow,
) -> DiscoveryResult:
    """Build the workflow catalog.

    Tiers are scanned concurrently, then merged strictly in precedence order
    so shadowing does not depend on which scan finishes first.

    Returns:
        Deduplicated entries sorted by stem, plus parse and shadow warnings.
    """
    dirs = search_dirs(cwd, repo_root, home_dir)
    with ThreadPoolExecutor(max_workers=len(dirs)) as pool:
        scans = list(pool.map(lambda d: _scan_directory(d[0], d[1], parser), dirs))

    warnings: list[str] = []
    seen: dict[str, WorkflowEntry] = {}
    for entries, scan_warnings in scans:
        warnings.extend(scan_warnings)
        for entry in entries:
            existing = seen.get(entry.stem)
            if existing is not None:
                message = (
                    f'Workflow "{entry.stem}" at {entry.path} is shadowed by '
                    f"{existing.path} (higher precedence)."
                )
                logger.warning("%s", message)
                warnings.append(message)
                continue
            seen[entry.stem] = entry

    return DiscoveryResult(
        entries=sorted(seen.values(), key=lambda e: e.stem),
        warnings=warnings,
    )


def resolve_workflow_path(
    ref: str,
    cwd: Path,
    repo_root: Path | None = None,
    home_dir: Path | None = None,
    parser: WorkflowSourceParser = parse_workflow,
) -> ResolveResult:
    """Resolve *ref* to a workflow file.

    A ref containing a path separator or an extension is an explicit path,
    resolved against *cwd*.  Anything else is a stem looked up in the catalog.

    Raises:
        ResolutionError: With every candidate path that was checked.
    """
    if not is_bare_ref(ref):
        direct = (Path(cwd) / ref).resolve()
        if direct.exists():
            return ResolveResult(path=direct)
        raise ResolutionError(
            f"Workflow file not found: {direct}\n"
            f"Provide a valid path to a {WORKFLOW_SUFFIX} workflow file.",
            ref=ref,
            searched_locations=[str(direct)],
        )

    catalog = discover_workflows(cwd, repo_root, home_dir, parser)
    match = catalog.find(ref)
    if match is not None:
        return ResolveResult(path=match.path, warnings=catalog.warnings)

    searched = [str(d / f"{ref}{WORKFLOW_SUFFIX}") for d, _ in search_dirs(cwd, repo_root, home_dir)]
    listing = "\n".join(f"  {p}" for p in searched)
    failed = [w for w in catalog.warnings if w.startswith(f"Failed to parse {ref}{WORKFLOW_SUFFIX}:")]
    details = "".join(f"\n{w}" for w in failed)
    raise ResolutionError(
        f'Workflow "{ref}" not found.\nSearched:\n{listing}\n'
        f"Place workflow files in {'/'.join(WORKFLOWS_SUBDIR)}/ or provide a full path."
        f"{details}",
        ref=ref,
        searched_locations=searched,
    )
