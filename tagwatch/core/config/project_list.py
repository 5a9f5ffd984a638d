"""
Project list files — the human-edited registry of monitored projects.

One entry per line. Blank lines and lines starting with ``#`` are
ignored. The build runner's file holds Git remote URLs, the deployment
poller's file holds image repository names. Both files are re-read at
the start of every poll cycle, so edits apply without a restart.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from tagwatch.core.errors import ConfigError
from tagwatch.core.models.project import Project, ProjectKind

logger = logging.getLogger(__name__)


def read_project_lines(path: Path) -> list[str]:
    """Meaningful lines of a project list file, stripped, in file order.

    Raises:
        ConfigError: If the file does not exist or cannot be read.
    """
    if not path.is_file():
        raise ConfigError(f"Project list not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read project list {path}: {e}") from e

    lines = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        lines.append(line)
    return lines


def repo_name(url: str) -> str:
    """Repository name from a Git URL (``git@host:team/app.git`` → ``app``)."""
    tail = url.rstrip("/").rsplit("/", 1)[-1]
    tail = tail.rsplit(":", 1)[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail


def load_ci_projects(path: Path) -> list[Project]:
    """Projects for the build runner: one Git remote URL per line."""
    return _build(path, "ci", repo_name)


def load_cd_projects(path: Path) -> list[Project]:
    """Projects for the deployment poller: one repository name per line."""
    return _build(path, "cd", lambda line: line.strip("/"))


def _build(path: Path, kind: ProjectKind, identify: Callable[[str], str]) -> list[Project]:
    projects: list[Project] = []
    seen: dict[str, str] = {}
    for line in read_project_lines(path):
        identifier = identify(line)
        if not identifier:
            logger.warning("Ignoring entry with no usable name in %s: %r", path, line)
            continue
        if identifier in seen:
            logger.warning(
                "Duplicate project '%s' in %s (%s); keeping %s",
                identifier,
                path,
                line,
                seen[identifier],
            )
            continue
        seen[identifier] = line
        projects.append(Project(identifier=identifier, source=line, kind=kind))
    logger.debug("Loaded %d %s project(s) from %s", len(projects), kind, path)
    return projects
