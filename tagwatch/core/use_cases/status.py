"""
Status use case — configured projects and their recorded versions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from tagwatch.core.errors import ConfigError
from tagwatch.core.models.config import RunnerConfig
from tagwatch.core.models.project import ProjectKind
from tagwatch.core.persistence.state_store import StateStore
from tagwatch.core.use_cases.runners import load_projects


@dataclass
class ProjectStatus:
    """One listed project and what has been shipped for it."""

    project: str
    source: str
    last_version: str | None = None
    previous_version: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "project": self.project,
            "source": self.source,
            "last_version": self.last_version,
            "previous_version": self.previous_version,
            "updated_at": self.updated_at,
        }


@dataclass
class StatusResult:
    """Recorded state for one side of the system."""

    kind: str
    projects_file: Path | None = None
    state_dir: Path | None = None
    projects: list[ProjectStatus] = field(default_factory=list)
    unlisted: list[str] = field(default_factory=list)   # state records with no list entry
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {"kind": self.kind}
        if self.error:
            result["error"] = self.error
            return result
        result["projects_file"] = str(self.projects_file)
        result["state_dir"] = str(self.state_dir)
        result["projects"] = [p.to_dict() for p in self.projects]
        result["unlisted"] = self.unlisted
        return result


def get_status(config: RunnerConfig, kind: ProjectKind = "cd") -> StatusResult:
    """Read the project list and the state store for ``kind``."""
    result = StatusResult(
        kind=kind,
        projects_file=config.projects_file(kind),
        state_dir=config.state_dir(kind),
    )

    try:
        projects = load_projects(config, kind)
    except ConfigError as e:
        result.error = str(e)
        return result

    store = StateStore.for_kind(config, kind)
    for project in projects:
        state = store.load(project.identifier)
        result.projects.append(
            ProjectStatus(
                project=project.identifier,
                source=project.source,
                last_version=state.last_version,
                previous_version=state.previous_version,
                updated_at=None if state.empty else state.updated_at,
            )
        )

    listed = {p.identifier for p in projects}
    result.unlisted = [s.project for s in store.all() if s.project not in listed]
    return result
