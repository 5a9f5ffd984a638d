"""
State store — last processed version per project, one file each.

Records are JSON documents at ``<state_dir>/<project>.json``. Writes go
to a temp file in the same directory, are fsynced and then renamed over
the record, so a reader sees either the old value or the new one and a
crash mid-write leaves the old value in place.

A missing record is an empty state. A corrupt record is logged and also
treated as empty: the pipeline for the current latest version then runs
again, which is safe because pipelines are re-runnable for the same
target. Skipping a version is never an option.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import quote

from tagwatch.core.models.config import RunnerConfig
from tagwatch.core.models.state import ProcessedState

logger = logging.getLogger(__name__)

# Plain-text records written by the shell-script runners, per runner kind
LEGACY_SUFFIXES = {"ci": "_last_tag.txt", "cd": "_deployed_version.txt"}


def record_name(project: str) -> str:
    """File stem for a project identifier (``team/app`` → ``team%2Fapp``).

    Percent-encoding keeps distinct identifiers on distinct files. A
    leading dot is encoded too so no name is hidden or resolves to
    ``.`` or ``..``.
    """
    name = quote(project, safe="")
    if name.startswith("."):
        name = "%2E" + name[1:]
    return name or "%"


class StateStore:
    """Durable mapping from project identifier to last processed version.

    Args:
        state_dir: Where the JSON records live.
        legacy_dir: Extra directory searched for legacy plain-text
            records (``state_dir`` itself is always searched).
        legacy_suffixes: Legacy file suffixes to look for.
    """

    def __init__(
        self,
        state_dir: Path,
        legacy_dir: Path | None = None,
        legacy_suffixes: tuple[str, ...] = tuple(LEGACY_SUFFIXES.values()),
    ):
        self._dir = Path(state_dir)
        self._legacy_dirs = [self._dir]
        if legacy_dir is not None and Path(legacy_dir) != self._dir:
            self._legacy_dirs.append(Path(legacy_dir))
        self._legacy_suffixes = legacy_suffixes

    @classmethod
    def for_kind(cls, config: RunnerConfig, kind: str) -> StateStore:
        """Store for one runner kind, falling back to the shell runner's files."""
        return cls(
            config.state_dir(kind),
            legacy_dir=config.legacy_state_dir,
            legacy_suffixes=(LEGACY_SUFFIXES[kind],),
        )

    @property
    def state_dir(self) -> Path:
        return self._dir

    def path_for(self, project: str) -> Path:
        return self._dir / f"{record_name(project)}.json"

    def get(self, project: str) -> str | None:
        """Last successfully processed version, or None if never processed."""
        return self.load(project).last_version

    def load(self, project: str) -> ProcessedState:
        """Full record for a project (fresh, empty record if absent)."""
        path = self.path_for(project)
        if not path.is_file():
            legacy = self._load_legacy(project)
            if legacy:
                logger.info("Using legacy state for %s: %s", project, legacy)
                return ProcessedState(project=project, last_version=legacy)
            return ProcessedState(project=project)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            state = ProcessedState.model_validate(data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Corrupt state record %s: %s, treating as empty", path, e)
            return ProcessedState(project=project)
        except OSError as e:
            logger.warning("Cannot read state record %s: %s, treating as empty", path, e)
            return ProcessedState(project=project)

        if state.project != project:
            logger.warning(
                "State record %s belongs to %r, not %r, treating as empty",
                path,
                state.project,
                project,
            )
            return ProcessedState(project=project)
        return state

    def set(self, project: str, version: str) -> ProcessedState:
        """Atomically record ``version`` as processed for ``project``."""
        state = self.load(project)
        state.advance(version)
        self.save(state)
        return state

    def save(self, state: ProcessedState) -> None:
        """Write a record (write-to-temp, fsync, rename)."""
        path = self.path_for(state.project)
        path.parent.mkdir(parents=True, exist_ok=True)

        content = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".state_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except Exception:
            tmp.unlink(missing_ok=True)
            logger.error("Failed to save state to %s", path)
            raise
        logger.debug("State saved: %s -> %s", state.project, state.last_version)

    def all(self) -> list[ProcessedState]:
        """Every JSON record in the store, sorted by project."""
        if not self._dir.is_dir():
            return []
        records = []
        for path in sorted(self._dir.glob("*.json")):
            try:
                records.append(
                    ProcessedState.model_validate_json(path.read_text(encoding="utf-8"))
                )
            except (ValueError, OSError) as e:
                logger.warning("Skipping unreadable state record %s: %s", path, e)
        return sorted(records, key=lambda s: s.project)

    def _load_legacy(self, project: str) -> str | None:
        for directory in self._legacy_dirs:
            for suffix in self._legacy_suffixes:
                path = directory / f"{project}{suffix}"
                if not path.is_file():
                    continue
                try:
                    value = path.read_text(encoding="utf-8").strip()
                except OSError as e:
                    logger.warning("Cannot read legacy state %s: %s", path, e)
                    continue
                if value:
                    return value
        return None
