"""
Deployment audit log — append-only, one file per (project, version).

Before the deployment poller touches anything it records which
containers and images are running. Later entries record the descriptor
rewrite, the pull and the recreate. Files are NDJSON (one JSON object
per line) and are never rewritten: a retried deployment of the same
version appends to the same file.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from tagwatch.core.models.version import image_tag

logger = logging.getLogger(__name__)


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    project: str = ""
    version: str = ""
    event: str = ""                # pre_deploy, descriptor_updated, pull, recreate
    status: str = ""               # ok, failed
    containers: list[str] = Field(default_factory=list)   # "name -> image"
    error: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)


def audit_path(project_dir: Path, version: str) -> Path:
    """Audit file for a deployment of ``version`` inside ``project_dir``."""
    return project_dir / f"deployment_v{image_tag(version)}.ndjson"


class AuditWriter:
    """Append-only audit ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an audit entry.

        Raises:
            OSError: if the entry cannot be written. The deployment pipeline
                refuses to continue without its pre-deployment record.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line)
        logger.debug("Audit entry written: %s/%s %s", entry.project, entry.version, entry.event)

    def read_all(self) -> list[AuditEntry]:
        """Read all entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit log %s: %s", self._path, e)

        return entries

    def entry_count(self) -> int:
        """Count entries without parsing them."""
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
