"""
ProcessedState — what has already been shipped for a project.

One record per project, stored as ``<state_dir>/<project>.json``.
``last_version`` only ever moves after a pipeline finished every step;
a crash or a failed step leaves the previous value in place so the
next poll retries the same target.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ProcessedState(BaseModel):
    """Last successfully processed version of one project."""

    schema_version: int = 1

    project: str
    last_version: str | None = None
    previous_version: str | None = None

    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    @property
    def empty(self) -> bool:
        return not self.last_version

    def advance(self, version: str) -> None:
        """Record a newly completed version."""
        if version != self.last_version:
            self.previous_version = self.last_version
        self.last_version = version
        self.updated_at = _now_iso()
