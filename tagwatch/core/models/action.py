"""
Action and Receipt models — the execution contract.

Pipelines describe every side effect as an Action (clone, build, push,
scp, compose pull, ...). Adapters carry them out and answer with a
Receipt. Adapters never raise: a failed git fetch or docker push is a
Receipt with status='failed', and it is up to the pipeline to decide
what that failure means.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A requested side effect, dispatched through the adapter registry."""

    id: str                         # step identifier, e.g. "build", "push"
    adapter: str                    # which adapter handles this
    params: dict[str, Any] = Field(default_factory=dict)
    for_project: str | None = None  # project identifier (None = runner-wide)
    cwd: str | None = None          # working directory for the adapter


class Receipt(BaseModel):
    """Result of an adapter execution.

    ``output`` holds stdout for command-style adapters and the response
    body for HTTP ones. ``metadata`` carries anything structured the
    caller may want (return codes, HTTP status, parsed payloads).
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0
    attempts: int = 1

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def retryable(self) -> bool:
        """False when the adapter knows another try cannot succeed."""
        return self.metadata.get("retryable", True) is not False

    def summary(self) -> str:
        """One-line description for logs and notifications."""
        if self.failed:
            return f"{self.action_id} failed: {self.error or 'unknown error'}"
        if self.status == "skipped":
            return f"{self.action_id} skipped: {self.output}"
        return f"{self.action_id} ok ({self.duration_ms}ms)"

    # ── Constructors ────────────────────────────────────────────

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        retryable: bool | None = None,
        **kwargs: Any,
    ) -> Receipt:
        """Failed receipt; ``retryable=False`` is recorded in the metadata."""
        receipt = cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)
        if retryable is not None:
            receipt.metadata["retryable"] = retryable
        return receipt

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Step deliberately not run; ``reason`` goes into ``output``."""
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
