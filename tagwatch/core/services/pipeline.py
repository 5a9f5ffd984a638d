"""
Pipeline base — ordered, all-or-nothing sequences of adapter actions.

A pipeline either returns a PipelineReport (every step succeeded) or
raises a PipelineError subclass naming the step that failed. It never
touches the state store: advancing state is the poll loop's job, and
only after ``run`` returned normally.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from tagwatch.adapters.registry import AdapterRegistry
from tagwatch.core.errors import PipelineError, TagwatchError
from tagwatch.core.models.action import Action, Receipt
from tagwatch.core.models.project import Project
from tagwatch.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class PipelineReport:
    """Receipts of one successful pipeline run."""

    project: str
    version: str
    receipts: list[Receipt] = field(default_factory=list)
    artifact: str = ""              # image reference built or deployed
    duration_ms: int = 0

    def add(self, receipt: Receipt) -> Receipt:
        self.receipts.append(receipt)
        return receipt

    @property
    def steps(self) -> list[str]:
        return [r.action_id for r in self.receipts]

    @property
    def skipped(self) -> list[str]:
        return [r.action_id for r in self.receipts if r.status == "skipped"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "version": self.version,
            "artifact": self.artifact,
            "duration_ms": self.duration_ms,
            "steps": [r.model_dump(mode="json") for r in self.receipts],
        }


class Pipeline(ABC):
    """An ActionPipeline variant.

    Subclasses implement ``_run``; ``run`` times it and makes sure any
    error that escapes carries the project and version.
    """

    name = "pipeline"

    def __init__(self, registry: AdapterRegistry, retry: RetryPolicy | None = None):
        self._registry = registry
        self._retry = retry or RetryPolicy.none()

    def run(self, project: Project, version: str) -> PipelineReport:
        report = PipelineReport(project=project.identifier, version=version)
        start = time.monotonic()
        logger.info("%s %s@%s: starting", self.name, project, version)
        try:
            self._run(project, version, report)
        except TagwatchError as e:
            e.project = e.project or project.identifier
            e.version = e.version or version
            raise
        except OSError as e:
            raise PipelineError(f"{self.name} I/O error: {e}", project.identifier, version) from e
        report.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "%s %s@%s: done in %.1fs (%s)",
            self.name,
            project,
            version,
            report.duration_ms / 1000,
            " → ".join(report.steps),
        )
        return report

    @abstractmethod
    def _run(self, project: Project, version: str, report: PipelineReport) -> None:
        """Execute every step, appending receipts to ``report``."""

    def _step(
        self,
        report: PipelineReport,
        action: Action,
        error: type[PipelineError],
        *,
        remote: bool = False,
    ) -> Receipt:
        """Run one action; a failed receipt aborts the pipeline with ``error``.

        ``remote`` steps go through the retry policy.
        """
        receipt = self._registry.execute_action(action, retry=self._retry if remote else None)
        report.add(receipt)
        if receipt.failed:
            logger.warning("%s %s: %s", self.name, action.for_project, receipt.summary())
            raise error(f"{action.id} failed: {receipt.error or 'unknown error'}")
        logger.debug("%s %s: %s", self.name, action.for_project, receipt.summary())
        return receipt
