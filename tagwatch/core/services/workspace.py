"""
Workspace — scoped checkout of one tagged revision.

    with Workspace(registry, root, project, "v1.2.0") as ws:
        build_from(ws.path)

Any directory left behind by an earlier (possibly killed) run is
discarded before cloning, and the checkout is removed when the block
exits, whether it succeeded or raised.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from tagwatch.adapters.registry import AdapterRegistry
from tagwatch.core.errors import SourceUnavailable
from tagwatch.core.models.action import Action, Receipt
from tagwatch.core.models.project import Project
from tagwatch.core.persistence.state_store import record_name
from tagwatch.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)


class Workspace:
    """Ephemeral checkout of ``project`` at ``version``."""

    def __init__(
        self,
        registry: AdapterRegistry,
        root: Path,
        project: Project,
        version: str,
        retry: RetryPolicy | None = None,
        timeout: int = 120,
    ):
        self._registry = registry
        self._project = project
        self._version = version
        self._retry = retry or RetryPolicy.none()
        self._timeout = timeout
        self.path = Path(root) / record_name(project.identifier)
        self.receipt: Receipt | None = None

    def __enter__(self) -> Workspace:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # each try starts from an empty directory
        receipt = self._retry.run(self._clone_once, label=f"clone {self._project}@{self._version}")
        self.receipt = receipt
        if receipt.failed:
            self.discard()
            raise SourceUnavailable(
                f"Cannot check out {self._version}: {receipt.error}",
                project=self._project.identifier,
                version=self._version,
            )
        logger.debug("Checked out %s@%s into %s", self._project, self._version, self.path)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.discard()

    def discard(self) -> None:
        """Remove the checkout directory if it exists."""
        if self.path.exists():
            shutil.rmtree(self.path, ignore_errors=True)
            logger.debug("Discarded workspace %s", self.path)

    def _clone_once(self) -> Receipt:
        self.discard()
        action = Action(
            id="clone",
            adapter="git",
            params={
                "operation": "clone-tag",
                "url": self._project.source,
                "tag": self._version,
                "dest": str(self.path),
                "timeout": self._timeout,
            },
            for_project=self._project.identifier,
        )
        return self._registry.execute_action(action)
