"""
Tag sources — "what is the latest released version of this project?"

Two implementations share one contract:

    latest(project) -> str | None

``None`` means the project has no release yet, a normal steady state.
A remote that cannot be reached raises ``SourceUnavailable``; the poll
loop treats that as "no change this cycle" and never confuses it with
an empty tag list.
"""

from __future__ import annotations

import logging
import re
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from tagwatch.adapters.registry import AdapterRegistry
from tagwatch.core.errors import SourceUnavailable
from tagwatch.core.models.action import Action, Receipt
from tagwatch.core.models.config import RegistrySettings
from tagwatch.core.models.project import Project
from tagwatch.core.models.version import latest_version
from tagwatch.core.persistence.state_store import record_name
from tagwatch.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)


class TagSource(ABC):
    """Latest version lookup for one kind of project."""

    def __init__(self, tag_pattern: str | None = None):
        self._pattern = re.compile(tag_pattern) if tag_pattern else None

    @abstractmethod
    def tags(self, project: Project) -> list[str]:
        """Every tag the remote knows for ``project``.

        Raises:
            SourceUnavailable: If the remote cannot be queried.
        """

    def latest(self, project: Project) -> str | None:
        """Highest tag under version-sort, or None if there is none."""
        tags = self.tags(project)
        latest = latest_version(tags, self._pattern)
        logger.debug("%s: %d tag(s), latest=%s", project, len(tags), latest)
        return latest


class GitTagSource(TagSource):
    """Tags of a Git remote, read through a local bare mirror.

    The mirror only saves bandwidth. Deleting it costs one re-clone on
    the next query and nothing else.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        mirrors_dir: Path,
        retry: RetryPolicy | None = None,
        tag_pattern: str | None = None,
        timeout: int = 120,
    ):
        super().__init__(tag_pattern)
        self._registry = registry
        self._mirrors_dir = Path(mirrors_dir)
        self._retry = retry
        self._timeout = timeout

    def mirror_path(self, project: Project) -> Path:
        return self._mirrors_dir / f"{record_name(project.identifier)}.git"

    def tags(self, project: Project) -> list[str]:
        path = self.mirror_path(project)

        if not self._mirror_usable(project, path):
            self._create_mirror(project, path)
        else:
            fetch = self._git(project, "fetch-tags", path=str(path), retry=self._retry)
            if fetch.failed:
                raise SourceUnavailable(
                    f"Cannot fetch tags from {project.source}: {fetch.error}",
                    project=project.identifier,
                )

        listing = self._git(project, "list-tags", path=str(path))
        if listing.failed:
            raise SourceUnavailable(
                f"Cannot list tags of {path}: {listing.error}",
                project=project.identifier,
            )
        return list(listing.metadata.get("tags", []))

    def _mirror_usable(self, project: Project, path: Path) -> bool:
        if not path.is_dir():
            return False
        verify = self._git(project, "verify-mirror", path=str(path))
        if verify.ok:
            return True
        logger.warning("Mirror %s is unusable (%s), re-creating it", path, verify.error)
        shutil.rmtree(path, ignore_errors=True)
        return False

    def _create_mirror(self, project: Project, path: Path) -> None:
        logger.info("Creating mirror of %s at %s", project.source, path)
        path.parent.mkdir(parents=True, exist_ok=True)
        receipt = self._git(
            project,
            "mirror",
            url=project.source,
            path=str(path),
            retry=self._retry,
        )
        if receipt.failed:
            # a half-written mirror would fail verification forever
            shutil.rmtree(path, ignore_errors=True)
            raise SourceUnavailable(
                f"Cannot mirror {project.source}: {receipt.error}",
                project=project.identifier,
            )

    def _git(
        self,
        project: Project,
        operation: str,
        retry: RetryPolicy | None = None,
        **params,
    ) -> Receipt:
        action = Action(
            id=operation,
            adapter="git",
            params={"operation": operation, "timeout": self._timeout, **params},
            for_project=project.identifier,
        )
        return self._registry.execute_action(action, retry=retry)


class RegistryTagSource(TagSource):
    """Tags of an image repository in a private registry."""

    def __init__(
        self,
        registry: AdapterRegistry,
        settings: RegistrySettings,
        retry: RetryPolicy | None = None,
        tag_pattern: str | None = None,
        timeout: int = 15,
    ):
        super().__init__(tag_pattern)
        self._registry = registry
        self._settings = settings
        self._retry = retry
        self._timeout = timeout

    def tags(self, project: Project) -> list[str]:
        params = {
            "operation": "list-tags",
            "base_url": self._settings.base_url,
            "repository": project.source,
            "timeout": self._timeout,
        }
        if self._settings.has_credentials:
            params["username"] = self._settings.username
            params["password"] = self._settings.password or ""

        action = Action(
            id="list-tags",
            adapter="registry_api",
            params=params,
            for_project=project.identifier,
        )
        receipt = self._registry.execute_action(action, retry=self._retry)
        if receipt.failed:
            raise SourceUnavailable(
                receipt.error or "registry query failed",
                project=project.identifier,
            )
        if receipt.metadata.get("not_found"):
            logger.debug("%s: repository not in registry yet", project)
        return list(receipt.metadata.get("tags") or [])
