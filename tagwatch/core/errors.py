"""
Error taxonomy.

Adapters report failures as receipts; the services that interpret those
receipts raise one of these. Everything here is contained by the poll
loop within a single project's cycle.
"""

from __future__ import annotations


class TagwatchError(Exception):
    """Base class for all tagwatch errors.

    Attributes:
        project: Project identifier the error belongs to (if known).
        version: Target version tag (if known).
        permanent: True when retrying cannot help until someone edits the
            project (bad manifest, missing descriptor). The poll loop feeds
            these into the per-project circuit breaker.
    """

    permanent = False

    def __init__(self, message: str, project: str | None = None, version: str | None = None):
        super().__init__(message)
        self.message = message
        self.project = project
        self.version = version

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigError(TagwatchError):
    """Runner configuration or project list is missing or invalid."""


class SourceUnavailable(TagwatchError):
    """A tag source could not reach its remote (network, auth, timeout)."""


class PipelineError(TagwatchError):
    """A pipeline step failed; state must not advance."""


class ManifestInvalid(PipelineError):
    """The tagged revision has no usable publish manifest."""

    permanent = True


class DescriptorMissing(PipelineError):
    """The deployment descriptor is absent or names no matching service."""

    permanent = True


class ProjectNotFound(PipelineError):
    """The runtime host has no deployment directory for the project."""

    permanent = True


class BuildFailed(PipelineError):
    """Image build failed."""


class PushFailed(PipelineError):
    """Image push to the registry failed."""


class SyncFailed(PipelineError):
    """Config/secrets transfer to the runtime host failed."""


class PullFailed(PipelineError):
    """Pulling the new image on the runtime host failed."""


class RecreateFailed(PipelineError):
    """Recreating the running service failed."""


class AuthFailed(PipelineError):
    """Registry or runtime-host credentials were rejected."""
