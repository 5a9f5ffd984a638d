"""
Domain models — Pydantic types for tagwatch.

All models are re-exported here for convenient access:

    from tagwatch.core.models import Project, Manifest, ProcessedState, Receipt
"""

from tagwatch.core.models.action import Action, Receipt
from tagwatch.core.models.config import (
    CdSettings,
    CiSettings,
    NotifySettings,
    PollSettings,
    RegistrySettings,
    RetrySettings,
    RunnerConfig,
    TimeoutSettings,
)
from tagwatch.core.models.project import Manifest, Project, ProjectKind
from tagwatch.core.models.state import ProcessedState
from tagwatch.core.models.version import (
    image_tag,
    latest_version,
    sort_versions,
    version_key,
)

__all__ = [
    # action.py
    "Action",
    # config.py
    "CdSettings",
    "CiSettings",
    "NotifySettings",
    "PollSettings",
    "RegistrySettings",
    "RetrySettings",
    "RunnerConfig",
    "TimeoutSettings",
    # project.py
    "Manifest",
    # state.py
    "ProcessedState",
    "Project",
    "ProjectKind",
    "Receipt",
    # version.py
    "image_tag",
    "latest_version",
    "sort_versions",
    "version_key",
]
