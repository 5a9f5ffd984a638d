"""
Project and manifest models.

A Project is one line of a project list file: a Git remote for the
build runner, an image repository name for the deployment poller.
The Manifest is the ``publish.yml`` that ships inside each tagged
revision and names the deployable unit.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ProjectKind = Literal["ci", "cd"]


class Project(BaseModel):
    """A monitored project. Never mutated after it is read."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    source: str
    kind: ProjectKind = "ci"

    def __str__(self) -> str:
        return self.identifier


class Manifest(BaseModel):
    """Per-project release manifest (``publish.yml``).

    Only ``project_name`` is required by the build pipeline. The other
    keys belong to the release tool and are carried so a manifest that is
    valid for one is valid for both.
    """

    project_name: str
    pre_publish_steps: list[str] = Field(default_factory=list)
    post_publish_steps: list[str] = Field(default_factory=list)

    development_branch: str | None = None
    main_branch: str | None = None
    version_file: str | None = None
    version_bump_strategy: Literal["major", "minor", "patch"] | None = None
    delete_branch_after_merge: bool = False
    use_current_branch: bool = False
    default_to_dry_run: bool = False

    @field_validator("project_name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("project_name must not be empty")
        return value

    @field_validator("pre_publish_steps", "post_publish_steps", mode="before")
    @classmethod
    def _steps_as_list(cls, value: object) -> object:
        # A key with no items parses as None in YAML
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value
