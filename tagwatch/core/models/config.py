"""
Runner configuration model — loaded from tagwatch.yml.

Every field has a default so that a runner can start from CLI flags
alone; the file only needs the keys that differ.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

NotifyChannel = Literal["chat", "mail"]


class PollSettings(BaseModel):
    interval: float = Field(default=60.0, gt=0)
    workers: int = Field(default=1, ge=1)
    failure_threshold: int = Field(default=5, ge=1)
    cooldown: float = Field(default=3600.0, ge=0)


class RetrySettings(BaseModel):
    attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=2.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)


class TimeoutSettings(BaseModel):
    """Upper bounds, in seconds, for every external call."""

    git: int = 120
    http: int = 15
    build: int = 1800
    push: int = 900
    pull: int = 900
    ssh: int = 120
    compose: int = 600
    notify: int = 30


class RegistrySettings(BaseModel):
    host: str = "localhost"
    port: int = 5000
    scheme: Literal["http", "https"] = "http"
    username: str | None = None
    password: str | None = Field(default=None, repr=False)

    @property
    def address(self) -> str:
        """``host:port`` as used in image references."""
        return f"{self.host}:{self.port}"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.address}"

    @property
    def has_credentials(self) -> bool:
        return bool(self.username)


def _validate_pattern(value: str | None) -> str | None:
    if value:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid tag_pattern {value!r}: {e}") from e
    return value or None


class CiSettings(BaseModel):
    """Build runner: Git tags → image → registry → runtime host."""

    projects_file: Path | None = None
    runtime_host: str | None = None
    runtime_user: str = "ubuntu"
    runtime_base_dir: str | None = None
    ssh_key: Path | None = None
    known_hosts: Path | None = None
    secrets_dir: Path | None = None
    dockerfile: str = "docker/Dockerfile"
    manifest_file: str = "publish.yml"
    descriptor_file: str = "docker-compose.yml"
    tag_pattern: str | None = None

    check_pattern = field_validator("tag_pattern")(_validate_pattern)

    @property
    def remote_base_dir(self) -> str:
        return self.runtime_base_dir or f"/home/{self.runtime_user}"


class CdSettings(BaseModel):
    """Deployment poller: registry tags → pull → recreate."""

    projects_file: Path | None = None
    deploy_base_dir: Path | None = None
    descriptor_file: str = "docker-compose.yml"
    tag_pattern: str | None = None

    check_pattern = field_validator("tag_pattern")(_validate_pattern)


class NotifySettings(BaseModel):
    enabled: bool = True
    command: str = "notify"
    channels: list[NotifyChannel] = Field(default_factory=lambda: ["chat"])


class RunnerConfig(BaseModel):
    """Root configuration for both runners."""

    base_dir: Path = Field(default_factory=lambda: Path.home() / ".tagwatch")
    log_file: Path | None = None

    poll: PollSettings = Field(default_factory=PollSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    ci: CiSettings = Field(default_factory=CiSettings)
    cd: CdSettings = Field(default_factory=CdSettings)
    notify: NotifySettings = Field(default_factory=NotifySettings)

    @field_validator("base_dir", mode="after")
    @classmethod
    def _expand_base(cls, value: Path) -> Path:
        return value.expanduser()

    # ── Derived locations ───────────────────────────────────────

    @property
    def mirrors_dir(self) -> Path:
        return self.base_dir / "repos"

    @property
    def workspaces_dir(self) -> Path:
        return self.base_dir / "clones"

    def state_dir(self, kind: str) -> Path:
        return self.base_dir / "state" / kind

    @property
    def legacy_state_dir(self) -> Path:
        """Where the shell runners kept their plain-text state files."""
        return self.base_dir / "state"

    def projects_file(self, kind: str) -> Path:
        settings = self.ci if kind == "ci" else self.cd
        if settings.projects_file is not None:
            return settings.projects_file.expanduser()
        name = "projects.list" if kind == "ci" else "projects-prod.list"
        return self.base_dir / name

    def secrets_dir(self) -> Path:
        return (self.ci.secrets_dir or self.base_dir / "secrets").expanduser()

    def deploy_base_dir(self) -> Path:
        return (self.cd.deploy_base_dir or Path.home()).expanduser()

    def default_log_file(self, kind: str) -> Path:
        name = "ci_runner.log" if kind == "ci" else "poller.log"
        return self.base_dir / "logs" / name
