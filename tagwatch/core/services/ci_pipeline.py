"""
Build pipeline — tagged revision → image → registry → runtime host.

Steps, each a hard gate:

    clone tag → read publish.yml → docker build → docker push
        → mkdir on runtime host → copy descriptor → copy secrets

Config reaches the runtime host only after the image is in the
registry, so the host never references an image it cannot pull.
"""

from __future__ import annotations

import logging
from pathlib import Path

from tagwatch.adapters.registry import AdapterRegistry
from tagwatch.core.config.manifest_loader import load_manifest
from tagwatch.core.errors import BuildFailed, PushFailed, SyncFailed
from tagwatch.core.models.action import Action, Receipt
from tagwatch.core.models.config import RunnerConfig
from tagwatch.core.models.project import Project
from tagwatch.core.models.version import image_tag
from tagwatch.core.reliability.retry import RetryPolicy
from tagwatch.core.services.pipeline import Pipeline, PipelineReport
from tagwatch.core.services.workspace import Workspace

logger = logging.getLogger(__name__)


class BuildPipeline(Pipeline):
    """CI variant of the action pipeline."""

    name = "build"

    def __init__(
        self,
        registry: AdapterRegistry,
        config: RunnerConfig,
        retry: RetryPolicy | None = None,
    ):
        super().__init__(registry, retry)
        self._config = config

    def _run(self, project: Project, version: str, report: PipelineReport) -> None:
        ci = self._config.ci
        timeouts = self._config.timeouts

        with Workspace(
            self._registry,
            self._config.workspaces_dir,
            project,
            version,
            retry=self._retry,
            timeout=timeouts.git,
        ) as ws:
            if ws.receipt is not None:
                report.add(ws.receipt)

            manifest = load_manifest(ws.path, ci.manifest_file)
            name = manifest.project_name
            image = f"{self._config.registry.address}/{name}:{image_tag(version)}"
            report.artifact = image

            dockerfile = ws.path / ci.dockerfile
            if not dockerfile.is_file():
                raise BuildFailed(f"{ci.dockerfile} not found in tagged revision")

            self._step(
                report,
                Action(
                    id="build",
                    adapter="docker",
                    params={
                        "operation": "build",
                        "image": image,
                        "dockerfile": str(dockerfile),
                        "context_dir": str(ws.path),
                        "timeout": timeouts.build,
                    },
                    for_project=project.identifier,
                    cwd=str(ws.path),
                ),
                BuildFailed,
            )
            self._step(
                report,
                Action(
                    id="push",
                    adapter="docker",
                    params={"operation": "push", "image": image, "timeout": timeouts.push},
                    for_project=project.identifier,
                ),
                PushFailed,
                remote=True,
            )
            self._sync(project, name, ws.path, report)

    # ── Runtime host sync ───────────────────────────────────────

    def _sync(self, project: Project, name: str, workspace: Path, report: PipelineReport) -> None:
        ci = self._config.ci
        if not ci.runtime_host:
            raise SyncFailed("No runtime host configured")

        remote_dir = f"{ci.remote_base_dir.rstrip('/')}/{name}"
        descriptor = workspace / ci.descriptor_file
        if not descriptor.is_file():
            raise SyncFailed(f"{ci.descriptor_file} not found in tagged revision")

        mkdir = self._ssh(project, "mkdir", remote_path=remote_dir)
        self._step(report, mkdir, SyncFailed, remote=True)
        self._step(
            report,
            self._ssh(
                project,
                "copy",
                action_id="copy-descriptor",
                local_path=str(descriptor),
                remote_path=f"{remote_dir}/",
            ),
            SyncFailed,
            remote=True,
        )

        secrets = self._config.secrets_dir() / name
        if not secrets.is_dir():
            logger.info("%s: no secrets at %s, skipping secrets sync", project, secrets)
            report.add(Receipt.skip("ssh", "copy-secrets", reason=f"{secrets} does not exist"))
            return
        self._step(
            report,
            self._ssh(
                project,
                "copy",
                action_id="copy-secrets",
                local_path=str(secrets),
                remote_path=f"{remote_dir}/",
                recursive=True,
            ),
            SyncFailed,
            remote=True,
        )

    def _ssh(
        self,
        project: Project,
        operation: str,
        action_id: str | None = None,
        **params,
    ) -> Action:
        ci = self._config.ci
        return Action(
            id=action_id or operation,
            adapter="ssh",
            params={
                "operation": operation,
                "host": ci.runtime_host,
                "user": ci.runtime_user,
                "timeout": self._config.timeouts.ssh,
                **params,
            },
            for_project=project.identifier,
        )
