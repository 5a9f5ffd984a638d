"""
Deploy pipeline — registry tag → updated descriptor → recreated service.

Steps, each a hard gate:

    docker login → locate project dir and descriptor
        → audit running containers → rewrite image reference
        → docker compose pull → docker compose up -d

The audit record of what was running is written before anything is
changed. The descriptor is not restored when a later step fails: the
next cycle retries the same target and rewrites it to the same value.
"""

from __future__ import annotations

import logging
from pathlib import Path

from tagwatch.adapters.registry import AdapterRegistry
from tagwatch.core.errors import (
    AuthFailed,
    DescriptorMissing,
    PipelineError,
    ProjectNotFound,
    PullFailed,
    RecreateFailed,
)
from tagwatch.core.models.action import Action
from tagwatch.core.models.config import RunnerConfig
from tagwatch.core.models.project import Project
from tagwatch.core.persistence.audit import AuditEntry, AuditWriter, audit_path
from tagwatch.core.reliability.retry import RetryPolicy
from tagwatch.core.services.descriptor import update_image_references
from tagwatch.core.services.pipeline import Pipeline, PipelineReport

logger = logging.getLogger(__name__)


class DeployPipeline(Pipeline):
    """CD variant of the action pipeline."""

    name = "deploy"

    def __init__(
        self,
        registry: AdapterRegistry,
        config: RunnerConfig,
        retry: RetryPolicy | None = None,
    ):
        super().__init__(registry, retry)
        self._config = config

    def project_dir(self, project: Project) -> Path:
        return self._config.deploy_base_dir() / project.identifier

    def _run(self, project: Project, version: str, report: PipelineReport) -> None:
        self._login(project, report)

        project_dir = self.project_dir(project)
        if not project_dir.is_dir():
            raise ProjectNotFound(f"Project directory not found at {project_dir}")
        descriptor = project_dir / self._config.cd.descriptor_file
        if not descriptor.is_file():
            raise DescriptorMissing(f"{descriptor.name} not found at {descriptor}")

        registry_address = self._config.registry.address
        reference = f"{registry_address}/{project.source}:{version}"
        report.artifact = reference

        audit = AuditWriter(audit_path(project_dir, version))
        self._record_running(project, version, project_dir, audit, report)

        try:
            services = update_image_references(descriptor, project.source, reference)
        except DescriptorMissing as e:
            self._audit(audit, project, version, "descriptor_updated", error=e.message)
            raise
        self._audit(
            audit,
            project,
            version,
            "descriptor_updated",
            context={"services": services, "image": reference},
        )

        self._compose(project, "pull", "compose-pull", descriptor, audit, report, PullFailed)
        self._compose(project, "recreate", "compose-up", descriptor, audit, report, RecreateFailed)

    # ── Steps ───────────────────────────────────────────────────

    def _login(self, project: Project, report: PipelineReport) -> None:
        registry = self._config.registry
        if not registry.has_credentials:
            logger.debug("%s: no registry credentials configured, skipping login", project)
            return
        self._step(
            report,
            Action(
                id="login",
                adapter="docker",
                params={
                    "operation": "login",
                    "registry": registry.address,
                    "username": registry.username,
                    "password": registry.password or "",
                    "timeout": self._config.timeouts.http,
                },
                for_project=project.identifier,
            ),
            AuthFailed,
        )

    def _compose(
        self,
        project: Project,
        step: str,
        operation: str,
        descriptor: Path,
        audit: AuditWriter,
        report: PipelineReport,
        error: type[PipelineError],
    ) -> None:
        timeouts = self._config.timeouts
        action = Action(
            id=step,
            adapter="docker",
            params={
                "operation": operation,
                "compose_file": str(descriptor),
                "timeout": timeouts.pull if step == "pull" else timeouts.compose,
            },
            for_project=project.identifier,
            cwd=str(descriptor.parent),
        )
        try:
            # only the pull talks to the registry
            self._step(report, action, error, remote=step == "pull")
        except PipelineError as e:
            self._audit(audit, project, report.version, step, error=e.message)
            raise
        self._audit(audit, project, report.version, step)

    def _record_running(
        self,
        project: Project,
        version: str,
        project_dir: Path,
        audit: AuditWriter,
        report: PipelineReport,
    ) -> None:
        """Write the pre-deployment container list to the audit log."""
        # compose names containers <dir>-<service>-<n>
        action = Action(
            id="inspect",
            adapter="docker",
            params={"operation": "ps", "name_filter": f"{project_dir.name}-{project.identifier}"},
            for_project=project.identifier,
        )
        receipt = self._registry.execute_action(action)
        report.add(receipt)
        if receipt.failed:
            logger.warning("%s: cannot list running containers: %s", project, receipt.error)
        self._audit(
            audit,
            project,
            version,
            "pre_deploy",
            containers=receipt.metadata.get("containers", []),
            error=receipt.error if receipt.failed else None,
        )

    def _audit(
        self,
        audit: AuditWriter,
        project: Project,
        version: str,
        event: str,
        containers: list[str] | None = None,
        error: str | None = None,
        context: dict | None = None,
    ) -> None:
        entry = AuditEntry(
            project=project.identifier,
            version=version,
            event=event,
            status="failed" if error else "ok",
            containers=containers or [],
            error=error,
            context=context or {},
        )
        try:
            audit.write(entry)
        except OSError as e:
            raise PipelineError(f"Cannot write audit log {audit.path}: {e}") from e
