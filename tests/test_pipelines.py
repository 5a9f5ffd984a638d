"""
Tests for the action pipelines — workspace, descriptor, build and deploy.
"""

from pathlib import Path

import pytest
import yaml

from tagwatch.core.errors import (
    AuthFailed,
    BuildFailed,
    DescriptorMissing,
    ManifestInvalid,
    ProjectNotFound,
    PullFailed,
    PushFailed,
    RecreateFailed,
    SourceUnavailable,
    SyncFailed,
)
from tagwatch.core.models.action import Receipt
from tagwatch.core.models.project import Project
from tagwatch.core.persistence.audit import AuditWriter, audit_path
from tagwatch.core.reliability.retry import RetryPolicy
from tagwatch.core.services.cd_pipeline import DeployPipeline
from tagwatch.core.services.ci_pipeline import BuildPipeline
from tagwatch.core.services.descriptor import (
    image_name,
    image_repository,
    update_image_references,
)
from tagwatch.core.services.workspace import Workspace
from tests.helpers import COMPOSE, RELEASE_FILES, checkout

CI_PROJECT = Project(identifier="demo", source="git@github.com:acme/demo.git", kind="ci")
CD_PROJECT = Project(identifier="demo", source="demo", kind="cd")


# ── Workspace ────────────────────────────────────────────────────────


class TestWorkspace:
    def test_removed_after_block(self, mock_registry, tmp_path: Path):
        mock_registry.get("git").set_handler("clone", checkout({"README": "hi"}))
        with Workspace(mock_registry, tmp_path, CI_PROJECT, "v1.0.0") as ws:
            assert (ws.path / "README").is_file()
        assert not ws.path.exists()

    def test_removed_on_error(self, mock_registry, tmp_path: Path):
        mock_registry.get("git").set_handler("clone", checkout({"README": "hi"}))
        ws = Workspace(mock_registry, tmp_path, CI_PROJECT, "v1.0.0")
        with pytest.raises(RuntimeError):
            with ws:
                raise RuntimeError("step failed")
        assert not ws.path.exists()

    def test_stale_checkout_discarded_first(self, mock_registry, tmp_path: Path):
        stale = tmp_path / "demo" / "stale.txt"
        stale.parent.mkdir()
        stale.write_text("old")
        seen = []

        def handler(ctx):
            seen.append(stale.exists())
            return checkout({})(ctx)

        mock_registry.get("git").set_handler("clone", handler)
        with Workspace(mock_registry, tmp_path, CI_PROJECT, "v1.0.0"):
            pass
        assert seen == [False]

    def test_clone_params(self, mock_registry, tmp_path: Path):
        git = mock_registry.get("git")
        with Workspace(mock_registry, tmp_path, CI_PROJECT, "v1.0.0"):
            pass
        call = git.calls_for("clone")[0]
        assert call.param("operation") == "clone-tag"
        assert call.param("tag") == "v1.0.0"
        assert call.param("url") == CI_PROJECT.source

    def test_clone_failure(self, mock_registry, tmp_path: Path):
        mock_registry.get("git").set_failure("clone", error="Remote branch v9 not found")
        with pytest.raises(SourceUnavailable, match="v9 not found"):
            with Workspace(mock_registry, tmp_path, CI_PROJECT, "v9"):
                pass
        assert not (tmp_path / "demo").exists()

    def test_clone_retried_from_clean_dir(self, mock_registry, tmp_path: Path):
        git = mock_registry.get("git")
        attempts = []

        def flaky(ctx):
            dest = Path(ctx.param("dest"))
            attempts.append(dest.exists())
            if len(attempts) == 1:
                dest.mkdir(parents=True)
                (dest / "partial").write_text("x")
                return Receipt.failure(adapter="git", action_id="clone", error="early EOF")
            return checkout({})(ctx)

        git.set_handler("clone", flaky)
        retry = RetryPolicy(attempts=2, base_delay=0, jitter=0, sleep=lambda s: None)
        with Workspace(mock_registry, tmp_path, CI_PROJECT, "v1.0.0", retry=retry):
            pass
        assert attempts == [False, False]


# ── Descriptor ───────────────────────────────────────────────────────


class TestDescriptor:
    @pytest.mark.parametrize(
        "ref, repo",
        [
            ("localhost:5000/demo:1.0.0", "localhost:5000/demo"),
            ("localhost:5000/demo", "localhost:5000/demo"),
            ("demo:latest", "demo"),
            ("demo", "demo"),
            ("registry.io/team/demo@sha256:abc", "registry.io/team/demo"),
        ],
    )
    def test_image_repository(self, ref, repo):
        assert image_repository(ref) == repo

    @pytest.mark.parametrize(
        "ref, name",
        [
            ("10.0.0.5:5000/demo:1.0.0", "demo"),
            ("${REGISTRY_URL}/demo:latest", "demo"),
            ("registry.io/team/demo@sha256:abc", "demo"),
            ("demo", "demo"),
        ],
    )
    def test_image_name(self, ref, name):
        assert image_name(ref) == name

    @pytest.mark.parametrize(
        "image", ["10.0.0.5:5000/demo:1.0.0", "${REGISTRY_URL}/demo:latest", "ghcr.io/acme/demo"]
    )
    def test_any_registry_prefix_matches(self, tmp_path: Path, image: str):
        path = tmp_path / "docker-compose.yml"
        path.write_text(f"services:\n  web:\n    image: {image}\n")
        assert update_image_references(path, "demo", "localhost:5000/demo:1.1.0") == ["web"]
        assert yaml.safe_load(path.read_text())["services"]["web"]["image"] == "localhost:5000/demo:1.1.0"

    def test_similar_names_left_alone(self, tmp_path: Path):
        path = tmp_path / "docker-compose.yml"
        path.write_text(
            "services:\n  app:\n    image: demo:1\n  worker:\n    image: localhost:5000/demo-worker:1\n"
        )
        assert update_image_references(path, "demo", "demo:2") == ["app"]
        data = yaml.safe_load(path.read_text())
        assert data["services"]["worker"]["image"] == "localhost:5000/demo-worker:1"

    def test_rewrites_matching_service_only(self, tmp_path: Path):
        path = tmp_path / "docker-compose.yml"
        path.write_text(COMPOSE)
        services = update_image_references(path, "demo", "localhost:5000/demo:1.1.0")
        data = yaml.safe_load(path.read_text())
        assert services == ["app"]
        assert data["services"]["app"]["image"] == "localhost:5000/demo:1.1.0"
        assert data["services"]["app"]["ports"] == ["8080:80"]
        assert data["services"]["db"]["image"] == "postgres:16"

    def test_bare_repository_matches(self, tmp_path: Path):
        path = tmp_path / "docker-compose.yml"
        path.write_text("services:\n  web:\n    image: demo:old\n")
        update_image_references(path, "demo", "localhost:5000/demo:2")
        assert yaml.safe_load(path.read_text())["services"]["web"]["image"] == "localhost:5000/demo:2"

    def test_no_matching_service(self, tmp_path: Path):
        path = tmp_path / "docker-compose.yml"
        path.write_text("services:\n  db:\n    image: postgres:16\n")
        with pytest.raises(DescriptorMissing, match="No service"):
            update_image_references(path, "demo", "demo:1")

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(DescriptorMissing):
            update_image_references(tmp_path / "docker-compose.yml", "demo", "demo:1")

    def test_no_services(self, tmp_path: Path):
        path = tmp_path / "docker-compose.yml"
        path.write_text("version: '3'\n")
        with pytest.raises(DescriptorMissing, match="services"):
            update_image_references(path, "demo", "demo:1")

    def test_unchanged_not_rewritten(self, tmp_path: Path):
        path = tmp_path / "docker-compose.yml"
        path.write_text(COMPOSE)
        update_image_references(path, "localhost:5000/demo", "localhost:5000/demo:1.0.0")
        assert path.read_text() == COMPOSE


# ── Build pipeline ───────────────────────────────────────────────────


class TestBuildPipeline:
    def _pipeline(self, registry, config, files=RELEASE_FILES, retry=None) -> BuildPipeline:
        registry.get("git").set_handler("clone", checkout(files))
        return BuildPipeline(registry, config, retry=retry)

    def test_full_run(self, mock_registry, config):
        report = self._pipeline(mock_registry, config).run(CI_PROJECT, "v1.2.0")

        assert report.steps == ["clone", "build", "push", "mkdir", "copy-descriptor", "copy-secrets"]
        assert report.skipped == ["copy-secrets"]
        assert report.artifact == "localhost:5000/demo-app:1.2.0"

        docker = mock_registry.get("docker")
        build = docker.calls_for("build")[0]
        assert build.param("image") == "localhost:5000/demo-app:1.2.0"
        assert build.param("dockerfile").endswith("docker/Dockerfile")
        assert docker.calls_for("push")[0].param("image") == "localhost:5000/demo-app:1.2.0"

        ssh = mock_registry.get("ssh")
        assert ssh.calls_for("mkdir")[0].param("remote_path") == "/home/ubuntu/demo-app"
        copy = ssh.calls_for("copy-descriptor")[0]
        assert copy.param("local_path").endswith("docker-compose.yml")
        assert copy.param("remote_path") == "/home/ubuntu/demo-app/"
        assert copy.param("host") == "runtime.example"

    def test_workspace_cleaned(self, mock_registry, config):
        self._pipeline(mock_registry, config).run(CI_PROJECT, "v1.2.0")
        assert not (config.workspaces_dir / "demo").exists()

    def test_secrets_synced_when_present(self, mock_registry, config):
        secrets = config.secrets_dir() / "demo-app"
        secrets.mkdir(parents=True)
        (secrets / ".env").write_text("TOKEN=x")

        report = self._pipeline(mock_registry, config).run(CI_PROJECT, "v1.2.0")
        assert report.skipped == []
        call = mock_registry.get("ssh").calls_for("copy-secrets")[0]
        assert call.param("recursive") is True
        assert call.param("local_path") == str(secrets)

    def test_missing_manifest(self, mock_registry, config):
        files = {k: v for k, v in RELEASE_FILES.items() if k != "publish.yml"}
        with pytest.raises(ManifestInvalid) as exc:
            self._pipeline(mock_registry, config, files).run(CI_PROJECT, "v1.2.0")
        assert exc.value.project == "demo"
        assert exc.value.version == "v1.2.0"
        assert mock_registry.get("docker").call_count == 0
        assert not (config.workspaces_dir / "demo").exists()

    def test_missing_dockerfile(self, mock_registry, config):
        files = {k: v for k, v in RELEASE_FILES.items() if k != "docker/Dockerfile"}
        with pytest.raises(BuildFailed, match="Dockerfile"):
            self._pipeline(mock_registry, config, files).run(CI_PROJECT, "v1.2.0")
        assert mock_registry.get("docker").call_count == 0

    def test_build_failure_stops_pipeline(self, mock_registry, config):
        mock_registry.get("docker").set_failure("build", error="COPY failed")
        with pytest.raises(BuildFailed, match="COPY failed"):
            self._pipeline(mock_registry, config).run(CI_PROJECT, "v1.2.0")
        assert mock_registry.get("docker").calls_for("push") == []

    def test_push_failure_blocks_sync(self, mock_registry, config):
        mock_registry.get("docker").set_failure("push", error="connection reset")
        with pytest.raises(PushFailed):
            self._pipeline(mock_registry, config).run(CI_PROJECT, "v1.2.0")
        assert mock_registry.get("ssh").call_count == 0
        assert not (config.workspaces_dir / "demo").exists()

    def test_push_retried(self, mock_registry, config):
        docker = mock_registry.get("docker")
        docker.queue_responses(
            "push",
            Receipt.failure(adapter="docker", action_id="push", error="503"),
        )
        retry = RetryPolicy(attempts=3, base_delay=0, jitter=0, sleep=lambda s: None)
        self._pipeline(mock_registry, config, retry=retry).run(CI_PROJECT, "v1.2.0")
        assert len(docker.calls_for("push")) == 2
        assert len(docker.calls_for("build")) == 1

    def test_missing_descriptor_is_sync_failure(self, mock_registry, config):
        files = {k: v for k, v in RELEASE_FILES.items() if k != "docker-compose.yml"}
        with pytest.raises(SyncFailed, match="docker-compose.yml"):
            self._pipeline(mock_registry, config, files).run(CI_PROJECT, "v1.2.0")
        assert mock_registry.get("docker").calls_for("push")

    def test_transfer_failure(self, mock_registry, config):
        mock_registry.get("ssh").set_failure("copy-descriptor", error="lost connection")
        with pytest.raises(SyncFailed, match="lost connection"):
            self._pipeline(mock_registry, config).run(CI_PROJECT, "v1.2.0")

    def test_no_runtime_host(self, mock_registry, config):
        config.ci.runtime_host = None
        with pytest.raises(SyncFailed, match="runtime host"):
            self._pipeline(mock_registry, config).run(CI_PROJECT, "v1.2.0")


# ── Deploy pipeline ──────────────────────────────────────────────────


class TestDeployPipeline:
    def _running(self, registry, *containers: str) -> None:
        registry.get("docker").set_response(
            "inspect",
            Receipt.success(adapter="docker", action_id="inspect", metadata={"containers": list(containers)}),
        )

    def test_full_run(self, mock_registry, config, deploy_project: Path):
        self._running(mock_registry, "deploy-demo-1 -> localhost:5000/demo:1.0.0")
        report = DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")

        assert report.steps == ["inspect", "pull", "recreate"]
        assert report.artifact == "localhost:5000/demo:1.1.0"
        data = yaml.safe_load((deploy_project / "docker-compose.yml").read_text())
        assert data["services"]["app"]["image"] == "localhost:5000/demo:1.1.0"

        docker = mock_registry.get("docker")
        assert docker.calls_for("inspect")[0].param("name_filter") == "demo-demo"
        pull = docker.calls_for("pull")[0]
        assert pull.param("operation") == "compose-pull"
        assert pull.action.cwd == str(deploy_project)
        assert docker.calls_for("recreate")[0].param("operation") == "compose-up"

    def test_descriptor_from_build_host(self, mock_registry, config, deploy_project: Path):
        (deploy_project / "docker-compose.yml").write_text(
            COMPOSE.replace("localhost:5000/demo:1.0.0", "10.0.0.5:5000/demo:1.0.0")
        )
        DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")
        data = yaml.safe_load((deploy_project / "docker-compose.yml").read_text())
        assert data["services"]["app"]["image"] == "localhost:5000/demo:1.1.0"
        assert data["services"]["db"]["image"] == "postgres:16"

    def test_audit_log(self, mock_registry, config, deploy_project: Path):
        self._running(mock_registry, "deploy-demo-1 -> localhost:5000/demo:1.0.0")
        DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")

        entries = AuditWriter(audit_path(deploy_project, "1.1.0")).read_all()
        assert [e.event for e in entries] == ["pre_deploy", "descriptor_updated", "pull", "recreate"]
        assert entries[0].containers == ["deploy-demo-1 -> localhost:5000/demo:1.0.0"]
        assert all(e.status == "ok" for e in entries)

    def test_audit_written_before_mutation(self, mock_registry, config, deploy_project: Path):
        log = audit_path(deploy_project, "1.1.0")
        seen = {}

        def inspect(ctx):
            seen["descriptor"] = (deploy_project / "docker-compose.yml").read_text()
            return Receipt.success(adapter="docker", action_id="inspect", metadata={"containers": []})

        def pull(ctx):
            seen["audit_before_pull"] = AuditWriter(log).entry_count()
            return Receipt.success(adapter="docker", action_id="pull")

        docker = mock_registry.get("docker")
        docker.set_handler("inspect", inspect)
        docker.set_handler("pull", pull)
        DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")

        assert seen["descriptor"] == COMPOSE
        assert seen["audit_before_pull"] == 2

    def test_login_with_credentials(self, mock_registry, config, deploy_project: Path):
        config.registry.username = "ci"
        config.registry.password = "pw"
        report = DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")
        assert report.steps[0] == "login"
        login = mock_registry.get("docker").calls_for("login")[0]
        assert login.param("registry") == "localhost:5000"
        assert login.param("password") == "pw"

    def test_login_failure(self, mock_registry, config, deploy_project: Path):
        config.registry.username = "ci"
        config.registry.password = "wrong"
        mock_registry.get("docker").set_failure("login", error="unauthorized")
        with pytest.raises(AuthFailed):
            DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")
        assert not audit_path(deploy_project, "1.1.0").exists()
        assert (deploy_project / "docker-compose.yml").read_text() == COMPOSE

    def test_project_not_found(self, mock_registry, config):
        with pytest.raises(ProjectNotFound) as exc:
            DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")
        assert exc.value.permanent
        assert mock_registry.get("docker").call_count == 0

    def test_descriptor_missing(self, mock_registry, config, deploy_project: Path):
        (deploy_project / "docker-compose.yml").unlink()
        with pytest.raises(DescriptorMissing):
            DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")
        assert mock_registry.get("docker").call_count == 0

    def test_descriptor_without_project_image(self, mock_registry, config, deploy_project: Path):
        (deploy_project / "docker-compose.yml").write_text("services:\n  db:\n    image: postgres\n")
        with pytest.raises(DescriptorMissing):
            DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")
        events = [e.event for e in AuditWriter(audit_path(deploy_project, "1.1.0")).read_all()]
        assert events == ["pre_deploy", "descriptor_updated"]
        assert mock_registry.get("docker").calls_for("pull") == []

    def test_pull_failure(self, mock_registry, config, deploy_project: Path):
        mock_registry.get("docker").set_failure("pull", error="manifest unknown")
        with pytest.raises(PullFailed, match="manifest unknown"):
            DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")
        docker = mock_registry.get("docker")
        assert docker.calls_for("recreate") == []
        last = AuditWriter(audit_path(deploy_project, "1.1.0")).read_all()[-1]
        assert last.event == "pull"
        assert last.status == "failed"

    def test_recreate_failure(self, mock_registry, config, deploy_project: Path):
        mock_registry.get("docker").set_failure("recreate", error="port is already allocated")
        with pytest.raises(RecreateFailed):
            DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")

    def test_inspect_failure_still_audited(self, mock_registry, config, deploy_project: Path):
        mock_registry.get("docker").set_failure("inspect", error="daemon not running")
        DeployPipeline(mock_registry, config).run(CD_PROJECT, "1.1.0")
        first = AuditWriter(audit_path(deploy_project, "1.1.0")).read_all()[0]
        assert first.event == "pre_deploy"
        assert first.status == "failed"
        assert first.error == "daemon not running"

    def test_rerun_appends_to_audit(self, mock_registry, config, deploy_project: Path):
        pipeline = DeployPipeline(mock_registry, config)
        pipeline.run(CD_PROJECT, "1.1.0")
        pipeline.run(CD_PROJECT, "1.1.0")
        assert AuditWriter(audit_path(deploy_project, "1.1.0")).entry_count() == 8
