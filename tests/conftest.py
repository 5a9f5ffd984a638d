"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from tagwatch.adapters.mock import MockAdapter
from tagwatch.adapters.registry import AdapterRegistry
from tagwatch.core.models.config import (
    CdSettings,
    CiSettings,
    RegistrySettings,
    RetrySettings,
    RunnerConfig,
)
from tests.helpers import COMPOSE

ADAPTER_NAMES = ("git", "docker", "ssh", "registry_api", "shell")


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def config(tmp_path: Path) -> RunnerConfig:
    """Runner config rooted in tmp_path, no retries, no credentials."""
    deploy_dir = tmp_path / "deploy"
    deploy_dir.mkdir()
    return RunnerConfig(
        base_dir=tmp_path / "tagwatch",
        registry=RegistrySettings(host="localhost", port=5000),
        retry=RetrySettings(attempts=1),
        ci=CiSettings(runtime_host="runtime.example", secrets_dir=tmp_path / "secrets"),
        cd=CdSettings(deploy_base_dir=deploy_dir),
    )


@pytest.fixture
def mock_registry() -> AdapterRegistry:
    """Adapter registry where every real adapter name is a MockAdapter."""
    registry = AdapterRegistry()
    for name in ADAPTER_NAMES:
        registry.register(MockAdapter(adapter_name=name))
    return registry


@pytest.fixture
def deploy_project(config: RunnerConfig) -> Path:
    """Runtime directory for project 'demo' with a compose descriptor."""
    project_dir = config.deploy_base_dir() / "demo"
    project_dir.mkdir()
    (project_dir / "docker-compose.yml").write_text(COMPOSE)
    return project_dir


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo any setup_logging() call made by a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
