"""
Runner wiring — assemble a PollLoop for each side of the system.

    build_ci_runner(config)      Git tags → build → push → sync
    build_deploy_poller(config)  registry tags → pull → recreate

Both fail fast with ConfigError when the configuration cannot work at
all (no project list, no runtime host). Problems that can fix
themselves (unreachable remotes, broken projects) are left to the loop.
"""

from __future__ import annotations

import logging
from pathlib import Path

from tagwatch.adapters.containers.docker import DockerAdapter
from tagwatch.adapters.containers.registry_api import RegistryApiAdapter
from tagwatch.adapters.registry import AdapterRegistry
from tagwatch.adapters.remote.ssh import SshAdapter
from tagwatch.adapters.shell.command import ShellCommandAdapter
from tagwatch.adapters.vcs.git import GitAdapter
from tagwatch.core.config.project_list import load_cd_projects, load_ci_projects
from tagwatch.core.engine.poll_loop import PollLoop
from tagwatch.core.errors import ConfigError
from tagwatch.core.models.config import RunnerConfig
from tagwatch.core.models.project import Project, ProjectKind
from tagwatch.core.persistence.state_store import StateStore
from tagwatch.core.reliability.circuit_breaker import CircuitBreakerRegistry
from tagwatch.core.reliability.retry import RetryPolicy
from tagwatch.core.services.cd_pipeline import DeployPipeline
from tagwatch.core.services.ci_pipeline import BuildPipeline
from tagwatch.core.services.notifier import Notifier, NullNotifier
from tagwatch.core.services.tag_sources import GitTagSource, RegistryTagSource

logger = logging.getLogger(__name__)


def default_registry(config: RunnerConfig) -> AdapterRegistry:
    """Registry with every real adapter the runners use."""
    ci = config.ci
    registry = AdapterRegistry()
    registry.register(GitAdapter())
    registry.register(DockerAdapter())
    registry.register(RegistryApiAdapter())
    registry.register(ShellCommandAdapter())
    registry.register(
        SshAdapter(
            identity_file=str(ci.ssh_key.expanduser()) if ci.ssh_key else None,
            known_hosts=str(ci.known_hosts.expanduser()) if ci.known_hosts else None,
            connect_timeout=min(config.timeouts.ssh, 30),
        )
    )
    return registry


def retry_policy(config: RunnerConfig) -> RetryPolicy:
    return RetryPolicy(
        attempts=config.retry.attempts,
        base_delay=config.retry.base_delay,
        max_delay=config.retry.max_delay,
    )


def build_notifier(config: RunnerConfig, registry: AdapterRegistry) -> Notifier:
    if not config.notify.enabled or not config.notify.channels:
        return NullNotifier()
    return Notifier(
        registry,
        command=config.notify.command,
        channels=list(config.notify.channels),
        timeout=config.timeouts.notify,
    )


def load_projects(config: RunnerConfig, kind: ProjectKind) -> list[Project]:
    """Current project list for one side (raises ConfigError if missing)."""
    path = config.projects_file(kind)
    if kind == "ci":
        return load_ci_projects(path)
    return load_cd_projects(path)


def build_ci_runner(
    config: RunnerConfig,
    registry: AdapterRegistry | None = None,
    breakers: CircuitBreakerRegistry | None = None,
) -> PollLoop:
    """Poll loop for the build host."""
    if not config.ci.runtime_host:
        raise ConfigError(
            "The build runner needs a runtime host (--runtime-host or ci.runtime_host)"
        )
    return _build_loop(config, "ci", registry, breakers)


def build_deploy_poller(
    config: RunnerConfig,
    registry: AdapterRegistry | None = None,
    breakers: CircuitBreakerRegistry | None = None,
) -> PollLoop:
    """Poll loop for the runtime host."""
    if not config.deploy_base_dir().is_dir():
        raise ConfigError(f"Deployment base directory not found: {config.deploy_base_dir()}")
    return _build_loop(config, "cd", registry, breakers)


def _build_loop(
    config: RunnerConfig,
    kind: ProjectKind,
    registry: AdapterRegistry | None,
    breakers: CircuitBreakerRegistry | None,
) -> PollLoop:
    # fail fast on a missing list; later cycles re-read it and only log
    projects = load_projects(config, kind)
    if not projects:
        logger.warning("No projects listed in %s", config.projects_file(kind))

    registry = registry or default_registry(config)
    missing = registry.unavailable()
    if missing:
        logger.warning("Tools not found for adapter(s): %s", ", ".join(missing))
    retry = retry_policy(config)
    timeouts = config.timeouts

    if kind == "ci":
        source = GitTagSource(
            registry,
            config.mirrors_dir,
            retry=retry,
            tag_pattern=config.ci.tag_pattern,
            timeout=timeouts.git,
        )
        pipeline = BuildPipeline(registry, config, retry=retry)
    else:
        source = RegistryTagSource(
            registry,
            config.registry,
            retry=retry,
            tag_pattern=config.cd.tag_pattern,
            timeout=timeouts.http,
        )
        pipeline = DeployPipeline(registry, config, retry=retry)

    state_dir: Path = config.state_dir(kind)
    state_dir.mkdir(parents=True, exist_ok=True)

    return PollLoop(
        projects=lambda: load_projects(config, kind),
        source=source,
        pipeline=pipeline,
        store=StateStore.for_kind(config, kind),
        notifier=build_notifier(config, registry),
        interval=config.poll.interval,
        workers=config.poll.workers,
        breakers=breakers
        or CircuitBreakerRegistry(
            default_threshold=config.poll.failure_threshold,
            default_cooldown=config.poll.cooldown,
        ),
    )
