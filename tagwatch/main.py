"""
tagwatch — CLI entrypoint.

Usage:
    tagwatch ci --runtime-host 10.0.0.5 --registry-port 5000 --interval 60
    tagwatch cd --registry-port 5000 --interval 60 --registry-user ci
    tagwatch status --kind cd
    tagwatch projects
"""

from __future__ import annotations

import json
import os
import signal
import sys
from pathlib import Path

import click

from tagwatch import __version__
from tagwatch.core.errors import ConfigError
from tagwatch.core.observability.logging_config import setup_logging

KINDS = ("ci", "cd")


@click.group()
@click.version_option(version=__version__, prog_name="tagwatch")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    envvar="TAGWATCH_CONFIG",
    default=None,
    help="Path to tagwatch.yml (default: auto-detect).",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also log to this file (rotated daily).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    log_file: str | None,
) -> None:
    """tagwatch — pull-based build and deployment runners."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["log_file"] = log_file or os.environ.get("TAGWATCH_LOG_FILE")

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=_log_level(ctx, default="WARNING"),
        log_file=ctx.obj["log_file"],
        quiet_third_party=not debug,
    )


def _log_level(ctx: click.Context, default: str) -> str:
    if ctx.obj.get("debug"):
        return "DEBUG"
    if ctx.obj.get("verbose"):
        return "INFO"
    if ctx.obj.get("quiet"):
        return "ERROR"
    return os.environ.get("TAGWATCH_LOG_LEVEL", default)


def _load_config(ctx: click.Context):
    from tagwatch.core.config.loader import load_config

    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def _start_daemon_logging(ctx: click.Context, config, kind: str) -> None:
    """Re-configure logging for a long-running loop (INFO and a log file)."""
    log_file = ctx.obj.get("log_file") or config.log_file or config.default_log_file(kind)
    setup_logging(
        level=_log_level(ctx, default="INFO"),
        log_file=log_file,
        log_file_level="DEBUG" if ctx.obj.get("debug") else "INFO",
        keep_days=1,
        quiet_third_party=not ctx.obj.get("debug"),
    )


def _run_loop(loop, once: bool) -> None:
    if once:
        report = loop.run_cycle()
        click.echo(f"Cycle {report.cycle}: {report.summary()}")
        for outcome in report.outcomes:
            line = f"   {outcome.project}: {outcome.outcome.value}"
            if outcome.version:
                line += f" ({outcome.version})"
            if outcome.error:
                line += f": {outcome.error}"
            click.echo(line)
        if report.error:
            click.secho(f"❌ {report.error}", fg="red", err=True)
        sys.exit(1 if report.error or report.failed else 0)

    def _terminate(signum, frame):
        loop.stop()

    signal.signal(signal.SIGTERM, _terminate)
    try:
        loop.run_forever()
    except KeyboardInterrupt:
        loop.stop()


# ── Runners ─────────────────────────────────────────────────────


@cli.command()
@click.option("--runtime-host", default=None, help="Host receiving descriptors and secrets.")
@click.option("--registry-port", type=int, default=None, help="Registry port (host from config).")
@click.option("--interval", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Seconds between poll cycles.")
@click.option("--once", is_flag=True, help="Run a single cycle and exit.")
@click.pass_context
def ci(
    ctx: click.Context,
    runtime_host: str | None,
    registry_port: int | None,
    interval: float | None,
    once: bool,
) -> None:
    """Build runner: watch Git tags, build, push and sync to the runtime host."""
    from tagwatch.core.use_cases.runners import build_ci_runner

    config = _load_config(ctx)
    if runtime_host:
        config.ci.runtime_host = runtime_host
    if registry_port is not None:
        config.registry.port = registry_port
    if interval is not None:
        config.poll.interval = interval

    _start_daemon_logging(ctx, config, "ci")
    try:
        loop = build_ci_runner(config)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    _run_loop(loop, once)


@cli.command()
@click.option("--registry-port", type=int, default=None, help="Registry port (host from config).")
@click.option("--interval", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Seconds between poll cycles.")
@click.option("--registry-user", default=None, help="Registry username.")
@click.option(
    "--registry-password",
    envvar="TAGWATCH_REGISTRY_PASSWORD",
    default=None,
    help="Registry password (or TAGWATCH_REGISTRY_PASSWORD).",
)
@click.option("--once", is_flag=True, help="Run a single cycle and exit.")
@click.pass_context
def cd(
    ctx: click.Context,
    registry_port: int | None,
    interval: float | None,
    registry_user: str | None,
    registry_password: str | None,
    once: bool,
) -> None:
    """Deployment poller: watch registry tags, pull and recreate services."""
    from tagwatch.core.use_cases.runners import build_deploy_poller

    config = _load_config(ctx)
    if registry_port is not None:
        config.registry.port = registry_port
    if interval is not None:
        config.poll.interval = interval
    if registry_user:
        config.registry.username = registry_user
    if registry_password:
        config.registry.password = registry_password

    _start_daemon_logging(ctx, config, "cd")
    try:
        loop = build_deploy_poller(config)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    _run_loop(loop, once)


# ── Inspection ──────────────────────────────────────────────────


@cli.command()
@click.option("--kind", type=click.Choice(KINDS), default=None, help="Only one side.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, kind: str | None, as_json: bool) -> None:
    """Show the last recorded version of every project."""
    from tagwatch.core.use_cases.status import get_status

    config = _load_config(ctx)
    results = [get_status(config, k) for k in ([kind] if kind else KINDS)]

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in results], indent=2))
        return

    failed = False
    for result in results:
        title = "Build runner" if result.kind == "ci" else "Deployment poller"
        click.secho(f"\n📋 {title}", fg="cyan", bold=True)
        if result.error:
            click.secho(f"   ❌ {result.error}", fg="red")
            failed = True
            continue
        click.echo(f"   📄 {result.projects_file}")
        if not result.projects:
            click.echo("   (no projects listed)")
        for p in result.projects:
            if p.last_version:
                click.secho(f"   ✓ {p.project} ", fg="green", nl=False)
                click.echo(f"{p.last_version}  (since {p.updated_at})")
            else:
                click.secho(f"   ⊘ {p.project} ", fg="yellow", nl=False)
                click.echo("nothing processed yet")
        if result.unlisted:
            unlisted = ", ".join(result.unlisted)
            click.secho(f"   ⚠️  State for unlisted projects: {unlisted}", fg="yellow")

    click.echo()
    if failed and kind:
        sys.exit(1)


@cli.command()
@click.option("--kind", type=click.Choice(KINDS), default=None, help="Only one side.")
@click.pass_context
def projects(ctx: click.Context, kind: str | None) -> None:
    """List the projects each runner would monitor."""
    from tagwatch.core.use_cases.runners import load_projects

    config = _load_config(ctx)
    failed = False
    for k in [kind] if kind else KINDS:
        path = config.projects_file(k)
        click.secho(f"{k}: {path}", bold=True)
        try:
            listed = load_projects(config, k)
        except ConfigError as e:
            click.secho(f"   ❌ {e}", fg="red")
            failed = True
            continue
        for project in listed:
            suffix = "" if project.source == project.identifier else f"  ← {project.source}"
            click.echo(f"   • {project.identifier}{suffix}")
    if failed and kind:
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
