"""
Poll loop — detect each new version once and act on it once.

Per project, per cycle:

    IDLE → QUERYING → UNCHANGED          → IDLE
                    → PIPELINE_RUNNING   → IDLE

- The tag source is asked for the latest version. An unreachable
  source means "no change this cycle".
- No tags, or the same tag the state store already holds: nothing to do.
- Otherwise the pipeline runs for that tag. The state store is written
  only after the pipeline returned; any failure leaves the old value in
  place and the next cycle sees the same mismatch and tries again.

Errors never leave a project's cycle. The loop itself only stops when
the process is terminated (or ``max_cycles`` is reached in tests and
one-shot runs).
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from tagwatch.core.errors import SourceUnavailable, TagwatchError
from tagwatch.core.models.project import Project
from tagwatch.core.persistence.state_store import StateStore
from tagwatch.core.reliability.circuit_breaker import CircuitBreakerRegistry
from tagwatch.core.services.notifier import Notifier, NullNotifier
from tagwatch.core.services.pipeline import Pipeline, PipelineReport
from tagwatch.core.services.tag_sources import TagSource

logger = logging.getLogger(__name__)

ProjectProvider = Callable[[], Iterable[Project]]


class Outcome(StrEnum):
    """What happened to one project in one cycle."""

    UNCHANGED = "unchanged"
    NO_RELEASES = "no_releases"
    SOURCE_UNAVAILABLE = "source_unavailable"
    DEPLOYED = "deployed"
    FAILED = "failed"
    PARKED = "parked"
    BUSY = "busy"


@dataclass
class ProjectOutcome:
    """Result of one project's cycle."""

    project: str
    outcome: Outcome
    version: str | None = None      # latest version seen this cycle
    previous: str | None = None     # recorded version before the cycle
    error: str | None = None
    error_kind: str | None = None
    report: PipelineReport | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "outcome": self.outcome.value,
            "version": self.version,
            "previous": self.previous,
            "error": self.error,
            "error_kind": self.error_kind,
        }


@dataclass
class CycleReport:
    """Outcomes of every project in one cycle, in project-list order."""

    cycle: int
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    outcomes: list[ProjectOutcome] = field(default_factory=list)
    duration_ms: int = 0
    error: str | None = None        # the project list itself could not be read

    def count(self, outcome: Outcome) -> int:
        return sum(1 for o in self.outcomes if o.outcome == outcome)

    def get(self, project: str) -> ProjectOutcome | None:
        for o in self.outcomes:
            if o.project == project:
                return o
        return None

    @property
    def deployed(self) -> list[str]:
        return [o.project for o in self.outcomes if o.outcome == Outcome.DEPLOYED]

    @property
    def failed(self) -> list[str]:
        return [o.project for o in self.outcomes if o.outcome == Outcome.FAILED]

    def summary(self) -> str:
        counts = {o: self.count(o) for o in Outcome}
        parts = [f"{n} {o.value}" for o, n in counts.items() if n]
        return ", ".join(parts) or "no projects"

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle": self.cycle,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class PollLoop:
    """Drives one tag source, one pipeline and one state store.

    Args:
        projects: Called at the start of every cycle for the current
            project list (a plain list is accepted too).
        source: Where latest versions come from.
        pipeline: What runs for a new version.
        store: Last successfully processed version per project.
        notifier: Receives success/failure messages (best effort).
        interval: Seconds between the end of one cycle and the next.
        workers: Projects processed in parallel (1 = sequential).
        breakers: Per-project circuit breakers for permanent failures.
        wait: Called with the interval between cycles; defaults to a
            stoppable sleep.
    """

    def __init__(
        self,
        projects: ProjectProvider | Iterable[Project],
        source: TagSource,
        pipeline: Pipeline,
        store: StateStore,
        notifier: Notifier | None = None,
        interval: float = 60.0,
        workers: int = 1,
        breakers: CircuitBreakerRegistry | None = None,
        wait: Callable[[float], Any] | None = None,
    ):
        if callable(projects):
            self._projects = projects
        else:
            fixed = list(projects)
            self._projects = lambda: fixed
        self.source = source
        self.pipeline = pipeline
        self.store = store
        self.notifier = notifier or NullNotifier()
        self.interval = interval
        self.workers = max(1, workers)
        self.breakers = breakers or CircuitBreakerRegistry()

        self._stop = threading.Event()
        self._wait = wait or self._stop.wait
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._cycles = 0

    @property
    def cycles(self) -> int:
        return self._cycles

    # ── Cycle ───────────────────────────────────────────────────

    def run_cycle(self) -> CycleReport:
        """Process every configured project once."""
        self._cycles += 1
        report = CycleReport(cycle=self._cycles)
        start = time.monotonic()

        try:
            projects = list(self._projects())
        except (TagwatchError, OSError) as e:
            logger.error("Cycle %d: cannot load project list: %s", self._cycles, e)
            report.error = str(e)
            return report

        if self.workers > 1 and len(projects) > 1:
            pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="tagwatch")
            with pool:
                report.outcomes = list(pool.map(self.process, projects))
        else:
            report.outcomes = [self.process(p) for p in projects]

        report.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Cycle %d done in %.1fs: %s",
            report.cycle,
            report.duration_ms / 1000,
            report.summary(),
        )
        parked = self.breakers.parked()
        if parked:
            logger.warning("Parked projects: %s", ", ".join(parked))
        return report

    def process(self, project: Project) -> ProjectOutcome:
        """Run one project's cycle. Never raises."""
        lock = self._lock_for(project.identifier)
        if not lock.acquire(blocking=False):
            logger.info("%s: previous run still in flight, skipping", project)
            return ProjectOutcome(project=project.identifier, outcome=Outcome.BUSY)
        try:
            return self._process(project)
        except Exception as e:
            logger.exception("%s: unexpected error", project)
            return ProjectOutcome(
                project=project.identifier,
                outcome=Outcome.FAILED,
                error=str(e),
                error_kind=type(e).__name__,
            )
        finally:
            lock.release()

    def _process(self, project: Project) -> ProjectOutcome:
        pid = project.identifier
        breaker = self.breakers.get_or_create(pid)
        if not breaker.allow():
            logger.info(
                "%s: parked after repeated failures, next probe in %.0fs",
                project,
                breaker.remaining_cooldown(),
            )
            return ProjectOutcome(project=pid, outcome=Outcome.PARKED, error=breaker.last_error)

        # QUERYING
        try:
            latest = self.source.latest(project)
        except SourceUnavailable as e:
            logger.warning("%s: source unavailable, treating as unchanged: %s", project, e)
            return ProjectOutcome(
                project=pid,
                outcome=Outcome.SOURCE_UNAVAILABLE,
                error=str(e),
                error_kind=e.kind,
            )

        if latest is None:
            logger.info("%s: no releases yet", project)
            breaker.record_success()
            return ProjectOutcome(project=pid, outcome=Outcome.NO_RELEASES)

        current = self.store.get(pid)
        if latest == current:
            logger.info("%s: up to date (%s)", project, latest)
            breaker.record_success()
            return ProjectOutcome(
                project=pid,
                outcome=Outcome.UNCHANGED,
                version=latest,
                previous=current,
            )

        # PIPELINE_RUNNING
        logger.info("%s: new version %s (recorded: %s)", project, latest, current or "none")
        try:
            report = self.pipeline.run(project, latest)
        except TagwatchError as e:
            return self._failed(project, latest, current, e)
        except Exception as e:
            logger.exception("%s: %s of %s crashed", project, self.pipeline.name, latest)
            self._notify(f"❌ {self._title} failed: {pid} version {latest}: {e}")
            return ProjectOutcome(
                project=pid,
                outcome=Outcome.FAILED,
                version=latest,
                previous=current,
                error=str(e),
                error_kind=type(e).__name__,
            )

        try:
            self.store.set(pid, latest)
        except OSError as e:
            # pipeline effects are in place but not recorded; the next cycle repeats them
            logger.error("%s: %s succeeded but state was not saved: %s", project, latest, e)
            self._notify(
                f"❌ {self._title} of {pid} {latest} succeeded but state was not saved: {e}"
            )
            return ProjectOutcome(
                project=pid,
                outcome=Outcome.FAILED,
                version=latest,
                previous=current,
                error=str(e),
                error_kind=type(e).__name__,
                report=report,
            )

        breaker.record_success()
        logger.info("%s: %s recorded", project, latest)
        self._notify(f"🎉 {self._title} successful: {pid} version {latest}")
        return ProjectOutcome(
            project=pid,
            outcome=Outcome.DEPLOYED,
            version=latest,
            previous=current,
            report=report,
        )

    def _failed(
        self,
        project: Project,
        version: str,
        current: str | None,
        error: TagwatchError,
    ) -> ProjectOutcome:
        logger.error(
            "%s: %s of %s failed (%s): %s. Will retry next cycle.",
            project,
            self.pipeline.name,
            version,
            error.kind,
            error,
        )
        if error.permanent:
            self.breakers.get_or_create(project.identifier).record_failure(f"{error.kind}: {error}")
        self._notify(f"❌ {self._title} failed: {project.identifier} version {version}: {error}")
        return ProjectOutcome(
            project=project.identifier,
            outcome=Outcome.FAILED,
            version=version,
            previous=current,
            error=str(error),
            error_kind=error.kind,
        )

    # ── Outer loop ──────────────────────────────────────────────

    def run_forever(self, max_cycles: int | None = None) -> int:
        """Cycle, wait ``interval``, repeat. Returns the number of cycles run."""
        logger.info(
            "%s loop started (interval=%ss, workers=%d)",
            self._title,
            self.interval,
            self.workers,
        )
        ran = 0
        while not self._stop.is_set():
            self.run_cycle()
            ran += 1
            if max_cycles is not None and ran >= max_cycles:
                break
            logger.debug("Sleeping for %ss", self.interval)
            self._wait(self.interval)
        logger.info("%s loop stopped after %d cycle(s)", self._title, ran)
        return ran

    def stop(self) -> None:
        """Ask run_forever to return after the current cycle."""
        self._stop.set()

    # ── Helpers ─────────────────────────────────────────────────

    @property
    def _title(self) -> str:
        return self.pipeline.name.capitalize()

    def _lock_for(self, project: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(project)
            if lock is None:
                lock = self._locks[project] = threading.Lock()
            return lock

    def _notify(self, message: str) -> None:
        try:
            self.notifier.broadcast(message)
        except Exception as e:
            logger.warning("Notification failed: %s", e)
