"""
Circuit breaker — park projects that keep failing for content reasons.

A project whose manifest or descriptor is broken fails identically on
every cycle. Each such permanent failure is recorded here; after
``failure_threshold`` in a row the project is parked for ``cooldown``
seconds, then a single probe cycle is let through.

States:
    CLOSED    → Normal polling. Permanent failures counted.
    OPEN      → Project parked, cycles skip it.
    HALF_OPEN → Cooldown over, next cycle is a probe.

Transitions:
    CLOSED → OPEN:      failure_count >= failure_threshold
    OPEN → HALF_OPEN:   cooldown elapsed
    HALF_OPEN → CLOSED: probe succeeds (or the tag no longer differs)
    HALF_OPEN → OPEN:   probe fails permanently again

Breaker state is in memory only; a restarted runner gives every project
a fresh start.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

logger = logging.getLogger(__name__)


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Per-project circuit breaker.

    Args:
        name: Project identifier.
        failure_threshold: Consecutive permanent failures before parking.
        cooldown: Seconds a parked project is skipped.
        clock: Monotonic time source (injectable for tests).
    """

    name: str
    failure_threshold: int = 5
    cooldown: float = 3600.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    # ── Internal state ───────────────────────────────────────────
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    opened_at: float = 0.0
    total_skips: int = 0
    last_error: str = ""

    def allow(self) -> bool:
        """Whether the project may be processed this cycle."""
        if self.state == CircuitState.OPEN:
            if self.clock() - self.opened_at >= self.cooldown:
                self._transition(CircuitState.HALF_OPEN)
                return True
            self.total_skips += 1
            return False
        return True

    def remaining_cooldown(self) -> float:
        """Seconds until a parked project gets its probe (0 if not parked)."""
        if self.state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.cooldown - (self.clock() - self.opened_at))

    def record_success(self) -> None:
        """A cycle for this project ended without a permanent failure."""
        if self.state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        self.failure_count = 0
        self.last_error = ""

    def record_failure(self, error: str = "") -> None:
        """Record a permanent (content) failure."""
        self.last_error = error
        if self.state == CircuitState.HALF_OPEN:
            self._open()
            return
        self.failure_count += 1
        if self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._open()

    def _open(self) -> None:
        self.opened_at = self.clock()
        self._transition(CircuitState.OPEN)
        logger.warning(
            "Project '%s' parked for %.0fs after %d consecutive failures: %s",
            self.name,
            self.cooldown,
            self.failure_count,
            self.last_error,
        )

    def _transition(self, new_state: CircuitState) -> None:
        old = self.state
        if old == new_state:
            return
        self.state = new_state
        if new_state == CircuitState.CLOSED:
            self.failure_count = 0
        logger.info("Circuit breaker '%s': %s → %s", self.name, old.value, new_state.value)


@dataclass
class CircuitBreakerRegistry:
    """One breaker per project, created on first use."""

    breakers: dict[str, CircuitBreaker] = field(default_factory=dict)
    default_threshold: int = 5
    default_cooldown: float = 3600.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def get_or_create(self, name: str) -> CircuitBreaker:
        if name not in self.breakers:
            self.breakers[name] = CircuitBreaker(
                name=name,
                failure_threshold=self.default_threshold,
                cooldown=self.default_cooldown,
                clock=self.clock,
            )
        return self.breakers[name]

    def parked(self) -> list[str]:
        """Identifiers of projects currently parked."""
        return [name for name, cb in self.breakers.items() if cb.state == CircuitState.OPEN]
