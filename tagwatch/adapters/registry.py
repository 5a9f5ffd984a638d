"""
Adapter registry — every side effect goes through ``execute_action``.

Pipelines and tag sources never hold adapters directly; they submit
actions here. The registry picks the adapter by name, validates the
action, applies the caller's retry policy and always hands back a
Receipt, so callers only ever branch on ``receipt.failed``.
"""

from __future__ import annotations

import logging
import time

from tagwatch.adapters.base import Adapter, ExecutionContext
from tagwatch.core.models.action import Action, Receipt
from tagwatch.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Adapters by name, plus the single dispatch point."""

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        """Add ``adapter``; a later registration under the same name wins."""
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter '%s'", adapter.name)
        self._adapters[adapter.name] = adapter
        logger.debug("Registered adapter: %s", adapter.name)

    def unregister(self, name: str) -> None:
        self._adapters.pop(name, None)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def unavailable(self) -> list[str]:
        """Names of adapters whose external tool cannot be found."""
        missing = []
        for name, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception as e:
                logger.debug("Availability check for %s raised: %s", name, e)
                available = False
            if not available:
                missing.append(name)
        return missing

    def execute_action(self, action: Action, retry: RetryPolicy | None = None) -> Receipt:
        """Run ``action`` on its adapter and return the receipt (never raises).

        With ``retry``, failed receipts are retried under that policy;
        dispatch and validation failures are never retried.
        """
        if retry is None:
            return self._execute_once(action)
        return retry.run(lambda: self._execute_once(action), label=f"{action.adapter}:{action.id}")

    def _execute_once(self, action: Action) -> Receipt:
        started = time.monotonic()

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                action.adapter,
                action.id,
                f"No adapter registered for '{action.adapter}'",
                retryable=False,
            )

        context = ExecutionContext(action=action, params=action.params)
        try:
            valid, reason = adapter.validate(context)
        except Exception as e:
            valid, reason = False, str(e)
        if not valid:
            return Receipt.failure(
                action.adapter,
                action.id,
                f"Validation failed: {reason}",
                retryable=False,
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            # adapters are not supposed to raise
            logger.error("Adapter %s raised on %s: %s", action.adapter, action.id, e)
            receipt = Receipt.failure(action.adapter, action.id, f"Unexpected error: {e}")

        if not receipt.duration_ms:
            receipt.duration_ms = int((time.monotonic() - started) * 1000)
        return receipt
