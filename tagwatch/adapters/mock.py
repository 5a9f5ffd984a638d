"""
Mock adapter — scripted stand-in for any real adapter.

Registered under a real adapter's name ('git', 'docker', ...) it lets
tests drive tag sources and pipelines without touching external tools.
Responses are keyed by action id and may be a fixed receipt, a queue
of receipts consumed in order, or a handler that sees the context.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable

from tagwatch.adapters.base import Adapter, ExecutionContext
from tagwatch.core.models.action import Receipt

Handler = Callable[[ExecutionContext], Receipt]


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success for everything.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._queues: dict[str, deque[Receipt]] = {}
        self._handlers: dict[str, Handler] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        return len(self._call_log)

    def calls_for(self, action_id: str) -> list[ExecutionContext]:
        """Contexts received for one action id."""
        return [c for c in self._call_log if c.action.id == action_id]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        """Always answer ``action_id`` with ``receipt``."""
        self._responses[action_id] = receipt

    def queue_responses(self, action_id: str, *receipts: Receipt) -> None:
        """Answer successive calls with ``receipts`` in order, then fall back."""
        self._queues.setdefault(action_id, deque()).extend(receipts)

    def set_handler(self, action_id: str, handler: Handler) -> None:
        """Compute the answer for ``action_id`` from the execution context."""
        self._handlers[action_id] = handler

    def set_failure(self, action_id: str, error: str = "Mock failure", **metadata) -> None:
        """Configure a specific action to fail."""
        self._responses[action_id] = Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
            metadata=metadata,
        )

    def clear(self, action_id: str) -> None:
        """Drop every scripted response for ``action_id``."""
        self._responses.pop(action_id, None)
        self._queues.pop(action_id, None)
        self._handlers.pop(action_id, None)

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action_id = context.action.id

        queue = self._queues.get(action_id)
        if queue:
            return queue.popleft().model_copy(deep=True)
        if action_id in self._handlers:
            return self._handlers[action_id](context)
        if action_id in self._responses:
            return self._responses[action_id].model_copy(deep=True)

        return Receipt.success(
            adapter=self._name,
            action_id=action_id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()
        self._queues.clear()
        self._handlers.clear()
