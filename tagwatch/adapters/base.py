"""
Adapter base — the protocol contract between pipelines and tools.

Pipelines and tag sources never shell out or open sockets themselves:
they build an Action and hand it to an adapter through the registry.
That keeps every external tool (git, docker, ssh, the registry API,
the notify command) behind one seam that tests can replace.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from tagwatch.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def working_dir(self) -> str | None:
        """Working directory for the action (None = inherit)."""
        return self.action.cwd

    def param(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions; failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g. 'git', 'docker', 'ssh')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying tool is installed. Fast, never raises."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class OperationAdapter(Adapter):
    """Adapter whose actions select one of a fixed set of operations.

    Subclasses list their operations in ``operations`` and implement one
    ``_op_<name>`` method per entry (dashes become underscores).
    """

    operations: frozenset[str] = frozenset()
    required_params: dict[str, tuple[str, ...]] = {}

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.param("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"
        if operation not in self.operations:
            return False, (
                f"Unknown operation '{operation}'. "
                f"Valid: {', '.join(sorted(self.operations))}"
            )
        for key in self.required_params.get(operation, ()):
            if context.param(key) in (None, ""):
                return False, f"Missing required param: '{key}' for {operation}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.param("operation")
        handler = getattr(self, f"_op_{operation.replace('-', '_')}", None)
        if handler is None:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Unknown operation: {operation}",
            )
        try:
            return handler(context)
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"{self.name} error: {e}",
                metadata={"operation": operation},
            )
