"""Registry-backed OperationRunner.

Automated activities name their operation; the runner maps that name to a
plain callable ``fn(activity, process_instance) -> result``.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from process_engine.domain.collaborators import OperationRunner
from process_engine.domain.errors import DomainError

if TYPE_CHECKING:
    from process_engine.domain.aggregates.process_instance import ProcessInstance
    from process_engine.domain.flow_objects import Activity

logger = logging.getLogger("process_engine.operations")

Operation = Callable[["Activity", "ProcessInstance"], Any]


class UnknownOperation(DomainError):
    def __init__(self, operation: str, activity_id: str = ""):
        super().__init__(
            code="UNKNOWN_OPERATION",
            message=f"No operation registered under '{operation}' (activity {activity_id or '-'})",
        )
        self.operation = operation
        self.activity_id = activity_id


class CallableOperationRunner(OperationRunner):
    def __init__(
        self,
        operations: Optional[dict[str, Operation]] = None,
        participant: Any = None,
    ) -> None:
        self._operations: dict[str, Operation] = dict(operations or {})
        self._participant = participant

    def register(self, name: str, operation: Operation) -> None:
        self._operations[name] = operation

    def operation(self, name: str) -> Callable[[Operation], Operation]:
        """Decorator form of ``register``."""
        def decorator(fn: Operation) -> Operation:
            self.register(name, fn)
            return fn
        return decorator

    def provide_participant(self, activity: Activity, process_instance: ProcessInstance) -> Any:
        # None lets the instance fall back to the configured system participant
        return self._participant

    def run(self, activity: Activity, process_instance: ProcessInstance) -> Any:
        name = activity.operation or activity.id
        fn = self._operations.get(name)
        if fn is None:
            raise UnknownOperation(name, activity.id)
        logger.debug("running operation %s for activity %s", name, activity.id)
        return fn(activity, process_instance)
