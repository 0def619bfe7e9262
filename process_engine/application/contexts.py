"""Request-scoped contexts handed to the Process driver."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from process_engine.domain.aggregates.process_instance import ProcessInstance
from process_engine.domain.errors import ContractViolation


class ProcessContext:
    """Binds one process instance (set once) to the caller's process data."""

    def __init__(
        self,
        process_data: Optional[dict[str, Any]] = None,
        process_instance: Optional[ProcessInstance] = None,
    ) -> None:
        self.process_data: dict[str, Any] = dict(process_data or {})
        self._process_instance = process_instance

    @property
    def process_instance(self) -> Optional[ProcessInstance]:
        return self._process_instance

    def set_process_instance(self, process_instance: ProcessInstance) -> None:
        if self._process_instance is not None:
            raise ContractViolation(
                f"Process context already bound to instance {self._process_instance.id}",
                code="PROCESS_CONTEXT_ALREADY_BOUND",
            )
        self._process_instance = process_instance


@dataclass
class EventContext:
    process_context: Optional[ProcessContext]
    event_id: Optional[str]


@dataclass
class WorkItemContext:
    participant: Any
    activity_id: Optional[str] = None
    process_context: Optional[ProcessContext] = field(default=None, repr=False)
