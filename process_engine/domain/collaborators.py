"""Collaborator interfaces consumed by the process instance.

The domain layer defines these contracts; infrastructure provides
reference implementations. Failures raised by a collaborator are
propagated to the caller unmodified.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from process_engine.domain.aggregates.process_instance import ProcessInstance
    from process_engine.domain.flow_objects import Activity


class ExpressionEvaluator(ABC):
    """Evaluates sequence-flow guard expressions."""

    @abstractmethod
    def evaluate(self, expression: str, process_data: dict[str, Any]) -> Any:
        """Pure function of the given data; no side effects."""
        ...


class OperationRunner(ABC):
    """Runs the operation attached to an automated activity."""

    @abstractmethod
    def provide_participant(self, activity: Activity, process_instance: ProcessInstance) -> Any:
        """Participant recorded on the automated work item."""
        ...

    @abstractmethod
    def run(self, activity: Activity, process_instance: ProcessInstance) -> Any:
        """Execute the operation. Must raise on failure.

        A mapping result is merged into the instance's process data.
        """
        ...


class DataProvider(ABC):
    """Supplies external input data into a running instance."""

    @abstractmethod
    def supply(self, process_data: dict[str, Any]) -> dict[str, Any]:
        """Return possibly-augmented process data."""
        ...


@dataclass(frozen=True)
class Collaborators:
    """Optional collaborators applied onto a process instance."""

    expression_evaluator: ExpressionEvaluator | None = None
    operation_runner: OperationRunner | None = None
    data_provider: DataProvider | None = None

    def merged_over(self, existing: Collaborators | None) -> Collaborators:
        """Slots set here win; absent slots keep the existing value."""
        if existing is None:
            return self
        return Collaborators(
            expression_evaluator=_first_set(self.expression_evaluator, existing.expression_evaluator),
            operation_runner=_first_set(self.operation_runner, existing.operation_runner),
            data_provider=_first_set(self.data_provider, existing.data_provider),
        )


def _first_set(preferred: Any, fallback: Any) -> Any:
    return preferred if preferred is not None else fallback
