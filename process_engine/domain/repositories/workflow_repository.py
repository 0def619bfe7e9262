"""Workflow Repository interface — defined in domain layer, implemented in infrastructure."""
from __future__ import annotations

from abc import ABC, abstractmethod

from process_engine.domain.aggregates.process_instance import ProcessInstance
from process_engine.domain.workflow_id import WorkflowId


class WorkflowRepository(ABC):
    """Lookup abstraction that hands out process instances.

    The domain layer defines this interface; infrastructure provides
    the concrete implementation (e.g. in-memory definitions).
    """

    @abstractmethod
    def find_by_id(self, workflow_id: WorkflowId) -> ProcessInstance | None:
        """Return a fresh, unstarted instance bound to the definition, or None."""
        ...
