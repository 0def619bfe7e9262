"""In-memory WorkflowRepository.

Holds process definitions keyed by their canonical workflow id and hands
out a fresh, unstarted ProcessInstance on every lookup.
"""
from __future__ import annotations

import logging
from typing import Optional

from process_engine.bpm.builder import build_definition
from process_engine.domain.aggregates.process_instance import ProcessInstance
from process_engine.domain.flow_objects import ProcessDefinition
from process_engine.domain.repositories.workflow_repository import WorkflowRepository
from process_engine.domain.workflow_id import WorkflowId, WorkflowIdentifier

logger = logging.getLogger("process_engine.repository")


class InMemoryWorkflowRepository(WorkflowRepository):
    def __init__(self) -> None:
        self._definitions: dict[str, ProcessDefinition] = {}

    def add(self, definition: ProcessDefinition, workflow_id: Optional[WorkflowIdentifier] = None) -> WorkflowId:
        """Register a definition under ``workflow_id`` (defaults to the definition id)."""
        key = WorkflowId.of(workflow_id if workflow_id is not None else definition.id)
        self._definitions[key.canonical] = definition
        logger.debug("workflow registered: %s -> %s", key, definition.id)
        return key

    def add_source(self, source, workflow_id: Optional[WorkflowIdentifier] = None) -> WorkflowId:
        """Build a definition from a dict/JSON document and register it."""
        return self.add(build_definition(source), workflow_id)

    def find_by_id(self, workflow_id: WorkflowId) -> Optional[ProcessInstance]:
        definition = self._definitions.get(workflow_id.canonical)
        if definition is None:
            return None
        return ProcessInstance(definition)

    def __contains__(self, workflow_id: WorkflowIdentifier) -> bool:
        return WorkflowId.of(workflow_id).canonical in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
