"""Process driver — entry point callers use to run process instances.

Resolves or creates the instance, applies the registered collaborators,
checks the request invariants and delegates each transition to the
ProcessInstance aggregate. execute_work_item keeps advancing until an
activity's work item completes.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from process_engine.application.contexts import EventContext, ProcessContext, WorkItemContext
from process_engine.core.config import settings
from process_engine.core.context import bind_log_context
from process_engine.core.observability import metrics_registry
from process_engine.domain.aggregates.process_instance import ProcessInstance
from process_engine.domain.aggregates.work_item import WorkItem
from process_engine.domain.collaborators import Collaborators
from process_engine.domain.errors import (
    ContractViolation,
    DomainError,
    ExecutionLimitExceeded,
    FlowObjectTypeMismatch,
    ProcessAlreadyStarted,
    UnexpectedActivityStateError,
    WorkflowNotFoundError,
)
from process_engine.domain.flow_objects import FlowObjectKind
from process_engine.domain.repositories.workflow_repository import WorkflowRepository
from process_engine.domain.workflow_id import WorkflowId, WorkflowIdentifier

logger = logging.getLogger("process_engine.driver")


class Process:
    """Drives process instances of one workflow through their lifecycle."""

    def __init__(
        self,
        workflow_context: WorkflowIdentifier,
        workflow_repository: WorkflowRepository,
        collaborators: Optional[Collaborators] = None,
        *,
        max_execution_steps: Optional[int] = None,
    ) -> None:
        self._workflow_context = workflow_context
        self._workflow_repository = workflow_repository
        self._collaborators = collaborators
        if max_execution_steps is None:
            max_execution_steps = settings.ENGINE_MAX_EXECUTION_STEPS
        if max_execution_steps < 1:
            raise ContractViolation(f"max_execution_steps must be at least 1, got {max_execution_steps}")
        self.max_execution_steps = max_execution_steps

    def get_workflow_context(self) -> WorkflowIdentifier:
        return self._workflow_context

    # ── Operations ───────────────────────────────────────

    def start(
        self,
        event_context: EventContext,
        process_instance: Optional[ProcessInstance] = None,
    ) -> ProcessInstance:
        """Start a fresh (or caller-supplied) instance at the context's start event."""
        process_context = event_context.process_context
        if process_context is None:
            raise ContractViolation("Event context has no process context")
        if process_context.process_instance is not None:
            raise ContractViolation(
                f"Process context already bound to instance {process_context.process_instance.id}",
                code="PROCESS_CONTEXT_ALREADY_BOUND",
            )
        if event_context.event_id is None:
            raise ContractViolation("Event context has no event id")

        instance = process_instance if process_instance is not None else self._create_workflow()
        with self._operation(instance, "start", event_context.event_id):
            flow_object = instance.get_flow_object(event_context.event_id)
            if flow_object.kind != FlowObjectKind.START_EVENT:
                raise FlowObjectTypeMismatch(
                    flow_object.id, FlowObjectKind.START_EVENT.value, flow_object.kind.value
                )
            if instance.is_started:
                raise ProcessAlreadyStarted(instance.id)

            self._configure(instance)
            process_context.set_process_instance(instance)
            instance.set_process_data(process_context.process_data)
            instance.start(flow_object)
        return instance

    def allocate_work_item(self, workitem_context: WorkItemContext) -> None:
        instance = self._require_instance(workitem_context)
        with self._operation(instance, "allocate", workitem_context.activity_id):
            self._allocate(instance, workitem_context)

    def start_work_item(self, workitem_context: WorkItemContext) -> None:
        instance = self._require_instance(workitem_context)
        with self._operation(instance, "start_work_item", workitem_context.activity_id):
            self._start(instance, workitem_context)

    def complete_work_item(self, workitem_context: WorkItemContext) -> None:
        instance = self._require_instance(workitem_context)
        with self._operation(instance, "complete", workitem_context.activity_id):
            self._complete(instance, workitem_context)

    def execute_work_item(self, workitem_context: WorkItemContext) -> int:
        """Allocate → start → complete, following the instance's current flow object.

        After an allocation or start the next target is re-read from the
        instance's current flow object, which may be a different activity.
        Returns the number of steps taken.
        """
        instance = self._require_instance(workitem_context)
        with self._operation(instance, "execute", workitem_context.activity_id):
            context = workitem_context
            steps = 0
            while True:
                steps += 1
                if steps > self.max_execution_steps:
                    raise ExecutionLimitExceeded(self.max_execution_steps, context.activity_id or "")
                metrics_registry.inc("engine_execute_steps_total")

                activity = instance.get_activity(context.activity_id)
                with bind_log_context(activity_id=activity.id):
                    if activity.is_allocatable():
                        self._allocate(instance, context)
                    elif activity.is_startable():
                        self._start(instance, context)
                    elif activity.is_completable():
                        self._complete(instance, context)
                        logger.debug("execute finished after %d steps", steps)
                        return steps
                    else:
                        raise UnexpectedActivityStateError(activity.id)

                context = self._next_context(instance, context)

    # ── Transitions ──────────────────────────────────────

    def _allocate(self, instance: ProcessInstance, context: WorkItemContext) -> None:
        self._configure(instance)
        work_item = self._active_work_item(instance, context)
        instance.allocate_work_item(work_item, context.participant)

    def _start(self, instance: ProcessInstance, context: WorkItemContext) -> None:
        self._configure(instance)
        work_item = self._active_work_item(instance, context)
        instance.start_work_item(work_item, context.participant)

    def _complete(self, instance: ProcessInstance, context: WorkItemContext) -> None:
        self._configure(instance)
        work_item = self._active_work_item(instance, context)
        # Outgoing guards must see the caller's data
        instance.complete_work_item(
            work_item, context.participant, process_data=context.process_context.process_data
        )

    # ── Helpers ──────────────────────────────────────────

    def _active_work_item(self, instance: ProcessInstance, context: WorkItemContext) -> WorkItem:
        return instance.get_activity(context.activity_id).work_items.active()

    def _next_context(self, instance: ProcessInstance, context: WorkItemContext) -> WorkItemContext:
        current = instance.current_flow_object
        if current is None:
            raise ContractViolation(f"Process instance {instance.id} has no current flow object")
        return WorkItemContext(
            participant=context.participant,
            activity_id=current.id,
            process_context=context.process_context,
        )

    def _require_instance(self, workitem_context: WorkItemContext) -> ProcessInstance:
        process_context: Optional[ProcessContext] = workitem_context.process_context
        if process_context is None:
            raise ContractViolation("Work item context has no process context")
        if process_context.process_instance is None:
            raise ContractViolation("Process context has no process instance")
        if workitem_context.activity_id is None:
            raise ContractViolation("Work item context has no activity id")
        return process_context.process_instance

    def _create_workflow(self) -> ProcessInstance:
        workflow_id = WorkflowId.of(self._workflow_context)
        instance = self._workflow_repository.find_by_id(workflow_id)
        if instance is None:
            raise WorkflowNotFoundError(workflow_id.value)
        return instance

    def _configure(self, instance: ProcessInstance) -> None:
        if self._collaborators is not None:
            instance.configure(self._collaborators)

    @contextmanager
    def _operation(self, instance: ProcessInstance, name: str, target: Any) -> Iterator[None]:
        with instance.lock, bind_log_context(process_instance_id=instance.id):
            try:
                yield
            except DomainError as e:
                logger.warning("%s failed on %s: %s (%s)", name, target, e.message, e.code)
                raise
