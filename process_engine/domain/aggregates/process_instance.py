"""ProcessInstance Aggregate — one running execution of a ProcessDefinition.

Invariants:
1. start() is accepted once, and only with a StartEvent of this definition
2. Work-item transitions are only accepted while the instance is STARTED
3. A transition whose precondition fails leaves the instance untouched
4. Routing out of an activity (guards, gateways) is resolved before its work
   item completes; a routing failure leaves the work item STARTED
5. A failing automated operation leaves the instance at that activity;
   completing its work item again retries the operation and resumes the walk
6. Tokens not yet walked when a step fails stay pending on the instance and
   are walked by the next completion
7. The instance is COMPLETED once an end event was reached, no work item is
   still active and no token is pending
"""
from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from process_engine.core.config import settings
from process_engine.core.observability import metrics_registry
from process_engine.domain.aggregates.work_item import WorkItem, WorkItemStatus
from process_engine.domain.collaborators import Collaborators, OperationRunner
from process_engine.domain.errors import (
    CollaboratorMissing,
    ContractViolation,
    ExecutionLimitExceeded,
    FlowObjectNotFound,
    FlowObjectTypeMismatch,
    GatewayRoutingError,
    ProcessAlreadyStarted,
)
from process_engine.domain.events import (
    DomainEvent,
    FlowObjectReached,
    ProcessCompleted,
    ProcessStarted,
)
from process_engine.domain.flow_objects import (
    Activity,
    FlowObject,
    FlowObjectKind,
    Gateway,
    GatewayType,
    ProcessDefinition,
    SequenceFlow,
    StartEvent,
)

logger = logging.getLogger("process_engine.instance")


class ProcessInstanceStatus(str, Enum):
    CREATED = "CREATED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"


class ProcessInstance:
    """Runtime state machine bound to one ProcessDefinition.

    Not safe for concurrent mutation on its own: callers serialize
    transitions through ``lock`` (the Process driver does).
    """

    def __init__(
        self,
        definition: ProcessDefinition,
        *,
        id: str | None = None,
        process_data: dict[str, Any] | None = None,
        collaborators: Collaborators | None = None,
        max_walk_steps: int | None = None,
    ) -> None:
        self.id = id or str(uuid.uuid4())
        self.definition = definition
        self.process_data: dict[str, Any] = dict(process_data or {})
        self.status = ProcessInstanceStatus.CREATED
        self.current_flow_object: FlowObject | None = None
        self.collaborators = collaborators or Collaborators()
        self.activity_log: list[WorkItem] = []
        self.started_at: datetime | None = None
        self.ended_at: datetime | None = None
        self.lock = threading.RLock()

        self._max_walk_steps = max_walk_steps or settings.ENGINE_MAX_WALK_STEPS
        self._flow_objects = definition.instantiate_flow_objects()
        self._pending_flows: deque[SequenceFlow] = deque()
        self._join_arrivals: dict[str, set[str]] = {}
        self._end_reached = False
        self._events: list[DomainEvent] = []

    # ── Configuration ────────────────────────────────────

    def configure(self, collaborators: Collaborators) -> ProcessInstance:
        """Apply collaborators; unset slots keep what the instance already has."""
        self.collaborators = collaborators.merged_over(self.collaborators)
        return self

    def set_process_data(self, process_data: dict[str, Any] | None) -> None:
        self.process_data = dict(process_data or {})

    # ── Queries ──────────────────────────────────────────

    def get_flow_object(self, flow_object_id: str) -> FlowObject:
        try:
            return self._flow_objects[flow_object_id]
        except KeyError:
            raise FlowObjectNotFound(flow_object_id) from None

    def get_activity(self, activity_id: str) -> Activity:
        flow_object = self.get_flow_object(activity_id)
        if flow_object.kind != FlowObjectKind.ACTIVITY:
            raise FlowObjectTypeMismatch(activity_id, FlowObjectKind.ACTIVITY.value, flow_object.kind.value)
        return flow_object

    @property
    def is_started(self) -> bool:
        return self.status != ProcessInstanceStatus.CREATED

    @property
    def is_ended(self) -> bool:
        return self.status == ProcessInstanceStatus.COMPLETED

    @property
    def pending_flows(self) -> list[SequenceFlow]:
        """Sequence flows reached but not yet walked (left over by a failed step)."""
        return list(self._pending_flows)

    def activities(self) -> list[Activity]:
        return [fo for fo in self._flow_objects.values() if fo.kind == FlowObjectKind.ACTIVITY]

    def active_work_items(self) -> list[WorkItem]:
        return [wi for activity in self.activities() for wi in activity.work_items.active_instances()]

    def collect_events(self) -> list[DomainEvent]:
        """Drain and return all pending domain events, work-item events included."""
        events = list(self._events)
        self._events.clear()
        return events

    # ── Commands ─────────────────────────────────────────

    def start(self, start_event: StartEvent) -> None:
        """CREATED → STARTED, then walk from the start event."""
        if self.status != ProcessInstanceStatus.CREATED:
            raise ProcessAlreadyStarted(self.id)
        if start_event.kind != FlowObjectKind.START_EVENT:
            raise FlowObjectTypeMismatch(start_event.id, FlowObjectKind.START_EVENT.value, start_event.kind.value)
        start_event = self.get_flow_object(start_event.id)
        self._plan_route(start_event)

        self.status = ProcessInstanceStatus.STARTED
        self.started_at = datetime.now(timezone.utc)
        self.current_flow_object = start_event
        self._record(ProcessStarted(proc_inst_id=self.id, start_event_id=start_event.id))
        metrics_registry.inc("engine_process_started_total")
        logger.info("process started: definition=%s start_event=%s", self.definition.id, start_event.id)

        self._pending_flows.extend(self._follow(start_event, self._current_data(start_event)))
        self._walk()

    def allocate_work_item(self, work_item: WorkItem, participant: Any) -> None:
        """READY → ALLOCATED, recording the participant."""
        self._activity_of(work_item)
        self._ensure_running()
        work_item.allocate(participant)
        self._drain(work_item)
        metrics_registry.inc("engine_workitem_allocated_total")

    def start_work_item(self, work_item: WorkItem, participant: Any = None) -> None:
        """ALLOCATED → STARTED."""
        self._activity_of(work_item)
        self._ensure_running()
        work_item.start()
        self._drain(work_item)
        metrics_registry.inc("engine_workitem_started_total")

    def complete_work_item(
        self,
        work_item: WorkItem,
        participant: Any = None,
        process_data: dict[str, Any] | None = None,
    ) -> None:
        """STARTED → COMPLETED, then walk on from the activity and any pending tokens.

        ``process_data`` replaces the instance data for the completion; it is
        rolled back if the work item cannot be completed.
        """
        activity = self._activity_of(work_item)
        self._ensure_running()
        work_item.ensure_can_transition_to(WorkItemStatus.COMPLETED)

        previous = dict(self.process_data)
        if process_data is not None:
            self.set_process_data(process_data)
        try:
            self._finish_work_item(activity, work_item, participant)
        except Exception:
            self.process_data = previous
            raise

        self.current_flow_object = activity
        self._pending_flows.extend(self._follow(activity, self._current_data(activity)))
        self._walk()

    # ── Graph walk ───────────────────────────────────────

    def _walk(self) -> None:
        steps = 0
        while self._pending_flows:
            flow = self._pending_flows.popleft()
            steps += 1
            if steps > self._max_walk_steps:
                raise ExecutionLimitExceeded(self._max_walk_steps, flow.target)

            target = self.get_flow_object(flow.target)
            self._record(FlowObjectReached(proc_inst_id=self.id, flow_object_id=target.id, kind=target.kind.value))
            logger.debug("flow object reached: %s (%s) via %s", target.id, target.kind.value, flow.id)

            if target.kind == FlowObjectKind.END_EVENT:
                self.current_flow_object = target
                self._end_reached = True
            elif target.kind == FlowObjectKind.GATEWAY:
                if not self._join_fires(target, flow, self._join_arrivals):
                    continue
                self.current_flow_object = target
                self._pending_flows.extend(self._route(target, self._current_data(target)))
            elif target.kind == FlowObjectKind.ACTIVITY:
                self.current_flow_object = target
                work_item = self._create_work_item(target)
                if target.is_automated:
                    self._execute_automated(target, work_item)
                    self._pending_flows.extend(self._follow(target, self._current_data(target)))
            else:
                self.current_flow_object = target
                self._pending_flows.extend(self._follow(target, self._current_data(target)))

        self._complete_if_finished()

    def _plan_route(self, source: FlowObject) -> None:
        """Resolve every routing decision between ``source`` and the next activities.

        Raises what the walk would raise, without touching the instance:
        guards see supplied data that is not stored, join arrivals are counted
        on a copy. Stops at activities and end events.
        """
        data = self._supplied_data()
        arrivals = {gateway_id: set(seen) for gateway_id, seen in self._join_arrivals.items()}
        queue: deque[SequenceFlow] = deque(self._follow(source, data))
        steps = 0
        while queue:
            flow = queue.popleft()
            steps += 1
            if steps > self._max_walk_steps:
                raise ExecutionLimitExceeded(self._max_walk_steps, flow.target)
            target = self.get_flow_object(flow.target)
            if target.kind == FlowObjectKind.GATEWAY:
                if self._join_fires(target, flow, arrivals):
                    queue.extend(self._route(target, data))
            elif target.kind == FlowObjectKind.INTERMEDIATE_EVENT:
                queue.extend(self._follow(target, data))

    def _follow(self, source: FlowObject, data: dict[str, Any]) -> list[SequenceFlow]:
        return [f for f in self.definition.outgoing(source.id) if self._guard_holds(f, data)]

    def _route(self, gateway: Gateway, data: dict[str, Any]) -> list[SequenceFlow]:
        flows = self.definition.outgoing(gateway.id)
        if gateway.gateway_type == GatewayType.PARALLEL:
            return flows

        candidates = [f for f in flows if f.id != gateway.default_flow]
        if gateway.gateway_type == GatewayType.EXCLUSIVE:
            selected = next((f for f in candidates if self._guard_holds(f, data)), None)
            chosen = [selected] if selected else []
        else:
            chosen = [f for f in candidates if self._guard_holds(f, data)]

        if not chosen and gateway.default_flow:
            chosen = [f for f in flows if f.id == gateway.default_flow]
        if not chosen:
            raise GatewayRoutingError(gateway.id)
        return chosen

    def _join_fires(self, gateway: Gateway, via: SequenceFlow, arrivals: dict[str, set[str]]) -> bool:
        if gateway.gateway_type != GatewayType.PARALLEL:
            return True
        incoming = {f.id for f in self.definition.incoming(gateway.id)}
        if len(incoming) <= 1:
            return True
        arrived = arrivals.setdefault(gateway.id, set())
        arrived.add(via.id)
        if arrived < incoming:
            return False
        del arrivals[gateway.id]
        return True

    def _guard_holds(self, flow: SequenceFlow, data: dict[str, Any]) -> bool:
        if not flow.condition:
            return True
        evaluator = self.collaborators.expression_evaluator
        if evaluator is None:
            raise CollaboratorMissing("expression evaluator", flow.id)
        return bool(evaluator.evaluate(flow.condition, data))

    def _complete_if_finished(self) -> None:
        if not self._end_reached or self.active_work_items() or self._join_arrivals or self._pending_flows:
            return
        self.status = ProcessInstanceStatus.COMPLETED
        self.ended_at = datetime.now(timezone.utc)
        end_event_id = self.current_flow_object.id if self.current_flow_object else ""
        self._record(ProcessCompleted(proc_inst_id=self.id, end_event_id=end_event_id))
        metrics_registry.inc("engine_process_completed_total")
        logger.info("process completed: definition=%s end_event=%s", self.definition.id, end_event_id)

    # ── Work items ───────────────────────────────────────

    def _create_work_item(self, activity: Activity) -> WorkItem:
        work_item = WorkItem.create(activity_id=activity.id)
        activity.work_items.add(work_item)
        self._drain(work_item)
        metrics_registry.inc("engine_workitem_created_total")
        return work_item

    def _execute_automated(self, activity: Activity, work_item: WorkItem) -> None:
        runner = self._require_runner(activity)
        participant = runner.provide_participant(activity, self)
        if participant is None:
            participant = settings.ENGINE_SYSTEM_PARTICIPANT
        self.allocate_work_item(work_item, participant)
        self.start_work_item(work_item, participant)
        self._finish_work_item(activity, work_item, participant)

    def _finish_work_item(self, activity: Activity, work_item: WorkItem, participant: Any) -> None:
        result = self._run_operation(activity) if activity.is_automated else None
        self._plan_route(activity)
        work_item.complete(participant, result)
        self._drain(work_item)
        self.activity_log.append(work_item)
        metrics_registry.inc("engine_workitem_completed_total")

    def _run_operation(self, activity: Activity) -> Any:
        runner = self._require_runner(activity)
        self._refresh_process_data()
        try:
            result = runner.run(activity, self)
        except Exception:
            metrics_registry.inc("engine_operation_failed_total")
            logger.warning("operation failed: activity=%s operation=%s", activity.id, activity.operation)
            raise
        metrics_registry.inc("engine_operation_run_total")
        if isinstance(result, Mapping):
            self.process_data.update(result)
        return result

    def _require_runner(self, activity: Activity) -> OperationRunner:
        runner = self.collaborators.operation_runner
        if runner is None:
            raise CollaboratorMissing("operation runner", activity.id)
        return runner

    # ── Process data ─────────────────────────────────────

    def _supplied_data(self) -> dict[str, Any]:
        provider = self.collaborators.data_provider
        if provider is None:
            return self.process_data
        return dict(provider.supply(dict(self.process_data)))

    def _refresh_process_data(self) -> None:
        if self.collaborators.data_provider is not None:
            self.process_data = self._supplied_data()

    def _current_data(self, source: FlowObject) -> dict[str, Any]:
        """Process data for routing out of ``source``, refreshed when a guard needs it."""
        if any(f.condition for f in self.definition.outgoing(source.id)):
            self._refresh_process_data()
        return self.process_data

    # ── Private ──────────────────────────────────────────

    def _activity_of(self, work_item: WorkItem) -> Activity:
        activity = self.get_activity(work_item.activity_id)
        if not any(wi is work_item for wi in activity.work_items):
            raise ContractViolation(
                f"Work item {work_item.id} does not belong to activity {activity.id} of instance {self.id}",
                code="WORKITEM_NOT_IN_INSTANCE",
            )
        return activity

    def _ensure_running(self) -> None:
        if self.status != ProcessInstanceStatus.STARTED:
            raise ContractViolation(
                f"Process instance {self.id} is not running (status={self.status.value})",
                code="PROCESS_NOT_RUNNING",
            )

    def _drain(self, work_item: WorkItem) -> None:
        self._events.extend(work_item.collect_events())

    def _record(self, event: DomainEvent) -> None:
        self._events.append(event)

    def __repr__(self) -> str:
        current = self.current_flow_object.id if self.current_flow_object else None
        return f"ProcessInstance(id={self.id}, definition={self.definition.id}, status={self.status.value}, current={current})"
