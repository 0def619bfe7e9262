"""FlowObject graph — the immutable template a process instance runs.

FlowObject is a closed union of five variants. Code that needs to branch on
the variant checks ``flow_object.kind``; activities expose the capability
predicates the driver dispatches on.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import ClassVar, Union

from process_engine.domain.aggregates.work_item import WorkItemCollection, WorkItemStatus
from process_engine.domain.errors import FlowObjectNotFound


class FlowObjectKind(str, Enum):
    START_EVENT = "startEvent"
    END_EVENT = "endEvent"
    INTERMEDIATE_EVENT = "intermediateEvent"
    ACTIVITY = "activity"
    GATEWAY = "gateway"


class ActivityType(str, Enum):
    HUMAN_TASK = "humanTask"
    SERVICE_TASK = "serviceTask"
    SCRIPT_TASK = "scriptTask"


class GatewayType(str, Enum):
    EXCLUSIVE = "exclusiveGateway"
    PARALLEL = "parallelGateway"
    INCLUSIVE = "inclusiveGateway"


@dataclass(frozen=True)
class StartEvent:
    kind: ClassVar[FlowObjectKind] = FlowObjectKind.START_EVENT
    id: str
    name: str = ""

    def instantiate(self) -> StartEvent:
        return self


@dataclass(frozen=True)
class EndEvent:
    kind: ClassVar[FlowObjectKind] = FlowObjectKind.END_EVENT
    id: str
    name: str = ""

    def instantiate(self) -> EndEvent:
        return self


@dataclass(frozen=True)
class IntermediateEvent:
    kind: ClassVar[FlowObjectKind] = FlowObjectKind.INTERMEDIATE_EVENT
    id: str
    name: str = ""

    def instantiate(self) -> IntermediateEvent:
        return self


@dataclass(frozen=True)
class Gateway:
    kind: ClassVar[FlowObjectKind] = FlowObjectKind.GATEWAY
    id: str
    name: str = ""
    gateway_type: GatewayType = GatewayType.EXCLUSIVE
    default_flow: str | None = None

    def instantiate(self) -> Gateway:
        return self


@dataclass(eq=False)
class Activity:
    """Unit of work. Each process instance holds its own copy with its own work items."""

    kind: ClassVar[FlowObjectKind] = FlowObjectKind.ACTIVITY
    id: str
    name: str = ""
    activity_type: ActivityType = ActivityType.HUMAN_TASK
    operation: str | None = None
    role: str | None = None
    work_items: WorkItemCollection = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.work_items = WorkItemCollection(self.id)

    def instantiate(self) -> Activity:
        return replace(self)

    @property
    def is_automated(self) -> bool:
        return self.activity_type != ActivityType.HUMAN_TASK

    # ── Capability predicates ────────────────────────────

    def is_allocatable(self) -> bool:
        return self.work_items.has_active_in(WorkItemStatus.READY)

    def is_startable(self) -> bool:
        return self.work_items.has_active_in(WorkItemStatus.ALLOCATED)

    def is_completable(self) -> bool:
        return self.work_items.has_active_in(WorkItemStatus.STARTED)


FlowObject = Union[StartEvent, EndEvent, IntermediateEvent, Activity, Gateway]


@dataclass(frozen=True)
class SequenceFlow:
    id: str
    source: str
    target: str
    condition: str | None = None


@dataclass(frozen=True)
class ProcessDefinition:
    """Immutable process graph. Shared by every instance created from it."""

    id: str
    flow_objects: tuple[FlowObject, ...]
    sequence_flows: tuple[SequenceFlow, ...]
    name: str = ""
    version: int = 1
    _by_id: dict[str, FlowObject] = field(init=False, repr=False, compare=False)
    _outgoing: dict[str, list[SequenceFlow]] = field(init=False, repr=False, compare=False)
    _incoming: dict[str, list[SequenceFlow]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_id = {fo.id: fo for fo in self.flow_objects}
        outgoing: dict[str, list[SequenceFlow]] = {fo.id: [] for fo in self.flow_objects}
        incoming: dict[str, list[SequenceFlow]] = {fo.id: [] for fo in self.flow_objects}
        for flow in self.sequence_flows:
            outgoing.setdefault(flow.source, []).append(flow)
            incoming.setdefault(flow.target, []).append(flow)
        object.__setattr__(self, "_by_id", by_id)
        object.__setattr__(self, "_outgoing", outgoing)
        object.__setattr__(self, "_incoming", incoming)

    def flow_object(self, flow_object_id: str) -> FlowObject:
        try:
            return self._by_id[flow_object_id]
        except KeyError:
            raise FlowObjectNotFound(flow_object_id) from None

    def outgoing(self, flow_object_id: str) -> list[SequenceFlow]:
        return list(self._outgoing.get(flow_object_id, []))

    def incoming(self, flow_object_id: str) -> list[SequenceFlow]:
        return list(self._incoming.get(flow_object_id, []))

    def start_events(self) -> list[StartEvent]:
        return [fo for fo in self.flow_objects if fo.kind == FlowObjectKind.START_EVENT]

    def instantiate_flow_objects(self) -> dict[str, FlowObject]:
        """Fresh runtime copies; activities get empty work item collections."""
        return {fo.id: fo.instantiate() for fo in self.flow_objects}
