"""
Definition builder: validated ProcessDefinitionModel → immutable ProcessDefinition.
Structural checks only; guard expressions are not compiled here.
"""
from __future__ import annotations

import json
from collections import Counter
from typing import Any, Union

from pydantic import ValidationError

from process_engine.bpm.models import ProcessDefinitionModel
from process_engine.domain.errors import DefinitionError
from process_engine.domain.flow_objects import (
    Activity,
    EndEvent,
    FlowObject,
    FlowObjectKind,
    Gateway,
    IntermediateEvent,
    ProcessDefinition,
    SequenceFlow,
    StartEvent,
)

_EVENT_TYPES = {
    "startEvent": StartEvent,
    "endEvent": EndEvent,
    "intermediateEvent": IntermediateEvent,
}

DefinitionSource = Union[ProcessDefinitionModel, dict[str, Any], str, bytes]


def parse_definition(source: DefinitionSource) -> ProcessDefinitionModel:
    if isinstance(source, ProcessDefinitionModel):
        return source
    try:
        if isinstance(source, (str, bytes)):
            return ProcessDefinitionModel.model_validate_json(source)
        return ProcessDefinitionModel.model_validate(source)
    except (ValidationError, json.JSONDecodeError) as e:
        raise DefinitionError(f"Invalid process definition: {e}") from e


def build_definition(source: DefinitionSource) -> ProcessDefinition:
    model = parse_definition(source)

    flow_objects: list[FlowObject] = [
        _EVENT_TYPES[e.type](id=e.id, name=e.name) for e in model.events
    ]
    flow_objects += [
        Activity(id=a.id, name=a.name, activity_type=a.type, operation=a.operation, role=a.role)
        for a in model.activities
    ]
    flow_objects += [
        Gateway(id=g.id, name=g.name, gateway_type=g.type, default_flow=g.default)
        for g in model.gateways
    ]
    flows = [
        SequenceFlow(id=t.id, source=t.source, target=t.target, condition=t.condition or None)
        for t in model.transitions
    ]

    _validate(model.process_definition_id, flow_objects, flows)
    return ProcessDefinition(
        id=model.process_definition_id,
        name=model.process_definition_name,
        version=model.version,
        flow_objects=tuple(flow_objects),
        sequence_flows=tuple(flows),
    )


def _validate(definition_id: str, flow_objects: list[FlowObject], flows: list[SequenceFlow]) -> None:
    ids = Counter(fo.id for fo in flow_objects)
    duplicates = sorted(i for i, n in ids.items() if n > 1)
    if duplicates:
        raise DefinitionError(f"{definition_id}: duplicate flow object ids {duplicates}")

    flow_ids = Counter(f.id for f in flows)
    duplicates = sorted(i for i, n in flow_ids.items() if n > 1)
    if duplicates:
        raise DefinitionError(f"{definition_id}: duplicate sequence flow ids {duplicates}")

    by_id = {fo.id: fo for fo in flow_objects}
    if not any(fo.kind == FlowObjectKind.START_EVENT for fo in flow_objects):
        raise DefinitionError(f"{definition_id}: no start event")

    for flow in flows:
        if flow.source not in by_id or flow.target not in by_id:
            raise DefinitionError(f"{definition_id}: sequence flow {flow.id} has an unknown endpoint")
        if by_id[flow.target].kind == FlowObjectKind.START_EVENT:
            raise DefinitionError(f"{definition_id}: sequence flow {flow.id} enters start event {flow.target}")
        if by_id[flow.source].kind == FlowObjectKind.END_EVENT:
            raise DefinitionError(f"{definition_id}: sequence flow {flow.id} leaves end event {flow.source}")

    for fo in flow_objects:
        if fo.kind != FlowObjectKind.GATEWAY or fo.default_flow is None:
            continue
        if not any(f.id == fo.default_flow and f.source == fo.id for f in flows):
            raise DefinitionError(f"{definition_id}: default flow {fo.default_flow} does not leave gateway {fo.id}")
