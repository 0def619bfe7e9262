"""Unit tests for BPM definition parsing and graph building."""
import json

import pytest

from conftest import exclusive_choice, linear_manual, parallel_split
from process_engine.bpm.builder import build_definition, parse_definition
from process_engine.bpm.models import ProcessDefinitionModel
from process_engine.domain.errors import DefinitionError, FlowObjectNotFound
from process_engine.domain.flow_objects import (
    Activity,
    ActivityType,
    FlowObjectKind,
    Gateway,
    GatewayType,
    StartEvent,
)


class TestParse:
    def test_accepts_dict_json_and_model(self):
        source = linear_manual()
        from_dict = parse_definition(source)
        assert parse_definition(json.dumps(source)) == from_dict
        assert parse_definition(from_dict) is from_dict
        assert isinstance(from_dict, ProcessDefinitionModel)

    def test_invalid_event_type(self):
        source = linear_manual()
        source["events"][0]["type"] = "timerEvent"
        with pytest.raises(DefinitionError):
            parse_definition(source)

    def test_malformed_json(self):
        with pytest.raises(DefinitionError):
            parse_definition("{not json")


class TestBuild:
    def test_linear_graph(self):
        definition = build_definition(linear_manual())
        assert definition.id == "linear"
        assert isinstance(definition.flow_object("A"), StartEvent)
        task = definition.flow_object("T")
        assert isinstance(task, Activity)
        assert task.activity_type == ActivityType.HUMAN_TASK
        assert [f.target for f in definition.outgoing("A")] == ["T"]
        assert [f.source for f in definition.incoming("B")] == ["T"]
        assert [e.id for e in definition.start_events()] == ["A"]

    def test_gateways(self):
        definition = build_definition(exclusive_choice())
        gateway = definition.flow_object("G")
        assert isinstance(gateway, Gateway)
        assert gateway.kind == FlowObjectKind.GATEWAY
        assert gateway.gateway_type == GatewayType.EXCLUSIVE
        assert gateway.default_flow == "f_small"
        assert build_definition(parallel_split()).flow_object("J").gateway_type == GatewayType.PARALLEL

    def test_unknown_flow_object(self):
        with pytest.raises(FlowObjectNotFound):
            build_definition(linear_manual()).flow_object("Z")

    def test_instantiation_copies_activities_only(self):
        definition = build_definition(linear_manual())
        runtime = definition.instantiate_flow_objects()
        assert runtime["A"] is definition.flow_object("A")
        assert runtime["T"] is not definition.flow_object("T")
        assert runtime["T"].work_items is not definition.flow_object("T").work_items


class TestValidation:
    def test_duplicate_ids(self):
        source = linear_manual()
        source["activities"].append({"id": "A"})
        with pytest.raises(DefinitionError, match="duplicate flow object"):
            build_definition(source)

    def test_duplicate_flow_ids(self):
        source = linear_manual()
        source["transitions"][1]["id"] = "f1"
        with pytest.raises(DefinitionError, match="duplicate sequence flow"):
            build_definition(source)

    def test_requires_start_event(self):
        source = linear_manual()
        source["events"] = [{"id": "B", "type": "endEvent"}]
        source["transitions"] = [{"id": "f2", "source": "T", "target": "B"}]
        with pytest.raises(DefinitionError, match="no start event"):
            build_definition(source)

    def test_unknown_endpoint(self):
        source = linear_manual()
        source["transitions"].append({"id": "f3", "source": "T", "target": "ghost"})
        with pytest.raises(DefinitionError, match="unknown endpoint"):
            build_definition(source)

    def test_flow_into_start_event(self):
        source = linear_manual()
        source["transitions"].append({"id": "f3", "source": "T", "target": "A"})
        with pytest.raises(DefinitionError, match="enters start event"):
            build_definition(source)

    def test_flow_out_of_end_event(self):
        source = linear_manual()
        source["transitions"].append({"id": "f3", "source": "B", "target": "T"})
        with pytest.raises(DefinitionError, match="leaves end event"):
            build_definition(source)

    def test_default_flow_must_leave_gateway(self):
        source = exclusive_choice()
        source["gateways"][0]["default"] = "f1"
        with pytest.raises(DefinitionError, match="default flow"):
            build_definition(source)
