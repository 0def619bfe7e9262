"""Unit tests for ProcessInstance Aggregate.

Graph walk, gateways, automated activities, completion, and failure
atomicity. Collaborators are the in-memory reference implementations.
"""
import pytest

from conftest import automated_loop, automated_then_manual, exclusive_choice, linear_manual, parallel_split
from process_engine.bpm.builder import build_definition
from process_engine.core.observability import metrics_registry
from process_engine.domain.aggregates.process_instance import ProcessInstance, ProcessInstanceStatus
from process_engine.domain.aggregates.work_item import WorkItem, WorkItemStatus
from process_engine.domain.collaborators import Collaborators
from process_engine.domain.errors import (
    CollaboratorMissing,
    ContractViolation,
    ExecutionLimitExceeded,
    FlowObjectNotFound,
    FlowObjectTypeMismatch,
    GatewayRoutingError,
    ProcessAlreadyStarted,
)
from process_engine.domain.events import ProcessCompleted, ProcessStarted
from process_engine.domain.flow_objects import Activity, StartEvent
from process_engine.infrastructure.expression.ast_evaluator import AstExpressionEvaluator
from process_engine.infrastructure.operations.callable_runner import CallableOperationRunner
from process_engine.infrastructure.providers.mapping_provider import MappingDataProvider


def _make(source: dict, **kwargs) -> ProcessInstance:
    return ProcessInstance(build_definition(source), **kwargs)


def _start(instance: ProcessInstance, event_id: str = "start") -> ProcessInstance:
    instance.start(instance.get_flow_object(event_id))
    return instance


def _drive(instance: ProcessInstance, activity_id: str, participant: str = "alice") -> WorkItem:
    wi = instance.get_activity(activity_id).work_items.active()
    instance.allocate_work_item(wi, participant)
    instance.start_work_item(wi)
    instance.complete_work_item(wi, participant)
    return wi


# ── Start ────────────────────────────────────────────────

class TestStart:
    def test_start_halts_at_manual_activity(self):
        instance = _start(_make(linear_manual()), "A")
        assert instance.status == ProcessInstanceStatus.STARTED
        assert instance.current_flow_object.id == "T"
        items = instance.active_work_items()
        assert len(items) == 1
        assert items[0].status == WorkItemStatus.READY

    def test_start_records_events(self):
        instance = _start(_make(linear_manual()), "A")
        events = instance.collect_events()
        assert isinstance(events[0], ProcessStarted)
        assert events[0].start_event_id == "A"

    def test_start_twice_rejected(self):
        instance = _start(_make(linear_manual()), "A")
        with pytest.raises(ProcessAlreadyStarted):
            instance.start(instance.get_flow_object("A"))
        assert len(instance.active_work_items()) == 1

    def test_start_with_foreign_start_event_rejected(self):
        instance = _make(linear_manual())
        with pytest.raises(FlowObjectNotFound):
            instance.start(StartEvent(id="elsewhere"))
        assert instance.status == ProcessInstanceStatus.CREATED

    def test_start_with_non_start_event_rejected(self):
        instance = _make(linear_manual())
        with pytest.raises(FlowObjectTypeMismatch):
            instance.start(instance.get_flow_object("T"))
        assert not instance.is_started

    def test_start_counts_metric(self):
        _start(_make(linear_manual()), "A")
        assert metrics_registry.get_counter("engine_process_started_total") == 1
        assert metrics_registry.get_counter("engine_workitem_created_total") == 1


# ── Queries ──────────────────────────────────────────────

class TestQueries:
    def test_get_activity_rejects_other_kinds(self):
        instance = _make(linear_manual())
        with pytest.raises(FlowObjectTypeMismatch) as exc:
            instance.get_activity("A")
        assert exc.value.actual == "startEvent"

    def test_unknown_flow_object(self):
        with pytest.raises(FlowObjectNotFound):
            _make(linear_manual()).get_flow_object("nope")

    def test_instances_do_not_share_work_items(self, linear_definition):
        first = ProcessInstance(linear_definition)
        second = ProcessInstance(linear_definition)
        _start(first, "A")
        assert len(first.get_activity("T").work_items) == 1
        assert len(second.get_activity("T").work_items) == 0
        assert isinstance(first.get_activity("T"), Activity)


# ── Work item lifecycle ──────────────────────────────────

class TestWorkItemLifecycle:
    def test_manual_activity_to_completion(self):
        instance = _start(_make(linear_manual()), "A")
        wi = _drive(instance, "T", "alice")
        assert wi.status == WorkItemStatus.COMPLETED
        assert wi.end_participant == "alice"
        assert instance.is_ended
        assert instance.current_flow_object.id == "B"
        assert instance.activity_log == [wi]
        assert isinstance(instance.collect_events()[-1], ProcessCompleted)

    def test_allocate_does_not_move_current_flow_object(self):
        instance = _start(_make(linear_manual()), "A")
        wi = instance.get_activity("T").work_items.active()
        instance.allocate_work_item(wi, "alice")
        assert instance.current_flow_object.id == "T"
        assert wi.participant == "alice"

    def test_foreign_work_item_rejected(self):
        instance = _start(_make(linear_manual()), "A")
        stranger = WorkItem.create(activity_id="T")
        with pytest.raises(ContractViolation) as exc:
            instance.allocate_work_item(stranger, "alice")
        assert exc.value.code == "WORKITEM_NOT_IN_INSTANCE"

    def test_transitions_require_running_instance(self):
        instance = _start(_make(linear_manual()), "A")
        wi = _drive(instance, "T")
        with pytest.raises(ContractViolation) as exc:
            instance.complete_work_item(wi)
        assert exc.value.code == "PROCESS_NOT_RUNNING"


# ── Gateways ─────────────────────────────────────────────

class TestExclusiveGateway:
    def _instance(self, **kwargs):
        return _start(_make(
            exclusive_choice(**kwargs),
            collaborators=Collaborators(expression_evaluator=AstExpressionEvaluator()),
        ))

    def test_first_true_guard_wins(self):
        instance = self._instance()
        instance.set_process_data({"amount": 500})
        _drive(instance, "R")
        assert instance.current_flow_object.id == "BIG"
        assert len(instance.get_activity("SMALL").work_items) == 0

    def test_default_flow_when_no_guard_holds(self):
        instance = self._instance()
        instance.set_process_data({"amount": 5})
        _drive(instance, "R")
        assert instance.current_flow_object.id == "SMALL"

    def test_no_route_leaves_work_item_started(self):
        instance = self._instance(default=False)
        # NaN fails both "amount > 100" and "amount <= 100"
        instance.configure(Collaborators(data_provider=MappingDataProvider({"amount": float("nan")})))
        with pytest.raises(GatewayRoutingError) as exc:
            _drive(instance, "R")
        assert exc.value.gateway_id == "G"

        wi = instance.get_activity("R").work_items.active()
        assert wi.status == WorkItemStatus.STARTED
        assert instance.current_flow_object.id == "R"
        assert instance.activity_log == []

        instance.configure(Collaborators(data_provider=MappingDataProvider({"amount": 500})))
        instance.complete_work_item(wi)
        assert wi.status == WorkItemStatus.COMPLETED
        assert instance.current_flow_object.id == "BIG"

    def test_data_provider_refreshes_before_guards(self):
        instance = self._instance()
        instance.set_process_data({"amount": 1})
        instance.configure(Collaborators(data_provider=MappingDataProvider({"amount": 1000})))
        _drive(instance, "R")
        assert instance.current_flow_object.id == "BIG"

    def test_missing_evaluator_leaves_work_item_started(self):
        instance = _start(_make(exclusive_choice()))
        with pytest.raises(CollaboratorMissing):
            _drive(instance, "R")

        wi = instance.get_activity("R").work_items.active()
        assert wi.status == WorkItemStatus.STARTED
        assert instance.current_flow_object.id == "R"
        assert instance.active_work_items() == [wi]

        instance.configure(Collaborators(expression_evaluator=AstExpressionEvaluator()))
        instance.complete_work_item(wi, process_data={"amount": 1})
        assert instance.current_flow_object.id == "SMALL"

    def test_rejected_completion_restores_process_data(self):
        instance = _start(_make(exclusive_choice()))
        instance.set_process_data({"amount": 1})
        wi = instance.get_activity("R").work_items.active()
        instance.allocate_work_item(wi, "alice")
        instance.start_work_item(wi)
        with pytest.raises(CollaboratorMissing):
            instance.complete_work_item(wi, process_data={"amount": 999})
        assert instance.process_data == {"amount": 1}

    def test_unroutable_start_leaves_instance_created(self):
        source = exclusive_choice()
        source["transitions"][0] = {"id": "f1", "source": "start", "target": "G"}
        instance = _make(source)
        with pytest.raises(CollaboratorMissing):
            _start(instance)
        assert instance.status == ProcessInstanceStatus.CREATED
        assert instance.current_flow_object is None


class TestInclusiveGateway:
    def test_every_true_guard_is_taken(self):
        source = parallel_split()
        source["gateways"] = [
            {"id": "P", "type": "inclusiveGateway"},
            {"id": "J", "type": "exclusiveGateway"},
        ]
        source["transitions"][1]["condition"] = "x"
        source["transitions"][2]["condition"] = "y"
        evaluator = Collaborators(expression_evaluator=AstExpressionEvaluator())

        only_x = _start(_make(source, collaborators=evaluator, process_data={"x": True, "y": False}))
        assert {wi.activity_id for wi in only_x.active_work_items()} == {"X"}

        both = _start(_make(source, collaborators=evaluator, process_data={"x": 1, "y": 1}))
        assert {wi.activity_id for wi in both.active_work_items()} == {"X", "Y"}


class TestParallelGateway:
    def test_split_creates_work_item_per_branch(self, parallel_definition):
        instance = _start(ProcessInstance(parallel_definition))
        ready = {wi.activity_id for wi in instance.active_work_items()}
        assert ready == {"X", "Y"}
        # last reached branch becomes current
        assert instance.current_flow_object.id == "Y"

    def test_join_waits_for_all_branches(self, parallel_definition):
        instance = _start(ProcessInstance(parallel_definition))
        _drive(instance, "X")
        assert not instance.is_ended
        _drive(instance, "Y")
        assert instance.is_ended
        assert instance.current_flow_object.id == "end"
        assert [wi.activity_id for wi in instance.activity_log] == ["X", "Y"]


# ── Automated activities ─────────────────────────────────

class TestAutomatedActivity:
    def test_operation_runs_and_merges_result(self):
        runner = CallableOperationRunner({"enrich": lambda activity, inst: {"score": 7}})
        instance = _start(_make(automated_then_manual(), collaborators=Collaborators(operation_runner=runner)))
        service_item = instance.get_activity("S").work_items.last()
        assert service_item.status == WorkItemStatus.COMPLETED
        assert service_item.end_participant == "system"
        assert service_item.end_result == {"score": 7}
        assert instance.process_data["score"] == 7
        assert instance.current_flow_object.id == "H"
        assert metrics_registry.get_counter("engine_operation_run_total") == 1

    def test_runner_participant_is_recorded(self):
        runner = CallableOperationRunner({"enrich": lambda a, i: None}, participant="robot")
        instance = _start(_make(automated_then_manual(), collaborators=Collaborators(operation_runner=runner)))
        assert instance.get_activity("S").work_items.last().participant == "robot"

    def test_failure_leaves_item_started_and_retry_completes(self):
        calls = []

        def flaky(activity, inst):
            calls.append(activity.id)
            if len(calls) == 1:
                raise RuntimeError("downstream unavailable")
            return {"ok": True}

        runner = CallableOperationRunner({"enrich": flaky})
        instance = _make(automated_then_manual(), collaborators=Collaborators(operation_runner=runner))
        with pytest.raises(RuntimeError):
            _start(instance)

        wi = instance.get_activity("S").work_items.active()
        assert wi.status == WorkItemStatus.STARTED
        assert instance.current_flow_object.id == "S"
        assert metrics_registry.get_counter("engine_operation_failed_total") == 1

        instance.complete_work_item(wi)
        assert wi.status == WorkItemStatus.COMPLETED
        assert instance.process_data["ok"] is True
        assert instance.current_flow_object.id == "H"
        assert calls == ["S", "S"]

    def test_failed_branch_keeps_sibling_tokens(self):
        source = parallel_split()
        source["activities"][0] = {"id": "X", "type": "serviceTask", "operation": "sync"}
        attempts = []

        def sync(activity, inst):
            attempts.append(activity.id)
            if len(attempts) == 1:
                raise ConnectionError("erp down")

        runner = CallableOperationRunner({"sync": sync})
        instance = _make(source, collaborators=Collaborators(operation_runner=runner))
        with pytest.raises(ConnectionError):
            _start(instance)

        assert [f.id for f in instance.pending_flows] == ["fy"]
        assert len(instance.get_activity("Y").work_items) == 0
        x_item = instance.get_activity("X").work_items.active()
        assert x_item.status == WorkItemStatus.STARTED

        instance.complete_work_item(x_item)
        assert instance.pending_flows == []
        assert instance.get_activity("Y").work_items.active().status == WorkItemStatus.READY
        assert not instance.is_ended

        _drive(instance, "Y")
        assert instance.is_ended
        assert [wi.activity_id for wi in instance.activity_log] == ["X", "Y"]

    def test_missing_runner(self):
        with pytest.raises(CollaboratorMissing) as exc:
            _start(_make(automated_then_manual()))
        assert exc.value.flow_object_id == "S"

    def test_data_provider_feeds_operation(self):
        seen = {}

        def enrich(activity, inst):
            seen.update(inst.process_data)

        collaborators = Collaborators(
            operation_runner=CallableOperationRunner({"enrich": enrich}),
            data_provider=MappingDataProvider({"customer": "acme"}),
        )
        _start(_make(automated_then_manual(), collaborators=collaborators))
        assert seen == {"customer": "acme"}

    def test_automated_loop_hits_walk_limit(self):
        runner = CallableOperationRunner({"noop": lambda a, i: None})
        instance = _make(automated_loop(), collaborators=Collaborators(operation_runner=runner), max_walk_steps=10)
        with pytest.raises(ExecutionLimitExceeded) as exc:
            _start(instance)
        assert exc.value.limit == 10


# ── Configuration ────────────────────────────────────────

class TestConfigure:
    def test_absent_slots_keep_existing_collaborators(self):
        evaluator = AstExpressionEvaluator()
        runner = CallableOperationRunner()
        instance = _make(linear_manual(), collaborators=Collaborators(expression_evaluator=evaluator))
        instance.configure(Collaborators(operation_runner=runner))
        assert instance.collaborators.expression_evaluator is evaluator
        assert instance.collaborators.operation_runner is runner
        assert instance.collaborators.data_provider is None
