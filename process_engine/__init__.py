"""
Process engine.
프로세스 정의를 인스턴스화하고 작업 항목(work item)의 할당·시작·완료를 구동한다.
"""
from process_engine.application.contexts import EventContext, ProcessContext, WorkItemContext
from process_engine.application.process import Process
from process_engine.bpm.builder import build_definition
from process_engine.domain.aggregates.process_instance import ProcessInstance, ProcessInstanceStatus
from process_engine.domain.aggregates.work_item import WorkItem, WorkItemStatus
from process_engine.domain.collaborators import (
    Collaborators,
    DataProvider,
    ExpressionEvaluator,
    OperationRunner,
)
from process_engine.domain.workflow_id import WorkflowId

__all__ = [
    "Collaborators",
    "DataProvider",
    "EventContext",
    "ExpressionEvaluator",
    "OperationRunner",
    "Process",
    "ProcessContext",
    "ProcessInstance",
    "ProcessInstanceStatus",
    "WorkItem",
    "WorkItemContext",
    "WorkItemStatus",
    "WorkflowId",
    "build_definition",
]
