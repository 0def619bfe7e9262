"""Domain Errors — business rule violation exceptions."""
from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for all domain-level errors."""
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


# ── Contract violations (caller/programming errors) ──────

class ContractViolation(DomainError):
    """Raised when a request context or call sequence breaks a precondition."""
    def __init__(self, message: str, code: str = "CONTRACT_VIOLATION"):
        super().__init__(code=code, message=message)


class ProcessAlreadyStarted(ContractViolation):
    def __init__(self, process_instance_id: str = ""):
        super().__init__(
            code="PROCESS_ALREADY_STARTED",
            message=f"Process instance already started: {process_instance_id}",
        )
        self.process_instance_id = process_instance_id


class FlowObjectNotFound(ContractViolation):
    def __init__(self, flow_object_id: str = ""):
        super().__init__(code="FLOW_OBJECT_NOT_FOUND", message=f"Flow object not found: {flow_object_id}")
        self.flow_object_id = flow_object_id


class FlowObjectTypeMismatch(ContractViolation):
    def __init__(self, flow_object_id: str, expected: str, actual: str):
        super().__init__(
            code="FLOW_OBJECT_TYPE_MISMATCH",
            message=f"Flow object {flow_object_id} is a {actual}, expected {expected}",
        )
        self.flow_object_id = flow_object_id
        self.expected = expected
        self.actual = actual


class ActiveWorkItemNotFound(ContractViolation):
    def __init__(self, activity_id: str = ""):
        super().__init__(
            code="ACTIVE_WORKITEM_NOT_FOUND",
            message=f"Activity {activity_id} has no active work item",
        )
        self.activity_id = activity_id


class AmbiguousActiveWorkItem(ContractViolation):
    def __init__(self, activity_id: str, count: int):
        super().__init__(
            code="AMBIGUOUS_ACTIVE_WORKITEM",
            message=f"Activity {activity_id} has {count} active work items, expected exactly one",
        )
        self.activity_id = activity_id
        self.count = count


class CollaboratorMissing(ContractViolation):
    def __init__(self, collaborator: str, flow_object_id: str = ""):
        super().__init__(
            code="COLLABORATOR_MISSING",
            message=f"No {collaborator} registered (needed by {flow_object_id or 'process instance'})",
        )
        self.collaborator = collaborator
        self.flow_object_id = flow_object_id


# ── State conflicts ──────────────────────────────────────

class InvalidStateTransition(DomainError):
    """Raised when an aggregate state transition violates the state machine."""
    def __init__(self, current: str, target: str):
        super().__init__(
            code="INVALID_STATE_TRANSITION",
            message=f"Cannot transition from {current} to {target}",
        )
        self.current = current
        self.target = target


class AlreadyCompleted(DomainError):
    def __init__(self, status: str):
        super().__init__(code="ALREADY_COMPLETED", message=f"Cannot transition in terminal state {status}")
        self.status = status


class UnexpectedActivityStateError(DomainError):
    """No work item of the activity is in an actionable state."""
    def __init__(self, activity_id: str):
        super().__init__(
            code="UNEXPECTED_ACTIVITY_STATE",
            message=f'The current work item of the activity "{activity_id}" is not executable.',
        )
        self.activity_id = activity_id


# ── Lookup / routing / limits ────────────────────────────

class WorkflowNotFoundError(DomainError):
    def __init__(self, workflow_id: Any = ""):
        super().__init__(code="WORKFLOW_NOT_FOUND", message=f'The workflow "{workflow_id}" is not found.')
        self.workflow_id = workflow_id


class GatewayRoutingError(DomainError):
    def __init__(self, gateway_id: str):
        super().__init__(
            code="GATEWAY_ROUTING_FAILED",
            message=f"No outgoing sequence flow of gateway {gateway_id} could be selected",
        )
        self.gateway_id = gateway_id


class ExecutionLimitExceeded(DomainError):
    def __init__(self, limit: int, flow_object_id: str = ""):
        super().__init__(
            code="EXECUTION_LIMIT_EXCEEDED",
            message=f"Execution exceeded {limit} steps (last at {flow_object_id or '-'})",
        )
        self.limit = limit
        self.flow_object_id = flow_object_id


class DefinitionError(DomainError):
    def __init__(self, message: str):
        super().__init__(code="INVALID_DEFINITION", message=message)
