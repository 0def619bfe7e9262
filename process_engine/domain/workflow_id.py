"""Workflow identifier accepted at the driver boundary.

Callers may identify a workflow by an int, a str, or a context object that
exposes ``workflow_id``. All three are folded into ``WorkflowId`` before the
repository sees them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union, runtime_checkable


@runtime_checkable
class WorkflowContext(Protocol):
    @property
    def workflow_id(self) -> Union[int, str]:
        ...


WorkflowIdentifier = Union[int, str, WorkflowContext, "WorkflowId"]


@dataclass(frozen=True)
class WorkflowId:
    value: Union[int, str]

    @classmethod
    def of(cls, identifier: WorkflowIdentifier) -> WorkflowId:
        if isinstance(identifier, WorkflowId):
            return identifier
        # bool is an int subclass but never a valid identifier
        if isinstance(identifier, bool):
            raise TypeError(f"Unsupported workflow identifier: {identifier!r}")
        if isinstance(identifier, (int, str)):
            return cls(identifier)
        if isinstance(identifier, WorkflowContext):
            return cls.of(identifier.workflow_id)
        raise TypeError(f"Unsupported workflow identifier: {identifier!r}")

    @property
    def canonical(self) -> str:
        return str(self.value)

    def __str__(self) -> str:
        return self.canonical
