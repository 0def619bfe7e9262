"""WorkItem Aggregate — one execution occurrence of an Activity.

Invariants:
1. State transitions follow _TRANSITIONS map (READY → ALLOCATED → STARTED → COMPLETED)
2. COMPLETED is terminal — no further transitions allowed
3. A rejected transition leaves the work item untouched
4. version increments on every state change
5. Domain events are collected and drained by the owning process instance
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator

from process_engine.domain.errors import (
    ActiveWorkItemNotFound,
    AlreadyCompleted,
    AmbiguousActiveWorkItem,
    InvalidStateTransition,
)
from process_engine.domain.events import (
    DomainEvent,
    WorkItemAllocated,
    WorkItemCompleted,
    WorkItemCreated,
    WorkItemStarted,
)


class WorkItemStatus(str, Enum):
    READY = "READY"
    ALLOCATED = "ALLOCATED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"


# Allowed state transitions (state machine)
_TRANSITIONS: dict[WorkItemStatus, set[WorkItemStatus]] = {
    WorkItemStatus.READY: {WorkItemStatus.ALLOCATED},
    WorkItemStatus.ALLOCATED: {WorkItemStatus.STARTED},
    WorkItemStatus.STARTED: {WorkItemStatus.COMPLETED},
    WorkItemStatus.COMPLETED: set(),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WorkItem:
    """WorkItem Aggregate.

    All state-mutating operations go through explicit command methods
    that enforce invariants and record domain events.
    """

    id: str
    activity_id: str
    status: WorkItemStatus = WorkItemStatus.READY
    participant: Any = None
    created_at: datetime = field(default_factory=_now)
    allocated_at: datetime | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    end_participant: Any = None
    end_result: Any = None
    version: int = 1

    _events: list[DomainEvent] = field(default_factory=list, repr=False)

    # ── Factory ──────────────────────────────────────────

    @classmethod
    def create(cls, *, activity_id: str, id: str | None = None) -> WorkItem:
        wi = cls(id=id or str(uuid.uuid4()), activity_id=activity_id)
        wi._record(WorkItemCreated(workitem_id=wi.id, activity_id=activity_id))
        return wi

    # ── Commands ─────────────────────────────────────────

    def allocate(self, participant: Any) -> None:
        """READY → ALLOCATED."""
        self._transition_to(WorkItemStatus.ALLOCATED)
        self.participant = participant
        self.allocated_at = _now()
        self._record(WorkItemAllocated(
            workitem_id=self.id,
            activity_id=self.activity_id,
            participant=participant,
        ))

    def start(self) -> None:
        """ALLOCATED → STARTED."""
        self._transition_to(WorkItemStatus.STARTED)
        self.started_at = _now()
        self._record(WorkItemStarted(workitem_id=self.id, activity_id=self.activity_id))

    def complete(self, participant: Any = None, result: Any = None) -> None:
        """STARTED → COMPLETED."""
        self._transition_to(WorkItemStatus.COMPLETED)
        self.end_participant = participant if participant is not None else self.participant
        self.end_result = result
        self.ended_at = _now()
        self._record(WorkItemCompleted(
            workitem_id=self.id,
            activity_id=self.activity_id,
            participant=self.end_participant,
            result=result,
        ))

    # ── Queries ──────────────────────────────────────────

    @property
    def is_terminal(self) -> bool:
        return self.status == WorkItemStatus.COMPLETED

    def ensure_can_transition_to(self, target: WorkItemStatus) -> None:
        """Raise the error the transition would raise, without mutating."""
        if self.is_terminal:
            raise AlreadyCompleted(self.status.value)
        if target not in _TRANSITIONS.get(self.status, set()):
            raise InvalidStateTransition(self.status.value, target.value)

    # ── Event Collection ─────────────────────────────────

    def collect_events(self) -> list[DomainEvent]:
        """Drain and return all pending domain events."""
        events = list(self._events)
        self._events.clear()
        return events

    # ── Private ──────────────────────────────────────────

    def _transition_to(self, target: WorkItemStatus) -> None:
        self.ensure_can_transition_to(target)
        self.status = target
        self.version += 1

    def _record(self, event: DomainEvent) -> None:
        self._events.append(event)


class WorkItemCollection:
    """Ordered work items of one activity within one process instance."""

    def __init__(self, activity_id: str) -> None:
        self.activity_id = activity_id
        self._items: list[WorkItem] = []

    def add(self, workitem: WorkItem) -> None:
        self._items.append(workitem)

    def active_instances(self) -> list[WorkItem]:
        return [wi for wi in self._items if not wi.is_terminal]

    def active(self) -> WorkItem:
        """Return the unique active work item.

        Zero or several active items is a caller contract violation, not a
        case for picking one arbitrarily.
        """
        active = self.active_instances()
        if not active:
            raise ActiveWorkItemNotFound(self.activity_id)
        if len(active) > 1:
            raise AmbiguousActiveWorkItem(self.activity_id, len(active))
        return active[0]

    def last(self) -> WorkItem | None:
        return self._items[-1] if self._items else None

    def has_active_in(self, status: WorkItemStatus) -> bool:
        return any(wi.status == status for wi in self.active_instances())

    def __iter__(self) -> Iterator[WorkItem]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)
