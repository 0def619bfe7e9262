"""Domain Events — immutable records of things that happened in the domain."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ── WorkItem Events ──────────────────────────────────────

@dataclass(frozen=True)
class WorkItemCreated(DomainEvent):
    workitem_id: str = ""
    activity_id: str = ""


@dataclass(frozen=True)
class WorkItemAllocated(DomainEvent):
    workitem_id: str = ""
    activity_id: str = ""
    participant: Any = None


@dataclass(frozen=True)
class WorkItemStarted(DomainEvent):
    workitem_id: str = ""
    activity_id: str = ""


@dataclass(frozen=True)
class WorkItemCompleted(DomainEvent):
    workitem_id: str = ""
    activity_id: str = ""
    participant: Any = None
    result: Any = None


# ── ProcessInstance Events ───────────────────────────────

@dataclass(frozen=True)
class ProcessStarted(DomainEvent):
    proc_inst_id: str = ""
    start_event_id: str = ""


@dataclass(frozen=True)
class FlowObjectReached(DomainEvent):
    proc_inst_id: str = ""
    flow_object_id: str = ""
    kind: str = ""


@dataclass(frozen=True)
class ProcessCompleted(DomainEvent):
    proc_inst_id: str = ""
    end_event_id: str = ""
