"""
BPM definition Pydantic models.
Serialized form of a process graph (dict/JSON), kept separate from the
runtime FlowObject types the engine executes.
"""
from typing import Optional

from pydantic import BaseModel, Field

from process_engine.domain.flow_objects import ActivityType, GatewayType


class EventModel(BaseModel):
    id: str
    name: str = ""
    type: str = Field(pattern="^(startEvent|endEvent|intermediateEvent)$")


class ProcessActivityModel(BaseModel):
    id: str
    name: str = ""
    type: ActivityType = ActivityType.HUMAN_TASK
    operation: Optional[str] = None
    role: Optional[str] = None


class GatewayModel(BaseModel):
    id: str
    name: str = ""
    type: GatewayType = GatewayType.EXCLUSIVE
    default: Optional[str] = None


class Transition(BaseModel):
    id: str
    source: str
    target: str
    condition: Optional[str] = None


class ProcessDefinitionModel(BaseModel):
    """프로세스 정의 (BPMN 기반). definition JSON 역직렬화용."""
    process_definition_id: str
    process_definition_name: str = ""
    version: int = 1
    events: list[EventModel] = []
    activities: list[ProcessActivityModel] = []
    gateways: list[GatewayModel] = []
    transitions: list[Transition] = []
