"""
BPM definition layer.
프로세스 정의 모델과 실행 그래프 빌더.
"""
from process_engine.bpm.builder import build_definition, parse_definition
from process_engine.bpm.models import (
    EventModel,
    GatewayModel,
    ProcessActivityModel,
    ProcessDefinitionModel,
    Transition,
)

__all__ = [
    "build_definition",
    "parse_definition",
    "EventModel",
    "GatewayModel",
    "ProcessActivityModel",
    "ProcessDefinitionModel",
    "Transition",
]
