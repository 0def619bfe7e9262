"""Shared definitions and fixtures for process engine unit tests."""
import pytest

from process_engine.bpm.builder import build_definition
from process_engine.core.observability import metrics_registry


def linear_manual() -> dict:
    """A(start) → T(humanTask) → B(end)."""
    return {
        "process_definition_id": "linear",
        "events": [
            {"id": "A", "type": "startEvent"},
            {"id": "B", "type": "endEvent"},
        ],
        "activities": [{"id": "T", "name": "Review", "type": "humanTask"}],
        "transitions": [
            {"id": "f1", "source": "A", "target": "T"},
            {"id": "f2", "source": "T", "target": "B"},
        ],
    }


def automated_then_manual() -> dict:
    """start → S(serviceTask "enrich") → H(humanTask) → end."""
    return {
        "process_definition_id": "auto",
        "events": [
            {"id": "start", "type": "startEvent"},
            {"id": "end", "type": "endEvent"},
        ],
        "activities": [
            {"id": "S", "type": "serviceTask", "operation": "enrich"},
            {"id": "H", "type": "humanTask"},
        ],
        "transitions": [
            {"id": "f1", "source": "start", "target": "S"},
            {"id": "f2", "source": "S", "target": "H"},
            {"id": "f3", "source": "H", "target": "end"},
        ],
    }


def exclusive_choice(default: bool = True) -> dict:
    """start → R → G(xor) → (amount > 100) BIG | default SMALL → end."""
    gateway = {"id": "G", "type": "exclusiveGateway"}
    if default:
        gateway["default"] = "f_small"
    return {
        "process_definition_id": "choice",
        "events": [
            {"id": "start", "type": "startEvent"},
            {"id": "end", "type": "endEvent"},
        ],
        "activities": [
            {"id": "R", "type": "humanTask"},
            {"id": "BIG", "type": "humanTask"},
            {"id": "SMALL", "type": "humanTask"},
        ],
        "gateways": [gateway],
        "transitions": [
            {"id": "f1", "source": "start", "target": "R"},
            {"id": "f2", "source": "R", "target": "G"},
            {"id": "f_big", "source": "G", "target": "BIG", "condition": "amount > 100"},
            {"id": "f_small", "source": "G", "target": "SMALL",
             "condition": None if default else "amount <= 100"},
            {"id": "f3", "source": "BIG", "target": "end"},
            {"id": "f4", "source": "SMALL", "target": "end"},
        ],
    }


def parallel_split() -> dict:
    """start → P(split) → X, Y → J(join) → end."""
    return {
        "process_definition_id": "parallel",
        "events": [
            {"id": "start", "type": "startEvent"},
            {"id": "end", "type": "endEvent"},
        ],
        "activities": [
            {"id": "X", "type": "humanTask"},
            {"id": "Y", "type": "humanTask"},
        ],
        "gateways": [
            {"id": "P", "type": "parallelGateway"},
            {"id": "J", "type": "parallelGateway"},
        ],
        "transitions": [
            {"id": "f1", "source": "start", "target": "P"},
            {"id": "fx", "source": "P", "target": "X"},
            {"id": "fy", "source": "P", "target": "Y"},
            {"id": "fxj", "source": "X", "target": "J"},
            {"id": "fyj", "source": "Y", "target": "J"},
            {"id": "f2", "source": "J", "target": "end"},
        ],
    }


def automated_loop() -> dict:
    """start → S1 → S2 → S1 … (never reaches an end event)."""
    return {
        "process_definition_id": "loop",
        "events": [{"id": "start", "type": "startEvent"}],
        "activities": [
            {"id": "S1", "type": "scriptTask", "operation": "noop"},
            {"id": "S2", "type": "scriptTask", "operation": "noop"},
        ],
        "transitions": [
            {"id": "f1", "source": "start", "target": "S1"},
            {"id": "f2", "source": "S1", "target": "S2"},
            {"id": "f3", "source": "S2", "target": "S1"},
        ],
    }


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics_registry.reset()
    yield
    metrics_registry.reset()


@pytest.fixture
def linear_definition():
    return build_definition(linear_manual())


@pytest.fixture
def parallel_definition():
    return build_definition(parallel_split())
