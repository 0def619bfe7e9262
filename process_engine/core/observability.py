"""In-process engine counters with Prometheus text rendering."""
from __future__ import annotations

from collections import defaultdict


_COUNTERS: list[tuple[str, str]] = [
    ("engine_process_started_total", "Process instances started"),
    ("engine_process_completed_total", "Process instances that reached completion"),
    ("engine_workitem_created_total", "Work items created"),
    ("engine_workitem_allocated_total", "Work items allocated"),
    ("engine_workitem_started_total", "Work items started"),
    ("engine_workitem_completed_total", "Work items completed"),
    ("engine_operation_run_total", "Automated operations run successfully"),
    ("engine_operation_failed_total", "Automated operation failures"),
    ("engine_execute_steps_total", "execute_work_item loop steps"),
]


class MetricsRegistry:
    def __init__(self) -> None:
        self._counters: dict[str, float] = defaultdict(float)

    def inc(self, name: str, value: float = 1.0) -> None:
        self._counters[name] += value

    def get_counter(self, name: str) -> float:
        return self._counters.get(name, 0.0)

    def reset(self) -> None:
        self._counters.clear()

    def render_prometheus(self) -> str:
        lines: list[str] = []
        for name, help_text in _COUNTERS:
            lines += [
                f"# HELP {name} {help_text}",
                f"# TYPE {name} counter",
                f"{name} {self.get_counter(name)}",
            ]
        return "\n".join(lines)


metrics_registry = MetricsRegistry()
