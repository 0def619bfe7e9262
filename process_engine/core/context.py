from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional


_process_instance_id: ContextVar[str] = ContextVar("process_instance_id", default="")
_activity_id: ContextVar[str] = ContextVar("activity_id", default="")


def get_current_process_instance_id() -> str:
    return _process_instance_id.get()


def get_current_activity_id() -> str:
    return _activity_id.get()


@contextmanager
def bind_log_context(
    process_instance_id: Optional[str] = None,
    activity_id: Optional[str] = None,
) -> Iterator[None]:
    """Bind instance/activity ids for log records emitted inside the block."""
    instance_token = (
        _process_instance_id.set(process_instance_id) if process_instance_id is not None else None
    )
    activity_token = _activity_id.set(activity_id) if activity_id is not None else None
    try:
        yield
    finally:
        if activity_token is not None:
            _activity_id.reset(activity_token)
        if instance_token is not None:
            _process_instance_id.reset(instance_token)
