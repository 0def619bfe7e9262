"""DataProvider that overlays a fixed or callable-produced mapping."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Union

from process_engine.domain.collaborators import DataProvider

Source = Union[Mapping[str, Any], Callable[[], Mapping[str, Any]]]


class MappingDataProvider(DataProvider):
    """Supplies external input by merging a mapping over the process data.

    ``overwrite=False`` only fills keys the process data does not have yet.
    """

    def __init__(self, source: Source, *, overwrite: bool = True) -> None:
        self._source = source
        self.overwrite = overwrite

    def supply(self, process_data: dict[str, Any]) -> dict[str, Any]:
        incoming = self._source() if callable(self._source) else self._source
        merged = dict(process_data)
        for key, value in incoming.items():
            if self.overwrite or key not in merged:
                merged[key] = value
        return merged
