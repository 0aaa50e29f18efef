"""Which source supplied each resolved configuration field."""

from collections import Counter
from typing import Any

from .types import ConfigOrigin, SourceMap


class SourceTracker:
    """Remembers the latest origin written for every field.

    Sources are applied lowest precedence first, so later writes win.
    """

    def __init__(self) -> None:
        self._by_field: dict[str, ConfigOrigin] = {}

    def set_origin(self, field: str, origin: ConfigOrigin) -> None:
        self._by_field[field] = origin

    def set_multiple(self, fields: dict[str, Any], origin: ConfigOrigin) -> None:
        self._by_field.update(dict.fromkeys(fields, origin))

    def get_source_map(self) -> SourceMap:
        return self._by_field.copy()

    def has_origin(self, field: str) -> bool:
        return field in self._by_field


def summarize_origins(source_map: SourceMap) -> dict[str, int]:
    """Number of fields per origin, e.g. ``{"env": 2, "default": 5}``."""
    return dict(Counter(source_map.values()))
