"""Prompt template storage.

The chain runners only need to look templates up by ``(area, key)``; any
backing store that implements `PromptStore` can be plugged in.
`InMemoryPromptStore` is the built-in implementation used for tests,
scripts, and applications that load their templates at startup.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
import json
import logging
from typing import Any, Protocol, runtime_checkable
import uuid

from prompt_chain.core.types import PromptRecord

log = logging.getLogger(__name__)


@runtime_checkable
class PromptStore(Protocol):
    """Lookup of prompt templates by area and key."""

    def get_prompt(self, prompt_area: str, prompt_key: str) -> PromptRecord | None:
        """Return the template for ``(prompt_area, prompt_key)`` or None."""
        ...


class InMemoryPromptStore:
    """Dictionary-backed `PromptStore`."""

    def __init__(self, records: Iterable[PromptRecord] = ()) -> None:
        self._records: dict[tuple[str, str], PromptRecord] = {}
        for record in records:
            self.add(record)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> InMemoryPromptStore:
        """Build a store from plain mappings (e.g. rows loaded from JSON).

        A ``next_prompt`` given as a mapping is kept as JSON text, the form
        it is persisted in.

        Raises:
            KeyError: If a mapping lacks prompt_area, prompt_key or prompt_text.
        """
        store = cls()
        for row in records:
            next_prompt = row.get("next_prompt")
            if isinstance(next_prompt, Mapping):
                next_prompt = json.dumps(next_prompt)
            store.add(
                PromptRecord(
                    prompt_area=row["prompt_area"],
                    prompt_key=row["prompt_key"],
                    prompt_text=row["prompt_text"],
                    next_prompt=next_prompt,
                    prompt_variables=row.get("prompt_variables"),
                    prompt_notes=row.get("prompt_notes"),
                    uuid=row.get("uuid") or str(uuid.uuid4()),
                )
            )
        return store

    def add(self, record: PromptRecord) -> None:
        """Insert or replace the template for the record's area/key."""
        key = (record.prompt_area, record.prompt_key)
        if key in self._records:
            log.debug("Replacing prompt %s/%s", *key)
        self._records[key] = record

    def remove(self, prompt_area: str, prompt_key: str) -> bool:
        return self._records.pop((prompt_area, prompt_key), None) is not None

    def get_prompt(self, prompt_area: str, prompt_key: str) -> PromptRecord | None:
        record = self._records.get((prompt_area, prompt_key))
        if record is None:
            log.debug("No prompt for %s/%s", prompt_area, prompt_key)
        return record

    def list_prompts(self, prompt_area: str | None = None) -> list[PromptRecord]:
        """Return stored templates, optionally limited to one area."""
        return [
            r
            for r in self._records.values()
            if prompt_area is None or r.prompt_area == prompt_area
        ]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[PromptRecord]:
        return iter(self._records.values())
