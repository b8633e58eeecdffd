# src/storage/memory_store.py — v1
"""In-process result store (RESULT_STORE_BACKEND=memory)."""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Sequence

from pydantic import BaseModel

from toppbridge.core.models import Peak, SpectrumDescriptor
from toppbridge.storage.base_result_store import BaseResultStore, ItemKey


class MemoryResultStore(BaseResultStore):
    """Dict-backed store, mostly for tests and one-shot CLI runs."""

    def __init__(self, result_set_guid: str | None = None) -> None:
        self._guid = result_set_guid or str(uuid.uuid4())
        self._open = True
        self._spectra: dict[ItemKey, SpectrumDescriptor] = {}
        self._peaks: dict[ItemKey, list[Peak]] = {}
        self._items: dict[str, dict[ItemKey, dict[str, Any]]] = {}
        self._connections: dict[str, dict[ItemKey, list[ItemKey]]] = {}

    @property
    def result_set_guid(self) -> str:
        return self._guid

    async def is_live(self) -> bool:
        return self._open

    async def add_spectra(
        self, spectra: Sequence[tuple[SpectrumDescriptor, Sequence[Peak]]]
    ) -> None:
        for descriptor, peaks in spectra:
            self._spectra[descriptor.key] = descriptor
            self._peaks[descriptor.key] = list(peaks)

    async def list_spectra(self, workflow_id: int | None = None) -> list[SpectrumDescriptor]:
        return [
            s for s in self._spectra.values()
            if workflow_id is None or s.workflow_id == workflow_id
        ]

    async def read_spectrum(self, workflow_id: int, spectrum_id: int) -> SpectrumDescriptor | None:
        return self._spectra.get((workflow_id, spectrum_id))

    async def read_peaks(self, workflow_id: int, spectrum_id: int) -> list[Peak] | None:
        peaks = self._peaks.get((workflow_id, spectrum_id))
        return None if peaks is None else list(peaks)

    async def register_entity(self, entity: str) -> None:
        self._items.setdefault(entity, {})
        self._connections.setdefault(entity, {})

    async def next_id(self, entity: str) -> int:
        items = self._items.get(entity, {})
        return max((key[1] for key in items), default=0) + 1

    async def insert_items(self, entity: str, items: Sequence[BaseModel]) -> None:
        table = self._items.setdefault(entity, {})
        for item in items:
            data = item.model_dump()
            table[(data["workflow_id"], data["id"])] = data

    async def read_items(self, entity: str) -> list[dict[str, Any]]:
        return [dict(data) for data in self._items.get(entity, {}).values()]

    async def update_items(
        self, entity: str, updates: Mapping[ItemKey, Mapping[str, Any]]
    ) -> int:
        table = self._items.get(entity, {})
        changed = 0
        for key, fields in updates.items():
            if key in table:
                table[key].update(fields)
                changed += 1
        return changed

    async def connect_items(
        self, entity: str, pairs: Sequence[tuple[ItemKey, ItemKey]]
    ) -> None:
        links = self._connections.setdefault(entity, {})
        for item_key, spectrum_key in pairs:
            targets = links.setdefault(item_key, [])
            if spectrum_key not in targets:
                targets.append(spectrum_key)

    async def connected_spectra(self, entity: str, key: ItemKey) -> list[ItemKey]:
        return list(self._connections.get(entity, {}).get(key, []))

    async def close(self) -> None:
        self._open = False
