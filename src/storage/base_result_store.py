# src/storage/base_result_store.py — v1
"""Abstract result store interface.

A result store holds the spectra of one opened result set plus the entity
tables a workflow writes into it (identifications, quantified peptides and
proteins) and the record-to-spectrum connections.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from pydantic import BaseModel

from toppbridge.core.models import Peak, SpectrumDescriptor

ItemKey = tuple[int, int]

IDENTIFICATION_ENTITY = "identification"
PEPTIDE_ENTITY = "quantified_peptide"
PROTEIN_ENTITY = "quantified_protein"


class BaseResultStore(ABC):
    """Unified interface for result storage backends."""

    @property
    @abstractmethod
    def result_set_guid(self) -> str:
        """GUID identifying the result set this store holds."""

    @abstractmethod
    async def is_live(self) -> bool:
        """False once the underlying result set has been closed."""

    # --- Spectra ---

    @abstractmethod
    async def add_spectra(
        self, spectra: Sequence[tuple[SpectrumDescriptor, Sequence[Peak]]]
    ) -> None:
        """Store spectrum headers with their peaks."""

    @abstractmethod
    async def list_spectra(self, workflow_id: int | None = None) -> list[SpectrumDescriptor]:
        """All stored spectrum headers, optionally for one workflow."""

    @abstractmethod
    async def read_spectrum(self, workflow_id: int, spectrum_id: int) -> SpectrumDescriptor | None:
        """Spectrum header by key, None if absent."""

    @abstractmethod
    async def read_peaks(self, workflow_id: int, spectrum_id: int) -> list[Peak] | None:
        """Peak list by key, None if absent."""

    # --- Entities ---

    @abstractmethod
    async def register_entity(self, entity: str) -> None:
        """Declare an entity table (idempotent)."""

    @abstractmethod
    async def next_id(self, entity: str) -> int:
        """Next free item id of an entity, starting at 1."""

    @abstractmethod
    async def insert_items(self, entity: str, items: Sequence[BaseModel]) -> None:
        """Insert items keyed by their (workflow_id, id)."""

    @abstractmethod
    async def read_items(self, entity: str) -> list[dict[str, Any]]:
        """All items of an entity, in insertion order."""

    @abstractmethod
    async def update_items(
        self, entity: str, updates: Mapping[ItemKey, Mapping[str, Any]]
    ) -> int:
        """Merge field updates into items by key. Returns items changed."""

    @abstractmethod
    async def connect_items(
        self, entity: str, pairs: Sequence[tuple[ItemKey, ItemKey]]
    ) -> None:
        """Link items of ``entity`` to spectra: (item key, spectrum key)."""

    @abstractmethod
    async def connected_spectra(self, entity: str, key: ItemKey) -> list[ItemKey]:
        """Spectrum keys connected to one item."""

    async def close(self) -> None:
        """Release resources. Afterwards is_live() returns False."""
