# src/storage/store_factory.py — v1
"""Factory for result store instantiation."""

from __future__ import annotations

from toppbridge.config.settings import Settings
from toppbridge.storage.base_result_store import BaseResultStore


def create_result_store(
    settings: Settings | None = None,
    result_set_guid: str | None = None,
) -> BaseResultStore:
    """Instantiate the configured result store backend.

    Args:
        settings: Application settings. Defaults to the memory backend.
        result_set_guid: GUID for a new result set (generated when omitted).

    Returns:
        Configured BaseResultStore implementation.
    """
    backend = "memory" if settings is None else settings.result_store_backend

    if backend == "memory":
        from toppbridge.storage.memory_store import MemoryResultStore
        return MemoryResultStore(result_set_guid=result_set_guid)

    if backend == "sqlite":
        from toppbridge.storage.sqlite_store import SqliteResultStore
        assert settings is not None
        return SqliteResultStore(
            db_path=settings.result_store_path, result_set_guid=result_set_guid
        )

    raise ValueError(f"Unsupported result store backend: {backend!r}")
