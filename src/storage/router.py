# src/storage/router.py — v1
"""Route correlation tokens to the result store that owns the spectrum.

Several result sets can be open at once. Tokens written by current runs carry
the result set GUID and resolve directly; legacy tokens without a GUID are
resolved by probing every live store for the spectrum key.
"""

from __future__ import annotations

import logging

from toppbridge.core.errors import AmbiguityError, StoreUnavailableError
from toppbridge.correlation.token import CorrelationToken
from toppbridge.storage.base_result_store import BaseResultStore

logger = logging.getLogger(__name__)


class ResultStoreRouter:
    """Registry of open result stores, in registration order.

    Not synchronized: register, unregister and resolve are expected to be
    called from one task.
    """

    def __init__(self) -> None:
        self._stores: list[BaseResultStore] = []

    @property
    def stores(self) -> list[BaseResultStore]:
        return list(self._stores)

    def register(self, store: BaseResultStore) -> None:
        """Add a store; registering the same store twice is a no-op."""
        if any(s is store for s in self._stores):
            return
        self._stores.append(store)
        logger.debug("Registered result store %s", store.result_set_guid)

    def unregister(self, store: BaseResultStore) -> None:
        self._stores = [s for s in self._stores if s is not store]

    async def evict_dead(self) -> list[BaseResultStore]:
        """Drop stores whose liveness probe fails or raises. Returns the evicted."""
        evicted: list[BaseResultStore] = []
        for store in list(self._stores):
            try:
                live = await store.is_live()
            except Exception as exc:
                logger.info("Liveness probe raised for %s: %s", store.result_set_guid, exc)
                live = False
            if not live:
                evicted.append(store)
                self.unregister(store)
        if evicted:
            logger.info("Evicted %d closed result store(s)", len(evicted))
        return evicted

    async def resolve(self, token: str | CorrelationToken) -> BaseResultStore:
        """Find the live store a token refers to.

        Raises:
            TokenFormatError: Token cannot be decoded.
            AmbiguityError: A legacy token matches more than one store.
            StoreUnavailableError: No live store matches.
        """
        await self.evict_dead()
        if isinstance(token, str):
            token = CorrelationToken.decode(token)

        if token.result_set_guid is not None:
            for store in self._stores:
                if store.result_set_guid == token.result_set_guid:
                    return store
            raise StoreUnavailableError(
                f"No open result set with GUID {token.result_set_guid}"
            )

        found: BaseResultStore | None = None
        for store in self._stores:
            try:
                spectrum = await store.read_spectrum(
                    token.store_scope_id, token.spectrum_local_id
                )
            except Exception as exc:
                logger.debug("Probe of %s failed: %s", store.result_set_guid, exc)
                continue
            if spectrum is None:
                continue
            if found is not None:
                raise AmbiguityError(
                    "Spectrum "
                    f"({token.store_scope_id}, {token.spectrum_local_id}) exists in "
                    "several open result sets; close the other result sets or "
                    "re-run the workflow to get unambiguous references"
                )
            found = store

        if found is None:
            raise StoreUnavailableError(
                f"No open result set contains spectrum "
                f"({token.store_scope_id}, {token.spectrum_local_id})"
            )
        return found
