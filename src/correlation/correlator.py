# src/correlation/correlator.py — v1
"""Join identification records to stored spectra by rounded RT and m/z.

The key is (RT in minutes to 1 decimal, m/z to 4 decimals) as text, rounded
half away from zero. Near-duplicates collapse onto one key and the last
record written wins. This is a deliberately fuzzy join.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from toppbridge.core.models import IdentificationRecord, SpectrumDescriptor
from toppbridge.correlation.token import CorrelationToken

logger = logging.getLogger(__name__)

CorrelationKey = tuple[str, str]

_RT_QUANTUM = Decimal("0.1")
_MZ_QUANTUM = Decimal("0.0001")


def _round_text(value: float, quantum: Decimal) -> str:
    return str(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def correlation_key(retention_time: float, mass_over_charge: float) -> CorrelationKey:
    """Rounded (RT, m/z) key, e.g. ``(12.34, 500.12341) -> ("12.3", "500.1234")``."""
    return (
        _round_text(retention_time, _RT_QUANTUM),
        _round_text(mass_over_charge, _MZ_QUANTUM),
    )


def build_index(
    records: Iterable[IdentificationRecord],
) -> dict[CorrelationKey, IdentificationRecord]:
    """Map each key to the last record carrying it."""
    index: dict[CorrelationKey, IdentificationRecord] = {}
    for record in records:
        key = correlation_key(record.retention_time, record.mass_over_charge)
        if key in index:
            logger.debug("Key %s shared by several records, keeping the last", key)
        index[key] = record
    return index


@dataclass(frozen=True)
class Correlation:
    """A record matched to a spectrum, with the token to store on the record."""

    record: IdentificationRecord
    spectrum: SpectrumDescriptor
    token: CorrelationToken


class SpectrumCorrelator:
    """Correlate one result set's records with the spectra of a store.

    Args:
        records: Parsed identification records.
        result_set_guid: GUID of the result set, embedded in every token.
    """

    def __init__(
        self,
        records: Iterable[IdentificationRecord],
        result_set_guid: str | None = None,
    ) -> None:
        self._index = build_index(records)
        self._guid = result_set_guid

    @property
    def index(self) -> dict[CorrelationKey, IdentificationRecord]:
        return dict(self._index)

    def correlate(self, spectra: Iterable[SpectrumDescriptor]) -> list[Correlation]:
        """Return one Correlation per spectrum whose key hits a record.

        Spectra without a matching record are left unassociated.
        """
        matches: list[Correlation] = []
        misses = 0
        for spectrum in spectra:
            record = self._index.get(
                correlation_key(spectrum.retention_time, spectrum.mass_over_charge)
            )
            if record is None:
                misses += 1
                continue
            token = CorrelationToken(
                store_scope_id=spectrum.workflow_id,
                spectrum_local_id=spectrum.spectrum_id,
                annotation=record.fragment_annotation,
                result_set_guid=self._guid,
            )
            matches.append(Correlation(record=record, spectrum=spectrum, token=token))
        logger.info(
            "Correlated %d spectra with %d records (%d spectra unmatched)",
            len(matches), len(self._index), misses,
        )
        return matches
