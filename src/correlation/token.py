# src/correlation/token.py — v1
"""Correlation tokens: compact references from a result row to its spectrum.

Wire format::

    {store_scope_id};{spectrum_local_id};{annotation}[;REPORT_GUID={guid}]

The two ids are split off from the left and the optional GUID suffix from
the right, so the annotation itself may contain ``;``.
"""

from __future__ import annotations

from dataclasses import dataclass

from toppbridge.core.errors import TokenFormatError

SEPARATOR = ";"
GUID_PREFIX = "REPORT_GUID="
_GUID_SUFFIX = SEPARATOR + GUID_PREFIX


@dataclass(frozen=True)
class CorrelationToken:
    """Decoded token. ``result_set_guid`` is None for legacy tokens."""

    store_scope_id: int
    spectrum_local_id: int
    annotation: str = ""
    result_set_guid: str | None = None

    @property
    def is_legacy(self) -> bool:
        return self.result_set_guid is None

    def encode(self) -> str:
        text = SEPARATOR.join(
            (str(self.store_scope_id), str(self.spectrum_local_id), self.annotation)
        )
        if self.result_set_guid is not None:
            text += _GUID_SUFFIX + self.result_set_guid
        return text

    @classmethod
    def decode(cls, text: str) -> CorrelationToken:
        """Parse a token string.

        Raises:
            TokenFormatError: Wrong number of parts, non-integer ids or an
                empty GUID.
        """
        if not text:
            raise TokenFormatError("Empty correlation token")

        body, sep, guid = text.rpartition(_GUID_SUFFIX)
        if not sep:
            body, guid = text, None
        elif not guid:
            raise TokenFormatError("Report GUID is missing")

        parts = body.split(SEPARATOR, 2)
        if len(parts) != 3:
            raise TokenFormatError(
                f"Expected at least 3 token parts, got {len(parts)}"
            )
        try:
            scope_id = int(parts[0])
            local_id = int(parts[1])
        except ValueError:
            raise TokenFormatError("Unable to decode id data") from None
        return cls(
            store_scope_id=scope_id,
            spectrum_local_id=local_id,
            annotation=parts[2],
            result_set_guid=guid,
        )

    def __str__(self) -> str:
        return self.encode()
