# src/api/spectrum_lookup.py — v1
"""Interactive spectrum lookup from a correlation token.

Resolves the token to an open result set, reads the spectrum header and
peaks, and labels peaks with the fragment annotation. Lookup failures never
escape as exceptions: they come back as a "Could not show spectrum" message.
"""

from __future__ import annotations

import logging

from toppbridge.api.models import FragmentAnnotation, SpectrumLookupResult, SpectrumView
from toppbridge.core.errors import AmbiguityError, TokenFormatError
from toppbridge.core.models import Peak, SpectrumDescriptor
from toppbridge.correlation.token import CorrelationToken
from toppbridge.storage.router import ResultStoreRouter

logger = logging.getLogger(__name__)


def spectrum_title(spectrum: SpectrumDescriptor) -> str:
    """``m/z 500.1234  |  RT 12.34  |  Charge 2``."""
    return (
        f"m/z {spectrum.mass_over_charge:.4f}  |  "
        f"RT {spectrum.retention_time:.2f}  |  "
        f"Charge {spectrum.charge}"
    )


def could_not_show(diagnostic: str = "") -> str:
    if not diagnostic:
        return "Could not show spectrum."
    return f"Could not show spectrum: {diagnostic}."


def parse_fragment_annotation(text: str) -> list[FragmentAnnotation]:
    """Parse ``(mz,intensity,"label")|(...)`` into entries; bad entries are skipped."""
    entries: list[FragmentAnnotation] = []
    if not text:
        return entries
    for chunk in text.split("|"):
        chunk = chunk.strip()
        if len(chunk) < 2 or chunk[0] != "(" or chunk[-1] != ")":
            continue
        parts = chunk[1:-1].split(",", 2)
        if len(parts) != 3:
            continue
        try:
            mz = float(parts[0])
            intensity = float(parts[1])
        except ValueError:
            logger.debug("Skipping malformed annotation %r", chunk)
            continue
        entries.append(FragmentAnnotation(mz=mz, intensity=intensity, label=parts[2].strip().strip('"')))
    return entries


def label_peaks(peaks: list[Peak], annotation: str) -> list[str]:
    """Attach each annotation label to the peak with the closest m/z."""
    labels = [""] * len(peaks)
    if not peaks:
        return labels
    for entry in parse_fragment_annotation(annotation):
        nearest = min(range(len(peaks)), key=lambda i: abs(peaks[i].mz - entry.mz))
        labels[nearest] = entry.label
    return labels


async def show_spectrum(router: ResultStoreRouter, token: str) -> SpectrumLookupResult:
    """Build a SpectrumView for ``token``, or explain why that is not possible."""
    try:
        decoded = CorrelationToken.decode(token)
        store = await router.resolve(decoded)
    except TokenFormatError as exc:
        logger.warning("Undecodable correlation token %r: %s", token, exc)
        return SpectrumLookupResult(message=could_not_show(str(exc)))
    except (LookupError, AmbiguityError) as exc:
        logger.warning("Cannot resolve correlation token %r: %s", token, exc)
        return SpectrumLookupResult(message=could_not_show(str(exc)))

    key = (decoded.store_scope_id, decoded.spectrum_local_id)
    spectrum = await store.read_spectrum(*key)
    if spectrum is None:
        return SpectrumLookupResult(message=could_not_show(f"spectrum info {key} not found"))
    peaks = await store.read_peaks(*key)
    if peaks is None:
        return SpectrumLookupResult(message=could_not_show(f"spectrum {key} not found"))

    view = SpectrumView(
        title=spectrum_title(spectrum),
        spectrum=spectrum,
        peaks=peaks,
        annotations=decoded.annotation,
        peak_labels=label_peaks(peaks, decoded.annotation),
        result_set_guid=store.result_set_guid,
    )
    return SpectrumLookupResult(view=view)
