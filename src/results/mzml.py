# src/results/mzml.py — v1
"""Minimal mzML access: MS/MS spectrum headers and peaks, CV term cleanup.

Only what the workflow needs is read: MS level, scan start time, the first
selected ion (m/z and charge) and the m/z / intensity binary arrays.
"""

from __future__ import annotations

import base64
import logging
import re
import struct
import zlib
from pathlib import Path

from lxml import etree

from toppbridge.core.errors import ResultParseError
from toppbridge.core.models import Peak, SpectrumDescriptor

logger = logging.getLogger(__name__)

MZML_NS = "http://psi.hupo.org/ms/mzml"

# Obsolete term that makes OpenMS emit one warning per spectrum on load.
OBSOLETE_CV_TERMS = frozenset({"MS:1000498"})

_MS_LEVEL = "MS:1000511"
_SCAN_START_TIME = "MS:1000016"
_SELECTED_ION_MZ = "MS:1000744"
_CHARGE_STATE = "MS:1000041"
_MZ_ARRAY = "MS:1000514"
_INTENSITY_ARRAY = "MS:1000515"
_FLOAT_32 = "MS:1000521"
_FLOAT_64 = "MS:1000523"
_ZLIB = "MS:1000574"
_UNIT_SECOND = "UO:0000010"

_SCAN_NUMBER_RE = re.compile(r"\bscan=(\d+)")

Spectrum = tuple[SpectrumDescriptor, list[Peak]]


def _q(tag: str) -> str:
    return f"{{{MZML_NS}}}{tag}"


def _cv_params(element: etree._Element) -> dict[str, etree._Element]:
    return {p.get("accession", ""): p for p in element.iterchildren(_q("cvParam"))}


def _decode_array(array: etree._Element) -> tuple[str, list[float]]:
    params = _cv_params(array)
    kind = _MZ_ARRAY if _MZ_ARRAY in params else _INTENSITY_ARRAY if _INTENSITY_ARRAY in params else ""
    binary = array.find(_q("binary"))
    if not kind or binary is None or not binary.text:
        return kind, []

    raw = base64.b64decode(binary.text.strip())
    if _ZLIB in params:
        raw = zlib.decompress(raw)
    fmt = "d" if _FLOAT_64 in params else "f"
    count = len(raw) // struct.calcsize(fmt)
    return kind, list(struct.unpack(f"<{count}{fmt}", raw[: count * struct.calcsize(fmt)]))


def _spectrum_id(element: etree._Element) -> int:
    match = _SCAN_NUMBER_RE.search(element.get("id", ""))
    if match:
        return int(match.group(1))
    return int(element.get("index", "0")) + 1


def _read_spectrum(element: etree._Element, workflow_id: int) -> Spectrum | None:
    params = _cv_params(element)
    level = params.get(_MS_LEVEL)
    if level is None or level.get("value") != "2":
        return None

    retention_time = 0.0
    for scan_param in element.iter(_q("cvParam")):
        if scan_param.get("accession") == _SCAN_START_TIME:
            retention_time = float(scan_param.get("value", "0"))
            if scan_param.get("unitAccession") == _UNIT_SECOND:
                retention_time /= 60.0
            break

    mz = 0.0
    charge = 0
    ion = element.find(f".//{_q('selectedIon')}")
    if ion is not None:
        ion_params = _cv_params(ion)
        if _SELECTED_ION_MZ in ion_params:
            mz = float(ion_params[_SELECTED_ION_MZ].get("value", "0"))
        if _CHARGE_STATE in ion_params:
            charge = int(float(ion_params[_CHARGE_STATE].get("value", "0")))

    arrays = dict(_decode_array(a) for a in element.iter(_q("binaryDataArray")))
    peaks = [
        Peak(mz=m, intensity=i)
        for m, i in zip(arrays.get(_MZ_ARRAY, []), arrays.get(_INTENSITY_ARRAY, []))
    ]

    descriptor = SpectrumDescriptor(
        workflow_id=workflow_id,
        spectrum_id=_spectrum_id(element),
        retention_time=retention_time,
        mass_over_charge=mz,
        charge=charge,
    )
    return descriptor, peaks


def read_ms2_spectra(path: Path | str, workflow_id: int = 0) -> list[Spectrum]:
    """Read every MS/MS spectrum of an mzML file, with peaks.

    Raises:
        ResultParseError: If the file is missing or not well-formed.
    """
    path = Path(path)
    if not path.is_file():
        raise ResultParseError(f"mzML file not found: {path}")

    spectra: list[Spectrum] = []
    try:
        for _, element in etree.iterparse(
            str(path), events=("end",), tag=_q("spectrum"), resolve_entities=False
        ):
            spectrum = _read_spectrum(element, workflow_id)
            if spectrum is not None:
                spectra.append(spectrum)
            element.clear(keep_tail=True)
            while element.getprevious() is not None:
                del element.getparent()[0]
    except etree.XMLSyntaxError as exc:
        raise ResultParseError(f"Malformed mzML document {path.name}: {exc}") from exc
    except (ValueError, struct.error, zlib.error) as exc:
        raise ResultParseError(f"Unreadable spectrum data in {path.name}: {exc}") from exc

    logger.info("Read %d MS/MS spectra from %s", len(spectra), path.name)
    return spectra


def strip_obsolete_cv_terms(source: Path | str, target: Path | str) -> int:
    """Copy an mzML file to ``target`` without obsolete CV terms.

    Returns:
        Number of cvParam elements removed.

    Raises:
        ResultParseError: If the source cannot be parsed.
    """
    source, target = Path(source), Path(target)
    parser = etree.XMLParser(remove_blank_text=False, resolve_entities=False, huge_tree=True)
    try:
        tree = etree.parse(str(source), parser)
    except (OSError, etree.XMLSyntaxError) as exc:
        raise ResultParseError(f"Cannot read mzML file {source}: {exc}") from exc

    removed = 0
    for param in list(tree.iter(_q("cvParam"))):
        if param.get("accession") in OBSOLETE_CV_TERMS:
            parent = param.getparent()
            if parent is not None:
                parent.remove(param)
                removed += 1

    target.parent.mkdir(parents=True, exist_ok=True)
    tree.write(str(target), xml_declaration=True, encoding=tree.docinfo.encoding or "UTF-8")
    if removed:
        logger.info("Removed %d obsolete CV terms from %s", removed, source.name)
    return removed
