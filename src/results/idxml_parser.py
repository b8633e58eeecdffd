# src/results/idxml_parser.py — v1
"""Streaming parser for OpenMS identification documents (idXML).

Walks the document once with lxml ``iterparse`` and a small state machine:

    NONE -> PROTEIN_HIT                     (ProteinHit: id -> accession)
    NONE -> PEPTIDE_IDENTIFICATION          (MZ, RT of the spectrum)
         -> PEPTIDE_HIT                     (one candidate match)
         -> PEPTIDE_HIT_USERPARAM           (annotations of the match)
         -> PEPTIDE_IDENTIFICATION_USERPARAM

Protein hits precede the peptide identifications in idXML, so every
``protein_refs`` entry must already be indexed when it is read.
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import IO, Any, Callable

from lxml import etree

from toppbridge.core.errors import ProteinReferenceError, ResultParseError
from toppbridge.core.models import IdentificationRecord

logger = logging.getLogger(__name__)

PROTEIN_SEPARATOR = ";"
UNKNOWN_PROTEIN_ID = "UNKNOWN"


class ParseState(enum.Enum):
    NONE = "none"
    PROTEIN_HIT = "protein_hit"
    PEPTIDE_IDENTIFICATION = "peptide_identification"
    PEPTIDE_HIT = "peptide_hit"
    PEPTIDE_HIT_USERPARAM = "peptide_hit_userparam"
    PEPTIDE_IDENTIFICATION_USERPARAM = "peptide_identification_userparam"


# UserParam name -> record field, values kept as text.
TEXT_PARAMS: dict[str, str] = {
    "NuXL:NA": "adduct",
    "NuXL:NT": "nucleotide",
    "NuXL:best_localization": "best_localizations",
    "NuXL:localization_scores": "localization_scores",
    "fragment_annotation": "fragment_annotation",
}

# UserParam name -> record field, values parsed as float (0.0 on failure).
NUMERIC_PARAMS: dict[str, str] = {
    "NuXL:best_localization_score": "best_localization_score",
    "NuXL:peptide_mass_z0": "peptide_mass",
    "NuXL:NA_MASS_z0": "adduct_mass",
    "NuXL:xl_mass_z0": "crosslink_mass",
    "NuXL:Da difference": "abs_precursor_error_da",
    "precursor_mz_error_ppm": "rel_precursor_error_ppm",
    "NuXL:z1 mass": "m_h",
    "NuXL:z2 mass": "m_2h",
    "NuXL:z3 mass": "m_3h",
    "NuXL:z4 mass": "m_4h",
}

# UserParam name prefix -> marker ion label.
MARKER_IONS: dict[str, str] = {
    "A_136": "A_136.06231",
    "A_330": "A_330.06033",
    "C_112": "C_112.05108",
    "C_306": "C_306.0491",
    "G_152": "G_152.05723",
    "G_346": "G_346.05525",
    "U_113": "U_113.03509",
    "U_307": "U_307.03311",
}

_USERPARAM_TAGS = ("UserParam", "userParam")


def _to_float(text: str | None) -> float:
    try:
        return float(text) if text is not None else 0.0
    except ValueError:
        return 0.0


def _to_int(text: str | None) -> int:
    try:
        return int(text) if text is not None else 0
    except ValueError:
        return 0


def _local_name(tag: Any) -> str:
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname


class IdXMLParser:
    """Single-pass idXML parser.

    One instance can be reused; each parse() starts from a fresh state.
    """

    def __init__(self) -> None:
        self.state = ParseState.NONE
        self.protein_index: dict[str, str] = {}
        self.current_record: dict[str, Any] | None = None
        self.output: list[IdentificationRecord] = []
        self._spectrum_mz = 0.0
        self._spectrum_rt = 0.0

    def reset(self) -> None:
        self.state = ParseState.NONE
        self.protein_index = {}
        self.current_record = None
        self.output = []
        self._spectrum_mz = 0.0
        self._spectrum_rt = 0.0

    def parse(self, source: Path | str | IO[bytes]) -> list[IdentificationRecord]:
        """Parse an idXML file (path or binary file object).

        Returns:
            Identification records in document order.

        Raises:
            ResultParseError: If the document is not well-formed.
            ProteinReferenceError: If a peptide hit references an unknown protein.
        """
        self.reset()
        if isinstance(source, (str, Path)):
            source = str(source)
            if not Path(source).is_file():
                raise ResultParseError(f"Identification file not found: {source}")

        handlers: dict[tuple[str, str], Callable[[etree._Element], None]] = {
            ("start", "ProteinHit"): self._start_protein_hit,
            ("end", "ProteinHit"): self._end_protein_hit,
            ("start", "PeptideIdentification"): self._start_peptide_identification,
            ("end", "PeptideIdentification"): self._end_peptide_identification,
            ("start", "PeptideHit"): self._start_peptide_hit,
            ("end", "PeptideHit"): self._end_peptide_hit,
        }

        try:
            for event, element in etree.iterparse(
                source, events=("start", "end"), resolve_entities=False
            ):
                name = _local_name(element.tag)
                if name in _USERPARAM_TAGS:
                    if event == "start":
                        self._start_user_param(element)
                    else:
                        self._end_user_param()
                    continue
                handler = handlers.get((event, name))
                if handler is not None:
                    handler(element)
        except etree.XMLSyntaxError as exc:
            raise ResultParseError(f"Malformed identification document: {exc}") from exc

        logger.info(
            "Parsed %d peptide hits (%d proteins indexed)",
            len(self.output), len(self.protein_index),
        )
        return self.output

    # --- Protein hits ---

    def _start_protein_hit(self, element: etree._Element) -> None:
        self.state = ParseState.PROTEIN_HIT
        protein_id = element.get("id", UNKNOWN_PROTEIN_ID)
        accession = element.get("accession")
        if accession is None:
            return
        if protein_id in self.protein_index:
            logger.warning(
                "Duplicate protein id %s (%s replaces %s)",
                protein_id, accession, self.protein_index[protein_id],
            )
        self.protein_index[protein_id] = accession

    def _end_protein_hit(self, element: etree._Element) -> None:
        self.state = ParseState.NONE
        _release(element)

    # --- Peptide identifications ---

    def _start_peptide_identification(self, element: etree._Element) -> None:
        self.state = ParseState.PEPTIDE_IDENTIFICATION
        self._spectrum_mz = _to_float(element.get("MZ"))
        rt_seconds = element.get("RT")
        self._spectrum_rt = _to_float(rt_seconds) / 60.0

    def _end_peptide_identification(self, element: etree._Element) -> None:
        self.state = ParseState.NONE
        _release(element)

    # --- Peptide hits ---

    def _start_peptide_hit(self, element: etree._Element) -> None:
        self.state = ParseState.PEPTIDE_HIT
        self.current_record = {
            "mass_over_charge": self._spectrum_mz,
            "retention_time": self._spectrum_rt,
            "score": _to_float(element.get("score")),
            "sequence": element.get("sequence", ""),
            "charge": _to_int(element.get("charge")),
            "proteins": self._resolve_proteins(element.get("protein_refs", "")),
            "marker_ions": {},
        }

    def _end_peptide_hit(self, element: etree._Element) -> None:
        if self.current_record is not None:
            self.output.append(IdentificationRecord(**self.current_record))
        self.current_record = None
        self.state = ParseState.PEPTIDE_IDENTIFICATION

    def _resolve_proteins(self, refs: str) -> str:
        accessions: list[str] = []
        for ref in refs.split():
            try:
                accessions.append(self.protein_index[ref])
            except KeyError:
                raise ProteinReferenceError(
                    f"Peptide hit references unknown protein {ref!r}"
                ) from None
        return PROTEIN_SEPARATOR.join(accessions)

    # --- User parameters ---

    def _start_user_param(self, element: etree._Element) -> None:
        if self.state == ParseState.PEPTIDE_HIT:
            self.state = ParseState.PEPTIDE_HIT_USERPARAM
            self._apply_user_param(element.get("name", ""), element.get("value", ""))
        elif self.state == ParseState.PEPTIDE_IDENTIFICATION:
            self.state = ParseState.PEPTIDE_IDENTIFICATION_USERPARAM

    def _end_user_param(self) -> None:
        if self.state == ParseState.PEPTIDE_HIT_USERPARAM:
            self.state = ParseState.PEPTIDE_HIT
        elif self.state == ParseState.PEPTIDE_IDENTIFICATION_USERPARAM:
            self.state = ParseState.PEPTIDE_IDENTIFICATION

    def _apply_user_param(self, name: str, value: str) -> None:
        record = self.current_record
        if record is None:
            return
        if name in TEXT_PARAMS:
            record[TEXT_PARAMS[name]] = value
            return
        if name in NUMERIC_PARAMS:
            record[NUMERIC_PARAMS[name]] = _to_float(value)
            return
        for prefix, label in MARKER_IONS.items():
            if name.startswith(prefix):
                record["marker_ions"][label] = _to_float(value)
                return


def _release(element: etree._Element) -> None:
    """Free a finished subtree and its already-processed siblings."""
    element.clear(keep_tail=True)
    parent = element.getparent()
    if parent is None:
        return
    while element.getprevious() is not None:
        del parent[0]


def parse_idxml(path: Path | str) -> list[IdentificationRecord]:
    """Parse ``path`` with a fresh IdXMLParser."""
    return IdXMLParser().parse(path)
