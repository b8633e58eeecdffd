# src/results/tabular.py — v1
"""Parser for ProteinQuantifier TSV exports (peptide and protein tables).

Layout: ``#`` comment lines, one header line, then tab-separated rows with
quoted text fields. The first four columns are fixed, the rest are one
abundance column per input map. Empty or ``0`` abundances mean "not
quantified" and become None.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Sequence

from toppbridge.core.errors import ResultParseError
from toppbridge.core.models import QuantChannel, QuantifiedPeptide, QuantifiedProtein

logger = logging.getLogger(__name__)

FIXED_COLUMNS = 4
ACCESSION_SEPARATOR = "/"
DESCRIPTION_SEPARATOR = " /// "


def channel_labels(raw_files: Sequence[Path | str], count: int) -> list[str]:
    """Labels ``Abundance i (<file name>)`` for the first ``count`` channels."""
    labels: list[str] = []
    for i in range(count):
        name = Path(raw_files[i]).name if i < len(raw_files) else "unknown"
        labels.append(f"Abundance {i + 1} ({name})")
    return labels


def _unquote(field: str) -> str:
    field = field.strip()
    if len(field) >= 2 and field[0] == '"' and field[-1] == '"':
        return field[1:-1]
    return field


def _abundance(field: str) -> float | None:
    field = _unquote(field)
    if field in ("", "0"):
        return None
    try:
        return float(field)
    except ValueError:
        return None


def _int(field: str, path: Path, line_no: int) -> int:
    try:
        return int(float(_unquote(field)))
    except ValueError as exc:
        raise ResultParseError(f"{path.name}:{line_no}: expected a number, got {field!r}") from exc


def _describe(accessions: str, descriptions: dict[str, str]) -> str:
    return DESCRIPTION_SEPARATOR.join(
        descriptions[acc] for acc in accessions.split(ACCESSION_SEPARATOR) if acc in descriptions
    )


def _rows(path: Path) -> Iterator[tuple[int, list[str]]]:
    """Yield (line number, fields) for data rows; the first is the header."""
    try:
        handle = path.open(encoding="utf-8")
    except OSError as exc:
        raise ResultParseError(f"Cannot read {path}: {exc}") from exc
    with handle:
        for line_no, line in enumerate(handle, start=1):
            line = line.rstrip("\r\n")
            if not line or line.startswith("#"):
                continue
            yield line_no, line.split("\t")


def _read_table(path: Path) -> tuple[list[str], Iterator[tuple[int, list[str]]]]:
    rows = _rows(path)
    try:
        _, header = next(rows)
    except StopIteration:
        raise ResultParseError(f"{path.name} has no header line") from None
    if len(header) < FIXED_COLUMNS:
        raise ResultParseError(f"{path.name}: header has {len(header)} columns, expected >= {FIXED_COLUMNS}")
    return header, rows


def _channels(fields: Sequence[str], labels: Sequence[str]) -> list[QuantChannel]:
    values = [_abundance(f) for f in fields[FIXED_COLUMNS:]]
    return [QuantChannel(label=label, value=value) for label, value in zip(labels, values)]


def parse_peptide_table(
    path: Path | str,
    raw_files: Sequence[Path | str] = (),
    descriptions: dict[str, str] | None = None,
    workflow_id: int = 0,
) -> list[QuantifiedPeptide]:
    """Parse ``pq_peptides.csv`` (peptide, protein, n_proteins, charge, abundances)."""
    path = Path(path)
    descriptions = descriptions or {}
    header, rows = _read_table(path)
    labels = channel_labels(raw_files, len(header) - FIXED_COLUMNS)

    peptides: list[QuantifiedPeptide] = []
    for line_no, fields in rows:
        if len(fields) < FIXED_COLUMNS:
            logger.warning("%s:%d: short row skipped", path.name, line_no)
            continue
        proteins = _unquote(fields[1])
        peptides.append(
            QuantifiedPeptide(
                workflow_id=workflow_id,
                id=len(peptides) + 1,
                sequence=_unquote(fields[0]),
                proteins=proteins,
                descriptions=_describe(proteins, descriptions),
                num_proteins=_int(fields[2], path, line_no),
                charge=_int(fields[3], path, line_no),
                channels=_channels(fields, labels),
            )
        )
    return peptides


def parse_protein_table(
    path: Path | str,
    raw_files: Sequence[Path | str] = (),
    descriptions: dict[str, str] | None = None,
    workflow_id: int = 0,
) -> list[QuantifiedProtein]:
    """Parse ``pq_proteins.csv`` (protein, n_proteins, protein_score, n_peptides, abundances)."""
    path = Path(path)
    descriptions = descriptions or {}
    header, rows = _read_table(path)
    labels = channel_labels(raw_files, len(header) - FIXED_COLUMNS)

    proteins: list[QuantifiedProtein] = []
    for line_no, fields in rows:
        if len(fields) < FIXED_COLUMNS:
            logger.warning("%s:%d: short row skipped", path.name, line_no)
            continue
        accessions = _unquote(fields[0])
        score = _abundance(fields[2])
        proteins.append(
            QuantifiedProtein(
                workflow_id=workflow_id,
                id=len(proteins) + 1,
                proteins=accessions,
                descriptions=_describe(accessions, descriptions),
                num_proteins=_int(fields[1], path, line_no),
                protein_score=score if score is not None else 0.0,
                num_peptides=_int(fields[3], path, line_no),
                channels=_channels(fields, labels),
            )
        )
    return proteins
