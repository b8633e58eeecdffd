# src/results/fasta.py — v1
"""FASTA database helpers: concatenation, de-duplication, descriptions."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

_ENTRY_SPLIT_RE = re.compile(r"^>", re.MULTILINE)


def _accession(header_and_body: str) -> str:
    header = header_and_body.split("\n", 1)[0]
    parts = header.split()
    return parts[0] if parts else ""


def remove_duplicate_entries(text: str) -> tuple[str, int]:
    """Drop entries whose accession was already seen, keeping the first.

    Returns:
        (de-duplicated FASTA text, number of entries removed)
    """
    seen: set[str] = set()
    kept: list[str] = []
    removed = 0
    for chunk in _ENTRY_SPLIT_RE.split(text):
        if not chunk:
            continue
        accession = _accession(chunk)
        if accession in seen:
            removed += 1
            continue
        seen.add(accession)
        kept.append(">" + chunk)
    return "".join(kept), removed


def remove_duplicates_in_file(path: Path | str) -> int:
    """De-duplicate a FASTA file in place. Returns the number of entries removed."""
    path = Path(path)
    text, removed = remove_duplicate_entries(path.read_text(encoding="utf-8"))
    path.write_text(text, encoding="utf-8")
    if removed:
        logger.info("Removed %d duplicate FASTA entries from %s", removed, path.name)
    return removed


def concatenate(sources: Iterable[Path | str], target: Path | str) -> Path:
    """Write all ``sources`` into ``target`` and remove duplicate accessions."""
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as out:
        for source in sources:
            text = Path(source).read_text(encoding="utf-8")
            out.write(text)
            if text and not text.endswith("\n"):
                out.write("\n")
    remove_duplicates_in_file(target)
    return target


def accession_descriptions(path: Path | str) -> dict[str, str]:
    """Map accession -> description from the header lines of a FASTA file.

    Headers without a description are skipped. A missing or unreadable file
    yields an empty map (descriptions are cosmetic).
    """
    result: dict[str, str] = {}
    try:
        with Path(path).open(encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line.startswith(">"):
                    continue
                items = line[1:].strip().split(" ")
                if len(items) < 2:
                    continue
                result[items[0]] = " ".join(items[1:])
    except OSError as exc:
        logger.error("Could not parse FASTA file '%s': %s", path, exc)
    return result
