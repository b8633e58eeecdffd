# tests/unit/results/test_unit_fasta.py — v1
"""Tests for results.fasta — concatenation and accession handling."""

from __future__ import annotations

from pathlib import Path

from toppbridge.results.fasta import (
    accession_descriptions,
    concatenate,
    remove_duplicate_entries,
    remove_duplicates_in_file,
)


class TestRemoveDuplicates:
    def test_first_entry_kept(self):
        text, removed = remove_duplicate_entries(">A one\nAAA\n>B two\nBBB\n>A three\nCCC\n")
        assert removed == 1
        assert text == ">A one\nAAA\n>B two\nBBB\n"

    def test_no_duplicates(self):
        text, removed = remove_duplicate_entries(">A\nAAA\n")
        assert removed == 0
        assert text == ">A\nAAA\n"

    def test_in_file(self, fasta_file: Path):
        assert remove_duplicates_in_file(fasta_file) == 1
        assert "MMMM" not in fasta_file.read_text()


class TestConcatenate:
    def test_merges_and_dedups(self, tmp_path: Path):
        a = tmp_path / "a.fasta"
        b = tmp_path / "b.fasta"
        a.write_text(">X first\nXXX")
        b.write_text(">Y\nYYY\n>X again\nZZZ\n")
        target = concatenate([a, b], tmp_path / "out" / "db.fasta")
        assert target.read_text() == ">X first\nXXX\n>Y\nYYY\n"


class TestDescriptions:
    def test_map(self, fasta_file: Path):
        descriptions = accession_descriptions(fasta_file)
        assert descriptions["P2"] == "Second protein"
        # later headers overwrite earlier ones
        assert descriptions["ACC1"] == "duplicate entry"

    def test_header_without_description(self, tmp_path: Path):
        path = tmp_path / "bare.fasta"
        path.write_text(">BARE\nAAA\n")
        assert accession_descriptions(path) == {}

    def test_missing_file(self, tmp_path: Path):
        assert accession_descriptions(tmp_path / "missing.fasta") == {}
