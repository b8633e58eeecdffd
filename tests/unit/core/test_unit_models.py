# tests/unit/core/test_unit_models.py — v1
"""Tests for core.models — defaults and keys."""

from __future__ import annotations

from toppbridge.core.models import (
    IdentificationRecord,
    QuantChannel,
    QuantifiedPeptide,
    SpectrumDescriptor,
)


class TestIdentificationRecord:
    def test_defaults(self):
        record = IdentificationRecord()
        assert record.sequence == ""
        assert record.marker_ions == {}
        assert record.correlation_token is None

    def test_key(self, sample_record):
        assert sample_record.key == (1, 1)

    def test_marker_ions_not_shared(self):
        a = IdentificationRecord()
        b = IdentificationRecord()
        a.marker_ions["U_113"] = 1.0
        assert b.marker_ions == {}

    def test_json_roundtrip(self, sample_record):
        data = sample_record.model_dump(mode="json")
        assert IdentificationRecord.model_validate(data) == sample_record


class TestSpectrumDescriptor:
    def test_key(self, sample_spectrum: SpectrumDescriptor):
        assert sample_spectrum.key == (1, 2)


class TestQuantified:
    def test_missing_channel_value(self):
        peptide = QuantifiedPeptide(
            sequence="PEPTIDEK",
            proteins="ACC1",
            channels=[QuantChannel(label="UV.mzML")],
        )
        assert peptide.channels[0].value is None
