# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types, all imports come from core.models.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


# === TOOLS ===


class ToolSpec(BaseModel):
    """An external TOPP tool resolved to a concrete executable."""

    name: str
    executable: Path
    data_path_env_var: str = "OPENMS_DATA_PATH"

    @property
    def data_path(self) -> Path:
        """Shared-data directory shipped next to the tool binaries."""
        return (self.executable.parent / ".." / "share" / "OpenMS").resolve()


# === IDENTIFICATION ===


class IdentificationRecord(BaseModel):
    """One candidate peptide-spectrum match read from an identification document."""

    workflow_id: int = 0
    id: int = 0

    # --- Spectrum context ---
    retention_time: float = 0.0  # minutes
    mass_over_charge: float = 0.0

    # --- Match ---
    sequence: str = ""
    charge: int = 0
    score: float = 0.0
    proteins: str = ""

    # --- Cross-link annotation ---
    adduct: str = ""
    nucleotide: str = ""
    best_localization_score: float = 0.0
    best_localizations: str = ""
    localization_scores: str = ""
    peptide_mass: float = 0.0
    adduct_mass: float = 0.0
    crosslink_mass: float = 0.0
    abs_precursor_error_da: float = 0.0
    rel_precursor_error_ppm: float = 0.0
    m_h: float = 0.0
    m_2h: float = 0.0
    m_3h: float = 0.0
    m_4h: float = 0.0
    marker_ions: dict[str, float] = Field(default_factory=dict)
    fragment_annotation: str = ""

    # --- Filled after correlation with spectra ---
    correlation_token: str | None = None

    @property
    def key(self) -> tuple[int, int]:
        """Primary key used by the result store."""
        return (self.workflow_id, self.id)


# === SPECTRA ===


class SpectrumDescriptor(BaseModel):
    """Header of a stored MS/MS spectrum."""

    workflow_id: int
    spectrum_id: int
    retention_time: float  # minutes
    mass_over_charge: float
    charge: int = 0

    @property
    def key(self) -> tuple[int, int]:
        return (self.workflow_id, self.spectrum_id)


class Peak(BaseModel):
    """A centroid or profile point."""

    mz: float
    intensity: float


# === QUANTIFICATION ===


class QuantChannel(BaseModel):
    """One abundance column of a quantification row."""

    label: str
    value: float | None = None


class QuantifiedPeptide(BaseModel):
    """Peptide-level quantification summary row."""

    workflow_id: int = 0
    id: int = 0
    sequence: str
    proteins: str
    descriptions: str = ""
    num_proteins: int = 0
    charge: int = 0
    channels: list[QuantChannel] = Field(default_factory=list)


class QuantifiedProtein(BaseModel):
    """Protein-level quantification summary row."""

    workflow_id: int = 0
    id: int = 0
    proteins: str
    descriptions: str = ""
    num_proteins: int = 0
    protein_score: float = 0.0
    num_peptides: int = 0
    channels: list[QuantChannel] = Field(default_factory=list)
