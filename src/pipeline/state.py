# src/pipeline/state.py — v1
"""Per-run workflow options and the record of a finished run.

WorkflowConfig holds everything a single run needs to know (inputs, search
and quantification options). It is immutable once validated so skip
predicates and step estimates see the same values for the whole run.
StageOutputs is the read-only file map stages hand to each other.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, field_validator

# A stage output is a single file or an ordered group of files.
OutputValue = Union[Path, tuple[Path, ...]]
StageOutputs = Mapping[str, OutputValue]


# StageOutputs keys
TREATMENT = "treatment"
CONTROL = "control"
SEARCH_INPUT = "search_input"
QUANT_INPUTS = "quant_inputs"
DATABASE = "database"
IDENTIFICATIONS = "identifications"
INDEXED_IDENTIFICATIONS = "indexed_identifications"
FEATURE_MAPS = "feature_maps"
CONSENSUS = "consensus"
PEPTIDE_TABLE = "peptide_table"
PROTEIN_TABLE = "protein_table"


def freeze_outputs(outputs: Mapping[str, OutputValue]) -> StageOutputs:
    """Return a read-only copy of ``outputs``."""
    return MappingProxyType(dict(outputs))


def merge_outputs(current: StageOutputs, produced: Mapping[str, OutputValue]) -> StageOutputs:
    """Overlay the files produced by a stage onto the accumulated outputs."""
    merged = dict(current)
    merged.update(produced)
    return MappingProxyType(merged)


# === INPUTS ===


class InputRole(str, enum.Enum):
    TREATMENT = "treatment"
    CONTROL = "control"


class InputFile(BaseModel):
    """One mzML run handed to the workflow."""

    model_config = ConfigDict(frozen=True)

    path: Path
    role: InputRole = InputRole.TREATMENT


class Modification(BaseModel):
    """A search modification as selected by the user.

    ``value`` uses the display form ``"Phospho / +79.966 Da (S, T, Y)"``;
    terminal modifications only need the leading name.
    """

    model_config = ConfigDict(frozen=True)

    value: str
    site: Literal["residue", "c-term", "n-term"] = "residue"


# === WORKFLOW CONFIG ===


class WorkflowConfig(BaseModel):
    """Options of one workflow run."""

    model_config = ConfigDict(frozen=True)

    workflow_id: int = 0
    inputs: tuple[InputFile, ...]
    fasta_databases: tuple[Path, ...] = ()
    num_threads: int = 1

    # --- Background subtraction / alignment (two-input runs) ---
    xic_filtering: bool = True
    map_alignment: bool = True
    xic_fold_change: float = 2.0
    xic_rt_tolerance_min: float = 0.33
    xic_mz_tolerance_ppm: float = 10.0

    # --- Search ---
    precursor_mass_tolerance: float = 6.0
    precursor_mass_tolerance_unit: Literal["ppm", "Da"] = "ppm"
    precursor_min_charge: int = 2
    precursor_max_charge: int = 5
    precursor_isotopes: int = 0
    fragment_mass_tolerance: float = 20.0
    fragment_mass_tolerance_unit: Literal["ppm", "Da"] = "ppm"
    fixed_modifications: tuple[Modification, ...] = ()
    variable_modifications: tuple[Modification, ...] = (
        Modification(value="Oxidation / +15.995 Da (M)"),
    )
    max_variable_mods_per_peptide: int = 2
    peptide_min_size: int = 6
    peptide_max_size: int = 40
    missed_cleavages: int = 1
    enzyme: str = "Trypsin/P"
    percolator_executable: Path | None = None

    # --- Cross-linking ---
    crosslink_presets: str = "none"
    crosslink_length: int = 1
    crosslink_sequence: str = ""
    cysteine_adduct: bool = False
    include_fragment_adducts: bool = True
    can_cross_link: str = "U"
    mapping: str = "[A->A C->C G->G U->U]"
    nucleotide_modifications: str = "[U: U:-H2O U:-H2O-HPO3 U:-HPO3]"
    target_nucleotides: str = "[A=C10H14N5O7P C=C9H14N3O8P G=C10H14N5O8P U=C9H13N2O9P]"
    fragment_adducts: str = (
        "[U:C9H10N2O5;U-H3PO4 U:C4H4N2O2;u U:C4H2N2O1;u-H2O U:C3O;C3O "
        "U:C9H13N2O9P1;U U:C9H11N2O8P1;U-H2O U:C9H12N2O6;U-HPO3]"
    )

    # --- Search filters ---
    autotune: bool = True
    id_filter: bool = True
    filter_pc_mass_error: bool = False
    filter_bad_partial_loss_scores: bool = False

    # --- Feature mapping and linking ---
    id_mapping_rt_tolerance_min: float = 0.33
    id_mapping_mz_tolerance_ppm: float = 10.0
    mz_reference: Literal["precursor", "peptide"] = "peptide"
    linking_rt_tolerance_min: float = 1.0
    linking_mz_tolerance_ppm: float = 10.0

    # --- Normalization ---
    normalization_method: Literal["median", "quantile", "none"] = "median"
    normalization_accession_filter: str = ""
    normalization_description_filter: str = ""

    # --- Protein quantification ---
    protein_quant_mode: Literal["unique", "indistinguishable", "greedy"] = "indistinguishable"
    protein_fdr: float = 0.05
    quant_top: int = 0
    quant_average: Literal["mean", "weighted_mean", "median", "sum"] = "sum"
    quant_include_all: bool = False
    quant_filter_charge: bool = False
    quant_fix_peptides: bool = False

    @field_validator("inputs", mode="before")
    @classmethod
    def coerce_inputs(cls, v: object) -> object:
        """Accept bare paths as treatment inputs."""
        if isinstance(v, (list, tuple)):
            return tuple(
                InputFile(path=Path(item)) if isinstance(item, (str, Path)) else item
                for item in v
            )
        return v

    @field_validator("num_threads")
    @classmethod
    def validate_num_threads(cls, v: int) -> int:
        if v < 1:
            raise ValueError("num_threads must be >= 1")
        return v

    @field_validator("protein_fdr")
    @classmethod
    def validate_protein_fdr(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("protein_fdr must be within [0, 1]")
        return v

    # --- Helpers ---

    @property
    def is_dual_input(self) -> bool:
        return len(self.inputs) == 2

    @property
    def treatment(self) -> InputFile:
        """The treatment run (the only run of a single-input workflow)."""
        for item in self.inputs:
            if item.role is InputRole.TREATMENT:
                return item
        return self.inputs[0]

    @property
    def control(self) -> InputFile | None:
        for item in self.inputs:
            if item.role is InputRole.CONTROL:
                return item
        return None

    @property
    def alignment_enabled(self) -> bool:
        """Alignment only makes sense in front of background subtraction."""
        return self.is_dual_input and self.map_alignment and self.xic_filtering

    @property
    def protein_inference_enabled(self) -> bool:
        return self.protein_quant_mode != "unique"


# === RUN RECORD ===


@dataclass
class PipelineRun:
    """What happened during one orchestrated run."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    scratch_dir: Path | None = None
    stages: list[str] = field(default_factory=list)
    completed_stages: list[str] = field(default_factory=list)
    skipped_stages: list[str] = field(default_factory=list)
    outputs: StageOutputs = field(default_factory=lambda: MappingProxyType({}))
    total_steps: int = 0
    current_step: int = 0
    records_ingested: int = 0
    spectra_correlated: int = 0
    peptides_ingested: int = 0
    proteins_ingested: int = 0
    duration_s: float = 0.0
    success: bool = False

    @property
    def fraction(self) -> float:
        if self.total_steps <= 0:
            return 0.0
        return min(self.current_step / self.total_steps, 1.0)
