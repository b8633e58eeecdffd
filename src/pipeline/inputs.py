# src/pipeline/inputs.py — v1
"""Input validation and preparation before the first stage runs."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from toppbridge.core.errors import WorkflowInputError
from toppbridge.pipeline.state import (
    CONTROL,
    QUANT_INPUTS,
    SEARCH_INPUT,
    TREATMENT,
    InputRole,
    OutputValue,
    WorkflowConfig,
)
from toppbridge.results.fasta import concatenate
from toppbridge.results.mzml import strip_obsolete_cv_terms

logger = logging.getLogger(__name__)

TREATMENT_FILE_NAME = "UV.mzML"
CONTROL_FILE_NAME = "Control.mzML"


def validate_inputs(config: WorkflowConfig) -> None:
    """Check the input files of a run.

    Raises:
        WorkflowInputError: Wrong number of inputs, missing files, roles not
            one treatment plus one control, or no FASTA database.
    """
    count = len(config.inputs)
    if count not in (1, 2):
        raise WorkflowInputError(
            f"Exactly one or two input files are required, got {count}"
        )

    if count == 2:
        roles = sorted(item.role.value for item in config.inputs)
        if roles != [InputRole.CONTROL.value, InputRole.TREATMENT.value]:
            raise WorkflowInputError(
                "With two input files one must be the treatment and the other the control"
            )

    for item in config.inputs:
        if not item.path.is_file():
            raise WorkflowInputError(f"Input file not found: {item.path}")

    if not config.fasta_databases:
        raise WorkflowInputError("At least one FASTA database is required")
    for fasta in config.fasta_databases:
        if not fasta.is_file():
            raise WorkflowInputError(f"The FASTA file {fasta} cannot be found")


def stage_inputs(config: WorkflowConfig, scratch_dir: Path) -> dict[str, OutputValue]:
    """Copy the runs into ``scratch_dir`` without obsolete CV terms.

    Returns:
        The initial stage outputs (treatment, control, search and quantification inputs).
    """
    treatment = scratch_dir / TREATMENT_FILE_NAME
    strip_obsolete_cv_terms(config.treatment.path, treatment)
    outputs: dict[str, OutputValue] = {
        TREATMENT: treatment,
        SEARCH_INPUT: treatment,
        QUANT_INPUTS: (treatment,),
    }

    control_input = config.control
    if config.is_dual_input and control_input is not None:
        control = scratch_dir / CONTROL_FILE_NAME
        strip_obsolete_cv_terms(control_input.path, control)
        outputs[CONTROL] = control
        outputs[QUANT_INPUTS] = (treatment, control)

    return outputs


def prepare_database(sources: Iterable[Path], target: Path) -> Path:
    """Concatenate the FASTA databases into ``target`` with unique accessions.

    Raises:
        WorkflowInputError: If a database file is missing.
    """
    sources = list(sources)
    for source in sources:
        if not Path(source).is_file():
            raise WorkflowInputError(f"The FASTA file {source} cannot be found")
    if target.exists():
        target.unlink()
    concatenate(sources, target)
    logger.info("Prepared search database %s from %d file(s)", target.name, len(sources))
    return target
