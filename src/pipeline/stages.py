# src/pipeline/stages.py — v1
"""Stage actions of the cross-link identification and quantification workflow.

Each action configures one or more TOPP tools through their INI files, runs
them in the run's scratch directory and returns the files it produced:

  align         FeatureFinderCentroided x2, MapAlignerPoseClustering,
                MapRTTransformer x2 (treatment is the RT reference)
  xic_filter    RNPxlXICFilter (treatment minus control)
  identify      OpenNuXL on the (filtered) treatment run
  index         PeptideIndexer on the identification result
  map_features  FeatureFinderCentroided + IDMapper per quantified run
  normalize     FileConverter or FeatureLinkerUnlabeledQT, ConsensusMapNormalizer
  quantify      [FidoAdapter, FalseDiscoveryRate, IDFilter,] ProteinQuantifier
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from toppbridge.core.errors import WorkflowInputError
from toppbridge.params.document import ConfigDocument
from toppbridge.pipeline.inputs import prepare_database
from toppbridge.pipeline.stage import Stage, StageContext
from toppbridge.pipeline.state import (
    CONSENSUS,
    CONTROL,
    DATABASE,
    FEATURE_MAPS,
    IDENTIFICATIONS,
    INDEXED_IDENTIFICATIONS,
    PEPTIDE_TABLE,
    PROTEIN_TABLE,
    QUANT_INPUTS,
    SEARCH_INPUT,
    TREATMENT,
    Modification,
    OutputValue,
    StageOutputs,
    WorkflowConfig,
)

logger = logging.getLogger(__name__)


XL_FDR_LEVELS = ["0.01", "0.1", "1.0"]

# Result files the search writes next to its "out" file, most refined first.
XL_RESULT_SUFFIXES = ("_perc_1.0000_XLs.idXML", "_1.0000_XLs.idXML")


# ------------------------------------------------------------------
# Parameter conversion helpers
# ------------------------------------------------------------------


def modification_strings(modification: Modification) -> list[str]:
    """Convert a displayed modification into OpenMS modification names.

    ``"Phospho / +79.966 Da (S, T, Y)"`` becomes one entry per residue
    (``"Phospho (S)"``, ``"Phospho (T)"``, ``"Phospho (Y)"``). Terminal
    modifications map to ``"<name> (C-term)"`` / ``"<name> (N-term)"``.

    Raises:
        WorkflowInputError: If a residue modification has no residue list.
    """
    value = modification.value.strip()
    if not value or value == "None":
        return []
    name = value.split(" ")[0]

    if modification.site == "c-term":
        return [f"{name} (C-term)"]
    if modification.site == "n-term":
        return [f"{name} (N-term)"]

    _, sep, residue_part = value.partition(" Da (")
    if not sep or not residue_part.endswith(")"):
        raise WorkflowInputError(
            f"Cannot parse modification {value!r}, expected 'Name / +mass Da (R1, R2)'"
        )
    residues = residue_part[:-1].split(", ")
    return [f"{name} ({residue})" for residue in residues if residue]


def string_list(value: str) -> list[str]:
    """Split a ``"[a b c]"`` parameter into its entries.

    Raises:
        WorkflowInputError: If the brackets are missing.
    """
    text = value.strip()
    if len(text) < 2 or not (text.startswith("[") and text.endswith("]")):
        raise WorkflowInputError(
            f"Invalid string list {value!r}. Valid format for string lists: '[a b c ...]'"
        )
    return [part for part in text[1:-1].split(" ") if part]


def search_filters(config: WorkflowConfig) -> list[str]:
    flags = [
        ("autotune", config.autotune),
        ("idfilter", config.id_filter),
        ("filter_pc_mass_error", config.filter_pc_mass_error),
        ("filter_bad_partial_loss_scores", config.filter_bad_partial_loss_scores),
    ]
    return [name for name, enabled in flags if enabled]


def preferred_identification_result(idxml: Path) -> Path:
    """Pick the most refined result the search wrote next to ``idxml``.

    The rescored cross-link file wins over the plain cross-link file, which
    wins over the raw output.
    """
    stem = idxml.with_suffix("")
    for suffix in XL_RESULT_SUFFIXES:
        candidate = Path(f"{stem}{suffix}")
        if candidate.is_file():
            return candidate
    return idxml


def _single(outputs: StageOutputs, key: str) -> Path:
    value = outputs[key]
    if isinstance(value, tuple):
        return value[0]
    return value


def _group(outputs: StageOutputs, key: str) -> tuple[Path, ...]:
    value = outputs[key]
    if isinstance(value, tuple):
        return value
    return (value,)


# ------------------------------------------------------------------
# Actions
# ------------------------------------------------------------------


async def align_runs(ctx: StageContext, outputs: StageOutputs) -> Mapping[str, OutputValue]:
    """Align the control run onto the treatment run's retention times."""
    config = ctx.config
    runs = [_single(outputs, TREATMENT), _single(outputs, CONTROL)]
    threads = config.num_threads

    feature_maps: list[Path] = []
    for run in runs:
        features = ctx.path(f"{run.stem}.featureXML")
        await ctx.run_tool(
            "FeatureFinderCentroided",
            params=_feature_finder_params(run, features, threads),
        )
        feature_maps.append(features)

    trafos = [ctx.path(f"{run.stem}.trafoXML") for run in runs]

    def configure_aligner(doc: ConfigDocument) -> None:
        doc.set_list("in", [str(p) for p in feature_maps], clear_first=True)
        doc.set_list("trafo_out", [str(p) for p in trafos], clear_first=True)
        # treatment is the reference, only the control is transformed
        doc.set_scalar("reference:index", 1)
        doc.set_tolerances(config.xic_mz_tolerance_ppm, config.xic_rt_tolerance_min)

    await ctx.run_tool(
        "MapAlignerPoseClustering",
        params={
            "max_num_peaks_considered": -1,
            "ignore_charge": False,
            "threads": threads,
        },
        configure=configure_aligner,
    )

    aligned = [ctx.path("UV_aligned.mzML"), ctx.path("Control_aligned.mzML")]
    for run, trafo, out in zip(runs, trafos, aligned):
        await ctx.run_tool(
            "MapRTTransformer",
            params={"in": run, "trafo_in": trafo, "out": out, "threads": threads},
        )

    return {
        TREATMENT: aligned[0],
        CONTROL: aligned[1],
        SEARCH_INPUT: aligned[0],
        QUANT_INPUTS: tuple(aligned),
    }


async def filter_background(ctx: StageContext, outputs: StageOutputs) -> Mapping[str, OutputValue]:
    """Drop precursors whose XIC is not enriched over the control run."""
    config = ctx.config
    result = ctx.path("UV_XIC_filtered.mzML")
    await ctx.run_tool(
        "RNPxlXICFilter",
        params={
            "treatment": _single(outputs, TREATMENT),
            "control": _single(outputs, CONTROL),
            "out": result,
            "fold_change": config.xic_fold_change,
            "rt_tol": config.xic_rt_tolerance_min * 60.0,
            "mz_tol": config.xic_mz_tolerance_ppm,
            "threads": config.num_threads,
            "log": ctx.path("xic_filter.log"),
        },
    )
    return {SEARCH_INPUT: result}


async def identify(ctx: StageContext, outputs: StageOutputs) -> Mapping[str, OutputValue]:
    """Search the (filtered) treatment run for cross-linked peptides."""
    config = ctx.config
    database = prepare_database(config.fasta_databases, ctx.path("nuxl_db.fasta"))
    idxml = ctx.path("nuxl_search_results.idXML")

    fixed = [s for mod in config.fixed_modifications for s in modification_strings(mod)]
    variable = [s for mod in config.variable_modifications for s in modification_strings(mod)]
    lists = {
        "modifications:fixed": fixed,
        "modifications:variable": variable,
        "report:xlFDR": XL_FDR_LEVELS,
        "filter": search_filters(config),
        "RNPxl:mapping": string_list(config.mapping),
        "RNPxl:modifications": string_list(config.nucleotide_modifications),
        "RNPxl:target_nucleotides": string_list(config.target_nucleotides),
        "RNPxl:fragment_adducts": string_list(config.fragment_adducts),
    }

    params: dict[str, object] = {
        "in": _single(outputs, SEARCH_INPUT),
        "database": database,
        "out_tsv": ctx.path("nuxl_search_results.tsv"),
        "out": idxml,
        "threads": config.num_threads,
        "log": ctx.path("nuxl.log"),
        "precursor:mass_tolerance": config.precursor_mass_tolerance,
        "precursor:mass_tolerance_unit": config.precursor_mass_tolerance_unit,
        "precursor:min_charge": config.precursor_min_charge,
        "precursor:max_charge": config.precursor_max_charge,
        "precursor:isotopes": config.precursor_isotopes,
        "fragment:mass_tolerance": config.fragment_mass_tolerance,
        "fragment:mass_tolerance_unit": config.fragment_mass_tolerance_unit,
        "modifications:variable_max_per_peptide": config.max_variable_mods_per_peptide,
        "peptide:min_size": config.peptide_min_size,
        "peptide:max_size": config.peptide_max_size,
        "peptide:missed_cleavages": config.missed_cleavages,
        "peptide:enzyme": config.enzyme,
        "RNPxl:presets": config.crosslink_presets,
        "RNPxl:length": config.crosslink_length,
        "RNPxl:sequence": config.crosslink_sequence,
        "RNPxl:CysteineAdduct": config.cysteine_adduct,
        "RNPxl:decoys": True,
        "RNPxl:scoring": "slow" if config.include_fragment_adducts else "fast",
        "RNPxl:can_cross_link": config.can_cross_link,
        "report:top_hits": 1,
        "report:peptideFDR": 0.01,
    }
    if config.percolator_executable is not None:
        params["percolator_executable"] = config.percolator_executable

    logger.info("Starting main search for %s", _single(outputs, SEARCH_INPUT).name)
    await ctx.run_tool("OpenNuXL", params=params, lists=lists)

    result = preferred_identification_result(idxml)
    logger.info("Using identification result %s", result.name)
    return {DATABASE: database, IDENTIFICATIONS: result}


async def index_peptides(ctx: StageContext, outputs: StageOutputs) -> Mapping[str, OutputValue]:
    """Refresh protein references of the identifications against the database."""
    indexed = ctx.path("identifications_indexed.idXML")
    await ctx.run_tool(
        "PeptideIndexer",
        params={
            "in": _single(outputs, IDENTIFICATIONS),
            "fasta": _single(outputs, DATABASE),
            "out": indexed,
            "decoy_string": "REV_",
            "decoy_string_position": "prefix",
            "missing_decoy_action": "warn",
            "allow_unmatched": True,
            "write_protein_description": True,
            "enzyme:specificity": "none",
            "threads": ctx.config.num_threads,
        },
    )
    return {INDEXED_IDENTIFICATIONS: indexed}


async def map_features(ctx: StageContext, outputs: StageOutputs) -> Mapping[str, OutputValue]:
    """Detect features in every quantified run and annotate them with identifications."""
    config = ctx.config
    identifications = _single(outputs, INDEXED_IDENTIFICATIONS)
    threads = config.num_threads

    mapped: list[Path] = []
    for run in _group(outputs, QUANT_INPUTS):
        features = ctx.path(f"{run.stem}.featureXML")
        await ctx.run_tool(
            "FeatureFinderCentroided",
            params=_feature_finder_params(run, features, threads),
        )

        result = ctx.path(f"{run.stem}_idmapped.featureXML")
        params: dict[str, object] = {
            "mz_tolerance": config.id_mapping_mz_tolerance_ppm,
            "rt_tolerance": config.id_mapping_rt_tolerance_min * 60.0,
            "in": features,
            "id": identifications,
            "out": result,
            "threads": threads,
            "mz_reference": config.mz_reference,
            "use_centroid_mz": config.mz_reference == "peptide",
        }
        await ctx.run_tool("IDMapper", params=params)
        mapped.append(result)

    return {FEATURE_MAPS: tuple(mapped)}


async def normalize(ctx: StageContext, outputs: StageOutputs) -> Mapping[str, OutputValue]:
    """Link feature maps into one consensus map and normalize its intensities."""
    config = ctx.config
    feature_maps = _group(outputs, FEATURE_MAPS)
    linked = ctx.path("featureXML_consensus.consensusXML")

    if len(feature_maps) == 1:
        await ctx.run_tool(
            "FileConverter",
            params={
                "in": feature_maps[0],
                "in_type": "featureXML",
                "out": linked,
                "out_type": "consensusXML",
                "threads": config.num_threads,
            },
        )
    else:
        def configure_linker(doc: ConfigDocument) -> None:
            doc.set_list("in", [str(p) for p in feature_maps], clear_first=True)
            doc.set_tolerances(config.linking_mz_tolerance_ppm, config.linking_rt_tolerance_min)

        await ctx.run_tool(
            "FeatureLinkerUnlabeledQT",
            params={"ignore_charge": False, "out": linked, "threads": config.num_threads},
            configure=configure_linker,
        )

    if config.normalization_method == "none":
        logger.info("Normalization disabled, using linked map as is")
        return {CONSENSUS: linked}

    normalized = ctx.path("normalized.consensusXML")
    await ctx.run_tool(
        "ConsensusMapNormalizer",
        params={
            "in": linked,
            "out": normalized,
            "algorithm_type": config.normalization_method,
            "accession_filter": config.normalization_accession_filter,
            "description_filter": config.normalization_description_filter,
            "threads": config.num_threads,
        },
    )
    return {CONSENSUS: normalized}


async def quantify(ctx: StageContext, outputs: StageOutputs) -> Mapping[str, OutputValue]:
    """Infer protein groups when requested and compute abundance tables."""
    config = ctx.config
    threads = config.num_threads
    protein_groups: Path | None = None

    if config.protein_inference_enabled:
        fido_out = ctx.path("fido_results.idXML")
        await ctx.run_tool(
            "FidoAdapter",
            params={
                "in": _single(outputs, INDEXED_IDENTIFICATIONS),
                "out": fido_out,
                "greedy_group_resolution": config.protein_quant_mode == "greedy",
                "threads": threads,
            },
        )
        fdr_out = ctx.path("fido_results_fdr_output.idXML")
        await ctx.run_tool(
            "FalseDiscoveryRate",
            params={"in": fido_out, "out": fdr_out, "proteins_only": True, "threads": threads},
        )
        protein_groups = ctx.path("fido_results_idfilter_output.idXML")
        await ctx.run_tool(
            "IDFilter",
            params={
                "in": fdr_out,
                "out": protein_groups,
                "delete_unreferenced_peptide_hits": True,
                "score:prot": config.protein_fdr,
                "threads": threads,
            },
        )

    proteins = ctx.path("pq_proteins.csv")
    peptides = ctx.path("pq_peptides.csv")
    params: dict[str, object] = {
        "in": _single(outputs, CONSENSUS),
        "out": proteins,
        "peptide_out": peptides,
        "top": config.quant_top,
        "average": config.quant_average,
        "include_all": config.quant_include_all,
        "filter_charge": config.quant_filter_charge,
        "fix_peptides": config.quant_fix_peptides,
        "threads": threads,
    }
    if protein_groups is not None:
        params["protein_groups"] = protein_groups
    await ctx.run_tool("ProteinQuantifier", params=params)

    return {PEPTIDE_TABLE: peptides, PROTEIN_TABLE: proteins}


def _feature_finder_params(run: Path, features: Path, threads: int) -> dict[str, object]:
    return {
        "in": run,
        "out": features,
        "charge_low": 2,
        "charge_high": 5,
        "max_missing": 1,
        "min_spectra": 6,
        "slope_bound": 0.1,
        "threads": threads,
        "feature:min_score": 0.7,
        "mass_trace:mz_tolerance": 0.01,
        "isotopic_pattern:mz_tolerance": 0.01,
    }


# ------------------------------------------------------------------
# Stage table
# ------------------------------------------------------------------


def _quant_run_count(config: WorkflowConfig) -> int:
    return 2 if config.is_dual_input else 1


ALIGN = Stage(
    name="align",
    action=align_runs,
    estimated_steps=5,
    skip_if=lambda config: not config.alignment_enabled,
)
XIC_FILTER = Stage(
    name="xic_filter",
    action=filter_background,
    estimated_steps=1,
    skip_if=lambda config: not (config.is_dual_input and config.xic_filtering),
)
IDENTIFY = Stage(name="identify", action=identify, estimated_steps=1)
INDEX = Stage(name="index", action=index_peptides, estimated_steps=1)
MAP_FEATURES = Stage(
    name="map_features",
    action=map_features,
    estimated_steps=lambda config: 2 * _quant_run_count(config),
)
NORMALIZE = Stage(
    name="normalize",
    action=normalize,
    estimated_steps=lambda config: 1 if config.normalization_method == "none" else 2,
)
# Protein inference adds FidoAdapter, FalseDiscoveryRate and IDFilter unless the mode is unique.
QUANTIFY = Stage(
    name="quantify",
    action=quantify,
    estimated_steps=lambda config: 4 if config.protein_inference_enabled else 1,
)
