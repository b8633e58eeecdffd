# src/config/tools.py — v1
"""Declarative TOPP tool catalogue.

Lists every external tool a workflow stage may invoke, by logical name.
The ToolRegistry resolves each entry against TOOLS_DIRECTORY at startup.
"""

from __future__ import annotations

# Logical name -> executable base name (platform suffix appended at resolve time).
TOOL_REGISTRY: dict[str, str] = {
    # Alignment (treatment/control runs)
    "FeatureFinderCentroided": "FeatureFinderCentroided",
    "MapAlignerPoseClustering": "MapAlignerPoseClustering",
    "MapRTTransformer": "MapRTTransformer",
    # Background subtraction
    "RNPxlXICFilter": "RNPxlXICFilter",
    # Identification
    "OpenNuXL": "OpenNuXL",
    "PeptideIndexer": "PeptideIndexer",
    # Feature mapping and linking
    "IDMapper": "IDMapper",
    "FileConverter": "FileConverter",
    "FeatureLinkerUnlabeledQT": "FeatureLinkerUnlabeledQT",
    "ConsensusMapNormalizer": "ConsensusMapNormalizer",
    # Protein inference (only when PROTEIN_QUANT_MODE != unique)
    "FidoAdapter": "FidoAdapter",
    "FalseDiscoveryRate": "FalseDiscoveryRate",
    "IDFilter": "IDFilter",
    # Quantification
    "ProteinQuantifier": "ProteinQuantifier",
}

# Stage name -> tools it may invoke, in order.
STAGE_TOOL_MAP: dict[str, list[str]] = {
    "align": [
        "FeatureFinderCentroided",
        "MapAlignerPoseClustering",
        "MapRTTransformer",
    ],
    "xic_filter": ["RNPxlXICFilter"],
    "identify": ["OpenNuXL"],
    "index": ["PeptideIndexer"],
    "map_features": ["FeatureFinderCentroided", "IDMapper"],
    "normalize": [
        "FileConverter",
        "FeatureLinkerUnlabeledQT",
        "ConsensusMapNormalizer",
    ],
    "quantify": [
        "FidoAdapter",
        "FalseDiscoveryRate",
        "IDFilter",
        "ProteinQuantifier",
    ],
}
