# src/pipeline/topologies.py — v1
"""Stage sequences for the supported input layouts.

single input:  identify -> index -> map_features -> normalize -> quantify
dual input:    align -> xic_filter -> identify -> index -> map_features
               -> normalize -> quantify
"""

from __future__ import annotations

from toppbridge.pipeline.stage import Stage
from toppbridge.pipeline.stages import (
    ALIGN,
    IDENTIFY,
    INDEX,
    MAP_FEATURES,
    NORMALIZE,
    QUANTIFY,
    XIC_FILTER,
)
from toppbridge.pipeline.state import WorkflowConfig

_COMMON_TAIL = (IDENTIFY, INDEX, MAP_FEATURES, NORMALIZE, QUANTIFY)


def single_input_topology() -> list[Stage]:
    """Stages for one treatment run."""
    return list(_COMMON_TAIL)


def dual_input_topology() -> list[Stage]:
    """Stages for a treatment run with a control run."""
    return [ALIGN, XIC_FILTER, *_COMMON_TAIL]


def select_topology(config: WorkflowConfig) -> list[Stage]:
    if config.is_dual_input:
        return dual_input_topology()
    return single_input_topology()
