# tests/unit/config/test_unit_tools.py — v1
"""Tests for config.tools — catalogue consistency."""

from __future__ import annotations

from toppbridge.config.tools import STAGE_TOOL_MAP, TOOL_REGISTRY
from toppbridge.pipeline.topologies import dual_input_topology


class TestCatalogue:
    def test_stage_tools_are_registered(self):
        for stage, tools in STAGE_TOOL_MAP.items():
            for tool in tools:
                assert tool in TOOL_REGISTRY, f"{stage} uses unknown tool {tool}"

    def test_every_stage_is_mapped(self):
        assert {stage.name for stage in dual_input_topology()} == set(STAGE_TOOL_MAP)
