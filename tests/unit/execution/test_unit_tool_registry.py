# tests/unit/execution/test_unit_tool_registry.py — v1
"""Tests for execution.tool_registry — name resolution and executable checks."""

from __future__ import annotations

from pathlib import Path

import pytest

from toppbridge.config.settings import Settings
from toppbridge.config.tools import STAGE_TOOL_MAP, TOOL_REGISTRY
from toppbridge.core.models import ToolSpec
from toppbridge.execution.tool_registry import RegistryError, ToolRegistry


class TestResolution:
    def test_known_tool(self, tmp_path: Path):
        registry = ToolRegistry(tmp_path)
        spec = registry.get("PeptideIndexer")
        assert spec is not None
        assert spec.executable == tmp_path / TOOL_REGISTRY["PeptideIndexer"]
        assert spec.data_path_env_var == "OPENMS_DATA_PATH"

    def test_suffix(self, tmp_path: Path):
        registry = ToolRegistry(tmp_path, executable_suffix=".exe")
        assert registry.get_or_raise("OpenNuXL").executable.name == "OpenNuXL.exe"

    def test_unknown(self, tmp_path: Path):
        registry = ToolRegistry(tmp_path)
        assert registry.get("NoSuchTool") is None
        with pytest.raises(RegistryError):
            registry.get_or_raise("NoSuchTool")

    def test_register_override(self, tmp_path: Path):
        registry = ToolRegistry(tmp_path)
        custom = ToolSpec(name="OpenNuXL", executable=tmp_path / "bin" / "custom")
        registry.register(custom)
        assert registry.get("OpenNuXL") is custom

    def test_register_new_name(self, tmp_path: Path):
        registry = ToolRegistry(tmp_path, catalogue={})
        registry.register(ToolSpec(name="Extra", executable=tmp_path / "extra"))
        assert registry.tool_names == ["Extra"]

    def test_from_settings(self, tmp_path: Path):
        settings = Settings(_env_file=None, tools_directory=tmp_path, executable_suffix=".bin")
        registry = ToolRegistry.from_settings(settings)
        assert registry.get_or_raise("IDMapper").executable == tmp_path / "IDMapper.bin"

    def test_data_path_is_share_sibling(self, tmp_path: Path):
        spec = ToolSpec(name="X", executable=tmp_path / "bin" / "X")
        assert spec.data_path == (tmp_path / "share" / "OpenMS").resolve()


class TestMissingExecutables:
    def test_all_missing(self, tmp_path: Path):
        registry = ToolRegistry(tmp_path)
        assert registry.missing_executables() == registry.tool_names

    def test_stage_subset(self, tmp_path: Path):
        registry = ToolRegistry(tmp_path)
        for name in STAGE_TOOL_MAP["index"]:
            (tmp_path / TOOL_REGISTRY[name]).write_text("")
        assert registry.missing_executables(["index"]) == []
        assert registry.missing_executables(["identify"]) == sorted(STAGE_TOOL_MAP["identify"])
