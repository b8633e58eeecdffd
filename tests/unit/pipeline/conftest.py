# tests/unit/pipeline/conftest.py — v1
"""Fixtures for stage tests: a StageContext that records instead of running tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from toppbridge.execution.process_runner import ProcessRunner, ToolRun
from toppbridge.execution.progress import ProgressTracker
from toppbridge.execution.tool_registry import ToolRegistry
from toppbridge.params.document import ConfigDocument
from toppbridge.pipeline.stage import StageContext
from toppbridge.pipeline.state import WorkflowConfig

GENERIC_INI = b"""<?xml version="1.0" encoding="ISO-8859-1"?>
<PARAMETERS version="1.7.0">
  <NODE name="Tool">
    <NODE name="1">
      <ITEMLIST name="in" type="input-file">
      </ITEMLIST>
      <ITEMLIST name="trafo_out" type="output-file">
      </ITEMLIST>
      <NODE name="reference">
        <ITEM name="index" value="0" type="int" />
      </NODE>
      <NODE name="distance_RT">
        <ITEM name="max_difference" value="100.0" type="double" />
      </NODE>
      <NODE name="distance_MZ">
        <ITEM name="max_difference" value="0.3" type="double" />
        <ITEM name="unit" value="Da" type="string" />
      </NODE>
    </NODE>
  </NODE>
</PARAMETERS>
"""

OUTPUT_ITEMS = ("out", "out_tsv", "peptide_out")


@dataclass
class ToolCall:
    tool_name: str
    params: dict[str, Any]
    lists: dict[str, list[str]]
    document: ConfigDocument


@dataclass
class RecordingContext(StageContext):
    """Records every tool call and creates the files named by output items."""

    calls: list[ToolCall] = field(default_factory=list)

    async def run_tool(self, tool_name, params=None, lists=None, configure=None, ini_name=None):
        doc = ConfigDocument.from_bytes(GENERIC_INI)
        if configure is not None:
            configure(doc)
        params = dict(params or {})
        self.calls.append(ToolCall(tool_name, params, dict(lists or {}), doc))
        for item in OUTPUT_ITEMS:
            if item in params:
                Path(params[item]).write_text("")
        self.progress.advance(f"{tool_name} finished")
        return ToolRun(tool_name=tool_name, exit_code=0)

    def tools_called(self) -> list[str]:
        return [call.tool_name for call in self.calls]

    def call(self, tool_name: str, index: int = 0) -> ToolCall:
        return [c for c in self.calls if c.tool_name == tool_name][index]


@pytest.fixture
def make_context(tmp_path: Path):
    def _make(config: WorkflowConfig) -> RecordingContext:
        scratch = tmp_path / "scratch"
        scratch.mkdir(exist_ok=True)
        return RecordingContext(
            config=config,
            tools=ToolRegistry(tmp_path / "bin"),
            runner=ProcessRunner(),
            scratch_dir=scratch,
            progress=ProgressTracker(total_steps=10),
        )

    return _make


@pytest.fixture
def single_config(mzml_file: Path, fasta_file: Path) -> WorkflowConfig:
    return WorkflowConfig(inputs=[mzml_file], fasta_databases=[fasta_file], num_threads=2)


@pytest.fixture
def dual_config(mzml_file: Path, control_mzml_file: Path, fasta_file: Path) -> WorkflowConfig:
    return WorkflowConfig(
        inputs=[
            {"path": mzml_file, "role": "treatment"},
            {"path": control_mzml_file, "role": "control"},
        ],
        fasta_databases=[fasta_file],
    )
