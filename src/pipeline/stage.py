# src/pipeline/stage.py — v1
"""Stage definition and the context stage actions run in.

A Stage bundles a name, a skip predicate over the WorkflowConfig, an async
action and the number of tool invocations it is expected to make. Actions
receive a StageContext and the accumulated StageOutputs and return the new
files they produced.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from toppbridge.core.models import ToolSpec
from toppbridge.execution.process_runner import ProcessRunner, ToolRun
from toppbridge.execution.progress import ProgressTracker
from toppbridge.execution.tool_registry import ToolRegistry
from toppbridge.params.document import ConfigDocument
from toppbridge.pipeline.state import OutputValue, StageOutputs, WorkflowConfig

logger = logging.getLogger(__name__)

StageAction = Callable[["StageContext", StageOutputs], Awaitable[Mapping[str, OutputValue]]]
StepEstimate = Callable[[WorkflowConfig], int]


def _never(config: WorkflowConfig) -> bool:
    return False


@dataclass(frozen=True)
class Stage:
    """One step of a workflow topology."""

    name: str
    action: StageAction
    estimated_steps: int | StepEstimate = 1
    skip_if: Callable[[WorkflowConfig], bool] = _never

    def is_skipped(self, config: WorkflowConfig) -> bool:
        return bool(self.skip_if(config))

    def estimate(self, config: WorkflowConfig) -> int:
        """Expected number of tool invocations for ``config``."""
        if callable(self.estimated_steps):
            return int(self.estimated_steps(config))
        return int(self.estimated_steps)


@dataclass
class StageContext:
    """Collaborators shared by every stage of a run."""

    config: WorkflowConfig
    tools: ToolRegistry
    runner: ProcessRunner
    scratch_dir: Path
    progress: ProgressTracker

    def path(self, name: str) -> Path:
        """Location of a scratch file."""
        return self.scratch_dir / name

    async def prepare(self, tool_name: str, ini_name: str | None = None) -> tuple[ToolSpec, ConfigDocument]:
        """Resolve ``tool_name`` and fetch its default configuration."""
        tool = self.tools.get_or_raise(tool_name)
        doc = await ConfigDocument.initialize(
            tool, self.scratch_dir, self.runner, file_name=ini_name
        )
        return tool, doc

    async def run_tool(
        self,
        tool_name: str,
        params: Mapping[str, Any] | None = None,
        lists: Mapping[str, list[str]] | None = None,
        configure: Callable[[ConfigDocument], None] | None = None,
        ini_name: str | None = None,
    ) -> ToolRun:
        """Write the tool's INI file, run it and count the step.

        ``params`` are scalar overrides, ``lists`` replace item lists, and
        ``configure`` may apply anything else to the document before it is
        persisted.
        """
        tool, doc = await self.prepare(tool_name, ini_name)
        if params:
            unmatched = doc.update(params)
            if unmatched:
                logger.debug("%s has no parameters %s", tool_name, unmatched)
        for list_path, values in (lists or {}).items():
            doc.set_list(list_path, values, clear_first=True)
        if configure is not None:
            configure(doc)
        config_path = doc.persist()

        run = await self.runner.run_and_wait(tool, config_path, self.scratch_dir)
        self.progress.advance(f"{tool_name} finished")
        return run
