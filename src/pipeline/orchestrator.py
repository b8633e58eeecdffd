# src/pipeline/orchestrator.py — v1
"""Pipeline orchestrator — run a workflow topology end to end.

Drives one run:
  1. Validate inputs and check that the planned tools are installed
  2. Copy the inputs into a fresh scratch directory
  3. Estimate the number of tool invocations of the non-skipped stages
  4. Run the stages strictly in order, each on the outputs of the previous
  5. Ingest identification and quantification results into the result store

Any stage failure aborts the run before ingestion. There are no retries.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from toppbridge.config.settings import Settings
from toppbridge.core.errors import ToolInvocationError
from toppbridge.execution.process_runner import ProcessRunner
from toppbridge.execution.progress import ProgressSink, ProgressTracker
from toppbridge.execution.tool_registry import ToolRegistry
from toppbridge.logging.context import set_run_context, set_stage_context
from toppbridge.pipeline.ingestion import ingest_run
from toppbridge.pipeline.inputs import stage_inputs, validate_inputs
from toppbridge.pipeline.stage import Stage, StageContext
from toppbridge.pipeline.state import PipelineRun, WorkflowConfig, freeze_outputs, merge_outputs
from toppbridge.pipeline.topologies import select_topology
from toppbridge.storage.base_result_store import BaseResultStore

logger = logging.getLogger(__name__)

INGESTION_STEPS = 1


def estimate_total_steps(stages: list[Stage], config: WorkflowConfig) -> int:
    """Tool invocations of the stages that will run, plus ingestion."""
    planned = sum(stage.estimate(config) for stage in stages if not stage.is_skipped(config))
    return planned + INGESTION_STEPS


class PipelineOrchestrator:
    """Top-level driver for one workflow run.

    Args:
        settings: Application settings (tools directory, scratch root).
        store: Result store receiving the ingested results. Without one the
            run stops after the last stage.
        progress: Sink receiving progress fractions and tool status lines.
        tools: Tool registry, built from settings when omitted.
        runner: Process runner, created with ``progress`` when omitted.
    """

    def __init__(
        self,
        settings: Settings,
        store: BaseResultStore | None = None,
        progress: ProgressSink | None = None,
        tools: ToolRegistry | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._progress = progress
        self._tools = tools if tools is not None else ToolRegistry.from_settings(settings)
        self._runner = runner if runner is not None else ProcessRunner(progress=progress)

    async def run(
        self,
        config: WorkflowConfig,
        stages: list[Stage] | None = None,
        scratch_dir: Path | None = None,
    ) -> PipelineRun:
        """Execute all stages of the workflow on ``config``.

        Args:
            config: Per-run options.
            stages: Stage sequence, chosen from the inputs when omitted.
            scratch_dir: Working directory, ``<scratch_root>/<run_id>`` by default.

        Returns:
            PipelineRun describing the finished run.

        Raises:
            WorkflowInputError: Invalid inputs.
            ToolInvocationError: A planned tool is not installed, or could not
                be started.
            ToolExecutionError: A stage failed.
        """
        validate_inputs(config)
        stages = stages if stages is not None else select_topology(config)
        self._check_tools(stages, config)

        run = PipelineRun(stages=[stage.name for stage in stages])
        run.scratch_dir = scratch_dir or self._settings.scratch_path / run.run_id
        run.scratch_dir.mkdir(parents=True, exist_ok=True)
        set_run_context(run.run_id)

        run.total_steps = estimate_total_steps(stages, config)
        tracker = ProgressTracker(self._progress, run.total_steps)
        ctx = StageContext(
            config=config,
            tools=self._tools,
            runner=self._runner,
            scratch_dir=run.scratch_dir,
            progress=tracker,
        )
        logger.info(
            "Starting run %s: %d stages, %d estimated steps, scratch %s",
            run.run_id, len(stages), run.total_steps, run.scratch_dir,
        )

        start_time = time.monotonic()
        try:
            outputs = freeze_outputs(stage_inputs(config, run.scratch_dir))

            for index, stage in enumerate(stages):
                set_stage_context(stage.name)
                if stage.is_skipped(config):
                    logger.info("Stage %d/%d: skipping %s", index + 1, len(stages), stage.name)
                    run.skipped_stages.append(stage.name)
                    continue

                logger.info("Stage %d/%d: executing %s", index + 1, len(stages), stage.name)
                produced = await stage.action(ctx, outputs)
                outputs = merge_outputs(outputs, produced)
                run.completed_stages.append(stage.name)

            run.outputs = outputs
            if self._store is not None:
                set_stage_context("ingest")
                summary = await ingest_run(self._store, outputs, config)
                run.records_ingested = summary.records
                run.spectra_correlated = summary.correlated
                run.peptides_ingested = summary.peptides
                run.proteins_ingested = summary.proteins
            tracker.advance("Results ingested")

        except Exception:
            logger.exception("Run %s failed after stages: %s", run.run_id, run.completed_stages)
            raise
        finally:
            run.current_step = tracker.current_step
            run.duration_s = time.monotonic() - start_time
            set_stage_context(None)

        tracker.complete()
        run.success = True
        logger.info(
            "Run %s complete: %d stages, %d skipped, %.1fs",
            run.run_id, len(run.completed_stages), len(run.skipped_stages), run.duration_s,
        )
        return run

    def _check_tools(self, stages: list[Stage], config: WorkflowConfig) -> None:
        """Fail before any work when a tool of a planned stage is not installed."""
        planned = [stage.name for stage in stages if not stage.is_skipped(config)]
        missing = self._tools.missing_executables(planned)
        if missing:
            raise ToolInvocationError(", ".join(missing), "executable not found")
