# src/main.py — v1
"""CLI entry point — run, parse, write-ini, set-param commands.

Usage:
    toppbridge run --treatment <mzML> [--control <mzML>] --fasta <db> [options]
    toppbridge parse <idXML> [--indent N]
    toppbridge write-ini <tool> <ini>
    toppbridge set-param <ini> <section:name=value>... [--list <path=a,b>]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from toppbridge.core.errors import ToppBridgeError
from toppbridge.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ToppBridgeError as exc:
        logger.error("%s", exc)
        return 1
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="toppbridge",
        description=f"toppbridge v{__version__} — OpenMS TOPP workflow driver",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Run the identification and quantification workflow",
    )
    p_run.add_argument(
        "--treatment", type=Path, required=True, help="Treatment (UV) mzML file",
    )
    p_run.add_argument(
        "--control", type=Path, default=None, help="Optional control mzML file",
    )
    p_run.add_argument(
        "--fasta", type=Path, action="append", required=True,
        help="FASTA database (repeatable)",
    )
    p_run.add_argument(
        "--options", type=Path, default=None,
        help="JSON file with additional workflow options",
    )
    p_run.add_argument(
        "--no-xic-filter", action="store_true", help="Skip background subtraction",
    )
    p_run.add_argument(
        "--no-alignment", action="store_true", help="Skip RT alignment",
    )
    p_run.add_argument(
        "--threads", type=int, default=None,
        help="Threads per tool (default: NUM_THREADS setting)",
    )
    p_run.add_argument(
        "--workflow-id", type=int, default=0, help="Workflow id stamped on results",
    )
    p_run.add_argument(
        "--scratch-dir", type=Path, default=None,
        help="Scratch directory (default: <SCRATCH_ROOT>/<run id>)",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- parse ---
    p_parse = subparsers.add_parser(
        "parse", help="Dump an idXML file as JSON records",
    )
    p_parse.add_argument("file", type=Path, help="Path to idXML file")
    p_parse.add_argument(
        "--indent", type=int, default=None, help="JSON indentation",
    )
    p_parse.set_defaults(func=_cmd_parse)

    # --- write-ini ---
    p_ini = subparsers.add_parser(
        "write-ini", help="Write a tool's default INI file",
    )
    p_ini.add_argument("tool", help="Tool name, e.g. PeptideIndexer")
    p_ini.add_argument("ini", type=Path, help="Target INI path")
    p_ini.set_defaults(func=_cmd_write_ini)

    # --- set-param ---
    p_set = subparsers.add_parser(
        "set-param", help="Set parameters in an INI file",
    )
    p_set.add_argument("ini", type=Path, help="INI file to patch")
    p_set.add_argument(
        "assignments", nargs="*", default=[],
        help="Scalar assignments 'section:name=value'",
    )
    p_set.add_argument(
        "--list", dest="lists", action="append", default=[],
        help="List assignment 'section:name=a,b,c' (replaces entries, repeatable)",
    )
    p_set.set_defaults(func=_cmd_set_param)

    return parser


async def _cmd_run(args: argparse.Namespace) -> int:
    """Execute one workflow run."""
    from toppbridge.config.settings import load_settings
    from toppbridge.execution.progress import LoggingProgressSink
    from toppbridge.pipeline.orchestrator import PipelineOrchestrator
    from toppbridge.pipeline.state import InputFile, InputRole, WorkflowConfig
    from toppbridge.storage.store_factory import create_result_store

    settings = load_settings()

    options: dict[str, object] = {}
    if args.options is not None:
        options = json.loads(args.options.read_text(encoding="utf-8"))

    inputs = [InputFile(path=args.treatment, role=InputRole.TREATMENT)]
    if args.control is not None:
        inputs.append(InputFile(path=args.control, role=InputRole.CONTROL))
    options.update(
        workflow_id=args.workflow_id,
        inputs=inputs,
        fasta_databases=args.fasta,
        num_threads=args.threads or settings.num_threads,
    )
    if args.no_xic_filter:
        options["xic_filtering"] = False
    if args.no_alignment:
        options["map_alignment"] = False
    config = WorkflowConfig.model_validate(options)

    store = create_result_store(settings)
    try:
        orchestrator = PipelineOrchestrator(
            settings, store=store, progress=LoggingProgressSink(),
        )
        run = await orchestrator.run(config, scratch_dir=args.scratch_dir)
    finally:
        await store.close()

    print(f"\nRun complete:")
    print(f"  Run ID:           {run.run_id}")
    print(f"  Stages:           {', '.join(run.completed_stages)}")
    print(f"  Skipped:          {', '.join(run.skipped_stages) or '-'}")
    print(f"  Identifications:  {run.records_ingested} ({run.spectra_correlated} correlated)")
    print(f"  Peptides:         {run.peptides_ingested}")
    print(f"  Proteins:         {run.proteins_ingested}")
    print(f"  Scratch:          {run.scratch_dir}")
    print(f"  Duration:         {run.duration_s:.1f}s")
    return 0


async def _cmd_parse(args: argparse.Namespace) -> int:
    """Print the records of an idXML file as a JSON array."""
    from toppbridge.results.idxml_parser import parse_idxml

    records = parse_idxml(args.file)
    payload = [record.model_dump(mode="json") for record in records]
    print(json.dumps(payload, indent=args.indent))
    return 0


async def _cmd_write_ini(args: argparse.Namespace) -> int:
    """Ask a tool for its default configuration."""
    from toppbridge.config.settings import load_settings
    from toppbridge.execution.process_runner import ProcessRunner
    from toppbridge.execution.tool_registry import ToolRegistry

    settings = load_settings()
    tool = ToolRegistry.from_settings(settings).get_or_raise(args.tool)
    ini_path: Path = args.ini.resolve()
    await ProcessRunner().write_default_config(tool, ini_path, ini_path.parent)
    print(ini_path)
    return 0


async def _cmd_set_param(args: argparse.Namespace) -> int:
    """Patch parameters of an INI file in place."""
    from toppbridge.params.document import ConfigDocument

    doc = ConfigDocument.load(args.ini)
    unmatched: list[str] = []

    for assignment in args.assignments:
        path, value = _split_assignment(assignment)
        if not doc.set_scalar(path, value):
            unmatched.append(path)
    for assignment in args.lists:
        path, value = _split_assignment(assignment)
        values = [v for v in value.split(",") if v]
        if not doc.set_list(path, values, clear_first=True):
            unmatched.append(path)

    doc.persist()
    if unmatched:
        logger.error("No parameter matches: %s", ", ".join(unmatched))
        return 1
    return 0


def _split_assignment(text: str) -> tuple[str, str]:
    path, sep, value = text.partition("=")
    if not sep or not path:
        raise ValueError(f"Expected 'section:name=value', got {text!r}")
    return path, value


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage from settings."""
    from toppbridge.config.settings import ConfigurationError, load_settings
    from toppbridge.logging.logger import setup_logging

    try:
        settings = load_settings()
    except (ConfigurationError, ValueError) as exc:
        setup_logging(level="DEBUG" if verbose else "INFO")
        logger.warning("Invalid settings, using default logging: %s", exc)
        return

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
