# src/logging/context.py — v1
"""Contextual logging support: attach run_id, stage and tool to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set once per workflow run, then per stage and per tool invocation.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_tool: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "tool", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    stage: str | None = None
    tool: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        stage=_stage.get(),
        tool=_tool.get(),
    )


def set_run_context(run_id: str) -> None:
    """Set run-level context (called once per workflow run)."""
    _run_id.set(run_id)
    _stage.set(None)
    _tool.set(None)


def set_stage_context(stage: str | None) -> None:
    """Set the pipeline stage currently executing."""
    _stage.set(stage)


def set_tool_context(tool: str | None) -> None:
    """Set the external tool currently running."""
    _tool.set(tool)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _stage.set(None)
    _tool.set(None)
