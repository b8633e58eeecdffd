# src/execution/progress.py — v1
"""Progress reporting for pipeline runs.

A ProgressSink receives two kinds of updates: the overall run fraction after
each tool invocation, and free-text status lines streamed by the running
tool (optionally with the tool's own percentage).
"""

from __future__ import annotations

import logging
import re
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")


@runtime_checkable
class ProgressSink(Protocol):
    """Receiver of progress updates."""

    def report(self, fraction: float, text: str) -> None:
        """Overall run progress, ``fraction`` in [0, 1]."""

    def status(self, text: str, percent: float | None = None) -> None:
        """Transient status line from the running tool."""


class NullProgressSink:
    """Discards every update."""

    def report(self, fraction: float, text: str) -> None:
        pass

    def status(self, text: str, percent: float | None = None) -> None:
        pass


class LoggingProgressSink:
    """Forwards updates to the module logger."""

    def report(self, fraction: float, text: str) -> None:
        logger.info("Progress %5.1f%% %s", fraction * 100.0, text)

    def status(self, text: str, percent: float | None = None) -> None:
        logger.debug("%s", text)


def parse_percent(line: str) -> float | None:
    """Extract the first ``NN.N %`` figure from a tool output line."""
    match = _PERCENT_RE.search(line)
    if match is None:
        return None
    return float(match.group(1))


class ProgressTracker:
    """Step counter over an estimated total, reported as a clamped fraction.

    The estimate can be exceeded when a stage decides at runtime to run extra
    tools. Reported fractions never go above 1.0.
    """

    def __init__(self, sink: ProgressSink | None = None, total_steps: int = 1) -> None:
        self._sink: ProgressSink = sink if sink is not None else NullProgressSink()
        self._total = max(total_steps, 1)
        self._current = 0

    @property
    def sink(self) -> ProgressSink:
        return self._sink

    @property
    def total_steps(self) -> int:
        return self._total

    @property
    def current_step(self) -> int:
        return self._current

    @property
    def fraction(self) -> float:
        return min(self._current / self._total, 1.0)

    def advance(self, text: str = "") -> float:
        """Count one finished step and report the new fraction."""
        self._current += 1
        if self._current > self._total:
            logger.debug(
                "Step %d exceeds estimate of %d, clamping progress",
                self._current, self._total,
            )
        fraction = self.fraction
        self._sink.report(fraction, text)
        return fraction

    def complete(self, text: str = "Done") -> None:
        """Report 100% regardless of the step count."""
        self._current = max(self._current, self._total)
        self._sink.report(1.0, text)
