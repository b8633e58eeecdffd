# src/execution/process_runner.py — v1
"""Run TOPP tools as child processes with streamed output.

Tools are started as ``<exe> -ini <file>`` (or ``-write_ini`` to obtain the
default configuration) with OPENMS_DATA_PATH pointing at the share directory
next to the binaries. stdout is read line by line and fed to the progress
sink; stderr is buffered whole. A call returns only after both streams are
closed and the process has exited.

Cancelling the awaiting task kills the whole process tree before the
CancelledError propagates.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path

import psutil

from toppbridge.core.errors import ToolExecutionError, ToolInvocationError
from toppbridge.core.models import ToolSpec
from toppbridge.execution.progress import NullProgressSink, ProgressSink, parse_percent
from toppbridge.logging.context import set_tool_context

logger = logging.getLogger(__name__)

DEFAULT_KILL_TIMEOUT_S = 5.0
_STREAM_LIMIT = 1024 * 1024
_READ_CHUNK = 64 * 1024
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

# Output line marker -> phase label prefixed to subsequent percentage lines.
PHASE_MARKERS: dict[str, str] = {
    "Progress of 'loading mzML file':": "Loading mzML file",
    "Progress of 'loading chromatograms':": "Loading chromatograms",
    "Progress of 'Aligning input maps':": "Aligning input maps",
    "Progress of 'linking features':": "Linking features",
}


@dataclass
class ToolRun:
    """Outcome of one tool invocation."""

    tool_name: str
    exit_code: int
    stdout_lines: list[str] = field(default_factory=list)
    stderr: str = ""
    duration_s: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class _StdoutListener:
    """Tracks the current phase and turns tool output into status updates."""

    def __init__(self, tool_name: str, sink: ProgressSink) -> None:
        self._tool_name = tool_name
        self._sink = sink
        self.phase = ""
        self.lines: list[str] = []

    def feed(self, line: str) -> None:
        self.lines.append(line)
        if "%" in line:
            text = f"{self.phase} {line}".strip()
            self._sink.status(text, parse_percent(line))
            return
        logger.debug("[%s] %s", self._tool_name, line)
        for marker, label in PHASE_MARKERS.items():
            if marker in line:
                self.phase = label
                break


class ProcessRunner:
    """Launch external tools and wait for them.

    Args:
        progress: Sink receiving status lines from tool stdout.
        kill_timeout_s: Seconds to wait for a killed process to be reaped.
    """

    def __init__(
        self,
        progress: ProgressSink | None = None,
        kill_timeout_s: float = DEFAULT_KILL_TIMEOUT_S,
    ) -> None:
        self._progress: ProgressSink = progress if progress is not None else NullProgressSink()
        self._kill_timeout_s = kill_timeout_s

    @property
    def progress(self) -> ProgressSink:
        return self._progress

    async def run_and_wait(
        self,
        tool: ToolSpec,
        config_path: Path | str,
        working_dir: Path | str,
    ) -> ToolRun:
        """Run ``tool`` with its INI file and wait for completion.

        Raises:
            ToolInvocationError: Executable missing or could not be started.
            ToolExecutionError: The tool exited with a nonzero code.
        """
        run = await self._execute(tool, ["-ini", str(config_path)], Path(working_dir))
        if not run.success:
            raise ToolExecutionError(tool.name, run.exit_code, run.stderr)
        return run

    async def write_default_config(
        self,
        tool: ToolSpec,
        ini_path: Path | str,
        working_dir: Path | str,
    ) -> Path:
        """Have ``tool`` write its default INI file to ``ini_path``.

        Raises:
            ToolInvocationError: The tool could not be started, exited
                nonzero or did not produce the file.
        """
        ini_path = Path(ini_path)
        run = await self._execute(tool, ["-write_ini", str(ini_path)], Path(working_dir))
        if not run.success:
            raise ToolInvocationError(
                tool.name, f"-write_ini exited with code {run.exit_code}"
            )
        if not ini_path.is_file():
            raise ToolInvocationError(tool.name, f"no configuration written to {ini_path}")
        return ini_path

    # ------------------------------------------------------------------

    async def _execute(self, tool: ToolSpec, args: list[str], working_dir: Path) -> ToolRun:
        executable = tool.executable
        if not executable.is_file():
            raise ToolInvocationError(tool.name, f"executable not found at {executable}")

        env = dict(os.environ)
        env[tool.data_path_env_var] = str(tool.data_path)
        working_dir.mkdir(parents=True, exist_ok=True)

        set_tool_context(tool.name)
        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                str(executable),
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(working_dir),
                env=env,
                start_new_session=True,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            set_tool_context(None)
            raise ToolInvocationError(tool.name, str(exc)) from exc

        logger.debug("Started %s (pid %d): %s", tool.name, process.pid, " ".join(args))
        listener = _StdoutListener(tool.name, self._progress)
        stderr_task = asyncio.create_task(_read_all(process.stderr))
        stdout_task = asyncio.create_task(_read_lines(process.stdout, listener))

        try:
            await asyncio.gather(stdout_task, stderr_task)
            exit_code = await process.wait()
        except asyncio.CancelledError:
            logger.info("%s aborted, killing process tree", tool.name)
            raise
        finally:
            for task in (stdout_task, stderr_task):
                if not task.done():
                    task.cancel()
            if process.returncode is None:
                logger.warning("%s is still running (pid %d), killing it", tool.name, process.pid)
                await self._kill(process)
            elapsed = time.monotonic() - start
            logger.info("%s tool processing took %.2fs", tool.name, elapsed)
            set_tool_context(None)

        stderr_text = stderr_task.result()
        if stderr_text:
            logger.debug("[%s] stderr:\n%s", tool.name, stderr_text)

        return ToolRun(
            tool_name=tool.name,
            exit_code=exit_code,
            stdout_lines=listener.lines,
            stderr=stderr_text,
            duration_s=elapsed,
        )

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        kill_process_tree(process.pid)
        try:
            await asyncio.wait_for(process.wait(), timeout=self._kill_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Process %d did not exit after kill", process.pid)


def kill_process_tree(pid: int) -> None:
    """Kill ``pid`` and all of its descendants. Failures are logged, not raised."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    except psutil.Error as exc:
        logger.warning("Could not inspect process %d: %s", pid, exc)
        return

    try:
        victims = parent.children(recursive=True)
    except psutil.Error as exc:
        logger.warning("Could not enumerate children of %d: %s", pid, exc)
        victims = []

    victims.append(parent)
    for proc in victims:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as exc:
            logger.warning("Could not kill process %d: %s", proc.pid, exc)


async def _read_lines(stream: asyncio.StreamReader | None, listener: _StdoutListener) -> None:
    """Feed every line of ``stream`` to ``listener``.

    Progress loggers redraw their percentage after a bare ``\\r``, so
    ``\\r``, ``\\n`` and ``\\r\\n`` all end a line. Empty lines are dropped.
    """
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    after_cr = False
    while True:
        raw = await stream.read(_READ_CHUNK)
        text = pending + decoder.decode(raw, final=not raw)
        if after_cr and text.startswith("\n"):
            text = text[1:]
        if not raw:
            for line in _LINE_BREAK_RE.split(text):
                if line:
                    listener.feed(line)
            break

        # a trailing \r may be the first half of \r\n
        after_cr = text.endswith("\r")
        pieces = _LINE_BREAK_RE.split(text.rstrip("\r") if after_cr else text)
        pending = "" if after_cr else pieces.pop()
        for line in pieces:
            if line:
                listener.feed(line)


async def _read_all(stream: asyncio.StreamReader | None) -> str:
    if stream is None:
        return ""
    data = await stream.read()
    return data.decode("utf-8", errors="replace")
