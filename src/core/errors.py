# src/core/errors.py — v1
"""Error taxonomy shared by all modules.

Tool failures abort a pipeline run, parse failures abort a single parse and
lookup failures stay inside the interactive path. Lookup-style failures also
derive from the builtin LookupError so callers can catch them generically.
"""

from __future__ import annotations


class ToppBridgeError(Exception):
    """Base class for all toppbridge errors."""


class ConfigParseError(ToppBridgeError):
    """Raised when a tool configuration (INI) file cannot be parsed."""


class ToolInvocationError(ToppBridgeError):
    """Raised when a tool is missing, fails to start or writes no default config."""

    def __init__(self, tool_name: str, reason: str) -> None:
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Could not invoke {tool_name}: {reason}")


class ToolExecutionError(ToppBridgeError):
    """Raised when a tool exits with a nonzero code."""

    def __init__(self, tool_name: str, code: int, stderr: str = "") -> None:
        self.tool_name = tool_name
        self.code = code
        self.stderr = stderr
        super().__init__(
            f"The exit code of {tool_name} was {code}. (The expected exit code is 0)"
        )


class ResultParseError(ToppBridgeError):
    """Raised when a result document is structurally malformed."""


class WorkflowInputError(ToppBridgeError):
    """Raised when the inputs of a workflow run are inconsistent."""


class AmbiguityError(ToppBridgeError):
    """Raised when a legacy correlation token matches several live stores."""


class ProteinReferenceError(ToppBridgeError, LookupError):
    """Raised when a peptide hit references a protein not yet indexed."""


class TokenFormatError(ToppBridgeError, LookupError):
    """Raised when a correlation token cannot be decoded."""


class StoreUnavailableError(ToppBridgeError, LookupError):
    """Raised when no live result store matches a correlation token."""
