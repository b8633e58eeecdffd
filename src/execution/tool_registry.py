# src/execution/tool_registry.py — v1
"""Tool registry: resolve logical TOPP tool names to executables.

Entries come from the TOOL_REGISTRY config mapping. Resolution is lazy so a
missing binary only fails the stage that needs it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from toppbridge.config.tools import STAGE_TOOL_MAP, TOOL_REGISTRY
from toppbridge.core.models import ToolSpec

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when a tool name is unknown to the registry."""


class ToolRegistry:
    """Registry of the TOPP tools available under one tools directory.

    Args:
        tools_directory: Directory holding the tool executables.
        executable_suffix: Platform suffix such as ".exe".
        data_path_env_var: Environment variable pointing tools at their share data.
    """

    def __init__(
        self,
        tools_directory: Path | str,
        executable_suffix: str = "",
        data_path_env_var: str = "OPENMS_DATA_PATH",
        catalogue: dict[str, str] | None = None,
    ) -> None:
        self._tools_directory = Path(tools_directory).expanduser()
        self._suffix = executable_suffix
        self._env_var = data_path_env_var
        self._catalogue = dict(TOOL_REGISTRY if catalogue is None else catalogue)
        self._overrides: dict[str, ToolSpec] = {}

    @classmethod
    def from_settings(cls, settings: object) -> ToolRegistry:
        """Build a registry from a Settings instance."""
        return cls(
            tools_directory=settings.tools_path,  # type: ignore[attr-defined]
            executable_suffix=settings.executable_suffix,  # type: ignore[attr-defined]
            data_path_env_var=settings.data_path_env_var,  # type: ignore[attr-defined]
        )

    @property
    def tool_names(self) -> list[str]:
        """Return sorted list of known tool names."""
        return sorted(set(self._catalogue) | set(self._overrides))

    def register(self, spec: ToolSpec) -> None:
        """Manually register a tool, overriding the catalogue entry."""
        if spec.name in self._overrides:
            logger.warning("Overwriting existing tool: %s", spec.name)
        self._overrides[spec.name] = spec

    def get(self, name: str) -> ToolSpec | None:
        """Get a resolved ToolSpec by name, or None if unknown."""
        if name in self._overrides:
            return self._overrides[name]
        base = self._catalogue.get(name)
        if base is None:
            return None
        return ToolSpec(
            name=name,
            executable=self._tools_directory / f"{base}{self._suffix}",
            data_path_env_var=self._env_var,
        )

    def get_or_raise(self, name: str) -> ToolSpec:
        """Get a ToolSpec by name, raise if not registered."""
        spec = self.get(name)
        if spec is None:
            raise RegistryError(f"Tool '{name}' not found in registry")
        return spec

    def missing_executables(self, stages: list[str] | None = None) -> list[str]:
        """Return names of tools whose executable does not exist.

        Args:
            stages: Restrict the check to tools used by these stages.
        """
        if stages is None:
            names = self.tool_names
        else:
            names = sorted({t for s in stages for t in STAGE_TOOL_MAP.get(s, [])})
        missing: list[str] = []
        for name in names:
            spec = self.get(name)
            if spec is None or not spec.executable.is_file():
                missing.append(name)
        return missing
