# src/params/path.py — v1
"""Typed addresses into an OpenMS parameter tree.

A path is the ordered tuple of enclosing section names plus a leaf name,
written with the OpenMS ``:`` separator, e.g. ``precursor:mass_tolerance``.
Sections match as a suffix of the node's ancestors, so the tool and
instance sections (``OpenNuXL:1:``) can be omitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

SEPARATOR = ":"


@dataclass(frozen=True)
class ParameterPath:
    """Section names (outermost first) plus the leaf item name."""

    sections: tuple[str, ...]
    leaf: str

    def __post_init__(self) -> None:
        if not self.leaf:
            raise ValueError("ParameterPath leaf must not be empty")
        if any(not s for s in self.sections):
            raise ValueError(f"Empty section name in {self.sections!r}")

    @classmethod
    def parse(cls, text: str | ParameterPath) -> ParameterPath:
        """Build a path from its ``a:b:leaf`` textual form."""
        if isinstance(text, ParameterPath):
            return text
        parts = text.strip().split(SEPARATOR)
        return cls(sections=tuple(parts[:-1]), leaf=parts[-1])

    def matches(self, name: str | None, ancestors: Sequence[str]) -> bool:
        """True if a node named ``name`` under ``ancestors`` is addressed.

        Args:
            name: The node's own name attribute.
            ancestors: Names of the enclosing sections, outermost first.
        """
        if name != self.leaf:
            return False
        if not self.sections:
            return True
        if len(self.sections) > len(ancestors):
            return False
        return tuple(ancestors[-len(self.sections):]) == self.sections

    def __str__(self) -> str:
        return SEPARATOR.join((*self.sections, self.leaf))
