# src/params/document.py — v1
"""XML-backed tool configuration document (OpenMS INI files).

The tree is held as an lxml ElementTree. Nodes the caller does not touch are
written back semantically identical (equal under canonical XML), though not
byte for byte: lxml may reorder namespace declarations or respell entities.
Values are plain strings, no type checking is done against the ``type``
attribute.

Conflict policy: when a path addresses several nodes, the last one in
document order is the one read or written.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from lxml import etree

from toppbridge.core.errors import ConfigParseError
from toppbridge.params.path import ParameterPath

if TYPE_CHECKING:
    from toppbridge.core.models import ToolSpec
    from toppbridge.execution.process_runner import ProcessRunner

logger = logging.getLogger(__name__)

SECTION_TAG = "NODE"
ITEM_TAG = "ITEM"
LIST_TAG = "ITEMLIST"
LIST_ENTRY_TAG = "LISTITEM"

_DECLARATION_RE = re.compile(rb"^\s*<\?xml[^>]*\?>\s*")


def format_value(value: Any) -> str:
    """Render a Python value the way OpenMS writes it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ConfigDocument:
    """Hierarchical parameter tree loaded from an INI file.

    Args:
        tree: Parsed document.
        path: File the document was loaded from, used by persist().
        prolog: Raw bytes before the root content (XML declaration).
        epilog: Raw trailing whitespace after the root element.
    """

    def __init__(
        self,
        tree: etree._ElementTree,
        path: Path | None = None,
        prolog: bytes = b"",
        epilog: bytes = b"",
    ) -> None:
        self._tree = tree
        self._path = path
        self._prolog = prolog
        self._epilog = epilog

    # --- Construction ---

    @classmethod
    def load(cls, path: Path | str) -> ConfigDocument:
        """Parse an INI file.

        Raises:
            ConfigParseError: If the file is missing or not well-formed XML.
        """
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise ConfigParseError(f"Cannot read {path}: {exc}") from exc
        return cls.from_bytes(raw, path=path)

    @classmethod
    def from_bytes(cls, raw: bytes, path: Path | None = None) -> ConfigDocument:
        """Parse an INI document held in memory."""
        parser = etree.XMLParser(
            remove_blank_text=False,
            remove_comments=False,
            strip_cdata=False,
            resolve_entities=False,
        )
        try:
            root = etree.fromstring(raw, parser=parser)
        except etree.XMLSyntaxError as exc:
            raise ConfigParseError(f"Malformed configuration {path or '<bytes>'}: {exc}") from exc

        match = _DECLARATION_RE.match(raw)
        prolog = match.group(0) if match else b""
        stripped = raw.rstrip()
        epilog = raw[len(stripped):]
        return cls(root.getroottree(), path=path, prolog=prolog, epilog=epilog)

    @classmethod
    async def initialize(
        cls,
        tool: ToolSpec,
        scratch_dir: Path | str,
        runner: ProcessRunner,
        file_name: str | None = None,
    ) -> ConfigDocument:
        """Ask the tool for its default configuration and load it.

        Raises:
            ToolInvocationError: If the tool cannot be started, exits nonzero
                or does not write the file.
            ConfigParseError: If the written file cannot be parsed.
        """
        scratch_dir = Path(scratch_dir)
        ini_path = scratch_dir / (file_name or f"{tool.name}.ini")
        await runner.write_default_config(tool, ini_path, scratch_dir)
        return cls.load(ini_path)

    # --- Properties ---

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def encoding(self) -> str:
        """Declared encoding of the source document."""
        return self._tree.docinfo.encoding or "UTF-8"

    @property
    def root(self) -> etree._Element:
        return self._tree.getroot()

    # --- Lookup ---

    def _find_last(self, tag: str, path: ParameterPath | str) -> etree._Element | None:
        target = ParameterPath.parse(path)
        found: etree._Element | None = None
        for element in self.root.iter(tag):
            ancestors = [a.get("name", "") for a in element.iterancestors(SECTION_TAG)]
            ancestors.reverse()
            if target.matches(element.get("name"), ancestors):
                found = element
        return found

    def get(self, path: ParameterPath | str) -> str | None:
        """Value of the last ITEM addressed by ``path``, or None."""
        element = self._find_last(ITEM_TAG, path)
        return None if element is None else element.get("value")

    def get_list(self, path: ParameterPath | str) -> list[str] | None:
        """Entries of the last ITEMLIST addressed by ``path``, or None."""
        element = self._find_last(LIST_TAG, path)
        if element is None:
            return None
        return [entry.get("value", "") for entry in element.iterchildren(LIST_ENTRY_TAG)]

    # --- Mutation ---

    def set_scalar(self, path: ParameterPath | str, value: Any) -> bool:
        """Overwrite the value of the last matching ITEM.

        Returns:
            True if a node was changed, False when nothing matched.
        """
        element = self._find_last(ITEM_TAG, path)
        if element is None:
            logger.debug("No ITEM matches %s, value left unset", path)
            return False
        element.set("value", format_value(value))
        return True

    def set_list(
        self,
        path: ParameterPath | str,
        values: Iterable[Any],
        clear_first: bool = False,
    ) -> bool:
        """Append ``values`` to the last matching ITEMLIST.

        Args:
            path: Address of the list.
            values: Entries to append, in order.
            clear_first: Drop the existing entries before appending.

        Returns:
            True if a node was changed, False when nothing matched.
        """
        element = self._find_last(LIST_TAG, path)
        if element is None:
            logger.debug("No ITEMLIST matches %s, values left unset", path)
            return False

        if clear_first:
            for child in list(element):
                element.remove(child)
            element.text = None

        for value in values:
            etree.SubElement(element, LIST_ENTRY_TAG, value=format_value(value))

        _reindent_list(element)
        return True

    def update(self, params: Mapping[ParameterPath | str, Any]) -> list[str]:
        """Set many scalar items at once.

        Returns:
            Textual paths that matched nothing.
        """
        unmatched: list[str] = []
        for path, value in params.items():
            if not self.set_scalar(path, value):
                unmatched.append(str(path))
        return unmatched

    def set_tolerances(self, mz_ppm: float, rt_minutes: float) -> None:
        """Write the m/z and RT matching thresholds used by aligners and linkers."""
        set_tolerances(self, mz_ppm, rt_minutes)

    # --- Persistence ---

    def to_bytes(self) -> bytes:
        """Serialize with the original declaration and trailing whitespace."""
        body = etree.tostring(self._tree, encoding=self.encoding, xml_declaration=False)
        if self._prolog:
            return self._prolog + body.strip() + self._epilog
        return body.rstrip() + self._epilog

    def persist(self, path: Path | str | None = None) -> Path:
        """Write the document back to its file (or to ``path``).

        Returns:
            The path written.
        """
        target = Path(path) if path is not None else self._path
        if target is None:
            raise ValueError("ConfigDocument has no backing file, pass a path")
        target.write_bytes(self.to_bytes())
        if path is not None and self._path is None:
            self._path = target
        return target


def set_tolerances(doc: ConfigDocument, mz_ppm: float, rt_minutes: float) -> None:
    """Write ``distance_MZ`` / ``distance_RT`` thresholds, RT in seconds."""
    doc.set_scalar("distance_MZ:max_difference", mz_ppm)
    doc.set_scalar("distance_MZ:unit", "ppm")
    doc.set_scalar("distance_RT:max_difference", rt_minutes * 60)


def _reindent_list(element: etree._Element) -> None:
    """Lay out LISTITEM children one per line below their ITEMLIST."""
    children = list(element)
    if not children:
        return
    base = _indent_of(element)
    inner = "\n" + base + "  "
    element.text = inner
    for child in children[:-1]:
        child.tail = inner
    children[-1].tail = "\n" + base


def _indent_of(element: etree._Element) -> str:
    previous = element.getprevious()
    if previous is not None:
        whitespace = previous.tail
    else:
        parent = element.getparent()
        whitespace = parent.text if parent is not None else None
    if whitespace and "\n" in whitespace:
        return whitespace.rsplit("\n", 1)[-1]
    return ""
