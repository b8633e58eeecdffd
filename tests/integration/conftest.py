# tests/integration/conftest.py — v1
"""Fake TOPP tools for integration tests.

Every fake tool is the same small Python script installed under the tool's
name in ``<tmp>/openms/bin``. Its behaviour comes from ``<name>.json`` next
to it:

- ``-write_ini <file>`` writes a generic default INI (``default_ini``),
  optionally exiting nonzero or writing nothing.
- ``-ini <file>`` reads the ITEM/ITEMLIST values back, prints the configured
  stdout lines, optionally spawns a grandchild and sleeps, then either exits
  with ``exit_code`` or creates the files named by its output items using
  the configured payloads.

Each invocation appends the tool name to ``calls.log`` and dumps the values
it read to ``<name>.last.json``.
"""

from __future__ import annotations

import json
import stat
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from toppbridge.config.tools import TOOL_REGISTRY
from toppbridge.execution.tool_registry import ToolRegistry


FAKE_TOOL_SOURCE = r'''#!{python}
import json
import os
import subprocess
import sys
import time
import xml.etree.ElementTree as ET
from pathlib import Path

HERE = Path(__file__).resolve().parent
NAME = Path(__file__).name
BEHAVIOUR = json.loads((HERE / (NAME + ".json")).read_text(encoding="utf-8"))


def read_ini(path):
    root = ET.parse(path).getroot()
    scalars = {{item.get("name"): item.get("value", "") for item in root.iter("ITEM")}}
    lists = {{
        node.get("name"): [entry.get("value", "") for entry in node.iter("LISTITEM")]
        for node in root.iter("ITEMLIST")
    }}
    return scalars, lists


def main(args):
    env_value = os.environ.get(BEHAVIOUR.get("data_path_env_var", "OPENMS_DATA_PATH"), "")
    (HERE / (NAME + ".env")).write_text(env_value, encoding="utf-8")

    if args[:1] == ["-write_ini"]:
        if not BEHAVIOUR.get("skip_write_ini"):
            Path(args[1]).write_text(BEHAVIOUR["default_ini"], encoding="iso-8859-1")
        return BEHAVIOUR.get("write_ini_exit_code", 0)
    if args[:1] != ["-ini"]:
        print("usage: " + NAME + " -ini <file>", file=sys.stderr)
        return 2

    scalars, lists = read_ini(args[1])
    with open(HERE / "calls.log", "a", encoding="utf-8") as log:
        log.write(NAME + "\n")
    (HERE / (NAME + ".last.json")).write_text(
        json.dumps({{"scalars": scalars, "lists": lists, "pid": os.getpid()}}), encoding="utf-8"
    )

    for line in BEHAVIOUR.get("stdout", []):
        print(line, flush=True)

    if BEHAVIOUR.get("spawn_child"):
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(120)"])
        Path(BEHAVIOUR["spawn_child"]).write_text(str(child.pid), encoding="utf-8")

    time.sleep(BEHAVIOUR.get("sleep_s", 0))

    code = BEHAVIOUR.get("exit_code", 0)
    if code:
        print(BEHAVIOUR.get("stderr", "failure"), file=sys.stderr, flush=True)
        return code

    payloads = BEHAVIOUR.get("payloads", {{}})
    for item in ("out", "out_tsv", "peptide_out"):
        target = scalars.get(item)
        if target:
            Path(target).write_text(payloads.get(item, ""), encoding="utf-8")
    for target in lists.get("trafo_out", []):
        Path(target).write_text("", encoding="utf-8")
    for suffix, content in BEHAVIOUR.get("siblings", {{}}).items():
        out = scalars.get("out")
        if out:
            Path(out[: out.rfind(".")] + suffix).write_text(content, encoding="utf-8")
    return 0


sys.exit(main(sys.argv[1:]))
'''


def default_ini(tool_name: str) -> str:
    """Generic INI carrying the items every workflow tool is configured through."""
    return f"""<?xml version="1.0" encoding="ISO-8859-1"?>
<PARAMETERS version="1.7.0" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <NODE name="{tool_name}" description="Fake {tool_name}">
    <ITEM name="version" value="3.0.0" type="string" description="" required="false" advanced="true" />
    <NODE name="1" description="Instance &apos;1&apos; section for &apos;{tool_name}&apos;">
      <ITEM name="in" value="" type="input-file" description="" required="true" advanced="false" />
      <ITEMLIST name="in" type="input-file" description="" required="true" advanced="false">
      </ITEMLIST>
      <ITEM name="out" value="" type="output-file" description="" required="true" advanced="false" />
      <ITEM name="out_tsv" value="" type="output-file" description="" required="false" advanced="false" />
      <ITEM name="peptide_out" value="" type="output-file" description="" required="false" advanced="false" />
      <ITEMLIST name="trafo_out" type="output-file" description="" required="false" advanced="false">
      </ITEMLIST>
      <ITEM name="log" value="" type="string" description="" required="false" advanced="true" />
      <ITEM name="threads" value="1" type="int" description="" required="false" advanced="false" />
      <NODE name="modifications" description="">
        <ITEMLIST name="variable" type="string" description="" required="false" advanced="false">
          <LISTITEM value="Carbamidomethyl (C)"/>
        </ITEMLIST>
      </NODE>
      <NODE name="algorithm" description="">
        <NODE name="distance_RT" description="">
          <ITEM name="max_difference" value="100.0" type="double" description="" required="false" advanced="false" />
        </NODE>
        <NODE name="distance_MZ" description="">
          <ITEM name="max_difference" value="0.3" type="double" description="" required="false" advanced="false" />
          <ITEM name="unit" value="Da" type="string" description="" required="false" advanced="false" />
        </NODE>
      </NODE>
    </NODE>
  </NODE>
</PARAMETERS>
"""


@dataclass
class FakeToolbox:
    """A directory of fake TOPP tools laid out like an OpenMS install."""

    root: Path
    installed: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def bin_dir(self) -> Path:
        return self.root / "bin"

    @property
    def share_dir(self) -> Path:
        return self.root / "share" / "OpenMS"

    def install(self, name: str, **behaviour: Any) -> Path:
        """Install (or reconfigure) one fake tool."""
        self.bin_dir.mkdir(parents=True, exist_ok=True)
        self.share_dir.mkdir(parents=True, exist_ok=True)
        behaviour.setdefault("default_ini", default_ini(name))
        self.installed[name] = behaviour
        (self.bin_dir / f"{name}.json").write_text(json.dumps(behaviour), encoding="utf-8")
        script = self.bin_dir / name
        script.write_text(FAKE_TOOL_SOURCE.format(python=sys.executable), encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    def install_workflow(self, idxml: str, tables: dict[str, str]) -> None:
        """Install every catalogued tool; search and quantifier emit real payloads."""
        for name in TOOL_REGISTRY:
            if name == "OpenNuXL":
                self.install(name, payloads={"out": idxml, "out_tsv": "#tsv\n"})
            elif name == "ProteinQuantifier":
                self.install(name, payloads=tables)
            else:
                self.install(name)

    def registry(self) -> ToolRegistry:
        return ToolRegistry(self.bin_dir)

    def calls(self) -> list[str]:
        log = self.bin_dir / "calls.log"
        if not log.exists():
            return []
        return log.read_text(encoding="utf-8").split()

    def last_invocation(self, name: str) -> dict[str, Any]:
        return json.loads((self.bin_dir / f"{name}.last.json").read_text(encoding="utf-8"))

    def seen_data_path(self, name: str) -> str:
        return (self.bin_dir / f"{name}.env").read_text(encoding="utf-8")


@pytest.fixture
def fake_tools(tmp_path: Path) -> FakeToolbox:
    return FakeToolbox(root=tmp_path / "openms")
