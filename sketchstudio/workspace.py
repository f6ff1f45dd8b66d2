"""Contracts for the block workspace and the text buffer.

The block renderer and code generator live outside this package.  The session
only ever talks to them through :class:`Workspace` and :class:`TextBuffer`;
the in-memory implementations below mimic the real surfaces closely enough for
the hosting shells and the test-suite.
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Callable, Iterable, List, Optional, Protocol, Sequence, Tuple

XHTML_NS = "http://www.w3.org/1999/xhtml"
SVG_NS = "http://www.w3.org/2000/svg"

ET.register_namespace("", XHTML_NS)
ET.register_namespace("svg", SVG_NS)

ChangeListener = Callable[[], None]
CodeGenerator = Callable[[ET.Element], str]

BLOCK_WIDTH = 160.0
BLOCK_HEIGHT = 48.0


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix ElementTree puts on tags."""
    return tag.rsplit("}", 1)[-1]


def parse_markup(markup: str) -> ET.Element:
    try:
        return ET.fromstring(markup)
    except ET.ParseError as exc:
        raise ValueError(f"Invalid block markup: {exc}") from exc


class Workspace(Protocol):
    """Capability offered by the visual block editor."""

    def serialize(self) -> str: ...

    def deserialize(self, markup: str) -> None: ...

    def generate_code(self) -> str: ...

    def clear(self) -> None: ...

    def block_count(self) -> int: ...

    def snapshot(self) -> Optional[str]: ...

    def set_palette(self, categories: Sequence[str]) -> None: ...

    def add_change_listener(self, listener: ChangeListener) -> None: ...


class TextBuffer(Protocol):
    """Capability offered by the source-code editing surface."""

    dirty: bool

    def get_text(self) -> str: ...

    def set_text(self, text: str) -> None: ...

    def add_change_listener(self, listener: ChangeListener) -> None: ...


def outline_generator(root: ET.Element) -> str:
    """Fallback generator: a sketch skeleton with one comment per top-level block."""

    lines = ["#include <Arduino.h>", ""]
    for block in root:
        if local_name(block.tag) != "block":
            continue
        lines.append(f"// {block.get('type', 'block')}")
    lines.extend(["", "void setup() {", "", "}", "", "void loop() {", "", "}"])
    return "\n".join(lines)


class MemoryWorkspace:
    """Block workspace kept as an ElementTree, used in place of the browser renderer."""

    def __init__(self, *, generator: Optional[CodeGenerator] = None) -> None:
        self._root = ET.Element(f"{{{XHTML_NS}}}xml")
        self.generator = generator or outline_generator
        self.palette: Tuple[str, ...] = ()
        self._listeners: List[ChangeListener] = []

    # ------------------------------------------------------------------
    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ------------------------------------------------------------------
    def serialize(self) -> str:
        return ET.tostring(self._root, encoding="unicode")

    def deserialize(self, markup: str) -> None:
        """Add the blocks found in ``markup`` to the workspace."""

        incoming = parse_markup(markup)
        for child in list(incoming):
            self._root.append(child)
        self._changed()

    def replace(self, markup: str) -> None:
        incoming = parse_markup(markup)
        self._root.clear()
        self._root.extend(list(incoming))
        self._changed()

    def clear(self) -> None:
        self._root.clear()
        self._changed()

    def blocks(self) -> Iterable[ET.Element]:
        return (el for el in self._root.iter() if local_name(el.tag) == "block")

    def block_count(self) -> int:
        return sum(1 for _ in self.blocks())

    def generate_code(self) -> str:
        return self.generator(self._root)

    def set_palette(self, categories: Sequence[str]) -> None:
        self.palette = tuple(categories)

    def snapshot(self) -> Optional[str]:
        """Draw every top-level block as a rounded box on an SVG canvas."""

        svg = ET.Element(f"{{{SVG_NS}}}svg")
        canvas = ET.SubElement(
            svg, f"{{{SVG_NS}}}g", {"class": "blocklyBlockCanvas", "transform": "translate(12,12) scale(1)"}
        )
        for block in self._root:
            if local_name(block.tag) != "block":
                continue
            x = float(block.get("x", "0"))
            y = float(block.get("y", "0"))
            d = f"M {x} {y} h {BLOCK_WIDTH} v {BLOCK_HEIGHT} h {-BLOCK_WIDTH} z"
            ET.SubElement(canvas, f"{{{SVG_NS}}}path", {"class": "blocklyPath", "d": d})
        return ET.tostring(svg, encoding="unicode")


class MemoryTextBuffer:
    """Plain string buffer standing in for the code editor widget."""

    def __init__(self, text: str = "") -> None:
        self._text = text
        self._clean_text = text
        self._listeners: List[ChangeListener] = []

    @property
    def dirty(self) -> bool:
        return self._text != self._clean_text

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def get_text(self) -> str:
        return self._text

    def set_text(self, text: str) -> None:
        self._text = text
        for listener in list(self._listeners):
            listener()

    def mark_clean(self) -> None:
        self._clean_text = self._text
