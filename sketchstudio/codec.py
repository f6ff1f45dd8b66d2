"""Conversion between documents and the persisted sketch format.

A visual sketch on disk is the workspace markup with two extra nodes put in
front of the blocks: first the ``<device>`` the sketch targets, then a
``<snapshot>`` holding a rendered copy of the canvas.  Consumers of the format
look these nodes up by position, so the order is fixed.  Textual sketches are
stored as plain source text.
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional, Tuple

from svgpathtools import parse_path

from .config import DeviceCatalog
from .document import Document, RepresentationKind
from .errors import EmptyWorkspace, UnknownDevice
from .workspace import TextBuffer, Workspace, local_name, parse_markup

FORMAT_VERSION = 1


def _namespace(tag: str) -> str:
    return tag[1:].split("}", 1)[0] if tag.startswith("{") else ""


def _qualified(namespace: str, name: str) -> str:
    return f"{{{namespace}}}{name}" if namespace else name


@dataclass
class PersistedSketch:
    device_id: str
    kind: RepresentationKind
    payload: str
    snapshot: Optional[str] = None
    version: int = FORMAT_VERSION

    @property
    def is_template_sentinel(self) -> bool:
        return self.payload == ""

    # ------------------------------------------------------------------
    # Container text
    # ------------------------------------------------------------------
    def to_data(self) -> str:
        if self.kind is RepresentationKind.TEXTUAL:
            return self.payload

        root = parse_markup(self.payload) if self.payload else ET.Element("xml")
        ns = _namespace(root.tag)
        root.set("version", str(self.version))

        if self.snapshot:
            holder = ET.Element(_qualified(ns, "snapshot"))
            holder.append(ET.fromstring(self.snapshot))
            root.insert(0, holder)

        device = ET.Element(_qualified(ns, "device"))
        device.text = self.device_id
        root.insert(0, device)
        return ET.tostring(root, encoding="unicode")

    @classmethod
    def from_data(
        cls, data: str, kind: RepresentationKind, device_id: Optional[str] = None
    ) -> "PersistedSketch":
        if kind is RepresentationKind.TEXTUAL:
            if not device_id:
                raise ValueError("Textual sketches need their device id supplied separately")
            return cls(device_id=device_id, kind=kind, payload=data)

        if not data.strip():
            return cls(device_id=device_id or "", kind=kind, payload="")

        root = parse_markup(data)
        version = int(root.attrib.pop("version", FORMAT_VERSION))
        found_device, snapshot = _strip_header(root)
        resolved = found_device or device_id
        if not resolved:
            raise UnknownDevice("")
        return cls(
            device_id=resolved,
            kind=kind,
            payload=ET.tostring(root, encoding="unicode"),
            snapshot=snapshot,
            version=version,
        )


def _strip_header(root: ET.Element) -> Tuple[Optional[str], Optional[str]]:
    device_id: Optional[str] = None
    snapshot: Optional[str] = None
    children = list(root)
    if children and local_name(children[0].tag) == "device":
        device_id = (children[0].text or "").strip() or None
        root.remove(children[0])
        children = children[1:]
    if children and local_name(children[0].tag) == "snapshot":
        if len(children[0]):
            snapshot = ET.tostring(children[0][0], encoding="unicode")
        root.remove(children[0])
    return device_id, snapshot


@dataclass
class DecodedSketch:
    document: Document
    first_save_warranted: bool


def encode(
    document: Document,
    workspace: Optional[Workspace] = None,
    text_buffer: Optional[TextBuffer] = None,
) -> PersistedSketch:
    """Capture the current program as a :class:`PersistedSketch`."""

    if document.kind is RepresentationKind.VISUAL:
        if workspace is None:
            raise ValueError("A workspace is required to encode a visual document")
        if workspace.block_count() == 0:
            raise EmptyWorkspace()
        snapshot = workspace.snapshot()
        return PersistedSketch(
            device_id=document.device_id,
            kind=document.kind,
            payload=workspace.serialize(),
            snapshot=normalize_snapshot(snapshot) if snapshot else None,
        )

    text = text_buffer.get_text() if text_buffer is not None else document.payload
    return PersistedSketch(device_id=document.device_id, kind=document.kind, payload=text)


def decode(sketch: PersistedSketch, catalog: DeviceCatalog, *, title: str = "") -> DecodedSketch:
    """Turn a stored sketch into a document, resolving the empty-payload sentinel."""

    if sketch.is_template_sentinel:
        profile = catalog.get(sketch.device_id)
        if profile is None:
            raise UnknownDevice(sketch.device_id)
        document = Document(
            kind=sketch.kind,
            device_id=sketch.device_id,
            payload=profile.template(sketch.kind),
            title=title,
        )
        return DecodedSketch(document=document, first_save_warranted=True)

    return DecodedSketch(document=Document.from_sketch(sketch, title=title), first_save_warranted=False)


def normalize_snapshot(svg_markup: str) -> str:
    """Drop the live canvas offsets and size the snapshot to its content."""

    root = ET.fromstring(svg_markup)
    root.attrib.pop("transform", None)
    if len(root):
        root[0].attrib.pop("transform", None)

    bounds = snapshot_bounds(root)
    if bounds is not None:
        xmin, xmax, ymin, ymax = bounds
        width = max(xmax - xmin, 1.0)
        height = max(ymax - ymin, 1.0)
        root.set("viewBox", f"{xmin:g} {ymin:g} {width:g} {height:g}")
    return ET.tostring(root, encoding="unicode")


def snapshot_bounds(root: ET.Element) -> Optional[Tuple[float, float, float, float]]:
    xmin = ymin = float("inf")
    xmax = ymax = float("-inf")
    for element in root.iter():
        if local_name(element.tag) != "path" or not element.get("d"):
            continue
        path = parse_path(element.get("d"))
        if len(path) == 0:
            continue
        px0, px1, py0, py1 = path.bbox()
        xmin = min(xmin, px0)
        xmax = max(xmax, px1)
        ymin = min(ymin, py0)
        ymax = max(ymax, py1)
    if xmin == float("inf"):
        return None
    return float(xmin), float(xmax), float(ymin), float(ymax)


def markup_equivalent(first: str, second: str) -> bool:
    """Compare two block markups structurally, ignoring formatting."""

    return ET.canonicalize(first, strip_text=True) == ET.canonicalize(second, strip_text=True)


__all__ = [
    "FORMAT_VERSION",
    "PersistedSketch",
    "DecodedSketch",
    "encode",
    "decode",
    "normalize_snapshot",
    "snapshot_bounds",
    "markup_equivalent",
]
