"""In-memory model of the program currently open in the editor."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .codec import PersistedSketch
    from .config import DeviceCatalog


class RepresentationKind(enum.Enum):
    """How a program is authored: as blocks or as source text."""

    VISUAL = "block"
    TEXTUAL = "code"

    @classmethod
    def parse(cls, value: "RepresentationKind | str | int") -> "RepresentationKind":
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Unknown representation kind: {value!r}")
        if isinstance(value, int):
            # the toolchain host numbers kinds BLOCK=0, CODE=1
            if value not in (0, 1):
                raise ValueError(f"Unknown representation kind: {value!r}")
            return (cls.VISUAL, cls.TEXTUAL)[value]
        text = str(value).strip().lower()
        for kind in cls:
            if text in (kind.value, kind.name.lower()):
                return kind
        raise ValueError(f"Unknown representation kind: {value!r}")


@dataclass
class Document:
    """The authoritative program being edited.

    ``kind`` is fixed once the document exists; switching between blocks and
    code means loading a different document.
    """

    kind: RepresentationKind
    device_id: str
    payload: str = ""
    title: str = ""
    dirty: bool = False

    def __post_init__(self) -> None:
        if not self.device_id:
            raise ValueError("A document needs a device id")

    def __setattr__(self, name: str, value) -> None:
        if name == "kind" and "kind" in self.__dict__:
            raise AttributeError("The representation kind of a document cannot change")
        super().__setattr__(name, value)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_template(
        cls, device_id: str, kind: RepresentationKind, catalog: "DeviceCatalog"
    ) -> "Document":
        return cls(kind=kind, device_id=device_id, payload=catalog.template(device_id, kind))

    @classmethod
    def from_sketch(cls, sketch: "PersistedSketch", *, title: str = "") -> "Document":
        return cls(kind=sketch.kind, device_id=sketch.device_id, payload=sketch.payload, title=title)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    @property
    def untitled(self) -> bool:
        return self.title == ""

    def replace_payload(self, payload: str) -> None:
        if payload != self.payload:
            self.payload = payload
            self.dirty = True

    def mark_dirty(self) -> None:
        self.dirty = True

    def mark_clean(self, new_title: str | None = None) -> None:
        self.dirty = False
        if new_title is not None:
            self.title = new_title
