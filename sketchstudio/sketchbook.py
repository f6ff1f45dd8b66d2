"""Directory-backed store for saved sketches.

Layout::

    <root>/block/<title>.xml             visual sketches (device + snapshot inside)
    <root>/code/<title>/<title>.ino      textual sketches
    <root>/code/<title>/sketch.json      {"version": 1, "device": "<device id>"}
"""
from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import List

from .codec import FORMAT_VERSION, PersistedSketch
from .document import RepresentationKind
from .errors import SketchbookError

logger = logging.getLogger(__name__)

METADATA_FILE = "sketch.json"


class Sketchbook:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    # ------------------------------------------------------------------
    @staticmethod
    def validate_title(title: str) -> str:
        if not title or not title.strip():
            raise SketchbookError("Sketch title must not be empty")
        if any(sep in title for sep in ("/", "\\")) or title in (".", ".."):
            raise SketchbookError(f"Invalid sketch title: {title!r}")
        return title

    def _dir(self, kind: RepresentationKind) -> Path:
        return self.root / kind.value

    def path_for(self, title: str, kind: RepresentationKind) -> Path:
        self.validate_title(title)
        if kind is RepresentationKind.VISUAL:
            return self._dir(kind) / f"{title}.xml"
        return self._dir(kind) / title / f"{title}.ino"

    # ------------------------------------------------------------------
    def save(self, title: str, data: str, kind: RepresentationKind, device_id: str) -> Path:
        path = self.path_for(title, kind)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(data, encoding="utf-8")
            if kind is RepresentationKind.TEXTUAL:
                meta = {"version": FORMAT_VERSION, "device": device_id}
                (path.parent / METADATA_FILE).write_text(json.dumps(meta, indent=2), encoding="utf-8")
        except OSError as exc:
            raise SketchbookError(f"Could not save {title!r}: {exc}") from exc
        logger.info("Saved %s sketch %r to %s", kind.value, title, path)
        return path

    def load(self, title: str, kind: RepresentationKind) -> PersistedSketch:
        path = self.path_for(title, kind)
        try:
            data = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SketchbookError(f"Could not read {title!r}: {exc}") from exc

        if kind is RepresentationKind.VISUAL:
            return PersistedSketch.from_data(data, kind)

        try:
            meta = json.loads((path.parent / METADATA_FILE).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise SketchbookError(f"Missing or broken metadata for {title!r}: {exc}") from exc
        return PersistedSketch.from_data(data, kind, device_id=meta.get("device"))

    def titles(self, kind: RepresentationKind) -> List[str]:
        folder = self._dir(kind)
        if not folder.is_dir():
            return []
        if kind is RepresentationKind.VISUAL:
            return sorted(p.stem for p in folder.glob("*.xml"))
        return sorted(p.name for p in folder.iterdir() if (p / f"{p.name}.ino").is_file())

    def delete(self, title: str, kind: RepresentationKind) -> None:
        path = self.path_for(title, kind)
        if kind is RepresentationKind.VISUAL:
            path.unlink(missing_ok=True)
        else:
            shutil.rmtree(path.parent, ignore_errors=True)
        logger.info("Deleted %s sketch %r", kind.value, title)
