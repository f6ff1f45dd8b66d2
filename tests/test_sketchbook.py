import json

import pytest

from conftest import BLOCKS
from sketchstudio.codec import PersistedSketch, markup_equivalent
from sketchstudio.document import RepresentationKind
from sketchstudio.errors import SketchbookError
from sketchstudio.sketchbook import Sketchbook

RINGO = "cm:esp32:ringo"


def test_visual_sketch_round_trip(tmp_path):
    book = Sketchbook(tmp_path)
    data = PersistedSketch(device_id=RINGO, kind=RepresentationKind.VISUAL, payload=BLOCKS).to_data()

    path = book.save("Blink", data, RepresentationKind.VISUAL, RINGO)
    assert path == tmp_path / "block" / "Blink.xml"

    loaded = book.load("Blink", RepresentationKind.VISUAL)
    assert loaded.device_id == RINGO
    assert markup_equivalent(loaded.payload, BLOCKS)


def test_textual_sketch_keeps_device_in_metadata(tmp_path):
    book = Sketchbook(tmp_path)
    book.save("Tone", "void loop() {}", RepresentationKind.TEXTUAL, "cm:esp8266:nibble")

    meta = json.loads((tmp_path / "code" / "Tone" / "sketch.json").read_text())
    assert meta == {"version": 1, "device": "cm:esp8266:nibble"}

    loaded = book.load("Tone", RepresentationKind.TEXTUAL)
    assert loaded.payload == "void loop() {}"
    assert loaded.device_id == "cm:esp8266:nibble"


def test_titles_per_kind(tmp_path):
    book = Sketchbook(tmp_path)
    assert book.titles(RepresentationKind.VISUAL) == []

    book.save("b", "x", RepresentationKind.TEXTUAL, RINGO)
    book.save("a", "y", RepresentationKind.TEXTUAL, RINGO)
    book.save("c", BLOCKS, RepresentationKind.VISUAL, RINGO)

    assert book.titles(RepresentationKind.TEXTUAL) == ["a", "b"]
    assert book.titles(RepresentationKind.VISUAL) == ["c"]

    book.delete("a", RepresentationKind.TEXTUAL)
    assert book.titles(RepresentationKind.TEXTUAL) == ["b"]


@pytest.mark.parametrize("title", ["", "   ", "../evil", "a/b", ".."])
def test_invalid_titles_are_rejected(tmp_path, title):
    with pytest.raises(SketchbookError):
        Sketchbook(tmp_path).save(title, "x", RepresentationKind.TEXTUAL, RINGO)


def test_missing_sketch(tmp_path):
    with pytest.raises(SketchbookError):
        Sketchbook(tmp_path).load("Nope", RepresentationKind.VISUAL)


def test_textual_sketch_without_metadata(tmp_path):
    folder = tmp_path / "code" / "Bare"
    folder.mkdir(parents=True)
    (folder / "Bare.ino").write_text("void loop() {}")

    with pytest.raises(SketchbookError):
        Sketchbook(tmp_path).load("Bare", RepresentationKind.TEXTUAL)
