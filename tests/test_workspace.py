import pytest

from conftest import BLOCKS
from sketchstudio.config import DEFAULT_CATALOG
from sketchstudio.errors import UnknownDevice
from sketchstudio.workspace import MemoryTextBuffer, MemoryWorkspace


def test_workspace_counts_nested_blocks():
    workspace = MemoryWorkspace()
    changes = []
    workspace.add_change_listener(lambda: changes.append(True))

    workspace.deserialize(BLOCKS)
    assert workspace.block_count() == 2
    workspace.replace(
        '<xml xmlns="http://www.w3.org/1999/xhtml">'
        '<block type="loop"><statement name="DO"><block type="delay"/></statement></block>'
        "</xml>"
    )
    assert workspace.block_count() == 2
    workspace.clear()
    assert workspace.block_count() == 0
    assert len(changes) == 3


def test_bad_markup_leaves_workspace_untouched():
    workspace = MemoryWorkspace()
    workspace.deserialize(BLOCKS)
    with pytest.raises(ValueError):
        workspace.replace("<xml")
    assert workspace.block_count() == 2


def test_generated_code_lists_top_level_blocks():
    workspace = MemoryWorkspace(generator=lambda root: ",".join(b.get("type") for b in root))
    workspace.deserialize(BLOCKS)
    assert workspace.generate_code() == "arduino_functions,led_on"


def test_text_buffer_dirty_flag():
    buffer = MemoryTextBuffer("a")
    assert not buffer.dirty
    buffer.set_text("b")
    assert buffer.dirty
    buffer.mark_clean()
    assert not buffer.dirty


def test_catalog_lookup():
    assert DEFAULT_CATALOG.display_name("cm:esp8266:nibble") == "Nibble"
    assert DEFAULT_CATALOG.display_name("acme:avr:toaster") == "acme:avr:toaster"
    assert "cm:esp32:spencer" in DEFAULT_CATALOG
    with pytest.raises(UnknownDevice):
        DEFAULT_CATALOG.require("acme:avr:toaster")
