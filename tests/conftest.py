from __future__ import annotations

from types import SimpleNamespace
from typing import List, Optional

import pytest

from sketchstudio.channel import MemoryToolchain
from sketchstudio.session import SessionController
from sketchstudio.workspace import MemoryTextBuffer, MemoryWorkspace

BLOCKS = (
    '<xml xmlns="http://www.w3.org/1999/xhtml">'
    '<block type="arduino_functions" id="fn" x="40" y="50"></block>'
    '<block type="led_on" id="led" x="40" y="150"><field name="PIN">2</field></block>'
    "</xml>"
)

MORE_BLOCKS = (
    '<xml xmlns="http://www.w3.org/1999/xhtml">'
    '<block type="arduino_functions" id="fn" x="40" y="50"></block>'
    '<block type="delay" id="wait" x="40" y="250"></block>'
    "</xml>"
)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def editor(clock: FakeClock) -> SimpleNamespace:
    channel = MemoryToolchain()
    workspace = MemoryWorkspace()
    text_buffer = MemoryTextBuffer()
    destinations: List[Optional[str]] = []
    status: List[str] = []
    exits: List[bool] = []

    def prompt() -> Optional[str]:
        return destinations.pop(0) if destinations else None

    session = SessionController(
        channel,
        workspace=workspace,
        text_buffer=text_buffer,
        destination_prompt=prompt,
        on_exit=lambda: exits.append(True),
        status_cb=status.append,
        clock=clock,
    )
    return SimpleNamespace(
        session=session,
        channel=channel,
        workspace=workspace,
        text_buffer=text_buffer,
        destinations=destinations,
        status=status,
        exits=exits,
        clock=clock,
    )
