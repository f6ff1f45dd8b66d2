"""High level orchestration for the SketchStudio server and GUI."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .channel import ToolchainChannel
from .codec import PersistedSketch
from .config import AppState
from .document import RepresentationKind
from .ports import PortWatcher
from .session import DestinationPrompt, SessionController, StatusCallback
from .sketchbook import Sketchbook
from .toolchain import CliToolchain
from .workspace import MemoryTextBuffer, MemoryWorkspace


@dataclass
class StudioController:
    """Wire the sketchbook, toolchain, port watcher and editor session together."""

    app_state: AppState = field(default_factory=AppState)
    channel: Optional[ToolchainChannel] = None
    watch_ports: bool = True
    status_cb: Optional[StatusCallback] = None
    destination_prompt: Optional[DestinationPrompt] = None
    on_exit: Optional[Callable[[], None]] = None
    clock: Optional[Callable[[], float]] = None

    def __post_init__(self) -> None:
        toolchain_settings = self.app_state.toolchain
        self.sketchbook = Sketchbook(toolchain_settings.sketchbook_dir)
        self.workspace = MemoryWorkspace()
        self.text_buffer = MemoryTextBuffer()
        self.port_watcher: Optional[PortWatcher] = None

        if self.channel is None:
            self.channel = CliToolchain(
                toolchain_settings,
                self.sketchbook,
                port_provider=self._current_port,
                status_cb=self.status_cb,
            )
        if self.watch_ports:
            default = self.app_state.catalog.get(self.app_state.default_device)
            self.port_watcher = PortWatcher(
                self.channel.post,
                vendor_ids=default.usb_vendor_ids if default else (),
            )

        extra = {"clock": self.clock} if self.clock is not None else {}
        self.session = SessionController(
            self.channel,
            workspace=self.workspace,
            text_buffer=self.text_buffer,
            catalog=self.app_state.catalog,
            settings=self.app_state.editor,
            port_watcher=self.port_watcher,
            destination_prompt=self.destination_prompt,
            on_exit=self.on_exit,
            status_cb=self.status_cb,
            stages=tuple(toolchain_settings.stages),
            completion_stage=toolchain_settings.completion_stage,
            **extra,
        )

    def _current_port(self) -> Optional[str]:
        return self.port_watcher.current_port() if self.port_watcher is not None else None

    # ------------------------------------------------------------------
    # Sketch management
    # ------------------------------------------------------------------
    def new_sketch(self, device_id: str, kind: RepresentationKind) -> bool:
        return self.session.load(PersistedSketch(device_id=device_id, kind=kind, payload=""))

    def open_sketch(self, title: str, kind: RepresentationKind) -> bool:
        sketch = self.sketchbook.load(title, kind)
        return self.session.load(sketch, title=title)

    def import_sketch(
        self, data: str, kind: RepresentationKind, *, device_id: Optional[str] = None, title: str = ""
    ) -> bool:
        sketch = PersistedSketch.from_data(data, kind, device_id=device_id)
        return self.session.load(sketch, title=title)

    def sketches(self) -> Dict[str, List[str]]:
        return {kind.value: self.sketchbook.titles(kind) for kind in RepresentationKind}

    def delete_sketch(self, title: str, kind: RepresentationKind) -> None:
        self.sketchbook.delete(title, kind)

    def close(self) -> None:
        if self.channel is not None:
            self.channel.close()


__all__ = ["StudioController"]
