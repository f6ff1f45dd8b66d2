"""Configuration models for the sketch editor."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from .document import RepresentationKind
from .errors import UnknownDevice

EMPTY_BLOCKS = (
    '<xml xmlns="http://www.w3.org/1999/xhtml">'
    '<block type="arduino_functions" id="a2?I/d{0K_Umf.d2k4D0" x="40" y="50"></block>'
    "</xml>"
)

MAKERPHONE_CODE = """#include <MAKERphone.h>

MAKERphone mp;

void setup() {
  mp.begin(1);
  mp.display.fillScreen(TFT_BLACK);
}

void loop() {
  mp.update();

}"""

ARDUINO_CODE = """#include <Arduino.h>

void setup() {

}

void loop() {

}"""

BASE_PALETTE = ("Logic", "Loops", "Math", "Text", "Variables", "Functions")


@dataclass
class DeviceProfile:
    """Everything the editor needs to know about one target board."""

    id: str
    name: str
    palette: Tuple[str, ...] = BASE_PALETTE
    block_template: str = EMPTY_BLOCKS
    code_template: str = ARDUINO_CODE
    usb_vendor_ids: Tuple[int, ...] = ()

    def template(self, kind: RepresentationKind) -> str:
        if kind is RepresentationKind.VISUAL:
            return self.block_template
        return self.code_template


@dataclass
class DeviceCatalog:
    """Device id to profile table, injected into the session."""

    devices: Dict[str, DeviceProfile] = field(default_factory=dict)

    @classmethod
    def from_profiles(cls, *profiles: DeviceProfile) -> "DeviceCatalog":
        return cls(devices={profile.id: profile for profile in profiles})

    def __contains__(self, device_id: object) -> bool:
        return device_id in self.devices

    def __iter__(self) -> Iterator[DeviceProfile]:
        return iter(self.devices.values())

    def get(self, device_id: str) -> Optional[DeviceProfile]:
        return self.devices.get(device_id)

    def require(self, device_id: str) -> DeviceProfile:
        profile = self.devices.get(device_id)
        if profile is None:
            raise UnknownDevice(device_id)
        return profile

    def template(self, device_id: str, kind: RepresentationKind) -> str:
        return self.require(device_id).template(kind)

    def display_name(self, device_id: str) -> str:
        profile = self.devices.get(device_id)
        return profile.name if profile else device_id


DEFAULT_CATALOG = DeviceCatalog.from_profiles(
    DeviceProfile(
        id="cm:esp32:ringo",
        name="MAKERphone",
        palette=BASE_PALETTE + ("Display", "Buttons", "LEDs", "Sound", "Phone"),
        code_template=MAKERPHONE_CODE,
        usb_vendor_ids=(0x10C4,),
    ),
    DeviceProfile(
        id="cm:esp8266:nibble",
        name="Nibble",
        palette=BASE_PALETTE + ("Display", "Buttons", "Piezo"),
        usb_vendor_ids=(0x1A86,),
    ),
    DeviceProfile(
        id="cm:esp32:spencer",
        name="Spencer",
        palette=BASE_PALETTE + ("LEDs", "Speech", "Sound"),
        usb_vendor_ids=(0x1A86, 0x10C4),
    ),
)


@dataclass
class ToolchainSettings:
    """How the external build toolchain is invoked."""

    cli_path: str = "arduino-cli"
    stages: Tuple[str, ...] = ("COMPILE", "UPLOAD", "EXPORT", "DONE")
    completion_stage: str = "DONE"
    sketchbook_dir: Path = field(default_factory=lambda: Path.home() / "SketchStudio")
    build_dir: Optional[Path] = None


@dataclass
class EditorSettings:
    """Timing and behaviour knobs of the editor session."""

    load_grace_s: float = 1.25
    notification_timeout_s: float = 2.0
    notification_grace_s: float = 0.5
    minimal_compile: bool = True
    poll_interval_s: float = 0.2


@dataclass
class AppState:
    """Aggregate configuration shared between the hosting shell and the session."""

    catalog: DeviceCatalog = field(default_factory=lambda: DEFAULT_CATALOG)
    editor: EditorSettings = field(default_factory=EditorSettings)
    toolchain: ToolchainSettings = field(default_factory=ToolchainSettings)
    default_device: str = "cm:esp32:ringo"
