"""Serial port polling used to detect whether the target device is plugged in."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from serial.tools import list_ports

from .channel import PresenceEvent

logger = logging.getLogger(__name__)

PortEnumerator = Callable[[], Iterable[object]]
EventSink = Callable[[PresenceEvent], None]


def enumerate_ports() -> List[object]:
    return list(list_ports.comports())


class PortWatcher:
    """Posts a :class:`PresenceEvent` whenever the device appears or disappears."""

    def __init__(
        self,
        sink: EventSink,
        *,
        vendor_ids: Sequence[int] = (),
        enumerator: Optional[PortEnumerator] = None,
    ) -> None:
        self.sink = sink
        self.vendor_ids = tuple(vendor_ids)
        self.enumerator = enumerator or enumerate_ports
        self.port: Optional[str] = None
        self._present: Optional[bool] = None

    def set_vendor_ids(self, vendor_ids: Sequence[int]) -> None:
        self.vendor_ids = tuple(vendor_ids)
        self._present = None

    def scan(self) -> Optional[str]:
        for info in self.enumerator():
            vid = getattr(info, "vid", None)
            if self.vendor_ids and vid not in self.vendor_ids:
                continue
            return getattr(info, "device", None)
        return None

    def poll(self) -> Optional[str]:
        port = self.scan()
        present = port is not None
        self.port = port
        if present != self._present:
            self._present = present
            logger.info("Device %s%s", "present on " if present else "absent", port or "")
            self.sink(PresenceEvent(present=present, port=port))
        return port

    def current_port(self) -> Optional[str]:
        return self.port
