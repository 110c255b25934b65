"""Transport capability consumed by the thermometer profile.

A transport wraps one live GATT connection.  Every operation returns
immediately; its result is delivered later through *callback*, on the same
main-loop context that drives the profile.  Callbacks always receive the ATT
status first (``ATT_ECODE_SUCCESS`` on success).
"""

from __future__ import annotations

import abc
from typing import Callable, List

from thermobridge.gatt.attribute import CharacteristicInfo, DescriptorInfo

__all__ = [
    "HANDLER_INDICATION",
    "HANDLER_NOTIFICATION",
    "GattTransport",
]

HANDLER_INDICATION = "indication"
HANDLER_NOTIFICATION = "notification"

CharacteristicsCallback = Callable[[int, List[CharacteristicInfo]], None]
DescriptorsCallback = Callable[[int, List[DescriptorInfo]], None]
ReadCallback = Callable[[int, bytes], None]
WriteCallback = Callable[[int], None]
FrameHandler = Callable[[bytes], None]


class GattTransport(abc.ABC):
    """Asynchronous GATT client operations for a single peripheral."""

    @abc.abstractmethod
    def discover_characteristics(self, start: int, end: int, callback: CharacteristicsCallback) -> None:
        """List characteristic declarations within [start, end], ordered by handle."""

    @abc.abstractmethod
    def discover_descriptors(self, start: int, end: int, callback: DescriptorsCallback) -> None:
        """List descriptors within [start, end]."""

    @abc.abstractmethod
    def read(self, handle: int, callback: ReadCallback) -> None:
        """Read the value of the attribute at *handle*."""

    @abc.abstractmethod
    def write(self, handle: int, value: bytes, callback: WriteCallback) -> None:
        """Write *value* to the attribute at *handle* (write request)."""

    @abc.abstractmethod
    def register_handler(self, kind: str, handler: FrameHandler) -> int:
        """Subscribe *handler* to inbound frames of *kind*; returns an id.

        Frames are delivered whole: opcode, little-endian handle, value.
        """

    @abc.abstractmethod
    def unregister_handler(self, handler_id: int) -> None:
        """Drop a subscription created by :meth:`register_handler`."""

    @abc.abstractmethod
    def send_confirmation(self) -> None:
        """Confirm the last received indication."""
