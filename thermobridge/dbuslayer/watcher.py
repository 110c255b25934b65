"""Client-side ``org.bluez.ThermometerWatcher`` object used by ``thermobridge watch``."""

from __future__ import annotations

from typing import Callable, Dict

import dbus
import dbus.service

from thermobridge.bt_ref.constants import MEASUREMENT_FINAL, THERMOMETER_WATCHER_INTERFACE, UNIT_CELSIUS
from thermobridge.bt_ref.utils import dbus_to_python
from thermobridge.gatt.codec import Measurement

__all__ = ["WATCHER_PATH", "measurement_from_dbus", "ThermometerWatcherObject"]

WATCHER_PATH = "/org/thermobridge/watcher"


def measurement_from_dbus(values: Dict) -> Measurement:
    """Inverse of :func:`thermobridge.dbuslayer.thermometer.measurement_to_dbus`."""
    values = dbus_to_python(values)
    return Measurement(
        exponent=values["Exponent"],
        mantissa=values["Mantissa"],
        unit=values.get("Unit", UNIT_CELSIUS),
        timestamp=values.get("Time"),
        temperature_type=values.get("Type"),
        kind=values.get("Measurement", MEASUREMENT_FINAL),
    )


class ThermometerWatcherObject(dbus.service.Object):
    """Receive measurements and hand them to *callback(device_path, measurement)*."""

    def __init__(self, bus: dbus.Bus, callback: Callable[[str, Measurement], None], path: str = WATCHER_PATH):
        super().__init__(bus, path)
        self.path = path
        self._callback = callback

    @dbus.service.method(THERMOMETER_WATCHER_INTERFACE, in_signature="oa{sv}", out_signature="")
    def MeasurementReceived(self, device, measurement):
        self._callback(str(device), measurement_from_dbus(measurement))
