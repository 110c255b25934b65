"""D-Bus objects exported by the bridge.

* ``org.bluez.Thermometer`` at every device path: property access.
* ``org.bluez.ThermometerManager`` at every adapter path: watcher
  registration.
* :class:`DbusWatcherChannel` calls ``org.bluez.ThermometerWatcher`` on the
  watchers themselves.

Errors raised by the profile layer are re-raised as D-Bus errors carrying
their ``org.bluez.Error.*`` name.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

import dbus
import dbus.service

from thermobridge.bt_ref.constants import (
    PROPERTY_INTERMEDIATE,
    THERMOMETER_INTERFACE,
    THERMOMETER_MANAGER_INTERFACE,
    THERMOMETER_WATCHER_INTERFACE,
)
from thermobridge.bt_ref.utils import dbus_to_python
from thermobridge.core.errors import ThermobridgeError, to_dbus_exception
from thermobridge.core.log import LOG__DEBUG, get_logger, print_and_log
from thermobridge.gatt.codec import Measurement
from thermobridge.profile.adapter import ThermometerAdapter
from thermobridge.profile.device import ThermometerDevice
from thermobridge.profile.registry import Watcher, WatcherChannel

logger = get_logger(__name__)

__all__ = [
    "measurement_to_dbus",
    "property_to_dbus",
    "DbusWatcherChannel",
    "ThermometerObject",
    "ThermometerManagerObject",
]


def measurement_to_dbus(measurement: Measurement) -> dbus.Dictionary:
    """Build the ``a{sv}`` argument of ``MeasurementReceived``."""
    out = {
        "Exponent": dbus.Int16(measurement.exponent),
        "Mantissa": dbus.Int32(measurement.mantissa),
        "Unit": dbus.String(measurement.unit),
    }
    if measurement.timestamp is not None:
        out["Time"] = dbus.UInt64(measurement.timestamp)
    if measurement.temperature_type is not None:
        out["Type"] = dbus.String(measurement.temperature_type)
    out["Measurement"] = dbus.String(measurement.kind)
    return dbus.Dictionary(out, signature="sv")


def property_to_dbus(name: str, value):
    if name == PROPERTY_INTERMEDIATE:
        return dbus.Boolean(value)
    return dbus.UInt16(value)


class DbusWatcherChannel(WatcherChannel):
    """Reach watchers over D-Bus and follow their bus names."""

    def __init__(self, bus: dbus.Bus):
        self._bus = bus

    def watch_disconnect(self, watcher: Watcher, callback: Callable[[Watcher], None]):
        def _owner_changed(new_owner: str) -> None:
            if not new_owner:
                callback(watcher)

        return self._bus.watch_name_owner(watcher.service, _owner_changed)

    def cancel_watch(self, handle) -> None:
        handle.cancel()

    def deliver(self, watcher: Watcher, device_path: str, measurement: Measurement) -> None:
        proxy = self._bus.get_object(watcher.service, watcher.path, introspect=False)
        proxy.MeasurementReceived(
            dbus.ObjectPath(device_path),
            measurement_to_dbus(measurement),
            dbus_interface=THERMOMETER_WATCHER_INTERFACE,
            ignore_reply=True,
        )


class ThermometerObject(dbus.service.Object):
    """``org.bluez.Thermometer`` for one :class:`ThermometerDevice`."""

    def __init__(self, bus: dbus.Bus, device: ThermometerDevice):
        super().__init__(bus, device.path)
        self.device = device
        device.add_property_listener(self._property_changed)

    def _property_changed(self, _device: ThermometerDevice, name: str, value: Any) -> None:
        self.PropertyChanged(name, property_to_dbus(name, value))

    def remove(self) -> None:
        self.device.remove_property_listener(self._property_changed)
        self.remove_from_connection()

    @dbus.service.method(THERMOMETER_INTERFACE, in_signature="", out_signature="a{sv}")
    def GetProperties(self):
        props: Dict[str, Any] = {
            name: property_to_dbus(name, value)
            for name, value in self.device.get_properties().items()
        }
        return dbus.Dictionary(props, signature="sv")

    @dbus.service.method(THERMOMETER_INTERFACE, in_signature="sv", out_signature="")
    def SetProperty(self, name, value):
        # Only a D-Bus uint16 is accepted for Interval
        value = int(value) if isinstance(value, dbus.UInt16) else None
        try:
            self.device.set_property(str(name), value)
        except ThermobridgeError as exc:
            print_and_log(f"[-] SetProperty {name} on {self.device.path}: {exc}", LOG__DEBUG)
            raise to_dbus_exception(exc) from exc

    @dbus.service.signal(THERMOMETER_INTERFACE, signature="sv")
    def PropertyChanged(self, name, value):
        pass


class ThermometerManagerObject(dbus.service.Object):
    """``org.bluez.ThermometerManager`` for one :class:`ThermometerAdapter`.

    The caller's unique bus name (``sender``) is the watcher's service.
    """

    def __init__(self, bus: dbus.Bus, adapter: ThermometerAdapter):
        super().__init__(bus, adapter.path)
        self.adapter = adapter

    def remove(self) -> None:
        self.remove_from_connection()

    def _call(self, operation, sender, path):
        try:
            operation(str(sender), str(dbus_to_python(path)))
        except ThermobridgeError as exc:
            print_and_log(f"[-] {operation.__name__} {sender}:{path}: {exc}", LOG__DEBUG)
            raise to_dbus_exception(exc) from exc

    @dbus.service.method(THERMOMETER_MANAGER_INTERFACE, in_signature="o", out_signature="",
                         sender_keyword="sender")
    def RegisterWatcher(self, path, sender=None):
        self._call(self.adapter.register_watcher, sender, path)

    @dbus.service.method(THERMOMETER_MANAGER_INTERFACE, in_signature="o", out_signature="",
                         sender_keyword="sender")
    def UnregisterWatcher(self, path, sender=None):
        self._call(self.adapter.unregister_watcher, sender, path)

    @dbus.service.method(THERMOMETER_MANAGER_INTERFACE, in_signature="o", out_signature="",
                         sender_keyword="sender")
    def EnableIntermediateMeasurement(self, path, sender=None):
        self._call(self.adapter.enable_intermediate, sender, path)

    @dbus.service.method(THERMOMETER_MANAGER_INTERFACE, in_signature="o", out_signature="",
                         sender_keyword="sender")
    def DisableIntermediateMeasurement(self, path, sender=None):
        self._call(self.adapter.disable_intermediate, sender, path)
