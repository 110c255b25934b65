"""
D-Bus layer for thermobridge.
BlueZ-backed GATT transport, object monitor and the exported thermometer objects.
"""

from .thermometer import (
    DbusWatcherChannel,
    ThermometerManagerObject,
    ThermometerObject,
    measurement_to_dbus,
)
from .watcher import ThermometerWatcherObject, measurement_from_dbus

__all__ = [
    "DbusWatcherChannel",
    "ThermometerManagerObject",
    "ThermometerObject",
    "ThermometerWatcherObject",
    "measurement_to_dbus",
    "measurement_from_dbus",
    "BluezGattTransport",
    "ThermometerMonitor",
]


# Lazy-load the BlueZ glue so the exported objects import without gi
def __getattr__(name):
    if name == "BluezGattTransport":
        from .bluez_transport import BluezGattTransport
        return BluezGattTransport
    if name == "ThermometerMonitor":
        from .monitor import ThermometerMonitor
        return ThermometerMonitor
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
