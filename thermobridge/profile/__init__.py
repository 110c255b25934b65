"""
Health Thermometer profile logic: attribute session, watchers, devices, adapters.
"""

from thermobridge.profile.adapter import AdapterRegistry, ThermometerAdapter
from thermobridge.profile.device import ThermometerDevice
from thermobridge.profile.registry import Watcher, WatcherChannel, WatcherRegistry
from thermobridge.profile.session import AttributeSession, SessionState

__all__ = [
    "AdapterRegistry",
    "ThermometerAdapter",
    "ThermometerDevice",
    "Watcher",
    "WatcherChannel",
    "WatcherRegistry",
    "AttributeSession",
    "SessionState",
]
