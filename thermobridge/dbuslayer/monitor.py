"""Follow BlueZ adapters and thermometers and drive the profile layer.

:class:`ThermometerMonitor` scans the BlueZ object tree, creates an adapter
context (plus its ``ThermometerManager`` object) for every served adapter and
a device context (plus its ``Thermometer`` object) for every peripheral that
exposes the Health Thermometer service.  Device ``ServicesResolved`` /
``Connected`` changes are turned into ``on_connected`` / ``on_disconnected``
calls with a :class:`BluezGattTransport`.
"""

from __future__ import annotations

from typing import Dict, Optional

import dbus

from thermobridge.bt_ref.constants import (
    ADAPTER_INTERFACE,
    BLUEZ_SERVICE_NAME,
    DBUS_OM_IFACE,
    DBUS_PROPERTIES,
    DEVICE_INTERFACE,
    GATT_CHARACTERISTIC_INTERFACE,
    GATT_DESCRIPTOR_INTERFACE,
    GATT_SERVICE_INTERFACE,
    HEALTH_THERMOMETER_SVC_UUID,
)
from thermobridge.bt_ref.utils import dbus_to_python, handle_int_to_hex, normalize_uuid
from thermobridge.core.config import BridgeConfig
from thermobridge.core.errors import ThermobridgeError
from thermobridge.core.log import LOG__DEBUG, LOG__GENERAL, get_logger, print_and_log
from thermobridge.dbuslayer.bluez_transport import BluezGattTransport, object_handle
from thermobridge.dbuslayer.thermometer import (
    DbusWatcherChannel,
    ThermometerManagerObject,
    ThermometerObject,
)
from thermobridge.gatt.attribute import ServiceRange
from thermobridge.profile.adapter import AdapterRegistry

logger = get_logger(__name__)

__all__ = ["ThermometerMonitor", "find_thermometer_service"]


def find_thermometer_service(objects: Dict, device_path: str) -> Optional[ServiceRange]:
    """Handle range of the Health Thermometer service of *device_path*.

    The start is the service's own handle; the end is the highest handle of
    any characteristic or descriptor exported below the service object.
    """
    prefix = device_path + "/"
    for path, interfaces in objects.items():
        path = str(path)
        if not path.startswith(prefix) or GATT_SERVICE_INTERFACE not in interfaces:
            continue
        props = interfaces[GATT_SERVICE_INTERFACE]
        if normalize_uuid(str(props.get("UUID", ""))) != HEALTH_THERMOMETER_SVC_UUID:
            continue

        start = object_handle(path, props)
        if start < 0:
            # BlueZ names service objects serviceXXXX after their handle
            start = int(path.rsplit("service", 1)[-1], 16)
        end = start
        for child, child_ifaces in objects.items():
            if not str(child).startswith(path + "/"):
                continue
            for iface in (GATT_CHARACTERISTIC_INTERFACE, GATT_DESCRIPTOR_INTERFACE):
                if iface in child_ifaces:
                    handle = object_handle(child, child_ifaces[iface])
                    if iface == GATT_CHARACTERISTIC_INTERFACE:
                        handle += 1
                    end = max(end, handle)
        return ServiceRange(start, end)
    return None


class ThermometerMonitor:
    """Glue between the BlueZ object tree and an :class:`AdapterRegistry`."""

    def __init__(self, bus: dbus.Bus, registry: AdapterRegistry, config: BridgeConfig):
        self._bus = bus
        self.registry = registry
        self.config = config
        self._object_manager = dbus.Interface(
            bus.get_object(BLUEZ_SERVICE_NAME, "/"), DBUS_OM_IFACE
        )
        self._manager_objects: Dict[str, ThermometerManagerObject] = {}
        self._device_objects: Dict[str, ThermometerObject] = {}
        self._transports: Dict[str, BluezGattTransport] = {}
        self._signal_matches = []

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------
    def start(self) -> None:
        self._signal_matches = [
            self._bus.add_signal_receiver(
                self._interfaces_added,
                signal_name="InterfacesAdded",
                dbus_interface=DBUS_OM_IFACE,
                bus_name=BLUEZ_SERVICE_NAME,
            ),
            self._bus.add_signal_receiver(
                self._interfaces_removed,
                signal_name="InterfacesRemoved",
                dbus_interface=DBUS_OM_IFACE,
                bus_name=BLUEZ_SERVICE_NAME,
            ),
            self._bus.add_signal_receiver(
                self._properties_changed,
                signal_name="PropertiesChanged",
                dbus_interface=DBUS_PROPERTIES,
                bus_name=BLUEZ_SERVICE_NAME,
                arg0=DEVICE_INTERFACE,
                path_keyword="path",
            ),
        ]

        objects = self._object_manager.GetManagedObjects()
        for path, interfaces in objects.items():
            if ADAPTER_INTERFACE in interfaces:
                self._adapter_added(str(path))
        for path, interfaces in objects.items():
            if DEVICE_INTERFACE in interfaces:
                self._device_seen(str(path), dbus_to_python(interfaces[DEVICE_INTERFACE]), objects)
        print_and_log(f"[*] Serving {len(self.registry)} adapter(s)", LOG__GENERAL)

    def stop(self) -> None:
        for match in self._signal_matches:
            match.remove()
        self._signal_matches = []

        for path in list(self._transports):
            self._disconnect(path)
        for obj in list(self._device_objects.values()):
            obj.remove()
        self._device_objects.clear()
        for obj in list(self._manager_objects.values()):
            obj.remove()
        self._manager_objects.clear()
        self.registry.destroy()

    # ------------------------------------------------------------------
    # Adapters
    # ------------------------------------------------------------------
    def _adapter_added(self, path: str) -> None:
        if path in self.registry:
            return
        if not self.config.serves_adapter(path):
            print_and_log(f"[DEBUG] Skipping adapter {path} (not configured)", LOG__DEBUG)
            return
        adapter = self.registry.add_adapter(path, DbusWatcherChannel(self._bus))
        self._manager_objects[path] = ThermometerManagerObject(self._bus, adapter)
        print_and_log(f"[+] Thermometer manager on {path}", LOG__GENERAL)

    def _adapter_removed(self, path: str) -> None:
        if path not in self.registry:
            return
        for device_path in [p for p in self._device_objects if p.startswith(path + "/")]:
            self._device_removed(device_path)
        obj = self._manager_objects.pop(path, None)
        if obj is not None:
            obj.remove()
        self.registry.remove_adapter(path)
        print_and_log(f"[-] Adapter {path} gone", LOG__GENERAL)

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------
    def _device_seen(self, path: str, props: Dict, objects: Optional[Dict] = None) -> None:
        adapter_path = str(props.get("Adapter", path.rsplit("/", 1)[0]))
        if adapter_path not in self.registry:
            return
        if not props.get("ServicesResolved"):
            return

        if objects is None:
            objects = self._object_manager.GetManagedObjects()

        if self.registry.get_device(path) is None:
            service_range = find_thermometer_service(objects, path)
            if service_range is None:
                return
            try:
                device = self.registry.register_device(adapter_path, path, service_range)
            except ThermobridgeError as exc:
                logger.error("Cannot register thermometer %s: %s", path, exc)
                return
            self._device_objects[path] = ThermometerObject(self._bus, device)
            print_and_log(
                f"[+] Thermometer {path} service {handle_int_to_hex(service_range.start)}-"
                f"{handle_int_to_hex(service_range.end)}",
                LOG__GENERAL,
            )

        if props.get("Connected", True):
            self._connect(path)

    def _device_removed(self, path: str) -> None:
        self._disconnect(path)
        obj = self._device_objects.pop(path, None)
        if obj is not None:
            obj.remove()
        if self.registry.get_device(path) is not None:
            self.registry.unregister_device(path)

    def _connect(self, path: str) -> None:
        device = self.registry.get_device(path)
        if device is None or path in self._transports:
            return
        transport = BluezGattTransport(self._bus, path)
        self._transports[path] = transport
        device.on_connected(transport)

    def _disconnect(self, path: str) -> None:
        transport = self._transports.pop(path, None)
        if transport is None:
            return
        device = self.registry.get_device(path)
        if device is not None:
            device.on_disconnected()
        transport.close()

    # ------------------------------------------------------------------
    # Signal handlers
    # ------------------------------------------------------------------
    def _interfaces_added(self, path, interfaces) -> None:
        path = str(path)
        if ADAPTER_INTERFACE in interfaces:
            self._adapter_added(path)
        if DEVICE_INTERFACE in interfaces:
            self._device_seen(path, dbus_to_python(interfaces[DEVICE_INTERFACE]))

    def _interfaces_removed(self, path, interfaces) -> None:
        path = str(path)
        if DEVICE_INTERFACE in interfaces:
            self._device_removed(path)
        if ADAPTER_INTERFACE in interfaces:
            self._adapter_removed(path)

    def _properties_changed(self, _interface, changed, _invalidated, path=None) -> None:
        path = str(path)
        changed = dbus_to_python(changed)

        if changed.get("Connected") is False or changed.get("ServicesResolved") is False:
            self._disconnect(path)
            return

        if changed.get("ServicesResolved"):
            props_iface = dbus.Interface(self._bus.get_object(BLUEZ_SERVICE_NAME, path), DBUS_PROPERTIES)
            props = dbus_to_python(props_iface.GetAll(DEVICE_INTERFACE))
            self._device_seen(path, props)
