"""GATT transport backed by BlueZ's GattCharacteristic1 / GattDescriptor1 objects.

BlueZ owns the ATT bearer, so this transport works one level higher than a raw
ATT client:

* discovery lists the objects BlueZ exported under the device and filters them
  by their ``Handle`` property;
* reads and writes are asynchronous ``ReadValue`` / ``WriteValue`` calls;
* writes to a Client Characteristic Configuration descriptor become
  ``StartNotify`` / ``StopNotify`` on its characteristic;
* ``PropertiesChanged(Value)`` signals are re-framed as ATT indication or
  notification PDUs so the profile code sees the same frames an ATT client
  would.

Every callback runs from the GLib main loop.
"""

from __future__ import annotations

import re
import struct
from typing import Callable, Dict, List, Optional, Tuple

import dbus
from gi.repository import GLib

from thermobridge.bt_ref.constants import (
    ATT_ECODE_INVALID_HANDLE,
    ATT_ECODE_SUCCESS,
    ATT_OP_HANDLE_IND,
    ATT_OP_HANDLE_NOTIFY,
    BLUEZ_SERVICE_NAME,
    DBUS_OM_IFACE,
    DBUS_PROPERTIES,
    GATT_CHARACTERISTIC_INTERFACE,
    GATT_CHR_FLAG_BITS,
    GATT_CLIENT_CHARAC_CFG_UUID,
    GATT_DESCRIPTOR_INTERFACE,
)
from thermobridge.bt_ref.utils import dbus_to_python, handle_int_to_hex, normalize_uuid
from thermobridge.core.errors import map_dbus_error
from thermobridge.core.log import LOG__DEBUG, get_logger, print_and_log
from thermobridge.gatt.attribute import CharacteristicInfo, DescriptorInfo
from thermobridge.gatt.codec import decode_u16le
from thermobridge.gatt.transport import HANDLER_INDICATION, HANDLER_NOTIFICATION, GattTransport

logger = get_logger(__name__)

__all__ = ["BluezGattTransport", "object_handle", "flags_to_properties"]

_HANDLE_FROM_PATH_RX = re.compile(r"(?:char|desc)([0-9a-f]{4})$", re.IGNORECASE)


def object_handle(path: str, props: Dict) -> int:
    """Attribute handle of a BlueZ GATT object, -1 when unknown.

    Older BlueZ releases do not export ``Handle``; the hex suffix of the
    object path carries the same number.
    """
    if "Handle" in props:
        return int(props["Handle"])
    match = _HANDLE_FROM_PATH_RX.search(str(path))
    if match:
        return int(match.group(1), 16)
    return -1


def flags_to_properties(flags) -> int:
    properties = 0
    for flag in flags:
        properties |= GATT_CHR_FLAG_BITS.get(str(flag), 0)
    return properties


class _CharacteristicEntry:
    def __init__(self, path: str, uuid: str, handle: int, properties: int):
        self.path = path
        self.uuid = uuid
        self.handle = handle
        self.value_handle = handle + 1
        self.properties = properties
        self.signal = None


class BluezGattTransport(GattTransport):
    """Transport for one connected device.

    Parameters
    ----------
    bus : dbus.Bus
        System bus connection (GLib main loop attached).
    device_path : str
        BlueZ object path of the peripheral.
    """

    def __init__(self, bus: dbus.Bus, device_path: str):
        self._bus = bus
        self.device_path = device_path
        self._object_manager = dbus.Interface(
            bus.get_object(BLUEZ_SERVICE_NAME, "/"), DBUS_OM_IFACE
        )
        # value handle -> characteristic; descriptor handle -> (path, uuid, parent value handle)
        self._characteristics: Dict[int, _CharacteristicEntry] = {}
        self._descriptors: Dict[int, Tuple[str, str, int]] = {}
        self._handlers: Dict[int, Tuple[str, Callable[[bytes], None]]] = {}
        self._next_handler_id = 1
        self._closed = False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _later(self, callback, *args) -> None:
        def _run():
            if not self._closed:
                callback(*args)
            return False

        GLib.idle_add(_run)

    def _guarded(self, callback):
        def _call(*args):
            if not self._closed:
                callback(*args)

        return _call

    def _owned(self, path) -> bool:
        return str(path).startswith(self.device_path + "/")

    def _managed_objects(self, on_reply, on_error) -> None:
        def _error(exc):
            logger.debug("GetManagedObjects failed: %s", exc)
            on_error(map_dbus_error(exc))

        self._object_manager.GetManagedObjects(
            reply_handler=self._guarded(on_reply),
            error_handler=self._guarded(_error),
        )

    def _iface(self, path: str, interface: str) -> dbus.Interface:
        return dbus.Interface(self._bus.get_object(BLUEZ_SERVICE_NAME, path), interface)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------
    def discover_characteristics(self, start: int, end: int, callback) -> None:
        def _reply(objects):
            found: List[CharacteristicInfo] = []
            for path, interfaces in objects.items():
                if not self._owned(path) or GATT_CHARACTERISTIC_INTERFACE not in interfaces:
                    continue
                props = interfaces[GATT_CHARACTERISTIC_INTERFACE]
                handle = object_handle(path, props)
                if not start <= handle <= end:
                    continue
                entry = _CharacteristicEntry(
                    str(path),
                    normalize_uuid(str(props["UUID"])),
                    handle,
                    flags_to_properties(dbus_to_python(props.get("Flags", []))),
                )
                previous = self._characteristics.get(entry.value_handle)
                if previous is not None:
                    entry.signal = previous.signal
                self._characteristics[entry.value_handle] = entry
                found.append(CharacteristicInfo(entry.uuid, entry.handle, entry.value_handle, entry.properties))
            found.sort(key=lambda info: info.handle)
            print_and_log(
                f"[DEBUG] {self.device_path}: {len(found)} characteristic(s) in "
                f"{handle_int_to_hex(start)}-{handle_int_to_hex(end)}",
                LOG__DEBUG,
            )
            callback(ATT_ECODE_SUCCESS, found)

        self._managed_objects(_reply, lambda status: callback(status, []))

    def discover_descriptors(self, start: int, end: int, callback) -> None:
        def _reply(objects):
            found: List[DescriptorInfo] = []
            for path, interfaces in objects.items():
                if not self._owned(path) or GATT_DESCRIPTOR_INTERFACE not in interfaces:
                    continue
                props = interfaces[GATT_DESCRIPTOR_INTERFACE]
                handle = object_handle(path, props)
                if not start <= handle <= end:
                    continue
                uuid = normalize_uuid(str(props["UUID"]))
                parent = object_handle(props.get("Characteristic", ""), {})
                self._descriptors[handle] = (str(path), uuid, parent + 1 if parent >= 0 else -1)
                found.append(DescriptorInfo(handle, uuid))
            found.sort(key=lambda info: info.handle)
            callback(ATT_ECODE_SUCCESS, found)

        self._managed_objects(_reply, lambda status: callback(status, []))

    # ------------------------------------------------------------------
    # Read / Write
    # ------------------------------------------------------------------
    def _lookup(self, handle: int) -> Optional[Tuple[str, str]]:
        entry = self._characteristics.get(handle)
        if entry is not None:
            return entry.path, GATT_CHARACTERISTIC_INTERFACE
        if handle in self._descriptors:
            return self._descriptors[handle][0], GATT_DESCRIPTOR_INTERFACE
        return None

    def read(self, handle: int, callback) -> None:
        target = self._lookup(handle)
        if target is None:
            self._later(callback, ATT_ECODE_INVALID_HANDLE, b"")
            return

        done = self._guarded(callback)
        path, interface = target
        self._iface(path, interface).ReadValue(
            dbus.Dictionary({}, signature="sv"),
            reply_handler=lambda value: done(ATT_ECODE_SUCCESS, bytes(value)),
            error_handler=lambda exc: done(map_dbus_error(exc), b""),
        )

    def write(self, handle: int, value: bytes, callback) -> None:
        desc = self._descriptors.get(handle)
        if desc is not None and desc[1] == GATT_CLIENT_CHARAC_CFG_UUID:
            self._write_ccc(desc[2], bytes(value), callback)
            return

        target = self._lookup(handle)
        if target is None:
            self._later(callback, ATT_ECODE_INVALID_HANDLE)
            return

        done = self._guarded(callback)
        path, interface = target
        self._iface(path, interface).WriteValue(
            dbus.ByteArray(bytes(value)),
            dbus.Dictionary({"type": dbus.String("request")}, signature="sv"),
            reply_handler=lambda: done(ATT_ECODE_SUCCESS),
            error_handler=lambda exc: done(map_dbus_error(exc)),
        )

    def _write_ccc(self, value_handle: int, value: bytes, callback) -> None:
        entry = self._characteristics.get(value_handle)
        if entry is None:
            self._later(callback, ATT_ECODE_INVALID_HANDLE)
            return

        done = self._guarded(callback)
        enable = decode_u16le(value) != 0
        char_iface = self._iface(entry.path, GATT_CHARACTERISTIC_INTERFACE)
        if enable:
            self._subscribe(entry)
            method = char_iface.StartNotify
        else:
            self._unsubscribe(entry)
            method = char_iface.StopNotify

        method(
            reply_handler=lambda: done(ATT_ECODE_SUCCESS),
            error_handler=lambda exc: done(map_dbus_error(exc)),
        )

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------
    def _subscribe(self, entry: _CharacteristicEntry) -> None:
        if entry.signal is not None:
            return

        def _prop_changed(interface, changed, _invalidated):
            if str(interface) != GATT_CHARACTERISTIC_INTERFACE or "Value" not in changed:
                return
            self._frame_received(entry, bytes(changed["Value"]))

        entry.signal = self._bus.add_signal_receiver(
            _prop_changed,
            signal_name="PropertiesChanged",
            dbus_interface=DBUS_PROPERTIES,
            bus_name=BLUEZ_SERVICE_NAME,
            path=entry.path,
        )

    @staticmethod
    def _unsubscribe(entry: _CharacteristicEntry) -> None:
        if entry.signal is not None:
            entry.signal.remove()
            entry.signal = None

    def _frame_received(self, entry: _CharacteristicEntry, value: bytes) -> None:
        if entry.properties & GATT_CHR_FLAG_BITS["indicate"]:
            opcode, kind = ATT_OP_HANDLE_IND, HANDLER_INDICATION
        else:
            opcode, kind = ATT_OP_HANDLE_NOTIFY, HANDLER_NOTIFICATION
        pdu = struct.pack("<BH", opcode, entry.value_handle) + value
        for handler_kind, handler in list(self._handlers.values()):
            if handler_kind == kind:
                handler(pdu)

    def register_handler(self, kind: str, handler) -> int:
        handler_id = self._next_handler_id
        self._next_handler_id += 1
        self._handlers[handler_id] = (kind, handler)
        return handler_id

    def unregister_handler(self, handler_id: int) -> None:
        self._handlers.pop(handler_id, None)

    def send_confirmation(self) -> None:
        # BlueZ confirms indications itself
        logger.debug("%s: indication confirmed by BlueZ", self.device_path)

    def close(self) -> None:
        """Drop signal subscriptions; pending replies are ignored afterwards."""
        self._closed = True
        for entry in self._characteristics.values():
            self._unsubscribe(entry)
        self._handlers.clear()
