"""Adapter contexts: per-adapter watcher registry plus its thermometer devices.

Every local adapter has one :class:`ThermometerAdapter`.  Watchers register at
adapter level, so enabling or disabling measurements fans out across every
device known on that adapter.  :class:`AdapterRegistry` holds the contexts and
maps device paths back to their adapter.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterator, List, Optional

from thermobridge.bt_ref.constants import (
    GATT_CLIENT_CHARAC_CFG_DISABLED,
    GATT_CLIENT_CHARAC_CFG_IND_BIT,
    GATT_CLIENT_CHARAC_CFG_NOTIF_BIT,
    INTERMEDIATE_TEMPERATURE_UUID,
    TEMPERATURE_MEASUREMENT_UUID,
)
from thermobridge.core.errors import AlreadyExistsError, DoesNotExistError, InvalidArgumentError
from thermobridge.core.log import LOG__DEBUG, get_logger, print_and_log
from thermobridge.gatt.attribute import ServiceRange
from thermobridge.profile.device import ThermometerDevice
from thermobridge.profile.registry import Watcher, WatcherChannel, WatcherRegistry

logger = get_logger(__name__)

__all__ = ["ThermometerAdapter", "AdapterRegistry"]


class ThermometerAdapter:
    """Thermometer context of one local adapter.

    Parameters
    ----------
    path : str
        Adapter object path (``/org/bluez/hci0``).
    channel : WatcherChannel
        Delivery channel used for every watcher of this adapter.
    confirm_indications : bool
        Whether indications are confirmed through the transport.
    """

    def __init__(self, path: str, channel: WatcherChannel, confirm_indications: bool = True):
        self.path = path
        self.confirm_indications = confirm_indications
        self._lock = threading.RLock()
        self._devices: Dict[str, ThermometerDevice] = {}
        self.registry = WatcherRegistry(
            channel,
            on_enable_final=self.enable_final_measurement,
            on_disable_final=self.disable_final_measurement,
            on_enable_intermediate=self.enable_intermediate_measurement,
            on_disable_intermediate=self.disable_intermediate_measurement,
        )

    def __repr__(self):
        return f"<ThermometerAdapter {self.path} devices={len(self._devices)}>"

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------
    @property
    def devices(self) -> List[ThermometerDevice]:
        with self._lock:
            return list(self._devices.values())

    def get_device(self, path: str) -> Optional[ThermometerDevice]:
        with self._lock:
            return self._devices.get(path)

    def add_device(self, path: str, service_range) -> ThermometerDevice:
        service_range = ServiceRange(*service_range)
        if service_range.start > service_range.end:
            raise InvalidArgumentError(
                "service_range", f"start 0x{service_range.start:04x} after end 0x{service_range.end:04x}"
            )
        with self._lock:
            if path in self._devices:
                raise AlreadyExistsError(f"thermometer {path}")
            device = ThermometerDevice(self, path, service_range)
            self._devices[path] = device
        print_and_log(f"[*] Thermometer registered: {path}", LOG__DEBUG)
        return device

    def remove_device(self, path: str) -> None:
        with self._lock:
            device = self._devices.pop(path, None)
        if device is None:
            raise DoesNotExistError(f"thermometer {path}")
        device.destroy()
        print_and_log(f"[*] Thermometer unregistered: {path}", LOG__DEBUG)

    # ------------------------------------------------------------------
    # Measurement fan-out
    # ------------------------------------------------------------------
    def _write_ccc_all(self, uuid: str, value: int) -> None:
        for device in self.devices:
            if not device.is_connected:
                continue
            device.session.write_ccc(uuid, value)

    def enable_final_measurement(self) -> None:
        self._write_ccc_all(TEMPERATURE_MEASUREMENT_UUID, GATT_CLIENT_CHARAC_CFG_IND_BIT)

    def disable_final_measurement(self) -> None:
        self._write_ccc_all(TEMPERATURE_MEASUREMENT_UUID, GATT_CLIENT_CHARAC_CFG_DISABLED)

    def enable_intermediate_measurement(self) -> None:
        self._write_ccc_all(INTERMEDIATE_TEMPERATURE_UUID, GATT_CLIENT_CHARAC_CFG_NOTIF_BIT)

    def disable_intermediate_measurement(self) -> None:
        self._write_ccc_all(INTERMEDIATE_TEMPERATURE_UUID, GATT_CLIENT_CHARAC_CFG_DISABLED)

    # ------------------------------------------------------------------
    # Manager entry points
    # ------------------------------------------------------------------
    def register_watcher(self, service: str, path: str) -> Watcher:
        with self._lock:
            return self.registry.register_final(service, path)

    def unregister_watcher(self, service: str, path: str) -> None:
        with self._lock:
            self.registry.unregister_final(service, path)

    def enable_intermediate(self, service: str, path: str) -> Watcher:
        with self._lock:
            return self.registry.register_intermediate(service, path)

    def disable_intermediate(self, service: str, path: str) -> None:
        with self._lock:
            self.registry.unregister_intermediate(service, path)

    def destroy(self) -> None:
        with self._lock:
            devices = list(self._devices.values())
            self._devices.clear()
            self.registry.clear()
        for device in devices:
            device.destroy()


class AdapterRegistry:
    """All adapter contexts of the bridge, keyed by adapter path."""

    def __init__(self, confirm_indications: bool = True):
        self.confirm_indications = confirm_indications
        self._adapters: Dict[str, ThermometerAdapter] = {}
        self._device_index: Dict[str, str] = {}

    def __iter__(self) -> Iterator[ThermometerAdapter]:
        return iter(list(self._adapters.values()))

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, path) -> bool:
        return path in self._adapters

    def add_adapter(self, path: str, channel: WatcherChannel) -> ThermometerAdapter:
        if path in self._adapters:
            raise AlreadyExistsError(f"adapter {path}")
        adapter = ThermometerAdapter(path, channel, self.confirm_indications)
        self._adapters[path] = adapter
        logger.info("Thermometer adapter %s added", path)
        return adapter

    def remove_adapter(self, path: str) -> None:
        adapter = self._adapters.pop(path, None)
        if adapter is None:
            raise DoesNotExistError(f"adapter {path}")
        self._device_index = {dev: ad for dev, ad in self._device_index.items() if ad != path}
        adapter.destroy()
        logger.info("Thermometer adapter %s removed", path)

    def get_adapter(self, path: str) -> Optional[ThermometerAdapter]:
        return self._adapters.get(path)

    def adapter_for_device(self, device_path: str) -> Optional[ThermometerAdapter]:
        adapter_path = self._device_index.get(device_path)
        if adapter_path is None:
            return None
        return self._adapters.get(adapter_path)

    def get_device(self, device_path: str) -> Optional[ThermometerDevice]:
        adapter = self.adapter_for_device(device_path)
        if adapter is None:
            return None
        return adapter.get_device(device_path)

    def register_device(self, adapter_path: str, device_path: str, service_range) -> ThermometerDevice:
        """Create the device context of *device_path* under *adapter_path*.

        Raises
        ------
        DoesNotExistError
            No context exists for *adapter_path*.
        AlreadyExistsError
            The device is already registered.
        """
        adapter = self._adapters.get(adapter_path)
        if adapter is None:
            raise DoesNotExistError(f"adapter {adapter_path}")
        device = adapter.add_device(device_path, service_range)
        self._device_index[device_path] = adapter_path
        return device

    def unregister_device(self, device_path: str) -> None:
        adapter = self.adapter_for_device(device_path)
        if adapter is None:
            raise DoesNotExistError(f"thermometer {device_path}")
        adapter.remove_device(device_path)
        del self._device_index[device_path]

    def destroy(self) -> None:
        for path in list(self._adapters):
            self.remove_adapter(path)
