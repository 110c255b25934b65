"""Attribute discovery and configuration for one thermometer service.

Connecting a transport runs characteristic discovery over the service handle
range, then descriptor discovery for every characteristic that has room for
descriptors.  Each discovered descriptor triggers at most one configuration
step (CCC write or Valid Range read), chosen from
:data:`CONFIGURATION_ACTIONS`.

All transport results come back through callbacks.  A callback that belongs to
an earlier connection (the device disconnected, or reconnected since) is
recognised through the connection generation and dropped.
"""

from __future__ import annotations

import enum
from functools import partial
from typing import TYPE_CHECKING, Dict, List, Optional

from thermobridge.bt_ref.constants import (
    ATT_ECODE_SUCCESS,
    GATT_CLIENT_CHARAC_CFG_IND_BIT,
    GATT_CLIENT_CHARAC_CFG_NOTIF_BIT,
    GATT_CLIENT_CHARAC_CFG_UUID,
    MEASUREMENT_INTERVAL_SIZE,
    PROPERTY_INTERMEDIATE,
    PROPERTY_INTERVAL,
    TEMPERATURE_TYPE_SIZE,
)
from thermobridge.bt_ref.utils import att_ecode2str, get_name_from_uuid, handle_int_to_hex, normalize_uuid
from thermobridge.core.errors import DecodeError
from thermobridge.core.log import get_logger
from thermobridge.gatt.attribute import (
    Characteristic,
    CharacteristicInfo,
    CharacteristicKind,
    Descriptor,
    DescriptorInfo,
    DescriptorKind,
    ServiceRange,
)
from thermobridge.gatt.codec import decode_u16le, decode_valid_range, encode_u16le
from thermobridge.gatt.transport import GattTransport

if TYPE_CHECKING:  # pragma: no cover
    from thermobridge.profile.device import ThermometerDevice

logger = get_logger(__name__)

__all__ = [
    "SessionState",
    "ConfigAction",
    "CONFIGURATION_ACTIONS",
    "AttributeSession",
]


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    DISCOVERING_CHARACTERISTICS = "discovering_characteristics"
    DISCOVERING_DESCRIPTORS = "discovering_descriptors"
    READY = "ready"


class ConfigAction(enum.Enum):
    ENABLE_IF_FINAL_WATCHERS = "enable_if_final_watchers"
    ENABLE_IF_INTERMEDIATE_WATCHERS = "enable_if_intermediate_watchers"
    ALWAYS_ENABLE_INDICATION = "always_enable_indication"
    READ_VALID_RANGE = "read_valid_range"
    IGNORE = "ignore"


CONFIGURATION_ACTIONS = {
    (CharacteristicKind.MEASUREMENT, DescriptorKind.CLIENT_CONFIGURATION): ConfigAction.ENABLE_IF_FINAL_WATCHERS,
    (CharacteristicKind.INTERMEDIATE, DescriptorKind.CLIENT_CONFIGURATION): ConfigAction.ENABLE_IF_INTERMEDIATE_WATCHERS,
    (CharacteristicKind.INTERVAL, DescriptorKind.CLIENT_CONFIGURATION): ConfigAction.ALWAYS_ENABLE_INDICATION,
    (CharacteristicKind.INTERVAL, DescriptorKind.VALID_RANGE): ConfigAction.READ_VALID_RANGE,
}


class AttributeSession:
    """Discovery and configuration state of one device's thermometer service."""

    def __init__(self, device: "ThermometerDevice", service_range: ServiceRange):
        self.device = device
        self.service_range = ServiceRange(*service_range)
        self.state = SessionState.DISCONNECTED
        self.transport: Optional[GattTransport] = None
        self._generation = 0
        self._pending_descriptor_discoveries = 0
        # (uuid, value handle) -> Characteristic; upserted on every discovery run
        self._characteristics: Dict[tuple, Characteristic] = {}

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    @property
    def characteristics(self) -> List[Characteristic]:
        return list(self._characteristics.values())

    @property
    def is_connected(self) -> bool:
        return self.transport is not None

    @property
    def generation(self) -> int:
        """Bumped on every attach and detach."""
        return self._generation

    def get_characteristic(self, uuid: str) -> Optional[Characteristic]:
        uuid = normalize_uuid(uuid)
        for ch in self._characteristics.values():
            if ch.uuid == uuid:
                return ch
        return None

    def find_by_value_handle(self, handle: int) -> Optional[Characteristic]:
        for ch in self._characteristics.values():
            if ch.value_handle == handle:
                return ch
        return None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    def attach(self, transport: GattTransport) -> None:
        """Start discovery on a freshly connected *transport*."""
        self._generation += 1
        self.transport = transport
        self._pending_descriptor_discoveries = 0
        self.state = SessionState.DISCOVERING_CHARACTERISTICS
        logger.debug(
            "%s: discovering characteristics %s-%s",
            self.device.path,
            handle_int_to_hex(self.service_range.start),
            handle_int_to_hex(self.service_range.end),
        )
        transport.discover_characteristics(
            self.service_range.start,
            self.service_range.end,
            partial(self._characteristics_discovered, self._generation),
        )

    def detach(self) -> None:
        """Forget the transport; characteristics are kept for the next connection."""
        self._generation += 1
        self.transport = None
        self._pending_descriptor_discoveries = 0
        self.state = SessionState.DISCONNECTED

    def _current(self, generation: int) -> bool:
        if generation != self._generation or self.transport is None:
            logger.debug("%s: dropping result from stale connection", self.device.path)
            return False
        return True

    # ------------------------------------------------------------------
    # Characteristic discovery
    # ------------------------------------------------------------------
    def _characteristics_discovered(self, generation: int, status: int, infos: List[CharacteristicInfo]) -> None:
        if not self._current(generation):
            return
        if status != ATT_ECODE_SUCCESS:
            logger.error("Discover thermometer characteristics: %s", att_ecode2str(status))
            self.state = SessionState.READY
            return

        infos = sorted(infos, key=lambda info: info.handle)
        for index, info in enumerate(infos):
            ch = self._upsert_characteristic(info)
            self._process_characteristic(ch, generation)

            start = info.value_handle + 1
            if index + 1 < len(infos):
                end = infos[index + 1].handle - 1
            else:
                end = self.service_range.end
            if start > end:
                continue

            self._pending_descriptor_discoveries += 1
            self.state = SessionState.DISCOVERING_DESCRIPTORS
            self.transport.discover_descriptors(
                start, end, partial(self._descriptors_discovered, generation, ch)
            )

        if self._pending_descriptor_discoveries == 0:
            self._mark_ready()

    def _upsert_characteristic(self, info: CharacteristicInfo) -> Characteristic:
        ch = Characteristic.from_info(info)
        existing = self._characteristics.get(ch.key)
        if existing is not None:
            existing.handle = info.handle
            existing.properties = info.properties
            return existing
        self._characteristics[ch.key] = ch
        return ch

    def _process_characteristic(self, ch: Characteristic, generation: int) -> None:
        if ch.kind is CharacteristicKind.INTERMEDIATE:
            self.device.change_property(PROPERTY_INTERMEDIATE, True)
        elif ch.kind is CharacteristicKind.TEMPERATURE_TYPE:
            self.transport.read(ch.value_handle, partial(self._temperature_type_read, generation))
        elif ch.kind is CharacteristicKind.INTERVAL:
            self.transport.read(ch.value_handle, partial(self._interval_read, generation))

    def _temperature_type_read(self, generation: int, status: int, value: bytes) -> None:
        if not self._current(generation):
            return
        if status != ATT_ECODE_SUCCESS:
            logger.debug("Temperature Type value read failed: %s", att_ecode2str(status))
            return
        if len(value) != TEMPERATURE_TYPE_SIZE:
            logger.debug("Invalid length for Temperature type")
            return
        self.device.set_temperature_type(value[0])

    def _interval_read(self, generation: int, status: int, value: bytes) -> None:
        if not self._current(generation):
            return
        if status != ATT_ECODE_SUCCESS:
            logger.debug("Measurement Interval value read failed: %s", att_ecode2str(status))
            return
        if len(value) < MEASUREMENT_INTERVAL_SIZE:
            logger.debug("Invalid Interval received")
            return
        self.device.change_property(PROPERTY_INTERVAL, decode_u16le(value))

    # ------------------------------------------------------------------
    # Descriptor discovery & configuration
    # ------------------------------------------------------------------
    def _descriptors_discovered(
        self, generation: int, ch: Characteristic, status: int, infos: List[DescriptorInfo]
    ) -> None:
        if not self._current(generation):
            return
        self._pending_descriptor_discoveries -= 1
        if status != ATT_ECODE_SUCCESS:
            logger.error(
                "Discover all characteristic descriptors failed [%s]: %s",
                ch.uuid,
                att_ecode2str(status),
            )
        else:
            for info in infos:
                desc = ch.add_descriptor(info.handle, info.uuid)
                self._process_descriptor(desc, generation)

        if self._pending_descriptor_discoveries == 0:
            self._mark_ready()

    def _mark_ready(self) -> None:
        self.state = SessionState.READY
        logger.debug("%s: thermometer service configured", self.device.path)

    def action_for(self, desc: Descriptor) -> ConfigAction:
        return CONFIGURATION_ACTIONS.get((desc.characteristic.kind, desc.kind), ConfigAction.IGNORE)

    def _process_descriptor(self, desc: Descriptor, generation: int) -> None:
        ch = desc.characteristic
        action = self.action_for(desc)

        if action is ConfigAction.ENABLE_IF_FINAL_WATCHERS:
            if not self.device.has_final_watchers:
                return
            self._write_descriptor(desc, GATT_CLIENT_CHARAC_CFG_IND_BIT,
                                   "Enable Temperature Measurement indication")
        elif action is ConfigAction.ENABLE_IF_INTERMEDIATE_WATCHERS:
            if not self.device.has_intermediate_watchers:
                return
            self._write_descriptor(desc, GATT_CLIENT_CHARAC_CFG_NOTIF_BIT,
                                   "Enable Intermediate Temperature notification")
        elif action is ConfigAction.ALWAYS_ENABLE_INDICATION:
            self._write_descriptor(desc, GATT_CLIENT_CHARAC_CFG_IND_BIT,
                                   "Enable Measurement Interval indication")
        elif action is ConfigAction.READ_VALID_RANGE:
            self.transport.read(desc.handle, partial(self._valid_range_read, generation))
        else:
            logger.debug(
                "Ignored descriptor %s in characteristic %s",
                desc.uuid,
                get_name_from_uuid(ch.uuid),
            )

    def _valid_range_read(self, generation: int, status: int, value: bytes) -> None:
        if not self._current(generation):
            return
        if status != ATT_ECODE_SUCCESS:
            logger.debug("Valid Range descriptor read failed: %s", att_ecode2str(status))
            return
        try:
            valid_range = decode_valid_range(value)
        except DecodeError:
            logger.debug("Invalid range received")
            return
        if not valid_range.is_valid:
            logger.debug("Invalid range %d-%d", valid_range.minimum, valid_range.maximum)
            return
        self.device.apply_valid_range(valid_range)

    def _write_descriptor(self, desc: Descriptor, value: int, msg: str) -> None:
        self.transport.write(desc.handle, encode_u16le(value), partial(_ccc_written, msg))

    def write_ccc(self, uuid: str, value: int) -> bool:
        """Write *value* to the CCC of characteristic *uuid*; False when not possible."""
        if self.transport is None:
            return False

        ch = self.get_characteristic(uuid)
        if ch is None:
            logger.debug("Characteristic %s not found", uuid)
            return False

        desc = ch.get_descriptor(GATT_CLIENT_CHARAC_CFG_UUID)
        if desc is None:
            logger.debug("CCC descriptor for %s not found", uuid)
            return False

        self._write_descriptor(desc, value, f"Write CCC: {value:04x} for {uuid}")
        return True


def _ccc_written(msg: str, status: int) -> None:
    if status != ATT_ECODE_SUCCESS:
        logger.error("%s failed: %s", msg, att_ecode2str(status))
    else:
        logger.debug("%s succeeded", msg)
