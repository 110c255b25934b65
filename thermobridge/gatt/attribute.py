"""Attribute model for one thermometer service: characteristics and descriptors.

Objects here are plain data; the I/O that fills them lives in
:mod:`thermobridge.profile.session`.
"""

from __future__ import annotations

import enum
from typing import Dict, List, NamedTuple, Optional

from thermobridge.bt_ref.constants import (
    GATT_CHARAC_VALID_RANGE_UUID,
    GATT_CHR_PROP_INDICATE,
    GATT_CHR_PROP_NOTIFY,
    GATT_CLIENT_CHARAC_CFG_UUID,
    INTERMEDIATE_TEMPERATURE_UUID,
    MEASUREMENT_INTERVAL_UUID,
    TEMPERATURE_MEASUREMENT_UUID,
    TEMPERATURE_TYPE_UUID,
)
from thermobridge.bt_ref.utils import get_name_from_uuid, handle_int_to_hex, normalize_uuid

__all__ = [
    "CharacteristicKind",
    "DescriptorKind",
    "CharacteristicInfo",
    "DescriptorInfo",
    "ServiceRange",
    "Characteristic",
    "Descriptor",
]


class CharacteristicKind(enum.Enum):
    MEASUREMENT = "measurement"
    INTERMEDIATE = "intermediate"
    TEMPERATURE_TYPE = "temperature_type"
    INTERVAL = "interval"
    OTHER = "other"

    @classmethod
    def from_uuid(cls, uuid: str) -> "CharacteristicKind":
        return _CHAR_KINDS.get(normalize_uuid(uuid), cls.OTHER)


class DescriptorKind(enum.Enum):
    CLIENT_CONFIGURATION = "ccc"
    VALID_RANGE = "valid_range"
    OTHER = "other"

    @classmethod
    def from_uuid(cls, uuid: str) -> "DescriptorKind":
        return _DESC_KINDS.get(normalize_uuid(uuid), cls.OTHER)


_CHAR_KINDS = {
    TEMPERATURE_MEASUREMENT_UUID: CharacteristicKind.MEASUREMENT,
    INTERMEDIATE_TEMPERATURE_UUID: CharacteristicKind.INTERMEDIATE,
    TEMPERATURE_TYPE_UUID: CharacteristicKind.TEMPERATURE_TYPE,
    MEASUREMENT_INTERVAL_UUID: CharacteristicKind.INTERVAL,
}

_DESC_KINDS = {
    GATT_CLIENT_CHARAC_CFG_UUID: DescriptorKind.CLIENT_CONFIGURATION,
    GATT_CHARAC_VALID_RANGE_UUID: DescriptorKind.VALID_RANGE,
}


class ServiceRange(NamedTuple):
    start: int
    end: int

    def __contains__(self, handle) -> bool:  # type: ignore[override]
        return isinstance(handle, int) and self.start <= handle <= self.end


class CharacteristicInfo(NamedTuple):
    """A characteristic declaration as reported by the transport."""

    uuid: str
    handle: int
    value_handle: int
    properties: int = 0


class DescriptorInfo(NamedTuple):
    handle: int
    uuid: str


class Descriptor:
    """Descriptor attached to a :class:`Characteristic`."""

    def __init__(self, characteristic: "Characteristic", handle: int, uuid: str):
        self.characteristic = characteristic
        self.handle = handle
        self.uuid = normalize_uuid(uuid)
        self.kind = DescriptorKind.from_uuid(self.uuid)

    @property
    def key(self):
        return (self.uuid, self.handle)

    def __repr__(self):  # pragma: no cover
        return f"<Descriptor {get_name_from_uuid(self.uuid)} {handle_int_to_hex(self.handle)}>"


class Characteristic:
    """One characteristic of the thermometer service."""

    def __init__(self, uuid: str, handle: int, value_handle: int, properties: int = 0):
        self.uuid = normalize_uuid(uuid)
        self.handle = handle
        self.value_handle = value_handle
        self.properties = properties
        self.kind = CharacteristicKind.from_uuid(self.uuid)
        self._descriptors: Dict[tuple, Descriptor] = {}

    @classmethod
    def from_info(cls, info: CharacteristicInfo) -> "Characteristic":
        return cls(info.uuid, info.handle, info.value_handle, info.properties)

    @property
    def key(self):
        return (self.uuid, self.value_handle)

    @property
    def descriptors(self) -> List[Descriptor]:
        return list(self._descriptors.values())

    def add_descriptor(self, handle: int, uuid: str) -> Descriptor:
        """Insert a descriptor, or return the existing one with the same UUID and handle."""
        desc = Descriptor(self, handle, uuid)
        return self._descriptors.setdefault(desc.key, desc)

    def get_descriptor(self, uuid: str) -> Optional[Descriptor]:
        uuid = normalize_uuid(uuid)
        for desc in self._descriptors.values():
            if desc.uuid == uuid:
                return desc
        return None

    @property
    def can_notify(self) -> bool:
        return bool(self.properties & GATT_CHR_PROP_NOTIFY)

    @property
    def can_indicate(self) -> bool:
        return bool(self.properties & GATT_CHR_PROP_INDICATE)

    def __repr__(self):  # pragma: no cover
        return (
            f"<Characteristic {get_name_from_uuid(self.uuid)} "
            f"decl={handle_int_to_hex(self.handle)} value={handle_int_to_hex(self.value_handle)}>"
        )
