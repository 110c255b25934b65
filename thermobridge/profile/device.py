"""Per-peripheral thermometer state.

:class:`ThermometerDevice` keeps the observable properties of one remote
thermometer (Intermediate, Interval, Maximum, Minimum), routes inbound
indications and notifications to the codec and the adapter's watchers, and
carries out interval writes requested by clients.
"""

from __future__ import annotations

import dataclasses
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from thermobridge.bt_ref.constants import (
    ATT_ECODE_SUCCESS,
    MEASUREMENT_INTERVAL_UUID,
    PROPERTY_INTERMEDIATE,
    PROPERTY_INTERVAL,
    PROPERTY_MAXIMUM,
    PROPERTY_MINIMUM,
    TEMP_TYPE,
    UINT16_MAX,
)
from thermobridge.bt_ref.utils import att_ecode2str, byteArrayToHexString, handle_int_to_hex
from thermobridge.core.errors import (
    DecodeError,
    InvalidArgumentError,
    NotAvailableError,
    NotConnectedError,
)
from thermobridge.core.log import get_logger
from thermobridge.gatt.attribute import CharacteristicKind, ServiceRange
from thermobridge.gatt.codec import (
    ValidRange,
    decode_interval,
    decode_measurement,
    encode_u16le,
    strip_envelope,
    temperature_type_name,
)
from thermobridge.gatt.transport import HANDLER_INDICATION, HANDLER_NOTIFICATION, GattTransport
from thermobridge.profile.session import AttributeSession

if TYPE_CHECKING:  # pragma: no cover
    from thermobridge.profile.adapter import ThermometerAdapter

logger = get_logger(__name__)

__all__ = ["ThermometerDevice", "PropertyListener"]

PropertyListener = Callable[["ThermometerDevice", str, Any], None]

# Attribute backing each observable property
_PROPERTY_ATTRS = {
    PROPERTY_INTERMEDIATE: "intermediate",
    PROPERTY_INTERVAL: "interval",
    PROPERTY_MAXIMUM: "maximum",
    PROPERTY_MINIMUM: "minimum",
}


class ThermometerDevice:
    """One remote Health Thermometer attached to a :class:`ThermometerAdapter`.

    Parameters
    ----------
    adapter : ThermometerAdapter
        Owning adapter context; supplies the watcher registry.
    path : str
        Object path of the peripheral (``/org/bluez/hciX/dev_XX_...``).
    service_range : ServiceRange
        First and last handle of the thermometer primary service.
    """

    def __init__(self, adapter: "ThermometerAdapter", path: str, service_range: ServiceRange):
        self.adapter = adapter
        self.path = path
        self.session = AttributeSession(self, service_range)

        self.intermediate = False
        self.interval: Optional[int] = None
        self.maximum: Optional[int] = None
        self.minimum: Optional[int] = None
        self.temperature_type: Optional[int] = None

        self._listeners: List[PropertyListener] = []
        self._handler_ids: List[int] = []

    def __repr__(self):
        return f"<ThermometerDevice {self.path}>"

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def service_range(self) -> ServiceRange:
        return self.session.service_range

    @property
    def transport(self) -> Optional[GattTransport]:
        return self.session.transport

    @property
    def is_connected(self) -> bool:
        return self.session.is_connected

    @property
    def has_interval(self) -> bool:
        return self.interval is not None

    @property
    def has_type(self) -> bool:
        return self.temperature_type is not None

    @property
    def has_final_watchers(self) -> bool:
        return self.adapter.registry.has_final_watchers

    @property
    def has_intermediate_watchers(self) -> bool:
        return self.adapter.registry.has_intermediate_watchers

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    def on_connected(self, transport: GattTransport) -> None:
        """A GATT connection to the peripheral is up; configure it."""
        if self.is_connected:
            self.on_disconnected()

        logger.info("%s: GATT connected", self.path)
        self._handler_ids = [
            transport.register_handler(HANDLER_INDICATION, self.handle_indication),
            transport.register_handler(HANDLER_NOTIFICATION, self.handle_notification),
        ]
        self.session.attach(transport)

    def on_disconnected(self) -> None:
        transport = self.session.transport
        if transport is None:
            return

        logger.info("%s: GATT disconnected", self.path)
        for handler_id in self._handler_ids:
            transport.unregister_handler(handler_id)
        self._handler_ids = []
        self.session.detach()

    def destroy(self) -> None:
        self.on_disconnected()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    def add_property_listener(self, listener: PropertyListener) -> None:
        self._listeners.append(listener)

    def remove_property_listener(self, listener: PropertyListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit_property_changed(self, name: str, value) -> None:
        for listener in list(self._listeners):
            try:
                listener(self, name, value)
            except Exception as exc:
                logger.error("%s: PropertyChanged listener for %s failed: %s", self.path, name, exc)

    def change_property(self, name: str, value) -> bool:
        """Apply *value* to property *name*; returns True when it changed."""
        attr = _PROPERTY_ATTRS.get(name)
        if attr is None:
            logger.error("%s: unknown property %s", self.path, name)
            return False

        if name == PROPERTY_INTERMEDIATE:
            value = bool(value)
        if getattr(self, attr) == value:
            return False

        setattr(self, attr, value)
        logger.debug("%s: %s = %s", self.path, name, value)
        self._emit_property_changed(name, value)
        return True

    def get_properties(self) -> Dict[str, Any]:
        props: Dict[str, Any] = {PROPERTY_INTERMEDIATE: self.intermediate}
        if self.has_interval:
            props[PROPERTY_INTERVAL] = self.interval
            if self.maximum is not None:
                props[PROPERTY_MAXIMUM] = self.maximum
            if self.minimum is not None:
                props[PROPERTY_MINIMUM] = self.minimum
        return props

    def set_property(self, name: str, value) -> None:
        if name != PROPERTY_INTERVAL:
            raise InvalidArgumentError("name", f"property {name} is read-only or unknown")

        if not self.has_interval:
            raise NotAvailableError(PROPERTY_INTERVAL, "Measurement Interval not supported")

        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= UINT16_MAX:
            raise InvalidArgumentError("value", "Interval must be an unsigned 16-bit integer")

        self.set_interval(int(value))

    def set_interval(self, value: int) -> None:
        """Write a new Measurement Interval to the peripheral.

        The property itself changes only once the peripheral accepts the
        write.
        """
        transport = self.session.transport
        if transport is None:
            raise NotConnectedError(self.path)

        ch = self.session.get_characteristic(MEASUREMENT_INTERVAL_UUID)
        if ch is None:
            raise NotAvailableError(PROPERTY_INTERVAL, "Measurement Interval characteristic not found")

        if self.minimum is not None and value < self.minimum:
            raise InvalidArgumentError("value", f"Interval {value} below minimum {self.minimum}")
        if self.maximum is not None and value > self.maximum:
            raise InvalidArgumentError("value", f"Interval {value} above maximum {self.maximum}")

        logger.debug("%s: writing Interval %d to %s", self.path, value, handle_int_to_hex(ch.value_handle))
        transport.write(
            ch.value_handle,
            encode_u16le(value),
            partial(self._interval_written, self.session.generation, value),
        )

    def _interval_written(self, generation: int, value: int, status: int) -> None:
        if status != ATT_ECODE_SUCCESS:
            logger.error("%s: Interval write failed: %s", self.path, att_ecode2str(status))
            return
        if generation != self.session.generation:
            logger.debug("%s: Interval write completed on a stale connection", self.path)
            return
        self.change_property(PROPERTY_INTERVAL, value)

    def set_temperature_type(self, code: int) -> None:
        self.temperature_type = code

    def apply_valid_range(self, valid_range: ValidRange) -> None:
        self.change_property(PROPERTY_MAXIMUM, valid_range.maximum)
        self.change_property(PROPERTY_MINIMUM, valid_range.minimum)

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------
    def _resolve(self, pdu: bytes):
        try:
            _opcode, handle, payload = strip_envelope(pdu)
        except DecodeError:
            logger.debug("%s: bad pdu received: %s", self.path, byteArrayToHexString(pdu))
            return None, None
        ch = self.session.find_by_value_handle(handle)
        if ch is None:
            logger.debug("%s: unexpected handle %s", self.path, handle_int_to_hex(handle))
            return None, None
        return ch, payload

    def handle_indication(self, pdu: bytes) -> None:
        ch, payload = self._resolve(pdu)
        if ch is None:
            return

        if ch.kind is CharacteristicKind.MEASUREMENT:
            self._process_measurement(payload, is_final=True)
        elif ch.kind is CharacteristicKind.INTERVAL:
            self._process_interval(pdu)

        transport = self.session.transport
        if transport is not None and self.adapter.confirm_indications:
            transport.send_confirmation()

    def handle_notification(self, pdu: bytes) -> None:
        ch, payload = self._resolve(pdu)
        if ch is None:
            return
        if ch.kind is CharacteristicKind.INTERMEDIATE:
            self._process_measurement(payload, is_final=False)

    def _process_measurement(self, payload: bytes, is_final: bool) -> None:
        try:
            measurement = decode_measurement(payload, is_final)
        except DecodeError as exc:
            logger.debug("%s: dropping measurement %s: %s", self.path, byteArrayToHexString(payload), exc)
            return

        if not payload[0] & TEMP_TYPE and self.has_type:
            measurement = dataclasses.replace(
                measurement, temperature_type=temperature_type_name(self.temperature_type)
            )

        self.adapter.registry.dispatch(self.path, measurement)

    def _process_interval(self, pdu: bytes) -> None:
        try:
            interval = decode_interval(pdu)
        except DecodeError:
            logger.debug("%s: invalid Measurement Interval indication", self.path)
            return
        self.change_property(PROPERTY_INTERVAL, interval)
