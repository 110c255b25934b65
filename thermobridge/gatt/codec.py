"""Health Thermometer frame decoding and encoding.

Pure functions, no I/O.  Measurement frames carry an IEEE-11073 32-bit FLOAT:
one signed exponent byte over a 24-bit two's-complement mantissa, read as a
single little-endian u32.
"""
from __future__ import annotations

import struct
import time
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple, Optional, Tuple

from thermobridge.bt_ref.constants import (
    ATT_ENVELOPE_LEN,
    FLOAT_MAX_MANTISSA,
    MEASUREMENT_FINAL,
    MEASUREMENT_INTERMEDIATE,
    MEASUREMENT_INTERVAL_SIZE,
    TEMP_TIME_STAMP,
    TEMP_TYPE,
    TEMP_UNITS,
    TEMPERATURE_FLOAT_SIZE,
    TEMPERATURE_TYPE_SIZE,
    TEMPERATURE_TYPES,
    TIME_STAMP_SIZE,
    UINT16_MAX,
    UNIT_CELSIUS,
    UNIT_FAHRENHEIT,
    VALID_RANGE_DESC_SIZE,
)
from thermobridge.core.errors import DecodeError, TruncatedFrameError
from thermobridge.core.log import get_logger

logger = get_logger(__name__)

__all__ = [
    "Measurement",
    "ValidRange",
    "strip_envelope",
    "decode_measurement",
    "decode_interval",
    "decode_valid_range",
    "decode_u16le",
    "encode_u16le",
    "encode_measurement",
    "temperature_type_name",
    "temperature_type_code",
]


@dataclass(frozen=True)
class Measurement:
    """One decoded temperature reading."""

    exponent: int
    mantissa: int
    unit: str = UNIT_CELSIUS
    timestamp: Optional[int] = None
    temperature_type: Optional[str] = None
    kind: str = MEASUREMENT_FINAL

    @property
    def value(self) -> float:
        return self.mantissa * (10 ** self.exponent)

    @property
    def is_final(self) -> bool:
        return self.kind == MEASUREMENT_FINAL


class ValidRange(NamedTuple):
    minimum: int
    maximum: int

    @property
    def is_valid(self) -> bool:
        return self.minimum != 0 and self.minimum <= self.maximum


def _require(data, offset: int, size: int, field: str) -> None:
    available = len(data) - offset
    if available < size:
        raise TruncatedFrameError(field, size, max(available, 0))


def temperature_type_name(code: int) -> Optional[str]:
    """Map a Temperature Type code to its name; reserved codes give None."""
    if 0 < code < len(TEMPERATURE_TYPES):
        return TEMPERATURE_TYPES[code]
    logger.error("Temperature type %d reserved for future use", code)
    return None


def temperature_type_code(name: str) -> int:
    try:
        code = TEMPERATURE_TYPES.index(name)
    except ValueError:
        raise DecodeError(f"Unknown temperature type: {name!r}") from None
    if code == 0:
        raise DecodeError("Temperature type 0 is reserved")
    return code


def strip_envelope(pdu: bytes) -> Tuple[int, int, bytes]:
    """Split an ATT frame into (opcode, attribute handle, payload)."""
    pdu = bytes(pdu)
    _require(pdu, 0, ATT_ENVELOPE_LEN, "envelope")
    opcode = pdu[0]
    (handle,) = struct.unpack_from("<H", pdu, 1)
    return opcode, handle, pdu[ATT_ENVELOPE_LEN:]


def decode_u16le(value: bytes, offset: int = 0) -> int:
    value = bytes(value)
    _require(value, offset, 2, "uint16")
    return struct.unpack_from("<H", value, offset)[0]


def encode_u16le(value: int) -> bytes:
    if not 0 <= value <= UINT16_MAX:
        raise ValueError(f"{value} does not fit in uint16")
    return struct.pack("<H", value)


def _decode_float(raw: int) -> Tuple[int, int]:
    mantissa = raw & 0x00FFFFFF
    if mantissa & 0x00800000:
        # two's-complement negative value
        mantissa -= FLOAT_MAX_MANTISSA
    exponent = raw >> 24
    if exponent & 0x80:
        exponent -= 0x100
    return exponent, mantissa


def _decode_timestamp(data: bytes, offset: int) -> Optional[int]:
    year, month, day, hour, minute, second = struct.unpack_from("<HBBBBB", data, offset)
    try:
        stamp = datetime(year, month, day, hour, minute, second)
    except ValueError as exc:
        logger.debug("Ignoring invalid time stamp %04d-%02d-%02d %02d:%02d:%02d: %s",
                      year, month, day, hour, minute, second, exc)
        return None
    # Local time, like the peripheral's wall clock
    return int(time.mktime(stamp.timetuple()))


def decode_measurement(payload: bytes, is_final: bool) -> Measurement:
    """Decode a Temperature Measurement / Intermediate Temperature value.

    *payload* is the frame without its 3-byte ATT envelope.  Raises
    :class:`TruncatedFrameError` when a mandatory or flagged field is cut short.
    """
    data = bytes(payload)
    offset = 0

    _require(data, offset, 1, "flags")
    flags = data[offset]
    offset += 1
    unit = UNIT_FAHRENHEIT if flags & TEMP_UNITS else UNIT_CELSIUS

    _require(data, offset, TEMPERATURE_FLOAT_SIZE, "temperature")
    (raw,) = struct.unpack_from("<I", data, offset)
    exponent, mantissa = _decode_float(raw)
    offset += TEMPERATURE_FLOAT_SIZE

    timestamp = None
    if flags & TEMP_TIME_STAMP:
        _require(data, offset, TIME_STAMP_SIZE, "time stamp")
        timestamp = _decode_timestamp(data, offset)
        offset += TIME_STAMP_SIZE

    temp_type = None
    if flags & TEMP_TYPE:
        _require(data, offset, TEMPERATURE_TYPE_SIZE, "temperature type")
        temp_type = temperature_type_name(data[offset])

    return Measurement(
        exponent=exponent,
        mantissa=mantissa,
        unit=unit,
        timestamp=timestamp,
        temperature_type=temp_type,
        kind=MEASUREMENT_FINAL if is_final else MEASUREMENT_INTERMEDIATE,
    )


def decode_interval(pdu: bytes) -> int:
    """Measurement Interval from a full indication frame (u16 at offset 3)."""
    pdu = bytes(pdu)
    _require(pdu, 0, ATT_ENVELOPE_LEN + MEASUREMENT_INTERVAL_SIZE, "measurement interval")
    return decode_u16le(pdu, ATT_ENVELOPE_LEN)


def decode_valid_range(value: bytes) -> ValidRange:
    value = bytes(value)
    _require(value, 0, VALID_RANGE_DESC_SIZE, "valid range")
    minimum, maximum = struct.unpack_from("<HH", value, 0)
    return ValidRange(minimum, maximum)


def encode_measurement(measurement: Measurement) -> bytes:
    """Build the payload :func:`decode_measurement` turns back into *measurement*."""
    if not -(FLOAT_MAX_MANTISSA // 2) <= measurement.mantissa < FLOAT_MAX_MANTISSA // 2:
        raise ValueError(f"mantissa {measurement.mantissa} does not fit in 24 bits")
    if not -128 <= measurement.exponent <= 127:
        raise ValueError(f"exponent {measurement.exponent} does not fit in 8 bits")

    flags = 0
    if measurement.unit == UNIT_FAHRENHEIT:
        flags |= TEMP_UNITS
    if measurement.timestamp is not None:
        flags |= TEMP_TIME_STAMP
    if measurement.temperature_type is not None:
        flags |= TEMP_TYPE

    raw = ((measurement.exponent & 0xFF) << 24) | (measurement.mantissa & 0x00FFFFFF)
    out = bytearray(struct.pack("<BI", flags, raw))

    if measurement.timestamp is not None:
        stamp = datetime.fromtimestamp(measurement.timestamp)
        out += struct.pack(
            "<HBBBBB",
            stamp.year, stamp.month, stamp.day, stamp.hour, stamp.minute, stamp.second,
        )
    if measurement.temperature_type is not None:
        out.append(temperature_type_code(measurement.temperature_type))
    return bytes(out)
