import struct
import time
from datetime import datetime

import pytest

from thermobridge.bt_ref.constants import (
    MEASUREMENT_FINAL,
    MEASUREMENT_INTERMEDIATE,
    UNIT_CELSIUS,
    UNIT_FAHRENHEIT,
)
from thermobridge.core.errors import DecodeError, TruncatedFrameError
from thermobridge.gatt.codec import (
    Measurement,
    ValidRange,
    decode_interval,
    decode_measurement,
    decode_u16le,
    decode_valid_range,
    encode_measurement,
    encode_u16le,
    strip_envelope,
    temperature_type_code,
    temperature_type_name,
)


def _float(mantissa_bytes, exponent):
    return bytes(mantissa_bytes) + struct.pack("<b", exponent)


# --- FLOAT decoding ---
def test_minimal_celsius_frame():
    m = decode_measurement(bytes([0x00, 0x4E, 0x20, 0x00, 0xFE]), is_final=True)
    assert m.unit == UNIT_CELSIUS
    assert m.mantissa == 8270
    assert m.exponent == -2
    assert m.timestamp is None
    assert m.temperature_type is None
    assert m.kind == MEASUREMENT_FINAL
    assert m.value == pytest.approx(82.70)


def test_fahrenheit_flag():
    m = decode_measurement(bytes([0x01]) + _float([0x6D, 0x03, 0x00], -1), is_final=True)
    assert m.unit == UNIT_FAHRENHEIT
    assert m.mantissa == 877
    assert m.exponent == -1


def test_mantissa_sign_bit_is_twos_complement():
    m = decode_measurement(bytes([0x00]) + _float([0x00, 0x00, 0x80], 0), is_final=True)
    assert m.mantissa == -8388608


def test_mantissa_one():
    m = decode_measurement(bytes([0x00]) + _float([0x01, 0x00, 0x00], 0), is_final=True)
    assert m.mantissa == 1
    assert m.exponent == 0


def test_negative_mantissa_minus_one():
    m = decode_measurement(bytes([0x00]) + _float([0xFF, 0xFF, 0xFF], 3), is_final=True)
    assert m.mantissa == -1
    assert m.exponent == 3


def test_intermediate_kind():
    m = decode_measurement(bytes([0x00, 0x01, 0x00, 0x00, 0x00]), is_final=False)
    assert m.kind == MEASUREMENT_INTERMEDIATE
    assert not m.is_final


# --- optional fields ---
def test_timestamp_is_local_epoch():
    stamp = struct.pack("<HBBBBB", 2011, 3, 14, 10, 30, 5)
    m = decode_measurement(bytes([0x02]) + _float([0x6E, 0x0E, 0x00], -2) + stamp, is_final=True)
    expected = int(time.mktime(datetime(2011, 3, 14, 10, 30, 5).timetuple()))
    assert m.timestamp == expected


def test_invalid_timestamp_is_dropped_not_fatal():
    stamp = struct.pack("<HBBBBB", 2011, 13, 40, 10, 30, 5)
    m = decode_measurement(bytes([0x02]) + _float([0x6E, 0x0E, 0x00], -2) + stamp, is_final=True)
    assert m.timestamp is None
    assert m.mantissa == 3694


def test_type_field():
    m = decode_measurement(bytes([0x04]) + _float([0x6E, 0x0E, 0x00], -2) + bytes([0x03]), is_final=True)
    assert m.temperature_type == "ear"


def test_all_fields():
    stamp = struct.pack("<HBBBBB", 2020, 1, 2, 3, 4, 5)
    frame = bytes([0x07]) + _float([0x6E, 0x0E, 0x00], -2) + stamp + bytes([0x09])
    m = decode_measurement(frame, is_final=True)
    assert m.unit == UNIT_FAHRENHEIT
    assert m.timestamp is not None
    assert m.temperature_type == "tympanum"


@pytest.mark.parametrize("code", [0, 10, 0xFF])
def test_reserved_type_codes_decode_to_none(code):
    m = decode_measurement(bytes([0x04]) + _float([0x01, 0x00, 0x00], 0) + bytes([code]), is_final=True)
    assert m.temperature_type is None


# --- truncation ---
@pytest.mark.parametrize(
    "frame, field",
    [
        (b"", "flags"),
        (bytes([0x00, 0x4E, 0x20]), "temperature"),
        (bytes([0x00, 0x4E, 0x20, 0x00]), "temperature"),
        (bytes([0x02, 0x4E, 0x20, 0x00, 0xFE, 0xDB, 0x07]), "time stamp"),
        (bytes([0x04, 0x4E, 0x20, 0x00, 0xFE]), "temperature type"),
    ],
)
def test_truncated_frames_fail(frame, field):
    with pytest.raises(TruncatedFrameError) as excinfo:
        decode_measurement(frame, is_final=True)
    assert excinfo.value.field == field


def test_seven_byte_indication_is_truncated():
    # Envelope + flags + only three FLOAT bytes
    _op, handle, payload = strip_envelope(bytes([0x03, 0xAA, 0xAA, 0x00, 0x4E, 0x20, 0xFE]))
    assert handle == 0xAAAA
    with pytest.raises(TruncatedFrameError):
        decode_measurement(payload, is_final=True)


# --- envelope / interval / range ---
def test_strip_envelope():
    assert strip_envelope(bytes([0x1D, 0x03, 0x00, 0x01, 0x02])) == (0x1D, 0x0003, b"\x01\x02")


def test_strip_envelope_short():
    with pytest.raises(TruncatedFrameError):
        strip_envelope(b"\x1d\x03")


def test_decode_interval_reads_offset_three():
    assert decode_interval(bytes([0x1D, 0x0B, 0x00, 0x3C, 0x00])) == 60


def test_decode_interval_short():
    with pytest.raises(DecodeError):
        decode_interval(bytes([0x1D, 0x0B, 0x00, 0x3C]))


def test_decode_valid_range():
    rng = decode_valid_range(struct.pack("<HH", 5, 600))
    assert rng == ValidRange(5, 600)
    assert rng.is_valid


@pytest.mark.parametrize("minimum, maximum", [(0, 10), (20, 10)])
def test_invalid_valid_range(minimum, maximum):
    assert not ValidRange(minimum, maximum).is_valid


def test_u16_helpers():
    assert encode_u16le(0x0102) == b"\x02\x01"
    assert decode_u16le(b"\x00\x02\x01", 1) == 0x0102
    with pytest.raises(ValueError):
        encode_u16le(0x10000)
    with pytest.raises(ValueError):
        encode_u16le(-1)


# --- encode ---
def test_encode_then_decode():
    original = Measurement(
        exponent=-1,
        mantissa=-375,
        unit=UNIT_FAHRENHEIT,
        timestamp=int(time.mktime(datetime(2019, 6, 1, 12, 0, 0).timetuple())),
        temperature_type="mouth",
    )
    assert decode_measurement(encode_measurement(original), is_final=True) == original


def test_encode_rejects_wide_mantissa():
    with pytest.raises(ValueError):
        encode_measurement(Measurement(exponent=0, mantissa=1 << 23))


def test_type_name_lookup():
    assert temperature_type_name(1) == "armpit"
    assert temperature_type_code("rectum") == 7
    with pytest.raises(DecodeError):
        temperature_type_code("nose")
