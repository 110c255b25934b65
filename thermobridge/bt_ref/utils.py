"""
Small helpers shared by the D-Bus glue and the profile code.
"""

from . import constants

__all__ = [
    "byteArrayToHexString",
    "dbus_to_python",
    "device_address_to_path",
    "get_name_from_uuid",
    "normalize_uuid",
    "handle_int_to_hex",
    "att_ecode2str",
]


def byteArrayToHexString(data) -> str:
    """Upper-case hex dump of *data* without separators (``"1D0300"``)."""
    return bytes(data).hex().upper()


def dbus_to_python(data):
    """Recursively turn dbus-python wrapper types into plain Python values."""
    import dbus

    if isinstance(data, (dbus.String, dbus.ObjectPath)):
        return str(data)
    if isinstance(data, dbus.Boolean):
        return bool(data)
    if isinstance(data, (dbus.Byte, dbus.Int16, dbus.Int32, dbus.Int64,
                         dbus.UInt16, dbus.UInt32, dbus.UInt64)):
        return int(data)
    if isinstance(data, dbus.Double):
        return float(data)
    if isinstance(data, (dbus.Array, list)):
        return [dbus_to_python(item) for item in data]
    if isinstance(data, (dbus.Dictionary, dict)):
        return {str(key): dbus_to_python(value) for key, value in data.items()}
    return data


def device_address_to_path(bdaddr: str, adapter_path: str) -> str:
    # 00:11:22:AA:BB:CC on /org/bluez/hci0 -> /org/bluez/hci0/dev_00_11_22_AA_BB_CC
    return f"{adapter_path}/dev_{bdaddr.replace(':', '_')}"


def normalize_uuid(uuid) -> str:
    """Return the 128-bit lower-case form of *uuid*.

    Accepts 16-bit integers, short hex strings ("2a1c", "0x2A1C") and full
    128-bit strings.
    """
    if isinstance(uuid, int):
        return constants.uuid16_to_str(uuid)
    text = str(uuid).strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    if len(text) == 4:
        return constants.uuid16_to_str(int(text, 16))
    return text


def get_name_from_uuid(uuid):
    return constants.UUID_NAMES.get(normalize_uuid(uuid), "Unknown")


def handle_int_to_hex(handle: int) -> str:
    """Attribute handle as ``0x%04X``, the form used in every log line."""
    return f"0x{handle:04X}"


def att_ecode2str(status: int) -> str:
    """Human readable text for an ATT error code."""
    return constants.ATT_ECODE_STRINGS.get(status, "Unexpected error code")
