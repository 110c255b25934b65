#!/usr/bin/python3

"""Core error classes for thermobridge."""

from __future__ import annotations

import re
from typing import Optional

from thermobridge.bt_ref.constants import *

# Regex to pull method & interface names from D-Bus error strings (best-effort)
_METHOD_CALL_INTERFACE_RX = re.compile(
    r"method '(?P<method>[^']+)'[\s\S]*interface '(?P<iface>[^']+)'"
)


class ThermobridgeError(Exception):
    """Base exception for the package.

    The `.code` attribute carries one of the RESULT_* values and
    `.dbus_name` the D-Bus error name reported to facade callers.
    """

    dbus_name = ERROR_FAILED

    def __init__(self, message: str, code: int = RESULT_ERR):
        super().__init__(message)
        self.code = code


class NotConnectedError(ThermobridgeError):
    """Raised when an operation needs a connected peripheral."""

    dbus_name = ERROR_NOT_CONNECTED

    def __init__(self, device_path: str):
        super().__init__(f"Device {device_path} not connected", RESULT_ERR_NOT_CONNECTED)
        self.device_path = device_path


class NotAvailableError(ThermobridgeError):
    """Raised when the peripheral does not expose what the caller asked for."""

    dbus_name = ERROR_NOT_AVAILABLE

    def __init__(self, what: str, reason: Optional[str] = None):
        message = f"Not available: {what}"
        if reason:
            message += f" ({reason})"
        super().__init__(message, RESULT_ERR_NOT_AVAILABLE)
        self.what = what
        self.reason = reason


class InvalidArgumentError(ThermobridgeError):
    """Raised when invalid arguments are provided."""

    dbus_name = ERROR_INVALID_ARGS

    def __init__(self, argument: str, reason: str = None):
        message = f"Invalid argument: {argument}"
        if reason:
            message += f" ({reason})"
        super().__init__(message, RESULT_ERR_BAD_ARGS)
        self.argument = argument
        self.reason = reason


class AlreadyExistsError(ThermobridgeError):
    """Raised when registering something that is already registered."""

    dbus_name = ERROR_ALREADY_EXISTS

    def __init__(self, what: str):
        super().__init__(f"Already exists: {what}", RESULT_ERR_ALREADY_EXISTS)
        self.what = what


class DoesNotExistError(ThermobridgeError):
    """Raised when unregistering or looking up something unknown."""

    dbus_name = ERROR_DOES_NOT_EXIST

    def __init__(self, what: str):
        super().__init__(f"Does not exist: {what}", RESULT_ERR_NOT_FOUND)
        self.what = what


class DecodeError(ThermobridgeError):
    """Raised when a binary frame cannot be decoded."""

    def __init__(self, message: str):
        super().__init__(message, RESULT_ERR_DECODE)


class TruncatedFrameError(DecodeError):
    """Raised when fewer bytes remain than the current field requires."""

    def __init__(self, field: str, required: int, available: int):
        super().__init__(
            f"Truncated frame: {field} needs {required} byte(s), {available} available"
        )
        self.field = field
        self.required = required
        self.available = available


# Map D-Bus error names raised by BlueZ onto ATT error codes
DBUS_ATT_ERROR_MAP = {
    "org.bluez.Error.NotPermitted": ATT_ECODE_WRITE_NOT_PERM,
    "org.bluez.Error.NotAuthorized": ATT_ECODE_AUTHORIZATION,
    "org.bluez.Error.NotSupported": ATT_ECODE_REQ_NOT_SUPP,
    "org.bluez.Error.InvalidValueLength": ATT_ECODE_INVAL_ATTR_VALUE_LEN,
    "org.bluez.Error.InvalidOffset": ATT_ECODE_INVALID_OFFSET,
    "org.bluez.Error.InProgress": ATT_ECODE_UNLIKELY,
    "org.bluez.Error.NotConnected": ATT_ECODE_IO,
    "org.bluez.Error.Failed": ATT_ECODE_IO,
    "org.freedesktop.DBus.Error.NoReply": ATT_ECODE_TIMEOUT,
    "org.freedesktop.DBus.Error.UnknownObject": ATT_ECODE_INVALID_HANDLE,
    "org.freedesktop.DBus.Error.UnknownMethod": ATT_ECODE_REQ_NOT_SUPP,
}

# Fallback substring search when name not present (BlueZ mixes English strings)
_DBUS_MESSAGE_MAP = {
    "read not permitted": ATT_ECODE_READ_NOT_PERM,
    "write not permitted": ATT_ECODE_WRITE_NOT_PERM,
    "not connected": ATT_ECODE_IO,
    "timeout": ATT_ECODE_TIMEOUT,
}


def map_dbus_error(exc) -> int:
    """Return the ATT error code matching the D-Bus exception *exc*.

    Falls back to ATT_ECODE_IO on unknown errors so callers can treat the
    result as a plain failed status.
    """
    name = exc.get_dbus_name()
    if name in DBUS_ATT_ERROR_MAP:
        return DBUS_ATT_ERROR_MAP[name]

    msg = (exc.get_dbus_message() or "").lower()
    for substr, code in _DBUS_MESSAGE_MAP.items():
        if substr in msg:
            return code

    if _METHOD_CALL_INTERFACE_RX.search(msg):
        return ATT_ECODE_REQ_NOT_SUPP

    return ATT_ECODE_IO


def to_dbus_exception(exc: ThermobridgeError):
    """Wrap *exc* in a ``dbus.DBusException`` carrying its D-Bus error name."""
    import dbus

    return dbus.exceptions.DBusException(str(exc), name=exc.dbus_name)


__all__ = [
    "ThermobridgeError",
    "NotConnectedError",
    "NotAvailableError",
    "InvalidArgumentError",
    "AlreadyExistsError",
    "DoesNotExistError",
    "DecodeError",
    "TruncatedFrameError",
    "DBUS_ATT_ERROR_MAP",
    "map_dbus_error",
    "to_dbus_exception",
]
