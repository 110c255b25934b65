"""
Core package initialisation for thermobridge.

Deliberately kept lightweight: only configuration, logging and the error
hierarchy live here.
"""

from thermobridge.core.errors import (
    ThermobridgeError,
    NotConnectedError,
    NotAvailableError,
    InvalidArgumentError,
    AlreadyExistsError,
    DoesNotExistError,
    DecodeError,
    TruncatedFrameError,
)

__all__ = [
    "ThermobridgeError",
    "NotConnectedError",
    "NotAvailableError",
    "InvalidArgumentError",
    "AlreadyExistsError",
    "DoesNotExistError",
    "DecodeError",
    "TruncatedFrameError",
]
