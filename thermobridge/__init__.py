"""
thermobridge - BLE Health Thermometer to D-Bus watcher bridge
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Initialise logging on *package import* so every code path (even when the
# CLI is not used) writes to the per-user log files.
# ---------------------------------------------------------------------------
import importlib as _importlib

_importlib.import_module("thermobridge.core.log")  # noqa: F401  side-effect import
