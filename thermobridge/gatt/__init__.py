"""
GATT data model, frame codec and transport capability for thermobridge.
"""

from . import attribute
from . import codec
from . import transport

__all__ = ["attribute", "codec", "transport"]
