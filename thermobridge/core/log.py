"""
Core logging functionality for thermobridge.

Every record goes through the ``thermobridge`` logger.  Each log type has its
own file under the per-user data directory so measurement traffic can be
followed separately from discovery chatter.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from . import config

# Channel names, importable from here or from config
LOG__GENERAL = config.LOG__GENERAL
LOG__DEBUG = config.LOG__DEBUG
LOG__MEASUREMENT = config.LOG__MEASUREMENT

_LOG_PATHS: Dict[str, Path] = {
    LOG__GENERAL: config.LOG_DIR / "general.log",
    LOG__DEBUG: config.LOG_DIR / "debug.log",
    LOG__MEASUREMENT: config.LOG_DIR / "measurement.log",
}

_formatter = logging.Formatter("%(asctime)s %(name)s %(levelname)s: %(message)s")

# Root logger for thermobridge
_logger = logging.getLogger("thermobridge")
_logger.setLevel(logging.INFO)

_handlers: Dict[str, logging.Handler] = {}


def _build_handlers() -> None:
    try:
        config.LOG_DIR.mkdir(parents=True, exist_ok=True)
        for channel, path in _LOG_PATHS.items():
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setFormatter(_formatter)
            _handlers[channel] = file_handler
    except OSError as exc:
        # Read-only home (system service): keep logging on stderr only
        _handlers.clear()
        fallback = logging.StreamHandler(sys.stderr)
        fallback.setFormatter(_formatter)
        _handlers[LOG__GENERAL] = fallback
        _logger.addHandler(fallback)
        _logger.warning("Log directory %s unavailable (%s); using stderr", config.LOG_DIR, exc)
        return

    # Only the general file is attached to the logger tree; the other
    # channels are written through _emit().
    _logger.addHandler(_handlers[LOG__GENERAL])


_build_handlers()


def set_level(level) -> None:
    """Set the threshold of the package logger (name or numeric level)."""
    if isinstance(level, str):
        level = level.upper()
    _logger.setLevel(level)


def _emit(line: str, log_type: str, level: int = logging.INFO) -> None:
    """Route a record to the handler of *log_type*."""
    if not _logger.isEnabledFor(level) and log_type != LOG__DEBUG:
        return
    record = _logger.makeRecord(
        f"thermobridge.{log_type.lower()}",
        level,
        __file__,
        0,
        line.rstrip("\n"),
        (),
        None,
    )
    handler = _handlers.get(log_type)
    if handler is None:
        handler = _handlers[LOG__GENERAL]
    handler.handle(record)


# Level each channel is written at
_CHANNEL_LEVELS = {
    LOG__GENERAL: logging.INFO,
    LOG__DEBUG: logging.DEBUG,
    LOG__MEASUREMENT: logging.INFO,
}


def print_and_log(message: str, log_type: str = LOG__GENERAL) -> None:
    """Write *message* to the *log_type* channel; GENERAL lines are echoed to stdout."""
    if log_type == LOG__GENERAL:
        print(message)
    _emit(message, log_type, _CHANNEL_LEVELS.get(log_type, logging.INFO))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Child of the ``thermobridge`` logger for module *name*."""
    if not name:
        return _logger
    if name.startswith("thermobridge."):
        name = name[len("thermobridge."):]
    return _logger.getChild(name)
