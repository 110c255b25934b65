"""
Command-line interface for thermobridge.
"""

import argparse
import re
import sys

# Ensure logging subsystem is initialised immediately
import thermobridge.core.log  # noqa: F401  # side-effect import creates log files

from . import __version__
from thermobridge.bt_ref.constants import (
    BLUEZ_NAMESPACE,
    THERMOMETER_INTERFACE,
    THERMOMETER_MANAGER_INTERFACE,
)
from thermobridge.bt_ref.utils import device_address_to_path
from thermobridge.core.config import DEFAULT_ADAPTER, load_config
from thermobridge.core.errors import DecodeError, ThermobridgeError
from thermobridge.core.log import LOG__GENERAL, print_and_log, set_level
from thermobridge.gatt.codec import Measurement, decode_measurement, strip_envelope

_MAC_RX = re.compile(r"^[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2}){5}$")


def build_parser():
    parser = argparse.ArgumentParser(
        description="thermobridge - BLE Health Thermometer to D-Bus watcher bridge"
    )
    parser.add_argument("--version", action="version", version=f"thermobridge {__version__}")
    parser.add_argument("--config", help="YAML configuration file (default: $THERMOBRIDGE_CONFIG)")

    subparsers = parser.add_subparsers(dest="mode", help="Operation mode")

    # Bridge
    subparsers.add_parser("run", help="Run the bridge on the system bus")

    # Offline decode
    decode_parser = subparsers.add_parser("decode", help="Decode a Temperature Measurement value")
    decode_parser.add_argument("frame", nargs="+", help="Hex bytes (e.g. '00 AA AA 00 FE' or 00aaaa00fe)")
    decode_parser.add_argument("--intermediate", action="store_true", help="Decode as Intermediate Temperature")
    decode_parser.add_argument("--pdu", action="store_true", help="Frame includes the 3-byte ATT opcode/handle header")

    # Watch
    watch_parser = subparsers.add_parser("watch", help="Register a watcher and print measurements")
    watch_parser.add_argument("--adapter", default=DEFAULT_ADAPTER, help=f"Adapter name (default: {DEFAULT_ADAPTER})")
    watch_parser.add_argument("--intermediate", action="store_true", help="Also receive intermediate measurements")

    # Interval
    interval_parser = subparsers.add_parser("interval", help="Set the Measurement Interval of a thermometer")
    interval_parser.add_argument("device", help="Device object path or MAC address")
    interval_parser.add_argument("value", type=int, help="Interval in seconds (0-65535)")
    interval_parser.add_argument("--adapter", default=DEFAULT_ADAPTER, help="Adapter used to resolve a MAC address")

    return parser


def parse_args(args=None):
    return build_parser().parse_args(args)


def parse_hex(chunks) -> bytes:
    """Join hex *chunks* ("03 AA", "aa00", "0x4e") into bytes."""
    text = "".join(chunk.replace("0x", "").replace("0X", "") for chunk in chunks)
    text = re.sub(r"[\s:,-]", "", text)
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise DecodeError(f"Invalid hex input: {' '.join(chunks)}") from None


def format_measurement(measurement: Measurement, device_path: str = None) -> str:
    parts = []
    if device_path:
        parts.append(device_path)
    parts.append(f"[{measurement.kind}]")
    parts.append(f"{measurement.value:g} {measurement.unit}")
    parts.append(f"(mantissa={measurement.mantissa} exponent={measurement.exponent})")
    if measurement.timestamp is not None:
        parts.append(f"time={measurement.timestamp}")
    if measurement.temperature_type is not None:
        parts.append(f"type={measurement.temperature_type}")
    return " ".join(parts)


def resolve_device_path(device: str, adapter: str) -> str:
    if _MAC_RX.match(device):
        return device_address_to_path(device.upper(), f"{BLUEZ_NAMESPACE}{adapter}")
    return device


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------
def _cmd_decode(args) -> int:
    data = parse_hex(args.frame)
    if args.pdu:
        _opcode, _handle, data = strip_envelope(data)
    measurement = decode_measurement(data, is_final=not args.intermediate)
    print(format_measurement(measurement))
    return 0


def _system_bus():
    import dbus
    import dbus.mainloop.glib

    dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)
    return dbus.SystemBus()


def _run_loop(on_exit=None) -> None:
    from gi.repository import GLib

    loop = GLib.MainLoop()
    try:
        loop.run()
    except KeyboardInterrupt:
        print_and_log("[*] Interrupted", LOG__GENERAL)
    finally:
        if on_exit is not None:
            on_exit()


def _cmd_run(cfg) -> int:
    import dbus.service

    from thermobridge.dbuslayer.monitor import ThermometerMonitor
    from thermobridge.profile.adapter import AdapterRegistry

    bus = _system_bus()
    bus_name = dbus.service.BusName(cfg.bus_name, bus, do_not_queue=True)
    registry = AdapterRegistry(confirm_indications=cfg.confirm_indications)
    monitor = ThermometerMonitor(bus, registry, cfg)
    monitor.start()
    print_and_log(f"[+] thermobridge {__version__} running as {bus_name.get_name()}", LOG__GENERAL)
    _run_loop(monitor.stop)
    return 0


def _cmd_watch(args, cfg) -> int:
    import dbus

    from thermobridge.dbuslayer.watcher import ThermometerWatcherObject

    bus = _system_bus()
    watcher = ThermometerWatcherObject(
        bus, lambda device, m: print(format_measurement(m, device), flush=True)
    )
    manager = dbus.Interface(
        bus.get_object(cfg.bus_name, f"{BLUEZ_NAMESPACE}{args.adapter}"),
        THERMOMETER_MANAGER_INTERFACE,
    )
    try:
        manager.RegisterWatcher(dbus.ObjectPath(watcher.path))
        if args.intermediate:
            manager.EnableIntermediateMeasurement(dbus.ObjectPath(watcher.path))
    except dbus.exceptions.DBusException as exc:
        print(f"[!] {exc.get_dbus_name()}: {exc.get_dbus_message()}", file=sys.stderr)
        return 1
    print_and_log(f"[*] Watching thermometers on {args.adapter} (Ctrl-C to stop)", LOG__GENERAL)

    def _unregister():
        try:
            manager.UnregisterWatcher(dbus.ObjectPath(watcher.path))
        except dbus.exceptions.DBusException as exc:
            print_and_log(f"[-] UnregisterWatcher failed: {exc}", LOG__GENERAL)

    _run_loop(_unregister)
    return 0


def _cmd_interval(args, cfg) -> int:
    import dbus

    bus = dbus.SystemBus()
    path = resolve_device_path(args.device, args.adapter)
    thermometer = dbus.Interface(bus.get_object(cfg.bus_name, path), THERMOMETER_INTERFACE)
    try:
        thermometer.SetProperty("Interval", dbus.UInt16(args.value))
    except dbus.exceptions.DBusException as exc:
        print(f"[!] {exc.get_dbus_name()}: {exc.get_dbus_message()}", file=sys.stderr)
        return 1
    print_and_log(f"[+] Interval of {path} set to {args.value}", LOG__GENERAL)
    return 0


def main(args=None):
    """Main entry point for thermobridge."""
    parser = build_parser()
    args = parser.parse_args(args)

    if args.mode is None:
        parser.print_help(sys.stderr)
        return 1

    try:
        if args.mode == "decode":
            return _cmd_decode(args)

        cfg = load_config(args.config)
        set_level(cfg.log_level)

        if args.mode == "run":
            return _cmd_run(cfg)
        elif args.mode == "watch":
            return _cmd_watch(args, cfg)
        elif args.mode == "interval":
            if not 0 <= args.value <= 0xFFFF:
                print("[!] Interval must be within 0-65535", file=sys.stderr)
                return 1
            return _cmd_interval(args, cfg)
    except ThermobridgeError as exc:
        print(f"[!] {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
