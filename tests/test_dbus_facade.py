import pytest

dbus = pytest.importorskip("dbus")

from tests.helpers.fakes import INTERVAL_VALUE  # noqa: E402
from thermobridge.bt_ref.constants import ERROR_INVALID_ARGS, ERROR_NOT_AVAILABLE  # noqa: E402
from thermobridge.dbuslayer.thermometer import (  # noqa: E402
    ThermometerManagerObject,
    ThermometerObject,
    measurement_to_dbus,
    property_to_dbus,
)
from thermobridge.dbuslayer.watcher import measurement_from_dbus  # noqa: E402
from thermobridge.gatt.codec import Measurement  # noqa: E402


def test_measurement_to_dbus_minimal():
    out = measurement_to_dbus(Measurement(exponent=-2, mantissa=8270))
    assert set(out) == {"Exponent", "Mantissa", "Unit", "Measurement"}
    assert isinstance(out["Exponent"], dbus.Int16)
    assert isinstance(out["Mantissa"], dbus.Int32)
    assert out["Unit"] == "celsius"
    assert out["Measurement"] == "final"


def test_measurement_to_dbus_optional_fields():
    m = Measurement(
        exponent=-1,
        mantissa=987,
        unit="fahrenheit",
        timestamp=1300000000,
        temperature_type="ear",
        kind="intermediate",
    )
    out = measurement_to_dbus(m)
    assert isinstance(out["Time"], dbus.UInt64)
    assert out["Type"] == "ear"
    assert measurement_from_dbus(out) == m


def test_property_types():
    assert isinstance(property_to_dbus("Intermediate", True), dbus.Boolean)
    assert isinstance(property_to_dbus("Interval", 30), dbus.UInt16)
    assert isinstance(property_to_dbus("Minimum", 1), dbus.UInt16)


# Objects are created without a connection so methods run as plain calls
def test_get_properties(connected):
    props = ThermometerObject(None, connected).GetProperties()
    assert props["Interval"] == 30
    assert isinstance(props["Intermediate"], dbus.Boolean)


def test_set_property_requires_uint16(connected):
    obj = ThermometerObject(None, connected)
    with pytest.raises(dbus.exceptions.DBusException) as excinfo:
        obj.SetProperty("Interval", dbus.Int32(60))
    assert excinfo.value.get_dbus_name() == ERROR_INVALID_ARGS


def test_set_property_writes_interval(connected, transport):
    obj = ThermometerObject(None, connected)
    transport.writes.clear()
    obj.SetProperty("Interval", dbus.UInt16(60))
    assert transport.writes == [(INTERVAL_VALUE, b"\x3c\x00")]


def test_set_property_not_available(device):
    obj = ThermometerObject(None, device)
    with pytest.raises(dbus.exceptions.DBusException) as excinfo:
        obj.SetProperty("Interval", dbus.UInt16(60))
    assert excinfo.value.get_dbus_name() == ERROR_NOT_AVAILABLE


def test_property_changes_are_signalled(connected, transport):
    obj = ThermometerObject(None, connected)
    signals = []
    obj.PropertyChanged = lambda name, value: signals.append((name, value))

    obj.SetProperty("Interval", dbus.UInt16(90))
    transport.flush()

    assert signals == [("Interval", 90)]
    assert isinstance(signals[0][1], dbus.UInt16)


def test_manager_uses_sender_as_service(adapter):
    manager = ThermometerManagerObject(None, adapter)
    manager.RegisterWatcher(dbus.ObjectPath("/watcher"), sender=":1.9")
    manager.EnableIntermediateMeasurement(dbus.ObjectPath("/watcher"), sender=":1.9")
    assert adapter.registry.is_final(":1.9", "/watcher")
    assert adapter.registry.is_intermediate(":1.9", "/watcher")

    manager.DisableIntermediateMeasurement(dbus.ObjectPath("/watcher"), sender=":1.9")
    manager.UnregisterWatcher(dbus.ObjectPath("/watcher"), sender=":1.9")
    assert not adapter.registry.has_final_watchers


def test_manager_maps_errors(adapter):
    manager = ThermometerManagerObject(None, adapter)
    with pytest.raises(dbus.exceptions.DBusException) as excinfo:
        manager.UnregisterWatcher(dbus.ObjectPath("/watcher"), sender=":1.9")
    assert excinfo.value.get_dbus_name() == "org.bluez.Error.DoesNotExist"
