import pytest

from tests.conftest import DEVICE_PATH
from tests.helpers.fakes import (
    INTERMEDIATE_VALUE,
    INTERVAL_VALUE,
    MEASUREMENT_VALUE,
    TYPE_VALUE,
    FakeTransport,
    indication,
    notification,
)
from thermobridge.bt_ref.constants import ATT_ECODE_WRITE_NOT_PERM
from thermobridge.core.errors import InvalidArgumentError, NotAvailableError, NotConnectedError

CELSIUS_37 = bytes([0x00, 0x72, 0x01, 0x00, 0xFF])  # 370e-1


def _recorder(device):
    events = []
    device.add_property_listener(lambda dev, name, value: events.append((name, value)))
    return events


# --- property protocol ---
def test_initial_properties(device):
    assert device.get_properties() == {"Intermediate": False}


def test_change_property_emits_once(device):
    events = _recorder(device)
    assert device.change_property("Interval", 10)
    assert not device.change_property("Interval", 10)
    assert device.change_property("Interval", 11)
    assert events == [("Interval", 10), ("Interval", 11)]


def test_first_maximum_always_emits(device):
    events = _recorder(device)
    device.change_property("Maximum", 0)
    assert events == [("Maximum", 0)]


def test_listener_failure_does_not_block_others(device):
    seen = []

    def broken(dev, name, value):
        raise RuntimeError("boom")

    device.add_property_listener(broken)
    device.add_property_listener(lambda dev, name, value: seen.append(name))
    device.change_property("Intermediate", True)
    assert seen == ["Intermediate"]


def test_discovery_emits_property_changes(device, transport):
    events = _recorder(device)
    device.on_connected(transport)
    transport.flush()
    assert events == [
        ("Intermediate", True),
        ("Interval", 30),
        ("Maximum", 3600),
        ("Minimum", 1),
    ]


def test_properties_after_discovery(connected):
    assert connected.get_properties() == {
        "Intermediate": True,
        "Interval": 30,
        "Maximum": 3600,
        "Minimum": 1,
    }


# --- set_property ---
def test_set_property_unknown_name(connected):
    with pytest.raises(InvalidArgumentError):
        connected.set_property("Maximum", 10)


def test_set_property_without_interval(device):
    with pytest.raises(NotAvailableError):
        device.set_property("Interval", 10)


@pytest.mark.parametrize("value", [-1, 0x10000, "10", 1.5, True, None])
def test_set_property_bad_value(connected, transport, value):
    transport.writes.clear()
    with pytest.raises(InvalidArgumentError):
        connected.set_property("Interval", value)
    assert transport.writes == []


def test_set_interval_not_connected(connected):
    connected.on_disconnected()
    with pytest.raises(NotConnectedError):
        connected.set_property("Interval", 60)


def test_set_interval_without_characteristic(device):
    device.change_property("Interval", 5)
    transport = FakeTransport()
    device.on_connected(transport)
    transport.flush()
    with pytest.raises(NotAvailableError):
        device.set_interval(10)


@pytest.mark.parametrize("value", [0, 3601])
def test_interval_outside_valid_range_issues_no_write(connected, transport, value):
    transport.writes.clear()
    with pytest.raises(InvalidArgumentError):
        connected.set_property("Interval", value)
    assert transport.writes == []


def test_interval_write_applies_on_success(connected, transport):
    events = _recorder(connected)
    transport.writes.clear()
    connected.set_property("Interval", 60)

    assert transport.writes == [(INTERVAL_VALUE, b"\x3c\x00")]
    assert connected.interval == 30
    transport.flush()
    assert connected.interval == 60
    assert events == [("Interval", 60)]


def test_interval_write_failure_keeps_value(connected, transport):
    transport.write_status[INTERVAL_VALUE] = ATT_ECODE_WRITE_NOT_PERM
    connected.set_property("Interval", 60)
    transport.flush()
    assert connected.interval == 30


def test_unknown_bounds_are_not_enforced(adapter):
    device = adapter.add_device(DEVICE_PATH + "_nr", (0x0001, 0x000D))
    transport = FakeTransport.full()
    transport.descriptors = []
    device.on_connected(transport)
    transport.flush()
    assert device.minimum is None and device.maximum is None

    device.set_property("Interval", 0xFFFF)
    transport.flush()
    assert device.interval == 0xFFFF


# --- inbound frames ---
def test_measurement_indication_is_dispatched_and_confirmed(adapter, channel, connected, transport):
    adapter.register_watcher(":1.5", "/w")
    transport.indicate(indication(MEASUREMENT_VALUE, CELSIUS_37))

    assert transport.confirmations == 1
    (_service, path, device_path, measurement), = channel.delivered
    assert (path, device_path) == ("/w", DEVICE_PATH)
    assert measurement.mantissa == 370
    assert measurement.exponent == -1
    assert measurement.kind == "final"


def test_measurement_falls_back_to_device_type(adapter, channel, connected, transport):
    adapter.register_watcher(":1.5", "/w")
    transport.indicate(indication(MEASUREMENT_VALUE, CELSIUS_37))
    assert channel.delivered[0][3].temperature_type == "body"


def test_measurement_type_field_wins(adapter, channel, connected, transport):
    adapter.register_watcher(":1.5", "/w")
    transport.indicate(indication(MEASUREMENT_VALUE, bytes([0x04]) + CELSIUS_37[1:] + bytes([0x08])))
    assert channel.delivered[0][3].temperature_type == "toe"


def test_interval_indication_updates_property(connected, transport):
    events = _recorder(connected)
    transport.indicate(indication(INTERVAL_VALUE, b"\x78\x00"))
    assert connected.interval == 120
    assert events == [("Interval", 120)]
    assert transport.confirmations == 1


def test_indication_on_other_known_handle_is_still_confirmed(connected, transport, channel):
    transport.indicate(indication(TYPE_VALUE, b"\x02"))
    assert transport.confirmations == 1
    assert channel.delivered == []


def test_truncated_measurement_is_dropped_but_confirmed(adapter, channel, connected, transport):
    adapter.register_watcher(":1.5", "/w")
    transport.indicate(indication(MEASUREMENT_VALUE, CELSIUS_37[:3]))
    assert channel.delivered == []
    assert transport.confirmations == 1


def test_unknown_handle_is_dropped(adapter, channel, connected, transport):
    adapter.register_watcher(":1.5", "/w")
    transport.indicate(indication(0x0FFF, CELSIUS_37))
    assert channel.delivered == []
    assert transport.confirmations == 0


def test_short_frame_is_dropped(connected, transport):
    transport.indicate(b"\x1d\x03")
    assert transport.confirmations == 0


def test_intermediate_notification_reaches_only_intermediate_watchers(adapter, channel, connected, transport):
    adapter.register_watcher(":1.5", "/final-only")
    adapter.register_watcher(":1.6", "/both")
    adapter.enable_intermediate(":1.6", "/both")

    transport.notify(notification(INTERMEDIATE_VALUE, CELSIUS_37))

    assert [(d[1], d[3].kind) for d in channel.delivered] == [("/both", "intermediate")]
    assert transport.confirmations == 0


def test_notification_on_measurement_handle_is_ignored(adapter, channel, connected, transport):
    adapter.register_watcher(":1.5", "/w")
    transport.notify(notification(MEASUREMENT_VALUE, CELSIUS_37))
    assert channel.delivered == []


def test_disconnect_unregisters_handlers(connected, transport):
    connected.on_disconnected()
    assert transport.handlers == {}
    assert not connected.is_connected


def test_confirmation_can_be_disabled(channel, transport):
    from thermobridge.profile.adapter import ThermometerAdapter

    adapter = ThermometerAdapter("/org/bluez/hci1", channel, confirm_indications=False)
    device = adapter.add_device("/org/bluez/hci1/dev_AA_BB_CC_DD_EE_FF", (0x0001, 0x000D))
    device.on_connected(transport)
    transport.flush()
    transport.indicate(indication(MEASUREMENT_VALUE, CELSIUS_37))
    assert transport.confirmations == 0
