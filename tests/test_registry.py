import pytest

from tests.helpers.fakes import HookRecorder
from thermobridge.core.errors import AlreadyExistsError, DoesNotExistError, InvalidArgumentError
from thermobridge.gatt.codec import Measurement
from thermobridge.profile.registry import WatcherRegistry

DEVICE = "/org/bluez/hci0/dev_00_11_22_33_44_55"


@pytest.fixture
def hooks():
    return HookRecorder()


@pytest.fixture
def registry(channel, hooks):
    return WatcherRegistry(
        channel,
        on_enable_final=hooks.hook("enable_final"),
        on_disable_final=hooks.hook("disable_final"),
        on_enable_intermediate=hooks.hook("enable_intermediate"),
        on_disable_intermediate=hooks.hook("disable_intermediate"),
    )


def test_enable_fires_only_on_first_final(registry, hooks):
    registry.register_final(":1.1", "/a")
    registry.register_final(":1.2", "/b")
    registry.register_final(":1.1", "/c")
    assert hooks.calls == ["enable_final"]


def test_disable_fires_only_when_last_final_leaves(registry, hooks):
    registry.register_final(":1.1", "/a")
    registry.register_final(":1.2", "/b")
    registry.unregister_final(":1.1", "/a")
    assert hooks.count("disable_final") == 0
    registry.unregister_final(":1.2", "/b")
    assert hooks.count("disable_final") == 1


def test_duplicate_final_registration(registry, channel):
    registry.register_final(":1.1", "/a")
    with pytest.raises(AlreadyExistsError):
        registry.register_final(":1.1", "/a")
    assert len(registry.final_watchers) == 1
    assert len(channel.watches) == 1


def test_same_path_different_service_are_distinct(registry):
    registry.register_final(":1.1", "/a")
    registry.register_final(":1.2", "/a")
    assert len(registry.final_watchers) == 2


def test_unregister_unknown_final(registry):
    with pytest.raises(DoesNotExistError):
        registry.unregister_final(":1.1", "/nope")


def test_intermediate_requires_final(registry, hooks):
    with pytest.raises(DoesNotExistError):
        registry.register_intermediate(":1.1", "/a")
    assert hooks.calls == []


def test_duplicate_intermediate(registry):
    registry.register_final(":1.1", "/a")
    registry.register_intermediate(":1.1", "/a")
    with pytest.raises(AlreadyExistsError):
        registry.register_intermediate(":1.1", "/a")


def test_unregister_unknown_intermediate(registry):
    registry.register_final(":1.1", "/a")
    with pytest.raises(DoesNotExistError):
        registry.unregister_intermediate(":1.1", "/a")


def test_intermediate_transitions(registry, hooks):
    registry.register_final(":1.1", "/a")
    registry.register_final(":1.2", "/b")
    registry.register_intermediate(":1.1", "/a")
    registry.register_intermediate(":1.2", "/b")
    registry.unregister_intermediate(":1.1", "/a")
    registry.unregister_intermediate(":1.2", "/b")
    assert hooks.count("enable_intermediate") == 1
    assert hooks.count("disable_intermediate") == 1


def test_unregister_final_cascades_into_intermediate(registry, hooks, channel):
    registry.register_final(":1.1", "/a")
    registry.register_intermediate(":1.1", "/a")
    registry.unregister_final(":1.1", "/a")

    assert registry.final_watchers == []
    assert registry.intermediate_watchers == []
    assert hooks.calls == ["enable_final", "enable_intermediate", "disable_intermediate", "disable_final"]
    assert channel.cancelled == [1]


def test_watcher_disconnect_removes_it(registry, hooks, channel):
    registry.register_final(":1.1", "/a")
    registry.register_intermediate(":1.1", "/a")
    registry.register_final(":1.2", "/b")

    channel.disconnect(":1.1")

    assert not registry.is_final(":1.1", "/a")
    assert not registry.is_intermediate(":1.1", "/a")
    assert registry.is_final(":1.2", "/b")
    assert hooks.count("disable_intermediate") == 1
    assert hooks.count("disable_final") == 0


def test_dispatch_by_kind(registry, channel):
    registry.register_final(":1.1", "/a")
    registry.register_final(":1.2", "/b")
    registry.register_intermediate(":1.2", "/b")

    final = Measurement(exponent=-1, mantissa=370)
    provisional = Measurement(exponent=-1, mantissa=365, kind="intermediate")

    assert registry.dispatch(DEVICE, final) == 2
    assert registry.dispatch(DEVICE, provisional) == 1
    assert [(d[1], d[3].kind) for d in channel.delivered] == [
        ("/a", "final"),
        ("/b", "final"),
        ("/b", "intermediate"),
    ]


def test_dispatch_survives_failing_watcher(registry, channel):
    registry.register_final(":1.1", "/broken")
    registry.register_final(":1.2", "/ok")
    channel.failing.add("/broken")

    assert registry.dispatch(DEVICE, Measurement(exponent=0, mantissa=37)) == 1
    assert [d[1] for d in channel.delivered] == ["/ok"]


def test_clear_skips_hooks(registry, hooks, channel):
    registry.register_final(":1.1", "/a")
    registry.register_intermediate(":1.1", "/a")
    registry.clear()
    assert hooks.calls == ["enable_final", "enable_intermediate"]
    assert channel.cancelled == [1]
    assert not registry.has_final_watchers


@pytest.mark.parametrize("service, path", [("", "/a"), (":1.1", ""), (":1.1", "relative")])
def test_invalid_arguments(registry, service, path):
    with pytest.raises(InvalidArgumentError):
        registry.register_final(service, path)
