import os
import tempfile

# Keep log files and config lookups out of the real home directory
_TMP_HOME = tempfile.mkdtemp(prefix="thermobridge-tests-")
for _var in ("XDG_DATA_HOME", "XDG_CACHE_HOME", "XDG_CONFIG_HOME"):
    os.environ[_var] = os.path.join(_TMP_HOME, _var.lower())
for _var in ("THERMOBRIDGE_CONFIG", "THERMOBRIDGE_LOG_LEVEL", "THERMOBRIDGE_BUS_NAME"):
    os.environ.pop(_var, None)

import pytest  # noqa: E402

from tests.helpers.fakes import SERVICE_RANGE, FakeChannel, FakeTransport  # noqa: E402
from thermobridge.profile.adapter import ThermometerAdapter  # noqa: E402

ADAPTER_PATH = "/org/bluez/hci0"
DEVICE_PATH = "/org/bluez/hci0/dev_00_11_22_33_44_55"


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def adapter(channel):
    return ThermometerAdapter(ADAPTER_PATH, channel)


@pytest.fixture
def device(adapter):
    return adapter.add_device(DEVICE_PATH, SERVICE_RANGE)


@pytest.fixture
def transport():
    return FakeTransport.full()


@pytest.fixture
def connected(device, transport):
    """Device with a fully discovered and configured thermometer service."""
    device.on_connected(transport)
    transport.flush()
    return device
