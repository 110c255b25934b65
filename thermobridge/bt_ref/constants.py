"""
Core constants for thermobridge.

This module provides centralized constants for Bluetooth operations, organized by category.
"""

# D-Bus Core Constants
DBUS_PROPERTIES = "org.freedesktop.DBus.Properties"
DBUS_OM_IFACE = "org.freedesktop.DBus.ObjectManager"

# BlueZ Core Constants
ADAPTER_NAME = "hci0"
BLUEZ_SERVICE_NAME = "org.bluez"
BLUEZ_NAMESPACE = "/org/bluez/"

# BlueZ Interface Constants
ADAPTER_INTERFACE = BLUEZ_SERVICE_NAME + ".Adapter1"
DEVICE_INTERFACE = BLUEZ_SERVICE_NAME + ".Device1"

# GATT Interface Constants
GATT_SERVICE_INTERFACE = BLUEZ_SERVICE_NAME + ".GattService1"
GATT_CHARACTERISTIC_INTERFACE = BLUEZ_SERVICE_NAME + ".GattCharacteristic1"
GATT_DESCRIPTOR_INTERFACE = BLUEZ_SERVICE_NAME + ".GattDescriptor1"

# Thermometer Interface Constants (exported by the bridge)
THERMOMETER_INTERFACE = BLUEZ_SERVICE_NAME + ".Thermometer"
THERMOMETER_MANAGER_INTERFACE = BLUEZ_SERVICE_NAME + ".ThermometerManager"
THERMOMETER_WATCHER_INTERFACE = BLUEZ_SERVICE_NAME + ".ThermometerWatcher"

# Bus name claimed by the bridge when none is configured
DEFAULT_BUS_NAME = "org.thermobridge"

# D-Bus error names surfaced to facade callers
ERROR_NOT_CONNECTED = BLUEZ_SERVICE_NAME + ".Error.NotConnected"
ERROR_NOT_AVAILABLE = BLUEZ_SERVICE_NAME + ".Error.NotAvailable"
ERROR_INVALID_ARGS = BLUEZ_SERVICE_NAME + ".Error.InvalidArguments"
ERROR_ALREADY_EXISTS = BLUEZ_SERVICE_NAME + ".Error.AlreadyExists"
ERROR_DOES_NOT_EXIST = BLUEZ_SERVICE_NAME + ".Error.DoesNotExist"
ERROR_FAILED = BLUEZ_SERVICE_NAME + ".Error.Failed"

# Result/Error Codes
RESULT_OK = 0
RESULT_ERR = 1
RESULT_ERR_NOT_CONNECTED = 2
RESULT_ERR_NOT_SUPPORTED = 3
RESULT_ERR_WRONG_STATE = 5
RESULT_ERR_BAD_ARGS = 8
RESULT_ERR_NOT_FOUND = 9
RESULT_ERR_NO_REPLY = 14
RESULT_ERR_NOT_AVAILABLE = 27
RESULT_ERR_ALREADY_EXISTS = 28
RESULT_ERR_DECODE = 29

# Base UUID Constants
BASE_UUID__BLUETOOTH = "-0000-1000-8000-00805f9b34fb"


def uuid16_to_str(uuid16: int) -> str:
    """Expand a 16-bit SIG UUID to its 128-bit lower-case string form."""
    return f"0000{uuid16:04x}{BASE_UUID__BLUETOOTH}"


# Health Thermometer Service & Characteristics
HEALTH_THERMOMETER_SVC_UUID = uuid16_to_str(0x1809)
TEMPERATURE_MEASUREMENT_UUID = uuid16_to_str(0x2A1C)
TEMPERATURE_TYPE_UUID = uuid16_to_str(0x2A1D)
INTERMEDIATE_TEMPERATURE_UUID = uuid16_to_str(0x2A1E)
MEASUREMENT_INTERVAL_UUID = uuid16_to_str(0x2A21)

# Descriptors
GATT_CLIENT_CHARAC_CFG_UUID = uuid16_to_str(0x2902)
GATT_CHARAC_VALID_RANGE_UUID = uuid16_to_str(0x2906)

# Client Characteristic Configuration bits
GATT_CLIENT_CHARAC_CFG_NOTIF_BIT = 0x0001
GATT_CLIENT_CHARAC_CFG_IND_BIT = 0x0002
GATT_CLIENT_CHARAC_CFG_DISABLED = 0x0000

# Characteristic property bits
GATT_CHR_PROP_READ = 0x02
GATT_CHR_PROP_WRITE = 0x08
GATT_CHR_PROP_NOTIFY = 0x10
GATT_CHR_PROP_INDICATE = 0x20

# Map BlueZ characteristic Flags strings onto property bits
GATT_CHR_FLAG_BITS = {
    "broadcast": 0x01,
    "read": GATT_CHR_PROP_READ,
    "write-without-response": 0x04,
    "write": GATT_CHR_PROP_WRITE,
    "notify": GATT_CHR_PROP_NOTIFY,
    "indicate": GATT_CHR_PROP_INDICATE,
    "authenticated-signed-writes": 0x40,
    "extended-properties": 0x80,
}

# ATT opcodes of the frames the bridge consumes
ATT_OP_HANDLE_NOTIFY = 0x1B
ATT_OP_HANDLE_IND = 0x1D
ATT_OP_HANDLE_CNF = 0x1E

# ATT envelope: opcode (1) + attribute handle (2)
ATT_ENVELOPE_LEN = 3

# ATT error codes (0 means success)
ATT_ECODE_SUCCESS = 0x00
ATT_ECODE_INVALID_HANDLE = 0x01
ATT_ECODE_READ_NOT_PERM = 0x02
ATT_ECODE_WRITE_NOT_PERM = 0x03
ATT_ECODE_INVALID_PDU = 0x04
ATT_ECODE_AUTHENTICATION = 0x05
ATT_ECODE_REQ_NOT_SUPP = 0x06
ATT_ECODE_INVALID_OFFSET = 0x07
ATT_ECODE_AUTHORIZATION = 0x08
ATT_ECODE_PREP_QUEUE_FULL = 0x09
ATT_ECODE_ATTR_NOT_FOUND = 0x0A
ATT_ECODE_ATTR_NOT_LONG = 0x0B
ATT_ECODE_INSUFF_ENCR_KEY_SIZE = 0x0C
ATT_ECODE_INVAL_ATTR_VALUE_LEN = 0x0D
ATT_ECODE_UNLIKELY = 0x0E
ATT_ECODE_INSUFF_ENC = 0x0F
ATT_ECODE_UNSUPP_GRP_TYPE = 0x10
ATT_ECODE_INSUFF_RESOURCES = 0x11
ATT_ECODE_IO = 0x80
ATT_ECODE_TIMEOUT = 0x81
ATT_ECODE_ABORTED = 0x82

ATT_ECODE_STRINGS = {
    ATT_ECODE_INVALID_HANDLE: "Invalid handle",
    ATT_ECODE_READ_NOT_PERM: "Attribute can't be read",
    ATT_ECODE_WRITE_NOT_PERM: "Attribute can't be written",
    ATT_ECODE_INVALID_PDU: "Attribute PDU was invalid",
    ATT_ECODE_AUTHENTICATION: "Attribute requires authentication before read/write",
    ATT_ECODE_REQ_NOT_SUPP: "Server doesn't support the request received",
    ATT_ECODE_INVALID_OFFSET: "Offset past the end of the attribute",
    ATT_ECODE_AUTHORIZATION: "Attribute requires authorization before read/write",
    ATT_ECODE_PREP_QUEUE_FULL: "Too many prepare writes have been queued",
    ATT_ECODE_ATTR_NOT_FOUND: "No attribute found within the given range",
    ATT_ECODE_ATTR_NOT_LONG: "Attribute can't be read/written using Read Blob Req",
    ATT_ECODE_INSUFF_ENCR_KEY_SIZE: "Encryption Key Size is insufficient",
    ATT_ECODE_INVAL_ATTR_VALUE_LEN: "Attribute value length is invalid",
    ATT_ECODE_UNLIKELY: "Request attribute has encountered an unlikely error",
    ATT_ECODE_INSUFF_ENC: "Encryption required before read/write",
    ATT_ECODE_UNSUPP_GRP_TYPE: "Attribute type is not a supported grouping attribute",
    ATT_ECODE_INSUFF_RESOURCES: "Insufficient Resources to complete the request",
    ATT_ECODE_IO: "Internal application error: I/O",
    ATT_ECODE_TIMEOUT: "A timeout occured",
    ATT_ECODE_ABORTED: "The operation was aborted",
}

# Temperature Measurement flag fields
TEMP_UNITS = 0x01
TEMP_TIME_STAMP = 0x02
TEMP_TYPE = 0x04

FLOAT_MAX_MANTISSA = 16777216  # 2^24

# Field sizes
VALID_RANGE_DESC_SIZE = 4
TEMPERATURE_TYPE_SIZE = 1
MEASUREMENT_INTERVAL_SIZE = 2
TEMPERATURE_FLOAT_SIZE = 4
TIME_STAMP_SIZE = 7

# Temperature Type enumeration (index == wire code, 0 is reserved)
TEMPERATURE_TYPES = (
    "<reserved>",
    "armpit",
    "body",
    "ear",
    "finger",
    "intestines",
    "mouth",
    "rectum",
    "toe",
    "tympanum",
)

UNIT_CELSIUS = "celsius"
UNIT_FAHRENHEIT = "fahrenheit"

MEASUREMENT_FINAL = "final"
MEASUREMENT_INTERMEDIATE = "intermediate"

# Thermometer property names
PROPERTY_INTERMEDIATE = "Intermediate"
PROPERTY_INTERVAL = "Interval"
PROPERTY_MAXIMUM = "Maximum"
PROPERTY_MINIMUM = "Minimum"

UINT16_MAX = 0xFFFF

# UUID Mapping
UUID_NAMES = {
    HEALTH_THERMOMETER_SVC_UUID: "Health Thermometer",
    TEMPERATURE_MEASUREMENT_UUID: "Temperature Measurement",
    TEMPERATURE_TYPE_UUID: "Temperature Type",
    INTERMEDIATE_TEMPERATURE_UUID: "Intermediate Temperature",
    MEASUREMENT_INTERVAL_UUID: "Measurement Interval",
    GATT_CLIENT_CHARAC_CFG_UUID: "Client Characteristic Configuration",
    GATT_CHARAC_VALID_RANGE_UUID: "Valid Range",
}
