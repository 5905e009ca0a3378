"""Constants for the TimeFlip2 BLE protocol."""

from __future__ import annotations

# ────────────────────────────────────────────────────────────────
# GATT services
# ────────────────────────────────────────────────────────────────
BATTERY_SERVICE_UUID = "0000180f-0000-1000-8000-00805f9b34fb"
TIMEFLIP_SERVICE_UUID = "f1196f50-71a4-11e6-bdf4-0800200c9a66"

# ────────────────────────────────────────────────────────────────
# GATT characteristics
# ────────────────────────────────────────────────────────────────
BATTERY_LEVEL_CHAR_UUID = "00002a19-0000-1000-8000-00805f9b34fb"  # read/notify
EVENT_CHAR_UUID = "f1196f51-71a4-11e6-bdf4-0800200c9a66"  # read/notify, ASCII text
FACET_CHAR_UUID = "f1196f52-71a4-11e6-bdf4-0800200c9a66"  # read/notify
COMMAND_RESULT_CHAR_UUID = "f1196f53-71a4-11e6-bdf4-0800200c9a66"  # read
COMMAND_CHAR_UUID = "f1196f54-71a4-11e6-bdf4-0800200c9a66"  # write/read (echo)
DOUBLE_TAP_CHAR_UUID = "f1196f55-71a4-11e6-bdf4-0800200c9a66"  # notify
SYSTEM_STATE_CHAR_UUID = "f1196f56-71a4-11e6-bdf4-0800200c9a66"  # read/notify
PASSWORD_CHAR_UUID = "f1196f57-71a4-11e6-bdf4-0800200c9a66"  # write
HISTORY_CHAR_UUID = "f1196f58-71a4-11e6-bdf4-0800200c9a66"  # write/read/notify

# (name, service, characteristic); names match CharacteristicHandles fields
CHARACTERISTICS: tuple[tuple[str, str, str], ...] = (
    ("battery_level", BATTERY_SERVICE_UUID, BATTERY_LEVEL_CHAR_UUID),
    ("event", TIMEFLIP_SERVICE_UUID, EVENT_CHAR_UUID),
    ("facet", TIMEFLIP_SERVICE_UUID, FACET_CHAR_UUID),
    ("command_result", TIMEFLIP_SERVICE_UUID, COMMAND_RESULT_CHAR_UUID),
    ("command", TIMEFLIP_SERVICE_UUID, COMMAND_CHAR_UUID),
    ("double_tap", TIMEFLIP_SERVICE_UUID, DOUBLE_TAP_CHAR_UUID),
    ("system_state", TIMEFLIP_SERVICE_UUID, SYSTEM_STATE_CHAR_UUID),
    ("password", TIMEFLIP_SERVICE_UUID, PASSWORD_CHAR_UUID),
    ("history", TIMEFLIP_SERVICE_UUID, HISTORY_CHAR_UUID),
)

# ────────────────────────────────────────────────────────────────
# Protocol values
# ────────────────────────────────────────────────────────────────
DEFAULT_PASSWORD = b"\x30" * 6
PASSWORD_LENGTH = 6

FACET_COUNT = 12
PAUSE_BIT = 0x80

COMMAND_SUCCESS = 0x02

HISTORY_READ_ENTRY = 0x01
HISTORY_READ_SINCE = 0x02
HISTORY_LAST_ENTRY_ID = 0xFFFF_FFFF
HISTORY_ENTRY_LENGTH = 17

CONNECT_TIMEOUT = 20.0
SCAN_TIMEOUT = 10.0
