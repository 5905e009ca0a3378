"""Shared fakes: a scripted bluetooth session and a fake TimeFlip2."""

from __future__ import annotations

from collections import defaultdict

import pytest

from timeflip.const import (
    CHARACTERISTICS,
    COMMAND_CHAR_UUID,
    COMMAND_RESULT_CHAR_UUID,
    COMMAND_SUCCESS,
)
from timeflip.events import CharacteristicValueEvent, DeviceConnectionEvent
from timeflip.session import RawEventBus

ADDRESS = "AA:BB:CC:DD:EE:FF"


class DummyDevice:
    def __init__(self, address=ADDRESS, name="TimeFlip2", details=None):
        self.address = address
        self.name = name
        self.details = details


class DummySession:
    """Stands in for BluetoothSession.

    Reads are answered from per-characteristic queues. The command
    characteristic echoes the last written command as successful and the
    result characteristic reads empty unless something was queued.
    Raw events go through a RawEventBus like the real session, so a stream
    only sees what is published while it is open.
    """

    def __init__(self, devices=None):
        self.devices = [DummyDevice()] if devices is None else devices
        self.device = None
        self.connected = False
        self.connect_calls = 0
        self.reads = defaultdict(list)
        self.read_log = []
        self.writes = []
        self.started = []
        self.stopped = []
        self.events = RawEventBus()
        self.pending = defaultdict(list)

    # discovery / connection

    async def get_devices(self, timeout=10.0):
        return list(self.devices)

    @property
    def device_id(self):
        return self.device.address

    @property
    def is_connected(self):
        return self.connected

    async def connect(self, device):
        self.connect_calls += 1
        self.device = device
        self.connected = True

    async def disconnect(self):
        was_connected = self.connected
        self.connected = False
        if was_connected:
            self.drop_connection()

    def resolve_characteristics(self):
        return {name: char_uuid for name, _service, char_uuid in CHARACTERISTICS}

    # characteristic access

    def queue_read(self, characteristic, *values):
        self.reads[characteristic].extend(bytes(v) for v in values)

    async def read_characteristic(self, characteristic):
        self.read_log.append(characteristic)
        queue = self.reads[characteristic]
        if queue:
            return queue.pop(0)
        if characteristic == COMMAND_CHAR_UUID:
            last = [data for ch, data in self.writes if ch == COMMAND_CHAR_UUID][-1]
            return bytes([last[0], COMMAND_SUCCESS])
        if characteristic == COMMAND_RESULT_CHAR_UUID:
            return b""
        raise AssertionError(f"unexpected read of {characteristic}")

    async def write_characteristic(self, characteristic, data):
        self.writes.append((characteristic, bytes(data)))
        for notification in self.pending.pop(characteristic, []):
            if notification is None:
                self.drop_connection()
            else:
                self.notify(*notification)

    def writes_to(self, characteristic):
        return [data for ch, data in self.writes if ch == characteristic]

    async def start_notify(self, characteristic):
        self.started.append(characteristic)

    async def stop_notify(self, characteristic):
        self.stopped.append(characteristic)

    # event streams

    def notify(self, characteristic, value):
        """Deliver a notification to the streams open right now."""
        self.events.publish(CharacteristicValueEvent(characteristic, bytes(value)))

    def notify_after_write(self, written, *notifications):
        """Deliver ``(characteristic, value)`` notifications once ``written`` is written to.

        ``None`` drops the connection.
        """
        self.pending[written].extend(notifications)

    def drop_connection(self):
        self.events.publish(DeviceConnectionEvent(self.device_id, False))
        self.events.end()

    def event_stream(self):
        return self.events.open()

    def characteristic_event_stream(self, characteristic):
        return self.events.open(characteristic)


@pytest.fixture
def session():
    return DummySession()
