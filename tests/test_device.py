import logging
import struct
from datetime import datetime, timezone

import pytest

from timeflip.config import Config, Side
from timeflip.const import (
    BATTERY_LEVEL_CHAR_UUID,
    COMMAND_CHAR_UUID,
    COMMAND_RESULT_CHAR_UUID,
    DEFAULT_PASSWORD,
    DOUBLE_TAP_CHAR_UUID,
    EVENT_CHAR_UUID,
    FACET_CHAR_UUID,
    HISTORY_CHAR_UUID,
    PASSWORD_CHAR_UUID,
    SYSTEM_STATE_CHAR_UUID,
)
from timeflip.device import TimeFlip
from timeflip.events import BatteryLevel, DeviceConnectionEvent, Disconnected, DoubleTap, FacetChanged
from timeflip.exception import (
    AccelerometerError,
    CommandExecutionFailedError,
    EndOfHistory,
    FlashError,
    HardwareError,
    InvalidCharacteristicDataError,
    NoDeviceError,
    PasswordLengthError,
    SyncNotConvergingError,
)
from timeflip.protocol import Entry
from timeflip.types import Color, Facet, Minutes, Percent, PomodoroTask

from .conftest import ADDRESS, DummyDevice, DummySession

T = 1_696_161_600  # 2023-10-01 12:00 UTC


def record(entry_id, facet_byte=1, timestamp=T, duration=30):
    return struct.pack(">IBQI", entry_id, facet_byte, timestamp, duration)


async def connect(session):
    return await TimeFlip.connect(session=session)


# ────────────────────────────────────────────────────────────────
# connect
# ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_connect_writes_password_last(session):
    timeflip = await connect(session)
    assert session.connect_calls == 1
    assert session.writes[-1] == (PASSWORD_CHAR_UUID, DEFAULT_PASSWORD)
    assert timeflip.address == ADDRESS


@pytest.mark.asyncio
async def test_connect_without_device():
    with pytest.raises(NoDeviceError):
        await connect(DummySession(devices=[]))


@pytest.mark.asyncio
async def test_connect_picks_requested_address():
    session = DummySession(devices=[DummyDevice("11:22"), DummyDevice("33:44")])
    timeflip = await TimeFlip.connect(session=session, address="33:44")
    assert timeflip.address == "33:44"
    with pytest.raises(NoDeviceError):
        await TimeFlip.connect(session=DummySession(devices=[DummyDevice("11:22")]), address="55:66")


@pytest.mark.asyncio
async def test_connect_skips_connecting_when_connected(session):
    session.device = session.devices[0]
    session.connected = True
    await connect(session)
    assert session.connect_calls == 0


@pytest.mark.asyncio
async def test_connect_warns_when_not_paired(caplog):
    device = DummyDevice(details={"props": {"Paired": False}})
    with caplog.at_level(logging.WARNING):
        await connect(DummySession(devices=[device]))
    assert "not paired" in caplog.text


@pytest.mark.asyncio
async def test_connect_rejects_bad_password(session):
    with pytest.raises(PasswordLengthError) as exc:
        await TimeFlip.connect(session=session, password=b"123")
    assert exc.value.value == b"123"
    assert session.connect_calls == 0


# ────────────────────────────────────────────────────────────────
# reads and commands
# ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_reads(session):
    timeflip = await connect(session)
    session.queue_read(BATTERY_LEVEL_CHAR_UUID, [77])
    session.queue_read(FACET_CHAR_UUID, [4])
    session.queue_read(EVENT_CHAR_UUID, b"TimeFlip v4.0")
    session.queue_read(SYSTEM_STATE_CHAR_UUID, [2, 3, 0, 0])
    assert await timeflip.battery_level() == Percent(77)
    assert await timeflip.facet() == Facet(4)
    assert await timeflip.last_event() == "TimeFlip v4.0"
    assert (await timeflip.sync_state()).sync.value == "LED brightness"


@pytest.mark.asyncio
async def test_command_checks_echo_then_reads_result(session):
    timeflip = await connect(session)
    session.queue_read(COMMAND_RESULT_CHAR_UUID, b"\x07" + struct.pack(">Q", T))
    assert await timeflip.time() == datetime.fromtimestamp(T, tz=timezone.utc)
    assert session.writes_to(COMMAND_CHAR_UUID) == [b"\x07"]
    assert session.read_log[-2:] == [COMMAND_CHAR_UUID, COMMAND_RESULT_CHAR_UUID]


@pytest.mark.asyncio
async def test_command_failed_echo(session):
    timeflip = await connect(session)
    session.queue_read(COMMAND_CHAR_UUID, b"\x09\x01")
    with pytest.raises(CommandExecutionFailedError) as exc:
        await timeflip.brightness(Percent(50))
    assert exc.value.command == 0x09
    assert COMMAND_RESULT_CHAR_UUID not in session.read_log


@pytest.mark.asyncio
async def test_command_echo_of_other_command(session):
    timeflip = await connect(session)
    session.queue_read(COMMAND_CHAR_UUID, b"\x04\x02")
    with pytest.raises(CommandExecutionFailedError):
        await timeflip.pause()


@pytest.mark.asyncio
async def test_simple_commands(session):
    timeflip = await connect(session)
    await timeflip.lock()
    await timeflip.unlock()
    await timeflip.pause()
    await timeflip.unpause()
    await timeflip.auto_pause(Minutes(0))
    await timeflip.color(Facet(1), Color(1, 2, 3))
    await timeflip.task(Facet(2), PomodoroTask(60))
    assert [w[0] for w in session.writes_to(COMMAND_CHAR_UUID)] == [4, 4, 6, 6, 5, 0x11, 0x13]


@pytest.mark.asyncio
async def test_system_status(session):
    timeflip = await connect(session)
    session.queue_read(COMMAND_RESULT_CHAR_UUID, b"\x02\x01\x00\x0a")
    status = await timeflip.system_status()
    assert status.lock_mode is False
    assert status.pause_mode is True
    assert status.auto_pause_time == Minutes(10)


# ────────────────────────────────────────────────────────────────
# history
# ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_read_history_entry(session):
    timeflip = await connect(session)
    session.queue_read(HISTORY_CHAR_UUID, record(9, 140))
    entry = await timeflip.read_last_history_entry()
    assert entry.id == 9
    assert entry.pause is True
    assert session.writes_to(HISTORY_CHAR_UUID) == [b"\x01\xff\xff\xff\xff"]


@pytest.mark.asyncio
async def test_read_history_entry_empty(session):
    timeflip = await connect(session)
    session.queue_read(HISTORY_CHAR_UUID, bytes(17))
    with pytest.raises(EndOfHistory):
        await timeflip.read_history_entry(1)


@pytest.mark.asyncio
async def test_read_history_since_keeps_delivery_order(session):
    timeflip = await connect(session)
    session.notify_after_write(
        HISTORY_CHAR_UUID,
        *[(HISTORY_CHAR_UUID, record(entry_id)) for entry_id in (5, 3, 7)],
        (HISTORY_CHAR_UUID, bytes(17)),
        (HISTORY_CHAR_UUID, record(8)),
    )

    entries = await timeflip.read_history_since(3)

    assert [e.id for e in entries] == [5, 3, 7]
    assert all(isinstance(e, Entry) for e in entries)
    assert session.writes_to(HISTORY_CHAR_UUID) == [b"\x02\x00\x00\x00\x03"]
    assert session.started == [HISTORY_CHAR_UUID]
    assert session.stopped == [HISTORY_CHAR_UUID]
    assert len(session.events) == 0


@pytest.mark.asyncio
async def test_read_history_since_skips_bad_entries(session):
    timeflip = await connect(session)
    session.notify_after_write(
        HISTORY_CHAR_UUID,
        (HISTORY_CHAR_UUID, record(1)),
        (HISTORY_CHAR_UUID, b"\x00\x01"),
        (HISTORY_CHAR_UUID, record(2, facet_byte=13)),
        (FACET_CHAR_UUID, [3]),
        (HISTORY_CHAR_UUID, record(3)),
        (HISTORY_CHAR_UUID, bytes(17)),
    )
    entries = await timeflip.read_history_since(0)
    assert [e.id for e in entries] == [1, 3]
    assert session.stopped == [HISTORY_CHAR_UUID]


@pytest.mark.asyncio
async def test_read_history_since_unsubscribes_on_error(session):
    timeflip = await connect(session)
    session.notify_after_write(HISTORY_CHAR_UUID, (HISTORY_CHAR_UUID, record(1)), None)
    with pytest.raises(InvalidCharacteristicDataError):
        await timeflip.read_history_since(0)
    assert session.stopped == [HISTORY_CHAR_UUID]
    assert len(session.events) == 0


@pytest.mark.asyncio
async def test_read_history_since_keeps_live_events(session):
    timeflip = await connect(session)
    await timeflip.subscribe_facet()
    events = timeflip.event_stream()
    session.notify_after_write(
        HISTORY_CHAR_UUID,
        (HISTORY_CHAR_UUID, record(1)),
        (FACET_CHAR_UUID, [4]),
        (HISTORY_CHAR_UUID, bytes(17)),
    )

    entries = await timeflip.read_history_since(0)
    await timeflip.disconnect()
    received = [event async for event in events]

    assert [e.id for e in entries] == [1]
    assert received == [FacetChanged(Facet(4)), Disconnected()]


# ────────────────────────────────────────────────────────────────
# events
# ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_subscriptions_are_explicit(session):
    timeflip = await connect(session)
    assert session.started == []
    await timeflip.subscribe_double_tap()
    await timeflip.subscribe_facet()
    await timeflip.unsubscribe_facet()
    assert session.started == [DOUBLE_TAP_CHAR_UUID, FACET_CHAR_UUID]
    assert session.stopped == [FACET_CHAR_UUID]


@pytest.mark.asyncio
async def test_event_stream_skips_undecodable(session, caplog):
    timeflip = await connect(session)
    events = timeflip.event_stream()
    session.events.publish(DeviceConnectionEvent(ADDRESS, True))
    session.notify(DOUBLE_TAP_CHAR_UUID, [131])
    session.notify(BATTERY_LEVEL_CHAR_UUID, [200])
    session.notify(HISTORY_CHAR_UUID, record(1))
    session.notify(FACET_CHAR_UUID, [2])
    session.notify(BATTERY_LEVEL_CHAR_UUID, [50])
    session.drop_connection()

    with caplog.at_level(logging.DEBUG):
        received = [event async for event in events]

    assert received == [
        DoubleTap(Facet(3), True),
        FacetChanged(Facet(2)),
        BatteryLevel(Percent(50)),
        Disconnected(),
    ]
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 2


# ────────────────────────────────────────────────────────────────
# synchronization
# ────────────────────────────────────────────────────────────────


def config():
    return Config(
        brightness=Percent(80),
        sides=(Side(Facet(1), "Work", Color(255, 0, 0), PomodoroTask(1500)),),
    )


@pytest.mark.asyncio
async def test_sync_walks_directives(session):
    timeflip = await connect(session)
    session.queue_read(
        SYSTEM_STATE_CHAR_UUID,
        [2, 1, 0, 0],
        [2, 2, 0, 0],
        [2, 3, 0, 0],
        [2, 4, 0, 0],
        [2, 5, 0, 0],
        [2, 6, 0, 0],
        [0, 0, 0, 0],
    )
    await timeflip.sync(config())

    ids = [w[0] for w in session.writes_to(COMMAND_CHAR_UUID)]
    assert ids == [0x08] + [0x11] * 12 + [0x09, 0x0A] + [0x13] * 12 + [0x05]
    colors = [w for w in session.writes_to(COMMAND_CHAR_UUID) if w[0] == 0x11]
    assert [c[1] for c in colors] == list(range(1, 13))
    assert colors[0] == bytes([0x11, 1, 0, 255, 0, 0, 0, 0])
    assert session.writes_to(COMMAND_CHAR_UUID)[13] == b"\x09\x50"


@pytest.mark.asyncio
async def test_sync_fails_on_repeated_directive(session):
    timeflip = await connect(session)
    session.queue_read(SYSTEM_STATE_CHAR_UUID, [2, 1, 0, 0], [2, 1, 0, 0], [0, 0, 0, 0])

    with pytest.raises(SyncNotConvergingError) as exc:
        await timeflip.sync(config())

    assert exc.value.directive.value == "time"
    assert session.read_log.count(SYSTEM_STATE_CHAR_UUID) == 2
    assert len(session.writes_to(COMMAND_CHAR_UUID)) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "hardware,error",
    [([2, 1], AccelerometerError), ([2, 2], FlashError), ([2, 3], HardwareError)],
)
async def test_sync_fails_on_hardware_error(session, hardware, error):
    timeflip = await connect(session)
    session.queue_read(SYSTEM_STATE_CHAR_UUID, [2, 3] + hardware)
    with pytest.raises(error):
        await timeflip.sync(config())
    assert session.writes_to(COMMAND_CHAR_UUID) == []


@pytest.mark.asyncio
async def test_sync_already_synchronized(session):
    timeflip = await connect(session)
    session.queue_read(SYSTEM_STATE_CHAR_UUID, [0, 0, 0, 0])
    await timeflip.sync(config())
    assert session.writes_to(COMMAND_CHAR_UUID) == []


@pytest.mark.asyncio
async def test_write_config_order(session):
    timeflip = await connect(session)
    await timeflip.write_config(config())
    ids = [w[0] for w in session.writes_to(COMMAND_CHAR_UUID)]
    assert ids[:3] == [0x09, 0x0A, 0x05]
    assert ids[3:] == [0x11, 0x13] * 12
    assert session.read_log.count(SYSTEM_STATE_CHAR_UUID) == 0
