import struct
from datetime import datetime, timedelta, timezone

import pytest

from timeflip.exception import (
    DecodeError,
    EndOfHistory,
    EntryTooShortError,
    InvalidEntryFacetError,
    InvalidHardwareErrorError,
    InvalidSyncTypeError,
    InvalidTimestampError,
    SyncStateTooShortError,
)
from timeflip.protocol import (
    Entry,
    SyncState,
    SyncType,
    build_history_read_request,
    build_history_since_request,
    decode_entry,
    decode_sync_state,
    split_facet_byte,
)
from timeflip.types import Facet

T = datetime(2023, 10, 1, 12, 0, tzinfo=timezone.utc)


def record(entry_id, facet_byte, timestamp, duration):
    return struct.pack(">IBQI", entry_id, facet_byte, timestamp, duration)


def test_all_zero_record_is_end_of_history():
    with pytest.raises(EndOfHistory):
        decode_entry(bytes(17))
    assert not issubclass(EndOfHistory, DecodeError)


def test_decode_paused_entry():
    entry = decode_entry(record(7, 140, int(T.timestamp()), 30))
    assert entry == Entry(id=7, facet=Facet(12), pause=True, time=T, duration=timedelta(seconds=30))


def test_decode_running_entry():
    entry = decode_entry(record(1, 3, int(T.timestamp()), 600))
    assert entry.facet == Facet(3)
    assert entry.pause is False
    assert entry.duration == timedelta(minutes=10)


def test_entry_string():
    entry = decode_entry(record(7, 140, int(T.timestamp()), 30))
    assert str(entry) == f"7: Facet(12) paused on {T} for 30 seconds"


def test_entry_too_short():
    with pytest.raises(EntryTooShortError) as exc:
        decode_entry(bytes(16))
    assert exc.value.read == 16


@pytest.mark.parametrize("facet_byte", [0, 13, 128, 141])
def test_entry_invalid_facet(facet_byte):
    with pytest.raises(InvalidEntryFacetError):
        decode_entry(record(1, facet_byte, 0, 10))


def test_entry_invalid_timestamp():
    with pytest.raises(InvalidTimestampError) as exc:
        decode_entry(record(1, 1, 0xFFFF_FFFF_FFFF_FFFF, 10))
    assert exc.value.timestamp == 0xFFFF_FFFF_FFFF_FFFF


def test_split_facet_byte():
    assert split_facet_byte(131) == (Facet(3), True)
    assert split_facet_byte(3) == (Facet(3), False)


def test_history_requests():
    assert build_history_read_request(0xFFFF_FFFF) == b"\x01\xff\xff\xff\xff"
    assert build_history_since_request(5) == b"\x02\x00\x00\x00\x05"


@pytest.mark.parametrize(
    "data,expected",
    [
        (b"\x00\x00\x00\x00", SyncState(SyncType.SYNCHRONIZED)),
        (b"\x02\x03\x00\x00", SyncState(SyncType.LED_BRIGHTNESS)),
        (b"\x00\x00\x02\x03", SyncState(SyncType.SYNCHRONIZED, True, True)),
        (b"\x01\x00\x02\x01", SyncState(SyncType.FACTORY_RESET, True, False)),
        (b"\x02\x06\x02\x02", SyncState(SyncType.AUTO_PAUSE, False, True)),
    ],
)
def test_decode_sync_state(data, expected):
    assert decode_sync_state(data) == expected


def test_sync_state_flags():
    state = decode_sync_state(b"\x00\x00\x02\x03")
    assert state.synchronized
    assert state.hardware_error
    assert not decode_sync_state(b"\x02\x01\x00\x00").synchronized


def test_decode_sync_state_errors():
    with pytest.raises(InvalidSyncTypeError):
        decode_sync_state(b"\x09\x09\x00\x00")
    with pytest.raises(InvalidHardwareErrorError):
        decode_sync_state(b"\x00\x00\x01\x00")
    with pytest.raises(SyncStateTooShortError):
        decode_sync_state(b"\x00\x00")
