"""Decoders for TimeFlip2 history records and the sync status word."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from .commands import timestamp_to_datetime
from .const import HISTORY_ENTRY_LENGTH, HISTORY_READ_ENTRY, HISTORY_READ_SINCE, PAUSE_BIT
from .exception import (
    EndOfHistory,
    EntryTooShortError,
    FacetError,
    InvalidEntryFacetError,
    InvalidHardwareErrorError,
    InvalidSyncTypeError,
    InvalidTimestampError,
    SyncStateTooShortError,
)
from .types import Facet

__all__ = [
    "Entry",
    "SyncType",
    "SyncState",
    "split_facet_byte",
    "decode_entry",
    "decode_sync_state",
    "build_history_read_request",
    "build_history_since_request",
]


# ────────────────────────────────────────────────────────────────
# Facet byte with pause bit (history records and double tap events)
# ────────────────────────────────────────────────────────────────


def split_facet_byte(value: int) -> tuple[Facet, bool]:
    """Split ``facet + 128 * pause`` into (Facet, pause).

    Raises FacetError if the remaining index is not a valid facet.
    """
    if value & PAUSE_BIT:
        return Facet(value - PAUSE_BIT), True
    return Facet(value), False


# ────────────────────────────────────────────────────────────────
# History
# ────────────────────────────────────────────────────────────────


def build_history_read_request(entry_id: int) -> bytes:
    """Request a single entry; 0xFFFFFFFF requests the most recent one."""
    return struct.pack(">BI", HISTORY_READ_ENTRY, entry_id)


def build_history_since_request(entry_id: int) -> bytes:
    """Request notifications for all entries starting at ``entry_id``."""
    return struct.pack(">BI", HISTORY_READ_SINCE, entry_id)


@dataclass(frozen=True)
class Entry:
    """An entry from TimeFlip2's history."""

    id: int
    facet: Facet
    pause: bool
    # UTC time the dice was flipped
    time: datetime
    duration: timedelta

    def __str__(self) -> str:
        return (
            f"{self.id}: {self.facet} {'paused' if self.pause else 'started'} "
            f"on {self.time} for {int(self.duration.total_seconds())} seconds"
        )


def decode_entry(data: bytes) -> Entry:
    """Decode ``[id:u32, facet_with_pause:u8, start:u64, duration:u32]``.

    Raises EndOfHistory for the all-zero record.
    """
    if len(data) < HISTORY_ENTRY_LENGTH:
        raise EntryTooShortError(len(data), HISTORY_ENTRY_LENGTH)
    entry_id, facet_byte, start_time, duration = struct.unpack_from(">IBQI", data)

    if entry_id == 0 and facet_byte == 0 and start_time == 0 and duration == 0:
        raise EndOfHistory()

    try:
        facet, pause = split_facet_byte(facet_byte)
    except FacetError as ex:
        raise InvalidEntryFacetError(ex) from ex

    try:
        time = timestamp_to_datetime(start_time)
    except (OverflowError, ValueError, OSError) as ex:
        raise InvalidTimestampError(start_time) from ex

    return Entry(
        id=entry_id,
        facet=facet,
        pause=pause,
        time=time,
        duration=timedelta(seconds=duration),
    )


# ────────────────────────────────────────────────────────────────
# Sync state
# ────────────────────────────────────────────────────────────────


class SyncType(Enum):
    """Which part of the configuration the device wants synchronized."""

    SYNCHRONIZED = "synchronized"
    FACTORY_RESET = "factory reset"
    TIME = "time"
    FACET_COLOR = "facet color"
    LED_BRIGHTNESS = "LED brightness"
    BLINK_INTERVAL = "blink interval"
    TASK_PARAMETERS = "task parameters"
    AUTO_PAUSE = "auto pause"

    def __str__(self) -> str:
        return self.value


_SYNC_TYPES: dict[tuple[int, int], SyncType] = {
    (0, 0): SyncType.SYNCHRONIZED,
    (1, 0): SyncType.FACTORY_RESET,
    (2, 1): SyncType.TIME,
    (2, 2): SyncType.FACET_COLOR,
    (2, 3): SyncType.LED_BRIGHTNESS,
    (2, 4): SyncType.BLINK_INTERVAL,
    (2, 5): SyncType.TASK_PARAMETERS,
    (2, 6): SyncType.AUTO_PAUSE,
}

# (accelerometer_error, flash_error)
_HARDWARE_ERRORS: dict[tuple[int, int], tuple[bool, bool]] = {
    (0, 0): (False, False),
    (2, 1): (True, False),
    (2, 2): (False, True),
    (2, 3): (True, True),
}


@dataclass(frozen=True)
class SyncState:
    """Synchronization state used to keep the application and the TimeFlip2 up-to-date."""

    sync: SyncType
    accelerometer_error: bool = False
    flash_error: bool = False

    @property
    def synchronized(self) -> bool:
        return self.sync is SyncType.SYNCHRONIZED

    @property
    def hardware_error(self) -> bool:
        return self.accelerometer_error or self.flash_error


def decode_sync_state(data: bytes) -> SyncState:
    if len(data) < 4:
        raise SyncStateTooShortError(len(data))

    sync = _SYNC_TYPES.get((data[0], data[1]))
    if sync is None:
        raise InvalidSyncTypeError(data[0], data[1])

    errors = _HARDWARE_ERRORS.get((data[2], data[3]))
    if errors is None:
        raise InvalidHardwareErrorError(data[2], data[3])

    accelerometer_error, flash_error = errors
    return SyncState(sync, accelerometer_error, flash_error)
