"""Module defining command generation and command result decoding.

Commands are written to the command characteristic as
``[command_id, *payload]`` (multi-byte integers big-endian). The device
echoes ``[command_id, 0x02]`` on the same characteristic when the command
succeeded; output, if any, is read from the command result characteristic.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Callable, TypeVar

from .exception import (
    GetTimeError,
    InvalidCommandError,
    InvalidLockModeError,
    InvalidPauseModeError,
    InvalidTaskError,
    ReadTooShortError,
    TimeBeforeEpochError,
)
from .types import (
    SIMPLE,
    BlinkInterval,
    Color,
    Facet,
    FacetTask,
    Minutes,
    Percent,
    PomodoroTask,
)

__all__ = [
    "CommandId",
    "Command",
    "SystemStatus",
    "FacetSettings",
    "ResultDecoder",
    "create_lock_mode_command",
    "create_auto_pause_command",
    "create_pause_mode_command",
    "create_get_time_command",
    "create_set_time_command",
    "create_brightness_command",
    "create_blink_interval_command",
    "create_read_status_command",
    "create_set_color_command",
    "create_set_task_command",
    "create_get_task_command",
    "decode_unit",
    "decode_time",
    "decode_system_status",
    "decode_facet_settings",
    "timestamp_to_datetime",
]

T = TypeVar("T")
ResultDecoder = Callable[[bytes], T]

ON = 0x01
OFF = 0x02

TASK_SIMPLE = 0
TASK_POMODORO = 1


class CommandId(IntEnum):
    LOCK_MODE = 0x04
    AUTO_PAUSE_TIME = 0x05
    PAUSE_MODE = 0x06
    GET_TIME = 0x07
    TIME = 0x08
    BRIGHTNESS = 0x09
    BLINK_INTERVAL = 0x0A
    READ_STATUS = 0x10
    SET_COLOR = 0x11
    SET_TASK_PARAMETER = 0x13
    GET_TASK_PARAMETER = 0x14
    # not implemented: name record (0x15), set/read double tap (0x16/0x17),
    # set password (0x30), reset tasks (0xFE), factory reset (0xFF)


@dataclass(frozen=True)
class Command:
    """A command for the TimeFlip2's command characteristic."""

    command_id: CommandId
    payload: bytes = b""

    def to_bytes(self) -> bytes:
        return bytes([self.command_id]) + self.payload

    def __str__(self) -> str:
        return f"{self.command_id.name}({self.payload.hex(' ').upper()})"


# ────────────────────────────────────────────────────────────────
# Command creators
# ────────────────────────────────────────────────────────────────


def _on_off(on: bool) -> bytes:
    return bytes([ON if on else OFF])


def create_lock_mode_command(on: bool) -> Command:
    """Lock mode freezes counting on the active facet, flips are ignored."""
    return Command(CommandId.LOCK_MODE, _on_off(on))


def create_auto_pause_command(minutes: Minutes) -> Command:
    """Set auto-pause time in minutes. 0 disables auto-pause."""
    return Command(CommandId.AUTO_PAUSE_TIME, struct.pack(">H", minutes.value))


def create_pause_mode_command(on: bool) -> Command:
    return Command(CommandId.PAUSE_MODE, _on_off(on))


def create_get_time_command() -> Command:
    return Command(CommandId.GET_TIME)


def create_set_time_command(time: datetime) -> Command:
    """Set the time saved on the device.

    Naive datetimes are taken as UTC.
    """
    if time.tzinfo is None:
        time = time.replace(tzinfo=timezone.utc)
    timestamp = int(time.timestamp())
    if timestamp < 0:
        raise TimeBeforeEpochError(time.isoformat())
    return Command(CommandId.TIME, struct.pack(">Q", timestamp))


def create_brightness_command(brightness: Percent) -> Command:
    return Command(CommandId.BRIGHTNESS, bytes([brightness.value]))


def create_blink_interval_command(interval: BlinkInterval) -> Command:
    return Command(CommandId.BLINK_INTERVAL, bytes([interval.seconds]))


def create_read_status_command() -> Command:
    return Command(CommandId.READ_STATUS)


def create_set_color_command(facet: Facet, color: Color) -> Command:
    return Command(
        CommandId.SET_COLOR,
        struct.pack(">BHHH", facet.index, color.red, color.green, color.blue),
    )


def create_set_task_command(facet: Facet, task: FacetTask) -> Command:
    """Set the task parameters of a facet.

    The timer field is always sent, zero for a simple task.
    """
    seconds = task.seconds if isinstance(task, PomodoroTask) else 0
    return Command(
        CommandId.SET_TASK_PARAMETER,
        struct.pack(">BBI", facet.index, task.kind, seconds),
    )


def create_get_task_command(facet: Facet) -> Command:
    return Command(CommandId.GET_TASK_PARAMETER, bytes([facet.index]))


# ────────────────────────────────────────────────────────────────
# Result decoders
# ────────────────────────────────────────────────────────────────


def decode_unit(data: bytes) -> None:
    """Result of commands without output."""
    return None


def timestamp_to_datetime(timestamp: int) -> datetime:
    """Convert a raw unsigned device timestamp to an aware UTC datetime.

    Raises OverflowError/ValueError/OSError if it is not representable.
    """
    if timestamp > 0x7FFF_FFFF_FFFF_FFFF:
        raise OverflowError(timestamp)
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def decode_time(data: bytes) -> datetime:
    if len(data) < 9:
        raise ReadTooShortError(len(data), 9, "timestamp")
    if data[0] != CommandId.GET_TIME:
        raise InvalidCommandError(data[0], CommandId.GET_TIME)
    (timestamp,) = struct.unpack_from(">Q", data, 1)
    try:
        return timestamp_to_datetime(timestamp)
    except (OverflowError, ValueError, OSError) as ex:
        raise GetTimeError(timestamp) from ex


@dataclass(frozen=True)
class SystemStatus:
    """The system status of TimeFlip2."""

    lock_mode: bool
    pause_mode: bool
    auto_pause_time: Minutes


def _mode(value: int, error: type) -> bool:
    if value == ON:
        return True
    if value == OFF:
        return False
    raise error(value)


def decode_system_status(data: bytes) -> SystemStatus:
    """Decode ``[lock, pause, auto_pause:u16]``.

    The device does not echo the command id for this result.
    """
    if len(data) < 4:
        raise ReadTooShortError(len(data), 4, "system status")
    lock_mode, pause_mode, auto_pause = struct.unpack_from(">BBH", data)
    return SystemStatus(
        lock_mode=_mode(lock_mode, InvalidLockModeError),
        pause_mode=_mode(pause_mode, InvalidPauseModeError),
        auto_pause_time=Minutes(auto_pause),
    )


@dataclass(frozen=True)
class FacetSettings:
    """Settings of a facet of the TimeFlip2."""

    facet: Facet
    task: FacetTask
    # seconds since the facet's timer was started
    seconds_since_start: int


def decode_facet_settings(data: bytes) -> FacetSettings:
    if len(data) < 11:
        raise ReadTooShortError(len(data), 11, "facet settings")
    cmd, facet, task, timer_seconds, seconds_since_start = struct.unpack_from(">BBBII", data)
    if cmd != CommandId.GET_TASK_PARAMETER:
        raise InvalidCommandError(cmd, CommandId.GET_TASK_PARAMETER)
    if task == TASK_SIMPLE:
        facet_task: FacetTask = SIMPLE
    elif task == TASK_POMODORO:
        facet_task = PomodoroTask(timer_seconds)
    else:
        raise InvalidTaskError(task)
    return FacetSettings(
        facet=Facet(facet),
        task=facet_task,
        seconds_since_start=seconds_since_start,
    )
