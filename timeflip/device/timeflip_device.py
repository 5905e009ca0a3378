"""Module defining the TimeFlip2 device facade."""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Optional, TypeVar

from .. import commands
from ..commands import Command, FacetSettings, ResultDecoder, SystemStatus
from ..config import Config
from ..const import COMMAND_SUCCESS, DEFAULT_PASSWORD, HISTORY_LAST_ENTRY_ID, PASSWORD_LENGTH
from ..events import CharacteristicValueEvent, Event, EventHandles, decode_event
from ..exception import (
    AccelerometerError,
    CommandExecutionFailedError,
    EndOfHistory,
    EntryError,
    EventError,
    FlashError,
    HardwareError,
    InvalidCharacteristicDataError,
    InvalidEventTextError,
    NoDeviceError,
    PasswordLengthError,
    ReadTooShortError,
    SyncNotConvergingError,
    TimeFlipError,
)
from ..protocol import (
    Entry,
    SyncState,
    SyncType,
    build_history_read_request,
    build_history_since_request,
    decode_entry,
    decode_sync_state,
)
from ..session import BluetoothSession, CharacteristicRef, RawEventStream, characteristic_id, is_paired
from ..types import BlinkInterval, Color, Facet, FacetTask, Minutes, Percent

__all__ = ["CharacteristicHandles", "TimeFlip"]

T = TypeVar("T")


@dataclass(frozen=True)
class CharacteristicHandles:
    """Resolved characteristics of a connected TimeFlip2."""

    battery_level: CharacteristicRef
    event: CharacteristicRef
    facet: CharacteristicRef
    command_result: CharacteristicRef
    command: CharacteristicRef
    double_tap: CharacteristicRef
    system_state: CharacteristicRef
    password: CharacteristicRef
    history: CharacteristicRef


class TimeFlip:
    """A connected TimeFlip2.

    Build one with :meth:`TimeFlip.connect`. The characteristic handles and
    the password are fixed for the lifetime of the instance; reconnecting
    means connecting a new instance.
    """

    _logger: logging.Logger

    def __init__(
        self,
        session: BluetoothSession,
        handles: CharacteristicHandles,
        password: bytes = DEFAULT_PASSWORD,
    ) -> None:
        self._session = session
        self._handles = handles
        self._password = password
        self._logger = logging.getLogger(session.device_id.replace(":", "-"))
        self._operation_lock: asyncio.Lock = asyncio.Lock()
        self._event_handles = EventHandles(
            device=session.device_id,
            battery_level=characteristic_id(handles.battery_level),
            last_event=characteristic_id(handles.event),
            facet=characteristic_id(handles.facet),
            double_tap=characteristic_id(handles.double_tap),
        )

    @classmethod
    async def connect(
        cls,
        session: Optional[BluetoothSession] = None,
        password: bytes = DEFAULT_PASSWORD,
        address: Optional[str] = None,
    ) -> "TimeFlip":
        """Discover, connect and log in to a TimeFlip2.

        Without an address the first device advertising the TimeFlip
        service is used.
        """
        if len(password) != PASSWORD_LENGTH:
            raise PasswordLengthError(password, PASSWORD_LENGTH)
        session = session or BluetoothSession()

        devices = await session.get_devices()
        if address is not None:
            devices = [d for d in devices if d.address.upper() == address.upper()]
        if not devices:
            raise NoDeviceError()
        device = devices[0]

        logger = logging.getLogger(device.address.replace(":", "-"))
        if is_paired(device) is False:
            logger.warning(
                "%s: device is not paired, connection may fail or be unstable", device.address
            )

        if not session.is_connected:
            await session.connect(device)

        handles = CharacteristicHandles(**session.resolve_characteristics())

        # the device only accepts commands once the password was written
        logger.debug("%s: Writing password", device.address)
        await session.write_characteristic(handles.password, password)
        return cls(session, handles, password)

    async def disconnect(self) -> None:
        """Disconnect."""
        self._logger.debug("%s: Disconnecting", self.name)
        await self._session.disconnect()

    def set_log_level(self, level: int | str) -> None:
        """Set log level."""
        if isinstance(level, str):
            # default INFO
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO
        self._logger.setLevel(level)

# ────────────────────────────────────────────────────────────────
# class TimeFlip
# @property
# ────────────────────────────────────────────────────────────────

    @property
    def address(self) -> str:
        """Return the address."""
        return self._session.device_id

    @property
    def name(self) -> str:
        return self._session.device_id

    @property
    def handles(self) -> CharacteristicHandles:
        return self._handles

    @property
    def is_connected(self) -> bool:
        return self._session.is_connected

# ────────────────────────────────────────────────────────────────
# Characteristic reads
# ────────────────────────────────────────────────────────────────

    async def _read_first_byte(self, characteristic: CharacteristicRef, what: str) -> int:
        data = await self._session.read_characteristic(characteristic)
        if not data:
            raise ReadTooShortError(0, 1, what)
        return data[0]

    async def battery_level(self) -> Percent:
        """Current battery level."""
        return Percent(await self._read_first_byte(self._handles.battery_level, "battery level"))

    async def last_event(self) -> str:
        """Informational message of the last event, e.g. ``TimeFlip v4.0``."""
        data = await self._session.read_characteristic(self._handles.event)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise InvalidEventTextError(data, ex) from ex

    async def facet(self) -> Facet:
        """The facet currently facing up."""
        return Facet(await self._read_first_byte(self._handles.facet, "facet"))

    async def sync_state(self) -> SyncState:
        data = await self._session.read_characteristic(self._handles.system_state)
        return decode_sync_state(data)

# ────────────────────────────────────────────────────────────────
# Commands
# ────────────────────────────────────────────────────────────────

    async def _command(self, command: Command, decoder: ResultDecoder[T]) -> T:
        """Write a command, check the echo and read the result.

        Runs under the operation lock: the command and result
        characteristics are shared by all commands.
        """
        if self._operation_lock.locked():
            self._logger.debug(
                "%s: Operation already in progress, waiting for it to complete", self.name
            )
        async with self._operation_lock:
            self._logger.debug("%s: Sending command %s", self.name, command)
            await self._session.write_characteristic(self._handles.command, command.to_bytes())
            echo = await self._session.read_characteristic(self._handles.command)
            if (
                len(echo) < 2
                or echo[0] != command.command_id
                or echo[1] != COMMAND_SUCCESS
            ):
                raise CommandExecutionFailedError(command.command_id, echo)
            result = await self._session.read_characteristic(self._handles.command_result)
        return decoder(result)

    async def time(self) -> datetime:
        """Time saved on the device (UTC)."""
        return await self._command(commands.create_get_time_command(), commands.decode_time)

    async def set_time(self, time: datetime) -> None:
        await self._command(commands.create_set_time_command(time), commands.decode_unit)

    async def system_status(self) -> SystemStatus:
        return await self._command(
            commands.create_read_status_command(), commands.decode_system_status
        )

    async def brightness(self, brightness: Percent) -> None:
        """Set the LED brightness."""
        await self._command(commands.create_brightness_command(brightness), commands.decode_unit)

    async def blink_interval(self, interval: BlinkInterval) -> None:
        await self._command(
            commands.create_blink_interval_command(interval), commands.decode_unit
        )

    async def color(self, facet: Facet, color: Color) -> None:
        await self._command(commands.create_set_color_command(facet, color), commands.decode_unit)

    async def task(self, facet: Facet, task: FacetTask) -> None:
        await self._command(commands.create_set_task_command(facet, task), commands.decode_unit)

    async def get_task(self, facet: Facet) -> FacetSettings:
        return await self._command(
            commands.create_get_task_command(facet), commands.decode_facet_settings
        )

    async def lock(self) -> None:
        """Freeze counting on the current facet."""
        await self._command(commands.create_lock_mode_command(True), commands.decode_unit)

    async def unlock(self) -> None:
        await self._command(commands.create_lock_mode_command(False), commands.decode_unit)

    async def pause(self) -> None:
        await self._command(commands.create_pause_mode_command(True), commands.decode_unit)

    async def unpause(self) -> None:
        await self._command(commands.create_pause_mode_command(False), commands.decode_unit)

    async def auto_pause(self, minutes: Minutes) -> None:
        """Set auto-pause time, 0 disables it."""
        await self._command(commands.create_auto_pause_command(minutes), commands.decode_unit)

# ────────────────────────────────────────────────────────────────
# History
# ────────────────────────────────────────────────────────────────

    async def read_history_entry(self, entry_id: int) -> Entry:
        """Read one history entry.

        Raises EndOfHistory if the device has no entry with that id.
        """
        async with self._operation_lock:
            await self._session.write_characteristic(
                self._handles.history, build_history_read_request(entry_id)
            )
            data = await self._session.read_characteristic(self._handles.history)
        return decode_entry(data)

    async def read_last_history_entry(self) -> Entry:
        return await self.read_history_entry(HISTORY_LAST_ENTRY_ID)

    async def read_history_since(self, entry_id: int) -> list[Entry]:
        """Read all history entries starting at ``entry_id``.

        Entries come in the order the device sends them. Only flips longer
        than 5 seconds are logged by the device.
        """
        entries: list[Entry] = []
        history = self._handles.history
        async with self._operation_lock:
            await self._session.start_notify(history)
            try:
                async with aclosing(self._session.characteristic_event_stream(history)) as stream:
                    await self._session.write_characteristic(
                        history, build_history_since_request(entry_id)
                    )
                    async for raw in stream:
                        if not isinstance(raw, CharacteristicValueEvent):
                            raise InvalidCharacteristicDataError(
                                f"unexpected event while reading history: {raw!r}"
                            )
                        try:
                            entry = decode_entry(raw.value)
                        except EndOfHistory:
                            break
                        except EntryError as ex:
                            self._logger.error("%s: skipping history entry: %s", self.name, ex)
                            continue
                        self._logger.debug("%s: history entry %s", self.name, entry)
                        entries.append(entry)
            finally:
                if self._session.is_connected:
                    await self._session.stop_notify(history)
        return entries

# ────────────────────────────────────────────────────────────────
# Events
# ────────────────────────────────────────────────────────────────

    async def subscribe_battery_level(self) -> None:
        await self._session.start_notify(self._handles.battery_level)

    async def unsubscribe_battery_level(self) -> None:
        await self._session.stop_notify(self._handles.battery_level)

    async def subscribe_events(self) -> None:
        await self._session.start_notify(self._handles.event)

    async def unsubscribe_events(self) -> None:
        await self._session.stop_notify(self._handles.event)

    async def subscribe_facet(self) -> None:
        await self._session.start_notify(self._handles.facet)

    async def unsubscribe_facet(self) -> None:
        await self._session.stop_notify(self._handles.facet)

    async def subscribe_double_tap(self) -> None:
        await self._session.start_notify(self._handles.double_tap)

    async def unsubscribe_double_tap(self) -> None:
        await self._session.stop_notify(self._handles.double_tap)

    def event_stream(self) -> AsyncIterator[Event]:
        """Events of the subscribed notifications, in delivery order.

        Listening starts right away, not on first iteration. Undecodable
        notifications are logged and skipped. Ends when the device
        disconnects, after yielding Disconnected.
        """
        return self._decode_events(self._session.event_stream())

    async def _decode_events(self, raw_stream: RawEventStream) -> AsyncIterator[Event]:
        async with aclosing(raw_stream):
            async for raw in raw_stream:
                try:
                    event = decode_event(raw, self._event_handles)
                except EventError as ex:
                    if ex.benign:
                        self._logger.debug("%s: %s", self.name, ex)
                    else:
                        self._logger.error("%s: dropping event: %s", self.name, ex)
                    continue
                yield event

# ────────────────────────────────────────────────────────────────
# Synchronization
# ────────────────────────────────────────────────────────────────

    async def sync(self, config: Config) -> None:
        """Bring the device in sync with ``config``.

        The device names one part of its state that needs to be written at
        a time; repeat until it reports synchronized. Fails if the device
        asks for the same part twice in a row or reports a hardware fault.
        """
        previous: Optional[SyncType] = None
        while True:
            state = await self.sync_state()
            self._check_hardware(state)

            if state.sync is SyncType.SYNCHRONIZED:
                self._logger.debug("%s: synchronized", self.name)
                return
            if state.sync is previous:
                raise SyncNotConvergingError(state.sync)

            self._logger.info("%s: synchronizing %s", self.name, state.sync)
            await self._apply_sync(state.sync, config)
            previous = state.sync

    @staticmethod
    def _check_hardware(state: SyncState) -> None:
        if state.accelerometer_error and state.flash_error:
            raise HardwareError(True, True)
        if state.accelerometer_error:
            raise AccelerometerError()
        if state.flash_error:
            raise FlashError()

    async def _apply_sync(self, directive: SyncType, config: Config) -> None:
        if directive in (SyncType.FACTORY_RESET, SyncType.TIME):
            await self.set_time(datetime.now(timezone.utc))
        elif directive is SyncType.FACET_COLOR:
            for side in config.sides:
                await self.color(side.facet, side.color)
        elif directive is SyncType.LED_BRIGHTNESS:
            await self.brightness(config.brightness)
        elif directive is SyncType.BLINK_INTERVAL:
            await self.blink_interval(config.blink_interval)
        elif directive is SyncType.TASK_PARAMETERS:
            for side in config.sides:
                await self.task(side.facet, side.task)
        elif directive is SyncType.AUTO_PAUSE:
            await self.auto_pause(config.auto_pause)
        else:
            raise TimeFlipError(f"no synchronization for {directive}")

    async def write_config(self, config: Config) -> None:
        """Write the whole configuration without asking the device what is out of date."""
        await self.brightness(config.brightness)
        await self.blink_interval(config.blink_interval)
        await self.auto_pause(config.auto_pause)
        for side in config.sides:
            await self.color(side.facet, side.color)
            await self.task(side.facet, side.task)
