"""Exceptions raised by the TimeFlip2 protocol engine."""

from __future__ import annotations

from typing import Any


class TimeFlipError(Exception):
    """Base class for all TimeFlip2 errors."""


# ────────────────────────────────────────────────────────────────
# Domain construction
# ────────────────────────────────────────────────────────────────


class ValueOutOfRangeError(TimeFlipError, ValueError):
    """A raw value could not be lifted into a validated type."""

    def __init__(self, value: Any, message: str) -> None:
        super().__init__(message)
        self.value = value


class FacetError(ValueOutOfRangeError):
    def __init__(self, value: Any) -> None:
        super().__init__(value, f"invalid facet index {value}")


class PercentError(ValueOutOfRangeError):
    def __init__(self, value: Any) -> None:
        super().__init__(value, f"{value} out of range (0-100%)")


class BlinkIntervalError(ValueOutOfRangeError):
    def __init__(self, value: Any) -> None:
        super().__init__(value, f"{value} out of range (5-60 seconds)")


class MinutesError(ValueOutOfRangeError):
    def __init__(self, value: Any) -> None:
        super().__init__(value, f"{value} out of range (0-65535 minutes)")


class ColorError(ValueOutOfRangeError):
    def __init__(self, value: Any) -> None:
        super().__init__(value, f"color channel {value} out of range (0-65535)")


class FacetTaskError(ValueOutOfRangeError):
    def __init__(self, value: Any) -> None:
        super().__init__(value, f"pomodoro timer needs a positive number of seconds, got {value}")


class TimeBeforeEpochError(ValueOutOfRangeError):
    def __init__(self, value: Any) -> None:
        super().__init__(value, f"cannot send a time before the epoch: {value}")


class PasswordLengthError(ValueOutOfRangeError):
    def __init__(self, value: Any, expected: int) -> None:
        super().__init__(value, f"password must be {expected} bytes, got {len(value)}")
        self.expected = expected


# ────────────────────────────────────────────────────────────────
# Decoding
# ────────────────────────────────────────────────────────────────


class DecodeError(TimeFlipError):
    """Device bytes could not be decoded."""


class ReadTooShortError(DecodeError):
    """Characteristic read returned less data than required."""

    def __init__(self, read: int, expected: int, what: str = "characteristic read") -> None:
        super().__init__(f"{what} returned insufficient data, read {read} of {expected}")
        self.read = read
        self.expected = expected


class InvalidCommandError(DecodeError):
    """The echoed command id in a result does not match."""

    def __init__(self, command: int, expected: int | None = None) -> None:
        msg = f"invalid command in result: 0x{command:02X}"
        if expected is not None:
            msg += f" (expected 0x{expected:02X})"
        super().__init__(msg)
        self.command = command
        self.expected = expected


class GetTimeError(DecodeError):
    def __init__(self, timestamp: int) -> None:
        super().__init__(f"timestamp {timestamp} not representable")
        self.timestamp = timestamp


class InvalidLockModeError(DecodeError):
    def __init__(self, value: int) -> None:
        super().__init__(f"unhandled lock mode value: 0x{value:X}")
        self.value = value


class InvalidPauseModeError(DecodeError):
    def __init__(self, value: int) -> None:
        super().__init__(f"unhandled pause mode value: 0x{value:X}")
        self.value = value


class InvalidTaskError(DecodeError):
    def __init__(self, value: int) -> None:
        super().__init__(f"unhandled task value: 0x{value:X}")
        self.value = value


class InvalidCharacteristicDataError(DecodeError):
    """A stream delivered something that does not belong to it."""


# History entries


class EndOfHistory(TimeFlipError):
    """All-zero history record, marks the end of the history stream."""

    def __init__(self) -> None:
        super().__init__("end of history")


class EntryError(DecodeError):
    """A history record could not be decoded."""


class EntryTooShortError(EntryError, ReadTooShortError):
    def __init__(self, read: int, expected: int) -> None:
        ReadTooShortError.__init__(self, read, expected, "history entry")


class InvalidEntryFacetError(EntryError):
    def __init__(self, error: FacetError) -> None:
        super().__init__(f"invalid facet: {error}")
        self.value = error.value


class InvalidTimestampError(EntryError):
    def __init__(self, timestamp: int) -> None:
        super().__init__(f"invalid start time of flip: {timestamp}")
        self.timestamp = timestamp


# Sync state


class SyncStateError(DecodeError):
    """The 4-byte sync status word could not be decoded."""


class SyncStateTooShortError(SyncStateError, ReadTooShortError):
    def __init__(self, read: int) -> None:
        ReadTooShortError.__init__(self, read, 4, "sync state")


class InvalidSyncTypeError(SyncStateError):
    def __init__(self, major: int, minor: int) -> None:
        super().__init__(f"unhandled sync type: 0x{major:X}, 0x{minor:X}")
        self.major = major
        self.minor = minor


class InvalidHardwareErrorError(SyncStateError):
    def __init__(self, major: int, minor: int) -> None:
        super().__init__(f"unhandled hardware error: 0x{major:X}, 0x{minor:X}")
        self.major = major
        self.minor = minor


# Live events


class EventError(DecodeError):
    """A raw notification could not be turned into an Event."""

    benign = False


class ConnectedEventIgnored(EventError):
    """The device reported it is connected; nothing to surface."""

    benign = True

    def __init__(self) -> None:
        super().__init__("ignored connected event")


class UnexpectedEventError(EventError):
    def __init__(self, event: Any) -> None:
        super().__init__(f"unexpected bluetooth event in stream: {event!r}")
        self.event = event


class UnexpectedDeviceError(EventError):
    def __init__(self, device: Any) -> None:
        super().__init__(f"event for unexpected device in stream: {device!r}")
        self.device = device


class UnexpectedCharacteristicError(EventError):
    def __init__(self, characteristic: Any) -> None:
        super().__init__(f"event for unexpected characteristic in stream: {characteristic!r}")
        self.characteristic = characteristic


class EventTooShortError(EventError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"value too short for {kind}")
        self.kind = kind


class InvalidEventTextError(EventError):
    def __init__(self, value: bytes, error: UnicodeDecodeError) -> None:
        super().__init__(f"invalid utf-8 in event text {value.hex(' ')}: {error}")
        self.value = value


class InvalidEventValueError(EventError):
    def __init__(self, kind: str, error: ValueOutOfRangeError) -> None:
        super().__init__(f"invalid {kind} in event: {error}")
        self.kind = kind
        self.value = error.value


class InvalidDoubleTapError(InvalidEventValueError):
    def __init__(self, error: FacetError) -> None:
        super().__init__("facet in double tap event", error)


# ────────────────────────────────────────────────────────────────
# Protocol state
# ────────────────────────────────────────────────────────────────


class CommandExecutionFailedError(TimeFlipError):
    """The command echo did not report success."""

    def __init__(self, command: int, echo: bytes) -> None:
        super().__init__(
            f"command execution failed: 0x{command:02X}, echo {echo.hex(' ').upper() or '<empty>'}"
        )
        self.command = command
        self.echo = echo


class SyncNotConvergingError(TimeFlipError):
    """The device keeps asking for the same correction."""

    def __init__(self, directive: Any) -> None:
        super().__init__(f"device did not acknowledge synchronization of {directive}")
        self.directive = directive


class HardwareError(TimeFlipError):
    """The device reported a hardware fault."""

    def __init__(self, accelerometer: bool, flash: bool) -> None:
        faults = [n for n, f in (("accelerometer", accelerometer), ("flash", flash)) if f]
        super().__init__(f"device reports hardware error: {', '.join(faults)}")
        self.accelerometer = accelerometer
        self.flash = flash


class AccelerometerError(HardwareError):
    def __init__(self) -> None:
        super().__init__(True, False)


class FlashError(HardwareError):
    def __init__(self) -> None:
        super().__init__(False, True)


class NoDeviceError(TimeFlipError):
    def __init__(self) -> None:
        super().__init__("no TimeFlip2 bluetooth device found")


class CharacteristicMissingError(TimeFlipError):
    """Raised when a characteristic is missing."""


# ────────────────────────────────────────────────────────────────
# Configuration
# ────────────────────────────────────────────────────────────────


class ConfigError(TimeFlipError):
    """Invalid configuration."""


class TooManySidesError(ConfigError):
    def __init__(self, count: int) -> None:
        super().__init__(f"too many sides ({count}), up to 12 sides supported")
        self.count = count


class DuplicateSidesError(ConfigError):
    def __init__(self, facets: list[int]) -> None:
        super().__init__(f"side list contains duplicates: {facets}")
        self.facets = facets


class HistoryFileError(TimeFlipError):
    """The persisted history file could not be read."""
