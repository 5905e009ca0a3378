"""Validated value types shared by the codecs, the device and the config."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .const import FACET_COUNT
from .exception import (
    BlinkIntervalError,
    ColorError,
    FacetError,
    FacetTaskError,
    MinutesError,
    PercentError,
)

__all__ = [
    "Facet",
    "Percent",
    "Minutes",
    "BlinkInterval",
    "Color",
    "SimpleTask",
    "PomodoroTask",
    "FacetTask",
    "SIMPLE",
    "all_facets",
]


def _check_int(value: object, error: type) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise error(value)
    return value


@dataclass(frozen=True, order=True)
class Facet:
    """The side of a TimeFlip2.

    The facets are indexed from 1 to 12, inclusive.
    """

    index: int

    def __post_init__(self) -> None:
        _check_int(self.index, FacetError)
        if not 1 <= self.index <= FACET_COUNT:
            raise FacetError(self.index)

    @property
    def index_zero(self) -> int:
        """Zero based index of the facet."""
        return self.index - 1

    def __str__(self) -> str:
        return f"Facet({self.index})"


def all_facets() -> list[Facet]:
    """Facets 1..12 in ascending order."""
    return [Facet(i) for i in range(1, FACET_COUNT + 1)]


@dataclass(frozen=True, order=True)
class Percent:
    """Representation of a value in percent."""

    value: int

    def __post_init__(self) -> None:
        _check_int(self.value, PercentError)
        if not 0 <= self.value <= 100:
            raise PercentError(self.value)

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return f"{self.value}%"


@dataclass(frozen=True, order=True)
class Minutes:
    value: int

    def __post_init__(self) -> None:
        _check_int(self.value, MinutesError)
        if not 0 <= self.value <= 0xFFFF:
            raise MinutesError(self.value)

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return f"{self.value} minutes"


@dataclass(frozen=True, order=True)
class BlinkInterval:
    """Interval in seconds in which the LED blinks while a facet is active.

    The interval value is given as seconds in range 5 to 60, inclusive.
    """

    seconds: int

    def __post_init__(self) -> None:
        _check_int(self.seconds, BlinkIntervalError)
        if not 5 <= self.seconds <= 60:
            raise BlinkIntervalError(self.seconds)

    def __int__(self) -> int:
        return self.seconds

    def __str__(self) -> str:
        return f"{self.seconds} seconds"


@dataclass(frozen=True)
class Color:
    """Color of a facet's LED, 16 bit per channel."""

    red: int = 0
    green: int = 0
    blue: int = 0

    def __post_init__(self) -> None:
        for channel in (self.red, self.green, self.blue):
            _check_int(channel, ColorError)
            if not 0 <= channel <= 0xFFFF:
                raise ColorError(channel)

    @property
    def rgb(self) -> tuple[int, int, int]:
        return (self.red, self.green, self.blue)

    def __str__(self) -> str:
        return f"RGB({self.red},{self.green},{self.blue})"


@dataclass(frozen=True)
class SimpleTask:
    """Simple counting up timer."""

    kind: int = field(default=0, init=False, repr=False)

    def __str__(self) -> str:
        return "Simple"


@dataclass(frozen=True)
class PomodoroTask:
    """Pomodoro timer with limit in seconds."""

    seconds: int
    kind: int = field(default=1, init=False, repr=False)

    def __post_init__(self) -> None:
        _check_int(self.seconds, FacetTaskError)
        if not 0 < self.seconds <= 0xFFFF_FFFF:
            raise FacetTaskError(self.seconds)

    def __str__(self) -> str:
        return f"Pomodoro Timer ({self.seconds} seconds)"


FacetTask = Union[SimpleTask, PomodoroTask]

SIMPLE = SimpleTask()
