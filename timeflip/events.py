"""Decoding of raw bluetooth notifications into TimeFlip2 events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from .exception import (
    ConnectedEventIgnored,
    EventTooShortError,
    FacetError,
    InvalidDoubleTapError,
    InvalidEventTextError,
    InvalidEventValueError,
    PercentError,
    UnexpectedCharacteristicError,
    UnexpectedDeviceError,
    UnexpectedEventError,
)
from .protocol import split_facet_byte
from .types import Facet, Percent

__all__ = [
    "CharacteristicValueEvent",
    "DeviceConnectionEvent",
    "RawEvent",
    "EventHandles",
    "Disconnected",
    "BatteryLevel",
    "LastEvent",
    "FacetChanged",
    "DoubleTap",
    "Event",
    "decode_event",
]

_LOGGER = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────
# Raw events delivered by the transport
# ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CharacteristicValueEvent:
    """A notified characteristic value."""

    characteristic: str
    value: bytes


@dataclass(frozen=True)
class DeviceConnectionEvent:
    """The device's connection state changed."""

    device: str
    connected: bool


RawEvent = Union[CharacteristicValueEvent, DeviceConnectionEvent]


@dataclass(frozen=True)
class EventHandles:
    """Identities needed to route raw events, resolved once when connecting."""

    device: str
    battery_level: str
    last_event: str
    facet: str
    double_tap: str


# ────────────────────────────────────────────────────────────────
# Decoded events
# ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Disconnected:
    """Device has disconnected."""


@dataclass(frozen=True)
class BatteryLevel:
    level: Percent


@dataclass(frozen=True)
class LastEvent:
    """The informational status message has changed."""

    text: str


@dataclass(frozen=True)
class FacetChanged:
    facet: Facet


@dataclass(frozen=True)
class DoubleTap:
    """Pause mode was entered or left, by double tap or by auto-pause."""

    facet: Facet
    pause: bool


Event = Union[Disconnected, BatteryLevel, LastEvent, FacetChanged, DoubleTap]


def _first_byte(value: bytes, kind: str) -> int:
    if not value:
        raise EventTooShortError(kind)
    return value[0]


def _decode_value(characteristic: str, value: bytes, handles: EventHandles) -> Event:
    if characteristic == handles.battery_level:
        _LOGGER.debug("Battery Level event")
        level = _first_byte(value, "Battery Level")
        try:
            return BatteryLevel(Percent(level))
        except PercentError as ex:
            raise InvalidEventValueError("battery level", ex) from ex

    if characteristic == handles.last_event:
        _LOGGER.debug("Eventlog event")
        try:
            return LastEvent(value.decode("utf-8"))
        except UnicodeDecodeError as ex:
            raise InvalidEventTextError(value, ex) from ex

    if characteristic == handles.facet:
        _LOGGER.debug("Facet event")
        index = _first_byte(value, "Facet")
        try:
            return FacetChanged(Facet(index))
        except FacetError as ex:
            raise InvalidEventValueError("facet", ex) from ex

    if characteristic == handles.double_tap:
        _LOGGER.debug("DoubleTap event")
        raw = _first_byte(value, "Double Tap")
        try:
            facet, pause = split_facet_byte(raw)
        except FacetError as ex:
            raise InvalidDoubleTapError(ex) from ex
        return DoubleTap(facet=facet, pause=pause)

    raise UnexpectedCharacteristicError(characteristic)


def decode_event(raw: object, handles: EventHandles) -> Event:
    """Construct an Event from a raw bluetooth event.

    Raises an EventError subclass for anything that is not an event of the
    tracked device; ConnectedEventIgnored marks the benign "connected" case.
    """
    if isinstance(raw, CharacteristicValueEvent):
        return _decode_value(raw.characteristic, bytes(raw.value), handles)

    if isinstance(raw, DeviceConnectionEvent):
        if raw.device != handles.device:
            raise UnexpectedDeviceError(raw.device)
        if raw.connected:
            raise ConnectedEventIgnored()
        return Disconnected()

    raise UnexpectedEventError(raw)
