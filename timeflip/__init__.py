"""Protocol engine and command line tool for the TimeFlip2 time tracking cube."""

from __future__ import annotations

from .commands import FacetSettings, SystemStatus
from .config import Config, Side, load_config, save_config
from .device import TimeFlip
from .events import BatteryLevel, Disconnected, DoubleTap, Event, FacetChanged, LastEvent
from .exception import TimeFlipError
from .protocol import Entry, SyncState, SyncType
from .types import SIMPLE, BlinkInterval, Color, Facet, Minutes, Percent, PomodoroTask, SimpleTask

__all__ = [
    "BatteryLevel",
    "BlinkInterval",
    "Color",
    "Config",
    "Disconnected",
    "DoubleTap",
    "Entry",
    "Event",
    "Facet",
    "FacetChanged",
    "FacetSettings",
    "LastEvent",
    "Minutes",
    "Percent",
    "PomodoroTask",
    "SIMPLE",
    "Side",
    "SimpleTask",
    "SyncState",
    "SyncType",
    "SystemStatus",
    "TimeFlip",
    "TimeFlipError",
    "load_config",
    "save_config",
]
