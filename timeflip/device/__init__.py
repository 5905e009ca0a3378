"""TimeFlip2 device package."""
from __future__ import annotations

from .timeflip_device import CharacteristicHandles, TimeFlip  # noqa: F401

__all__ = [
    "CharacteristicHandles",
    "TimeFlip",
]
