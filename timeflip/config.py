"""Configuration of a TimeFlip2: password, LED settings and the twelve sides."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

from .const import DEFAULT_PASSWORD, FACET_COUNT, PASSWORD_LENGTH
from .exception import (
    ConfigError,
    DuplicateSidesError,
    TooManySidesError,
    ValueOutOfRangeError,
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
    all_facets,
)

__all__ = [
    "Side",
    "Config",
    "DEFAULT_CONFIG_PATH",
    "sides_from_list",
    "load_config",
    "save_config",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".timeflip" / "config.json"


@dataclass(frozen=True)
class Side:
    """Configuration of one facet."""

    facet: Facet
    name: Optional[str] = None
    color: Color = field(default_factory=Color)
    task: FacetTask = SIMPLE


def sides_from_list(sides: Iterable[Side]) -> tuple[Side, ...]:
    """Validate a side list into exactly 12 sides, sorted by facet.

    Facets not in the list get a default side.
    """
    sides = list(sides)
    if len(sides) > FACET_COUNT:
        raise TooManySidesError(len(sides))

    by_facet: dict[Facet, Side] = {}
    duplicates: list[int] = []
    for side in sides:
        if side.facet in by_facet:
            duplicates.append(side.facet.index)
        by_facet[side.facet] = side
    if duplicates:
        raise DuplicateSidesError(sorted(set(duplicates)))

    return tuple(by_facet.get(facet, Side(facet)) for facet in all_facets())


def _default_sides() -> tuple[Side, ...]:
    return sides_from_list([])


@dataclass(frozen=True)
class Config:
    """Target configuration of a TimeFlip2."""

    password: bytes = DEFAULT_PASSWORD
    brightness: Percent = Percent(100)
    blink_interval: BlinkInterval = BlinkInterval(30)
    auto_pause: Minutes = Minutes(480)
    sides: tuple[Side, ...] = field(default_factory=_default_sides)

    def __post_init__(self) -> None:
        if len(self.password) != PASSWORD_LENGTH:
            raise ConfigError(f"password must be {PASSWORD_LENGTH} bytes, got {len(self.password)}")
        # frozen, so normalize through object.__setattr__
        object.__setattr__(self, "sides", sides_from_list(self.sides))

    def side(self, facet: Facet) -> Side:
        return self.sides[facet.index_zero]

    # -------- JSON mapping

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Build a config from its JSON form; raises ConfigError on bad content."""
        if not isinstance(data, dict):
            raise ConfigError(f"config must be an object, got {type(data).__name__}")
        try:
            kwargs: dict[str, Any] = {}
            if "password" in data:
                kwargs["password"] = _password_from_json(data["password"])
            if "brightness" in data:
                kwargs["brightness"] = Percent(data["brightness"])
            if "blink_interval" in data:
                kwargs["blink_interval"] = BlinkInterval(data["blink_interval"])
            if "auto_pause" in data:
                kwargs["auto_pause"] = Minutes(data["auto_pause"])
            kwargs["sides"] = tuple(_side_from_json(s) for s in data.get("sides", []))
        except ValueOutOfRangeError as ex:
            raise ConfigError(f"invalid config value: {ex}") from ex
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "password": _password_to_json(self.password),
            "brightness": self.brightness.value,
            "blink_interval": self.blink_interval.seconds,
            "auto_pause": self.auto_pause.value,
            "sides": [_side_to_json(side) for side in self.sides],
        }


# ────────────────────────────────────────────────────────────────
# JSON helpers
# ────────────────────────────────────────────────────────────────


def _password_from_json(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, list) and all(isinstance(v, int) and 0 <= v <= 255 for v in value):
        return bytes(value)
    raise ConfigError(f"password must be a string or a list of bytes, got {value!r}")


def _password_to_json(password: bytes) -> str | list[int]:
    try:
        text = password.decode("ascii")
    except UnicodeDecodeError:
        return list(password)
    return text if text.isprintable() else list(password)


def _task_from_json(value: Any) -> FacetTask:
    if value is None or value == "simple":
        return SIMPLE
    if isinstance(value, dict) and set(value) == {"pomodoro"}:
        return PomodoroTask(value["pomodoro"])
    raise ConfigError(f"unknown task {value!r}, expected 'simple' or {{'pomodoro': seconds}}")


def _task_to_json(task: FacetTask) -> str | dict[str, int]:
    if isinstance(task, PomodoroTask):
        return {"pomodoro": task.seconds}
    return "simple"


def _side_from_json(value: Any) -> Side:
    if not isinstance(value, dict) or "facet" not in value:
        raise ConfigError(f"side needs at least a facet: {value!r}")
    color = value.get("color", [0, 0, 0])
    if not isinstance(color, list) or len(color) != 3:
        raise ConfigError(f"color must be [red, green, blue]: {color!r}")
    name = value.get("name")
    if name is not None and not isinstance(name, str):
        raise ConfigError(f"side name must be a string: {name!r}")
    return Side(
        facet=Facet(value["facet"]),
        name=name,
        color=Color(*color),
        task=_task_from_json(value.get("task")),
    )


def _side_to_json(side: Side) -> dict[str, Any]:
    data: dict[str, Any] = {"facet": side.facet.index}
    if side.name is not None:
        data["name"] = side.name
    data["color"] = list(side.color.rgb)
    data["task"] = _task_to_json(side.task)
    return data


# ────────────────────────────────────────────────────────────────
# File access
# ────────────────────────────────────────────────────────────────


def load_config(path: Path | str | None = None) -> Config:
    """Read the config file; a missing file gives the default config."""
    path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not path.exists():
        _LOGGER.debug("no config at %s, using defaults", path)
        return Config()
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as ex:
        raise ConfigError(f"{path}: {ex}") from ex
    return Config.from_dict(data)


def save_config(config: Config, path: Path | str | None = None) -> None:
    path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=3))
