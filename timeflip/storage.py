"""Persisted history: a JSON file of entries, merged incrementally by id."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable

from .exception import HistoryFileError, ValueOutOfRangeError
from .protocol import Entry
from .types import Facet

__all__ = [
    "DEFAULT_HISTORY_PATH",
    "entry_to_dict",
    "entry_from_dict",
    "load_history",
    "merge_entries",
    "save_history",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_HISTORY_PATH = Path.home() / ".timeflip" / "history.json"


def entry_to_dict(entry: Entry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "facet": entry.facet.index,
        "pause": entry.pause,
        "time": entry.time.astimezone(timezone.utc).isoformat(),
        "duration": int(entry.duration.total_seconds()),
    }


def entry_from_dict(data: dict[str, Any]) -> Entry:
    time = datetime.fromisoformat(data["time"])
    if time.tzinfo is None:
        time = time.replace(tzinfo=timezone.utc)
    return Entry(
        id=int(data["id"]),
        facet=Facet(data["facet"]),
        pause=bool(data["pause"]),
        time=time.astimezone(timezone.utc),
        duration=timedelta(seconds=int(data["duration"])),
    )


def _last_seen(entries: list[Entry]) -> int:
    return max((entry.id for entry in entries), default=0)


def load_history(path: Path | str | None = None) -> tuple[int, list[Entry]]:
    """Read persisted entries, sorted by id, and the highest id seen.

    A missing file is an empty history.
    """
    path = Path(path) if path is not None else DEFAULT_HISTORY_PATH
    if not path.exists():
        _LOGGER.debug("no history at %s", path)
        return 0, []
    try:
        raw = json.loads(path.read_text())
        entries = sorted((entry_from_dict(item) for item in raw), key=lambda e: e.id)
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, ValueOutOfRangeError) as ex:
        raise HistoryFileError(f"cannot read history file {path}: {ex}") from ex
    return _last_seen(entries), entries


def merge_entries(existing: Iterable[Entry], new: Iterable[Entry]) -> tuple[int, list[Entry]]:
    """Merge ``new`` into ``existing`` by id; new entries replace old ones.

    The device re-sends the entry it is currently counting, so the newest copy wins.
    """
    by_id = {entry.id: entry for entry in existing}
    for entry in new:
        by_id[entry.id] = entry
    merged = sorted(by_id.values(), key=lambda e: e.id)
    return _last_seen(merged), merged


def save_history(path: Path | str | None, entries: Iterable[Entry]) -> None:
    path = Path(path) if path is not None else DEFAULT_HISTORY_PATH
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps([entry_to_dict(e) for e in entries], indent=3))
    except OSError as ex:
        raise HistoryFileError(f"cannot write history file {path}: {ex}") from ex
