"""Presentation of TimeFlip2 history as rich tables."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from rich.table import Table

from .config import Config
from .protocol import Entry

__all__ = [
    "History",
    "HistoryFiltered",
    "facet_names",
    "format_duration",
]


def format_duration(duration: timedelta) -> str:
    """Render as ``HH:MM:SS``; hours are not wrapped at 24."""
    total = int(duration.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def facet_names(config: Config) -> list[str]:
    """Display name of every side, indexed by zero based facet index."""
    return [side.name or f"Side {side.facet.index}" for side in config.sides]


def _local(time: datetime) -> datetime:
    return time.astimezone()


class History:
    """History entries together with the names of the sides."""

    def __init__(self, entries: Iterable[Entry], config: Config) -> None:
        self.entries = list(entries)
        self.names = facet_names(config)

    def all(self) -> "HistoryFiltered":
        return HistoryFiltered(self.entries, self.names)

    def since(self, time: datetime) -> "HistoryFiltered":
        """Entries started after ``time``, pauses excluded."""
        return HistoryFiltered(
            [entry for entry in self.entries if not entry.pause and entry.time > time],
            self.names,
        )


class HistoryFiltered:
    def __init__(self, entries: list[Entry], names: list[str]) -> None:
        self.entries = entries
        self.names = names

    def name(self, entry: Entry) -> str:
        return self.names[entry.facet.index_zero]

    def group_by_day(self) -> list[tuple[date, list[Entry]]]:
        """Entries grouped by local calendar day, days ascending."""
        groups: dict[date, list[Entry]] = defaultdict(list)
        for entry in self.entries:
            groups[_local(entry.time).date()].append(entry)
        return sorted(groups.items())

    def _table(self, groups: list[tuple[Optional[date], list[Entry]]]) -> Table:
        table = Table("Side", "Started", "Duration")
        for day, entries in groups:
            if day is not None:
                table.add_section()
                table.add_row("", f"[bold]{day}[/bold]", "")
            for entry in entries:
                table.add_row(
                    self.name(entry),
                    str(_local(entry.time).replace(microsecond=0)),
                    format_duration(entry.duration),
                )
        return table

    def table(self) -> Table:
        return self._table([(None, self.entries)])

    def table_by_day(self) -> Table:
        return self._table(list(self.group_by_day()))

    def summary(self) -> list[tuple[date, dict[str, timedelta]]]:
        """Total duration per side name for each day."""
        result = []
        for day, entries in self.group_by_day():
            durations: dict[str, timedelta] = defaultdict(timedelta)
            for entry in entries:
                durations[self.name(entry)] += entry.duration
            result.append((day, dict(durations)))
        return result

    def summarized(self) -> Table:
        table = Table("Side", "Duration")
        for day, durations in self.summary():
            table.add_section()
            table.add_row(f"[bold]{day}[/bold]", "")
            for name, duration in durations.items():
                table.add_row(name, format_duration(duration))
        return table

    def __str__(self) -> str:
        lines = []
        for entry in self.entries:
            state = "paused" if entry.pause else "started"
            lines.append(
                f"{self.name(entry):>12} ({entry.id}): {state} on {_local(entry.time)} "
                f"for {int(entry.duration.total_seconds())} seconds"
            )
        return "\n".join(lines)
