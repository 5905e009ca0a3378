"""TimeFlip2 control CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, List, NoReturn, Optional, TypeVar

import click
import typer
from bleak.exc import BleakDeviceNotFoundError, BleakError
from prettytable import SINGLE_BORDER, PrettyTable
from rich import print
from rich.logging import RichHandler
from rich.table import Table
from typer import Context
from typing_extensions import Annotated

from . import commands
from .config import DEFAULT_CONFIG_PATH, Config, load_config
from .device import TimeFlip
from .events import BatteryLevel, Disconnected, DoubleTap, Event, FacetChanged, LastEvent
from .exception import EndOfHistory, NoDeviceError, TimeFlipError
from .protocol import Entry, decode_entry, decode_sync_state
from .session import BluetoothSession, is_paired
from .storage import load_history, merge_entries, save_history
from .types import BlinkInterval, Color, Facet, Minutes, Percent, PomodoroTask, SIMPLE
from .view import History, format_duration

app = typer.Typer(help="TimeFlip2 control")

T = TypeVar("T")

NOT_FOUND_MSG = (
    "TimeFlip2 Not Found, Unreachable or Failed to Connect, "
    "ensure the TimeFlip app is not connected"
)

AddressOption = Annotated[
    Optional[str],
    typer.Option("--address", "-a", help="BLE MAC, e.g. AA:BB:CC:DD:EE:FF; first TimeFlip2 found if omitted"),
]
ConfigOption = Annotated[
    Path,
    typer.Option("--config", "-c", help="JSON config with password, LED settings and sides"),
]
FacetArgument = Annotated[int, typer.Argument(min=1, max=12, help="Facet 1-12")]

# ────────────────────────────────────────────────────────────────
# Global options (e.g., --debug)
# ────────────────────────────────────────────────────────────────


@app.callback()
def _global_options(
    ctx: Context,
    debug: Annotated[
        bool,
        typer.Option("--debug/--no-debug", help="Enable verbose debug logging"),
    ] = False,
) -> None:
    """Talk to a TimeFlip2 over bluetooth."""
    ctx.obj = ctx.obj or {}
    ctx.obj["debug"] = bool(debug)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False, show_level=True)],
    )
    if debug:
        # Make BLE + our namespace verbose
        logging.getLogger("bleak").setLevel(logging.DEBUG)
        logging.getLogger("timeflip").setLevel(logging.DEBUG)


# ────────────────────────────────────────────────────────────────
# Shared runner for device-bound methods
# ────────────────────────────────────────────────────────────────


def _handle_connect_errors(ex: Exception) -> NoReturn:
    msg = str(ex).lower()
    if (
        isinstance(ex, (NoDeviceError, BleakDeviceNotFoundError))
        or "not found" in msg
        or "unreachable" in msg
        or "failed to connect" in msg
    ):
        typer.echo(NOT_FOUND_MSG)
        raise typer.Exit(1)
    raise ex


async def _connect(address: Optional[str], config: Config) -> TimeFlip:
    return await TimeFlip.connect(password=config.password, address=address)


def _debug_enabled() -> bool:
    ctx = click.get_current_context(silent=True)
    if ctx is None:
        return False
    obj = ctx.find_root().obj
    return bool(obj and obj.get("debug"))


def _with_device(
    address: Optional[str],
    config: Config,
    func: Callable[[TimeFlip], Awaitable[T]],
) -> T:
    """Connect, run ``func`` on the device and disconnect again."""

    async def _async_func() -> T:
        try:
            timeflip = await _connect(address, config)
        except (NoDeviceError, BleakError) as ex:
            _handle_connect_errors(ex)
        if _debug_enabled():
            timeflip.set_log_level(logging.DEBUG)
        try:
            return await func(timeflip)
        finally:
            await timeflip.disconnect()

    try:
        return asyncio.run(_async_func())
    except (TimeFlipError, BleakError) as ex:
        print(f"[red]{ex}[/red]")
        raise typer.Exit(1)


def _run_device_func(
    method_name: str,
    address: Optional[str],
    config_path: Path = DEFAULT_CONFIG_PATH,
    **kwargs: Any,
) -> Any:
    """Invoke a coroutine method on the device and return its result."""
    config = _load_config_or_exit(config_path)

    async def _call(timeflip: TimeFlip) -> Any:
        meth = getattr(timeflip, method_name)
        return await meth(**kwargs)

    return _with_device(address, config, _call)


def _load_config_or_exit(path: Path) -> Config:
    try:
        return load_config(path)
    except TimeFlipError as ex:
        print(f"[red]{ex}[/red]")
        raise typer.Exit(1)


def _load_history_or_exit(path: Path) -> tuple[int, list[Entry]]:
    try:
        return load_history(path)
    except TimeFlipError as ex:
        print(f"[red]{ex}[/red]")
        raise typer.Exit(1)


def _save_history_or_exit(path: Path, entries: list[Entry]) -> None:
    try:
        save_history(path, entries)
    except TimeFlipError as ex:
        print(f"[red]{ex}[/red]")
        raise typer.Exit(1)


def _parse_hex_blob(blob: str) -> bytes:
    s = "".join(blob.strip().split())
    if len(s) % 2 != 0:
        raise typer.BadParameter("Hex length must be even.")
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise typer.BadParameter("Invalid hex characters in payload.") from e


# ────────────────────────────────────────────────────────────────
# timeflipctl list-devices
# ────────────────────────────────────────────────────────────────


@app.command(name="list-devices")
def list_devices(timeout: Annotated[int, typer.Option()] = 5) -> None:
    """List all TimeFlip2 devices in range."""
    print("the search for TimeFlip2 devices is running")
    devices = asyncio.run(BluetoothSession().get_devices(timeout=timeout))
    table = Table("Name", "Address", "Paired")
    for device in devices:
        paired = is_paired(device)
        table.add_row(
            device.name or "(unknown)",
            device.address,
            "?" if paired is None else ("yes" if paired else "no"),
        )
    print("Discovered the following devices:")
    print(table)


# ────────────────────────────────────────────────────────────────
# Reads
# ────────────────────────────────────────────────────────────────


@app.command()
def battery(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Show the battery level."""
    level = _run_device_func("battery_level", address, config)
    print(f"Battery level: {level}")


@app.command()
def facet(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Show the facet currently facing up."""
    current = _run_device_func("facet", address, config)
    print(f"Current facet: {current}")


@app.command(name="last-event")
def last_event(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Show the last informational message of the device."""
    text = _run_device_func("last_event", address, config)
    print(f"Last event: {text}")


@app.command()
def status(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Show lock mode, pause mode and auto-pause time."""
    result = _run_device_func("system_status", address, config)
    table = Table("Lock", "Pause", "Auto-pause")
    table.add_row(
        "on" if result.lock_mode else "off",
        "on" if result.pause_mode else "off",
        str(result.auto_pause_time),
    )
    print(table)


@app.command(name="sync-state")
def sync_state(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Show which part of the configuration the device wants synchronized."""
    state = _run_device_func("sync_state", address, config)
    print(f"Sync state: {state.sync}")
    if state.accelerometer_error:
        print("[red]accelerometer error[/red]")
    if state.flash_error:
        print("[red]flash error[/red]")


# ────────────────────────────────────────────────────────────────
# Configuration
# ────────────────────────────────────────────────────────────────


@app.command()
def sync(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Write what the device reports as out of date, until it is synchronized."""
    cfg = _load_config_or_exit(config)
    _with_device(address, cfg, lambda timeflip: timeflip.sync(cfg))
    print("TimeFlip2 is synchronized")


@app.command(name="write-config")
def write_config(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Write the whole configuration to the device."""
    cfg = _load_config_or_exit(config)
    _with_device(address, cfg, lambda timeflip: timeflip.write_config(cfg))
    print(f"Configuration from {config} written")


@app.command()
def time(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Show the time saved on the device."""
    device_time = _run_device_func("time", address, config)
    print(f"Device time: {device_time.astimezone()}")


@app.command(name="set-time")
def set_time(
    when: Annotated[
        Optional[datetime],
        typer.Argument(help="Time to set, local time if no offset is given; now if omitted"),
    ] = None,
    address: AddressOption = None,
    config: ConfigOption = DEFAULT_CONFIG_PATH,
) -> None:
    """Set the time saved on the device."""
    when = (when or datetime.now()).astimezone()
    _run_device_func("set_time", address, config, time=when)
    print(f"Device time set to {when}")


@app.command()
def brightness(
    value: Annotated[int, typer.Argument(min=0, max=100, help="LED brightness in percent")],
    address: AddressOption = None,
    config: ConfigOption = DEFAULT_CONFIG_PATH,
) -> None:
    """Set the LED brightness."""
    _run_device_func("brightness", address, config, brightness=Percent(value))


@app.command(name="blink-interval")
def blink_interval(
    seconds: Annotated[int, typer.Argument(min=5, max=60)],
    address: AddressOption = None,
    config: ConfigOption = DEFAULT_CONFIG_PATH,
) -> None:
    """Set the interval the LED blinks in while a facet is active."""
    _run_device_func("blink_interval", address, config, interval=BlinkInterval(seconds))


@app.command()
def color(
    facet_index: FacetArgument,
    red: Annotated[int, typer.Argument(min=0, max=0xFFFF)],
    green: Annotated[int, typer.Argument(min=0, max=0xFFFF)],
    blue: Annotated[int, typer.Argument(min=0, max=0xFFFF)],
    address: AddressOption = None,
    config: ConfigOption = DEFAULT_CONFIG_PATH,
) -> None:
    """Set the LED color of a facet."""
    _run_device_func(
        "color", address, config, facet=Facet(facet_index), color=Color(red, green, blue)
    )


@app.command()
def task(
    facet_index: FacetArgument,
    pomodoro: Annotated[
        Optional[int],
        typer.Option(min=1, help="Pomodoro timer in seconds; simple counting if omitted"),
    ] = None,
    address: AddressOption = None,
    config: ConfigOption = DEFAULT_CONFIG_PATH,
) -> None:
    """Set the task of a facet."""
    facet_task = PomodoroTask(pomodoro) if pomodoro else SIMPLE
    _run_device_func("task", address, config, facet=Facet(facet_index), task=facet_task)


@app.command(name="get-task")
def get_task(
    facet_index: FacetArgument,
    address: AddressOption = None,
    config: ConfigOption = DEFAULT_CONFIG_PATH,
) -> None:
    """Show the task of a facet."""
    settings = _run_device_func("get_task", address, config, facet=Facet(facet_index))
    print(
        f"{settings.facet}: {settings.task}, "
        f"started {format_duration(timedelta(seconds=settings.seconds_since_start))} ago"
    )


@app.command()
def lock(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Lock the current facet, flips are ignored."""
    _run_device_func("lock", address, config)


@app.command()
def unlock(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    _run_device_func("unlock", address, config)


@app.command()
def pause(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    _run_device_func("pause", address, config)


@app.command()
def unpause(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    _run_device_func("unpause", address, config)


@app.command(name="auto-pause")
def auto_pause(
    minutes: Annotated[int, typer.Argument(min=0, max=0xFFFF, help="0 disables auto-pause")],
    address: AddressOption = None,
    config: ConfigOption = DEFAULT_CONFIG_PATH,
) -> None:
    """Set the auto-pause time."""
    _run_device_func("auto_pause", address, config, minutes=Minutes(minutes))


# ────────────────────────────────────────────────────────────────
# History
# ────────────────────────────────────────────────────────────────


@app.command()
def history(
    start_id: Annotated[
        Optional[int],
        typer.Option(min=0, help="First entry id to read; last persisted id or 0 if omitted"),
    ] = None,
    since: Annotated[
        Optional[datetime],
        typer.Option(help="Only show entries started after this time (local time)"),
    ] = None,
    persist: Annotated[
        Optional[Path],
        typer.Option(help="JSON file to merge the read entries into"),
    ] = None,
    by_day: Annotated[bool, typer.Option("--by-day")] = False,
    summary: Annotated[bool, typer.Option("--summary")] = False,
    address: AddressOption = None,
    config: ConfigOption = DEFAULT_CONFIG_PATH,
) -> None:
    """Read the flip history of the device."""
    cfg = _load_config_or_exit(config)
    last_seen, stored = _load_history_or_exit(persist) if persist else (0, [])
    first = start_id if start_id is not None else last_seen

    new_entries = _with_device(address, cfg, lambda timeflip: timeflip.read_history_since(first))

    if persist:
        _, entries = merge_entries(stored, new_entries)
        _save_history_or_exit(persist, entries)
    else:
        entries = new_entries

    view = History(entries, cfg)
    filtered = view.since(since.astimezone()) if since else view.all()
    if summary:
        print(filtered.summarized())
    elif by_day:
        print(filtered.table_by_day())
    else:
        print(filtered.table())


@app.command(name="last-entry")
def last_entry(address: AddressOption = None, config: ConfigOption = DEFAULT_CONFIG_PATH) -> None:
    """Show the most recent history entry."""
    cfg = _load_config_or_exit(config)

    async def _read(timeflip: TimeFlip) -> Optional[Entry]:
        try:
            return await timeflip.read_last_history_entry()
        except EndOfHistory:
            return None

    entry = _with_device(address, cfg, _read)
    print(entry if entry is not None else "History is empty")


# ────────────────────────────────────────────────────────────────
# Live events
# ────────────────────────────────────────────────────────────────


def _describe_event(event: Event) -> str:
    if isinstance(event, BatteryLevel):
        return f"Battery level: {event.level}"
    if isinstance(event, LastEvent):
        return f"Event: {event.text}"
    if isinstance(event, FacetChanged):
        return f"Facet: {event.facet}"
    if isinstance(event, DoubleTap):
        return f"Double tap: {event.facet} {'paused' if event.pause else 'resumed'}"
    if isinstance(event, Disconnected):
        return "Disconnected"
    return repr(event)


@app.command()
def events(
    battery_events: Annotated[bool, typer.Option("--battery")] = False,
    text_events: Annotated[bool, typer.Option("--event")] = False,
    facet_events: Annotated[bool, typer.Option("--facet")] = False,
    double_tap_events: Annotated[bool, typer.Option("--double-tap")] = False,
    address: AddressOption = None,
    config: ConfigOption = DEFAULT_CONFIG_PATH,
) -> None:
    """Print live events until the device disconnects.

    Subscribes to all event sources if none is selected.
    """
    cfg = _load_config_or_exit(config)
    if not (battery_events or text_events or facet_events or double_tap_events):
        battery_events = text_events = facet_events = double_tap_events = True

    async def _listen(timeflip: TimeFlip) -> None:
        if battery_events:
            await timeflip.subscribe_battery_level()
        if text_events:
            await timeflip.subscribe_events()
        if facet_events:
            await timeflip.subscribe_facet()
        if double_tap_events:
            await timeflip.subscribe_double_tap()
        async for event in timeflip.event_stream():
            print(_describe_event(event))

    _with_device(address, cfg, _listen)


# ────────────────────────────────────────────────────────────────
# BYTES DECODE: pretty-print a captured payload
# ────────────────────────────────────────────────────────────────


class PayloadKind(str, Enum):
    entry = "entry"
    sync_state = "sync-state"
    time = "time"
    status = "status"
    task = "task"


def _decode_payload(kind: PayloadKind, data: bytes) -> list[tuple[str, str]]:
    if kind is PayloadKind.entry:
        try:
            entry = decode_entry(data)
        except EndOfHistory:
            return [("End of history", "yes")]
        return [
            ("Id", str(entry.id)),
            ("Facet", str(entry.facet)),
            ("Pause", str(entry.pause)),
            ("Time", entry.time.isoformat()),
            ("Duration", format_duration(entry.duration)),
        ]
    if kind is PayloadKind.sync_state:
        state = decode_sync_state(data)
        return [
            ("Sync", str(state.sync)),
            ("Accelerometer error", str(state.accelerometer_error)),
            ("Flash error", str(state.flash_error)),
        ]
    if kind is PayloadKind.time:
        return [("Time", commands.decode_time(data).isoformat())]
    if kind is PayloadKind.status:
        status_ = commands.decode_system_status(data)
        return [
            ("Lock mode", str(status_.lock_mode)),
            ("Pause mode", str(status_.pause_mode)),
            ("Auto-pause", str(status_.auto_pause_time)),
        ]
    settings = commands.decode_facet_settings(data)
    return [
        ("Facet", str(settings.facet)),
        ("Task", str(settings.task)),
        ("Seconds since start", str(settings.seconds_since_start)),
    ]


@app.command(name="bytes-decode")
def bytes_decode(
    kind: Annotated[PayloadKind, typer.Argument(help="What the payload was read from")],
    payloads: Annotated[
        List[str],
        typer.Argument(help="One or more hex payloads (with or without spaces).", show_default=False),
    ],
) -> None:
    """Decode captured characteristic values without a device."""
    for idx, params in enumerate(payloads, start=1):
        value_bytes = _parse_hex_blob(params)
        table_obj = PrettyTable()
        table_obj.set_style(SINGLE_BORDER)
        table_obj.title = f"Decode {kind.value} #{idx}"
        table_obj.field_names = ["Field", "Value"]
        table_obj.align = "l"
        table_obj.add_row(["Bytes", value_bytes.hex(" ").upper()])
        try:
            rows = _decode_payload(kind, value_bytes)
        except TimeFlipError as ex:
            rows = [("Error", str(ex))]
        for row in rows:
            table_obj.add_row(list(row))
        typer.echo(str(table_obj))


if __name__ == "__main__":
    app()
