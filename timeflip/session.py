"""Bluetooth session for one TimeFlip2, built on bleak.

The session is the transport below the protocol engine: characteristic
reads/writes, notification subscriptions and streams of raw events
(characteristic values and connection changes) for the device. Every
stream gets its own copy of each raw event.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from bleak import BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak_retry_connector import BleakClientWithServiceCache, establish_connection

from .const import CHARACTERISTICS, CONNECT_TIMEOUT, SCAN_TIMEOUT, TIMEFLIP_SERVICE_UUID
from .events import CharacteristicValueEvent, DeviceConnectionEvent, RawEvent
from .exception import CharacteristicMissingError

__all__ = [
    "BluetoothSession",
    "RawEventBus",
    "RawEventStream",
    "characteristic_id",
    "is_paired",
]

_LOGGER = logging.getLogger(__name__)

CharacteristicRef = Union[BleakGATTCharacteristic, str]

# put on every open stream when the client goes away
_END_OF_STREAM = object()


def is_paired(device: BLEDevice) -> bool | None:
    """Best-effort pairing state; only BlueZ reports it."""
    details = getattr(device, "details", None)
    if isinstance(details, dict):
        props = details.get("props")
        if isinstance(props, dict) and "Paired" in props:
            return bool(props["Paired"])
    return None


def characteristic_id(characteristic: CharacteristicRef) -> str:
    """Identity of a characteristic in raw events: its lowercase UUID."""
    if isinstance(characteristic, str):
        return characteristic.lower()
    return characteristic.uuid.lower()


class RawEventStream:
    """One consumer's stream of raw events.

    Registered with the bus as soon as it is created, so nothing published
    afterwards is missed. Ends after the device disconnected; closing it
    unregisters it.
    """

    def __init__(self, bus: "RawEventBus", characteristic: Optional[str] = None) -> None:
        self._bus = bus
        self._characteristic = characteristic
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    def _wants(self, item: object) -> bool:
        if self._characteristic is None or item is _END_OF_STREAM:
            return True
        if isinstance(item, CharacteristicValueEvent):
            return item.characteristic == self._characteristic
        if isinstance(item, DeviceConnectionEvent):
            return not item.connected
        return True

    def _put(self, item: object) -> None:
        if self._wants(item):
            self._queue.put_nowait(item)

    def __aiter__(self) -> "RawEventStream":
        return self

    async def __anext__(self) -> RawEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END_OF_STREAM:
            await self.aclose()
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            self._bus._remove(self)


class RawEventBus:
    """Hands every raw event to all open streams."""

    def __init__(self) -> None:
        self._streams: list[RawEventStream] = []

    def open(self, characteristic: Optional[str] = None) -> RawEventStream:
        stream = RawEventStream(self, characteristic)
        self._streams.append(stream)
        return stream

    def _remove(self, stream: RawEventStream) -> None:
        if stream in self._streams:
            self._streams.remove(stream)

    def publish(self, event: RawEvent) -> None:
        for stream in tuple(self._streams):
            stream._put(event)

    def end(self) -> None:
        """End all open streams."""
        for stream in tuple(self._streams):
            stream._put(_END_OF_STREAM)

    def __len__(self) -> int:
        return len(self._streams)


class BluetoothSession:
    """Bleak backed transport for a single device."""

    def __init__(self, timeout: float = CONNECT_TIMEOUT) -> None:
        self._timeout = timeout
        self._device: BLEDevice | None = None
        self._client: BleakClientWithServiceCache | None = None
        self._events = RawEventBus()
        self._expected_disconnect = False

    # -------- discovery

    async def get_devices(self, timeout: float = SCAN_TIMEOUT) -> list[BLEDevice]:
        """Scan for devices advertising the TimeFlip service."""
        found = await BleakScanner.discover(
            timeout=timeout, service_uuids=[TIMEFLIP_SERVICE_UUID], return_adv=True
        )
        devices = []
        for device, adv in found.values():
            _LOGGER.debug("found device %s (%s)", device.name or "<unknown>", device.address)
            if TIMEFLIP_SERVICE_UUID in (u.lower() for u in adv.service_uuids):
                devices.append(device)
        return devices

    # -------- connection

    @property
    def device_id(self) -> str:
        assert self._device is not None  # nosec
        return self._device.address

    @property
    def is_connected(self) -> bool:
        return bool(self._client and self._client.is_connected)

    def _disconnected(self, _client: BleakClientWithServiceCache) -> None:
        """Disconnected callback."""
        if self._expected_disconnect:
            _LOGGER.debug("%s: Disconnected from device", self.device_id)
        else:
            _LOGGER.warning("%s: Device unexpectedly disconnected", self.device_id)
        self._events.publish(DeviceConnectionEvent(self.device_id, False))
        self._events.end()

    async def connect(self, device: BLEDevice) -> None:
        if self.is_connected and self._device is not None:
            if self._device.address == device.address:
                _LOGGER.debug("%s: already connected", device.address)
                return
        self._device = device
        self._expected_disconnect = False
        _LOGGER.debug("%s: Connecting", device.address)
        self._client = await establish_connection(
            BleakClientWithServiceCache,
            device,
            device.name or device.address,
            self._disconnected,
            use_services_cache=True,
            ble_device_callback=lambda: device,
            timeout=self._timeout,
        )
        _LOGGER.debug("%s: Connected", device.address)
        self._events.publish(DeviceConnectionEvent(device.address, True))

    async def disconnect(self) -> None:
        client = self._client
        self._expected_disconnect = True
        self._client = None
        if client and client.is_connected:
            await client.disconnect()

    def resolve_characteristics(self) -> dict[str, BleakGATTCharacteristic]:
        """Look up all TimeFlip2 characteristics by UUID."""
        assert self._client is not None  # nosec
        services = self._client.services
        resolved: dict[str, BleakGATTCharacteristic] = {}
        for name, service_uuid, char_uuid in CHARACTERISTICS:
            service = services.get_service(service_uuid)
            char = service.get_characteristic(char_uuid) if service else None
            if char is None:
                raise CharacteristicMissingError(f"characteristic {name} ({char_uuid}) missing")
            resolved[name] = char
        return resolved

    # -------- characteristic access

    def _require_client(self) -> BleakClientWithServiceCache:
        if self._client is None:
            raise CharacteristicMissingError("not connected")
        return self._client

    async def read_characteristic(self, characteristic: CharacteristicRef) -> bytes:
        data = await self._require_client().read_gatt_char(characteristic)
        _LOGGER.debug("read %s: %s", characteristic_id(characteristic), bytes(data).hex(" ").upper())
        return bytes(data)

    async def write_characteristic(self, characteristic: CharacteristicRef, data: bytes) -> None:
        _LOGGER.debug("write %s: %s", characteristic_id(characteristic), bytes(data).hex(" ").upper())
        await self._require_client().write_gatt_char(characteristic, data, response=True)

    def _notification_handler(self, sender: BleakGATTCharacteristic, data: bytearray) -> None:
        """Handle notification responses."""
        self._events.publish(CharacteristicValueEvent(characteristic_id(sender), bytes(data)))

    async def start_notify(self, characteristic: CharacteristicRef) -> None:
        await self._require_client().start_notify(characteristic, self._notification_handler)

    async def stop_notify(self, characteristic: CharacteristicRef) -> None:
        await self._require_client().stop_notify(characteristic)

    # -------- event streams

    def event_stream(self) -> RawEventStream:
        """All raw events of the device from now on, in delivery order.

        Ends once the device disconnected. Close it when done listening.
        """
        return self._events.open()

    def characteristic_event_stream(self, characteristic: CharacteristicRef) -> RawEventStream:
        """Value events of one characteristic plus disconnects."""
        return self._events.open(characteristic_id(characteristic))
