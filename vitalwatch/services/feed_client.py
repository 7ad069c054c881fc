"""
Vitals feed client.

Thin transport wrapper around a Socket.IO connection. It parses the two
inbound event kinds (`bpm_update`, `sensor_status`) into domain events and
publishes them, together with connection status changes, on an EventBus.
Reconnection after a dropped connection is handled by the Socket.IO client;
the initial connection is retried here with exponential backoff.
"""

import asyncio
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from numbers import Real
from typing import Any

import socketio
import structlog
from pydantic import ValidationError
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from vitalwatch.config import FeedConfig
from vitalwatch.domain.models import (
    ConnectionStatus,
    FeedEvent,
    FeedMessage,
    FeedStatusChange,
    SensorState,
    SensorStatusEvent,
    VitalSample,
)
from vitalwatch.domain.result import Result
from vitalwatch.errors import FeedDisconnected, InvalidEventError
from vitalwatch.services.event_bus import EventBus

logger = structlog.get_logger(__name__)

BPM_UPDATE = "bpm_update"
SENSOR_STATUS = "sensor_status"


def _nested_id(payload: Mapping[str, Any], key: str) -> Any:
    value = payload.get(key)
    if isinstance(value, Mapping):
        value = value.get("id")
    if value is None or value == "":
        return None
    # Numeric ids may arrive as strings; the registry keys them as ints
    if isinstance(value, str) and value.isdecimal():
        return int(value)
    return value


def parse_feed_event(
    payload: Any, event_name: str | None = None
) -> Result[FeedEvent, InvalidEventError]:
    """
    Convert a raw feed payload into a domain event.

    The payload's own `event` key wins over the transport event name.
    Malformed payloads are expected on a live feed, so they come back as an
    error Result instead of raising.
    """
    if not isinstance(payload, Mapping):
        return Result.err(
            InvalidEventError(f"Payload must be a mapping, got {type(payload).__name__}")
        )

    kind = payload.get("event", event_name)
    room_id = _nested_id(payload, "room")
    if room_id is None:
        return Result.err(InvalidEventError(f"{kind or 'event'} is missing a room id"))

    try:
        if kind == BPM_UPDATE:
            patient_id = _nested_id(payload, "patient")
            if patient_id is None:
                return Result.err(InvalidEventError("bpm_update is missing a patient id"))

            bpm = payload.get("bpm")
            if bpm is not None and (isinstance(bpm, bool) or not isinstance(bpm, Real)):
                return Result.err(InvalidEventError(f"bpm must be numeric or null, got {bpm!r}"))

            fields: dict[str, Any] = {
                "room_id": room_id,
                "patient_id": patient_id,
                "heart_rate": bpm,
            }
            if payload.get("serverTimestamp"):
                fields["timestamp"] = payload["serverTimestamp"]
            return Result.ok(VitalSample(**fields))

        if kind == SENSOR_STATUS:
            state = (
                SensorState.TIMEOUT
                if payload.get("status") == SensorState.TIMEOUT.value
                else SensorState.DISCONNECTED
            )
            fields = {"room_id": room_id, "state": state, "mac_address": payload.get("macAddress")}
            if payload.get("timestamp"):
                fields["timestamp"] = payload["timestamp"]
            return Result.ok(SensorStatusEvent(**fields))

    except ValidationError as e:
        return Result.err(InvalidEventError(f"Invalid {kind} payload: {e}"))

    return Result.err(InvalidEventError(f"Unsupported feed event {kind!r}"))


class VitalsFeedClient:
    """
    Socket.IO client publishing parsed vitals events on an EventBus.

    Connection status is tracked as connecting/connected/disconnected and
    every change is published as a FeedStatusChange.
    """

    def __init__(
        self,
        config: FeedConfig,
        bus: EventBus[FeedMessage],
        client: socketio.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.bus = bus
        self.client = client or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=0,  # retry forever
            reconnection_delay=config.reconnect_delay_seconds,
            reconnection_delay_max=config.reconnect_delay_max_seconds,
        )
        self.status = ConnectionStatus.DISCONNECTED
        self.dropped_events = 0
        self.logger = logger.bind(component="feed_client", url=config.url)

        self.client.on("connect", self._on_connect)
        self.client.on("disconnect", self._on_disconnect)
        self.client.on(BPM_UPDATE, self._on_bpm_update)
        self.client.on(SENSOR_STATUS, self._on_sensor_status)

    async def connect(self) -> None:
        """
        Open the connection, retrying with exponential backoff.

        Raises:
            FeedDisconnected: If every attempt fails.
        """
        self._set_status(ConnectionStatus.CONNECTING)
        delay = self.config.reconnect_delay_seconds
        last_error: Exception | None = None

        for attempt in range(1, self.config.max_connect_attempts + 1):
            try:
                await self.client.connect(
                    self.config.url,
                    transports=self.config.transports,
                    socketio_path=self.config.socketio_path,
                    wait_timeout=self.config.connect_timeout_seconds,
                )
                return
            except SocketIOConnectionError as e:
                last_error = e
                self.logger.warning("feed_connect_failed", attempt=attempt, error=str(e))
                if attempt < self.config.max_connect_attempts:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, self.config.reconnect_delay_max_seconds)

        self._set_status(ConnectionStatus.DISCONNECTED, detail=str(last_error))
        raise FeedDisconnected(
            f"Could not reach vitals feed at {self.config.url} "
            f"after {self.config.max_connect_attempts} attempts"
        ) from last_error

    async def disconnect(self) -> None:
        await self.client.disconnect()
        self._set_status(ConnectionStatus.DISCONNECTED)

    @asynccontextmanager
    async def session(self) -> AsyncIterator["VitalsFeedClient"]:
        """Connected for the duration of the block, disconnected on every exit path."""
        await self.connect()
        try:
            yield self
        finally:
            await self.disconnect()

    async def _on_connect(self) -> None:
        self._set_status(ConnectionStatus.CONNECTED)

    async def _on_disconnect(self, reason: Any = None) -> None:
        self._set_status(
            ConnectionStatus.DISCONNECTED, detail=str(reason) if reason is not None else None
        )

    async def _on_bpm_update(self, data: Any) -> None:
        self.handle_payload(data, BPM_UPDATE)

    async def _on_sensor_status(self, data: Any) -> None:
        self.handle_payload(data, SENSOR_STATUS)

    def handle_payload(self, data: Any, event_name: str | None = None) -> FeedEvent | None:
        """Parse a raw payload and publish it. Invalid payloads are logged and dropped."""
        result = parse_feed_event(data, event_name)
        if result.is_err():
            self.dropped_events += 1
            self.logger.warning(
                "feed_event_dropped", event_name=event_name, error=str(result.unwrap_err())
            )
            return None

        event = result.unwrap()
        if not self.bus.closed:
            self.bus.publish(event)
        return event

    def _set_status(self, status: ConnectionStatus, detail: str | None = None) -> None:
        if status == self.status:
            return
        self.logger.info("feed_status_changed", previous=self.status.value, status=status.value)
        self.status = status
        if not self.bus.closed:
            self.bus.publish(FeedStatusChange(status=status, detail=detail))
