"""
Tests for feed payload parsing and the Socket.IO feed client.

A fake transport stands in for the Socket.IO connection; one test checks
handler registration against a real `socketio.AsyncClient`.
"""

from datetime import datetime

import pytest
import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from vitalwatch.config import FeedConfig
from vitalwatch.domain.models import (
    ConnectionStatus,
    FeedStatusChange,
    SensorState,
    SensorStatusEvent,
    VitalSample,
)
from vitalwatch.errors import FeedDisconnected, InvalidEventError
from vitalwatch.services.event_bus import EventBus
from vitalwatch.services.feed_client import VitalsFeedClient, parse_feed_event


class FakeSocketClient:
    """Records connect calls and lets tests trigger registered handlers."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.handlers: dict[str, object] = {}
        self.connect_calls: list[tuple[str, dict]] = []
        self.disconnect_calls = 0

    def on(self, event: str, handler: object) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs: object) -> None:
        self.connect_calls.append((url, kwargs))
        if self.failures > 0:
            self.failures -= 1
            raise SocketIOConnectionError("connection refused")
        await self.handlers["connect"]()

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        await self.handlers["disconnect"]("client disconnect")

    async def emit_event(self, event: str, data: object) -> None:
        await self.handlers[event](data)


@pytest.fixture
def feed_config() -> FeedConfig:
    return FeedConfig(
        url="http://feed.test:3001",
        max_connect_attempts=3,
        reconnect_delay_seconds=0.001,
        reconnect_delay_max_seconds=0.002,
    )


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


async def collect(bus: EventBus, subscription) -> list:
    """Close the bus and return everything queued for the subscription."""
    bus.close()
    return [message async for message in subscription]


class TestParseFeedEvent:
    def test_bpm_update(self) -> None:
        payload = {
            "event": "bpm_update",
            "room": {"id": 101},
            "patient": {"id": 1},
            "bpm": 88,
            "serverTimestamp": "2024-05-01T10:00:00+00:00",
        }

        event = parse_feed_event(payload).unwrap()

        assert isinstance(event, VitalSample)
        assert event.room_id == 101
        assert event.patient_id == 1
        assert event.heart_rate == 88
        assert event.timestamp == datetime.fromisoformat("2024-05-01T10:00:00+00:00")

    def test_null_bpm_is_kept(self) -> None:
        payload = {"room": {"id": 101}, "patient": {"id": 1}, "bpm": None}
        event = parse_feed_event(payload, "bpm_update").unwrap()
        assert event.heart_rate is None

    def test_payload_event_key_wins_over_transport_name(self) -> None:
        payload = {"event": "sensor_status", "room": {"id": 7}, "status": "timeout"}
        event = parse_feed_event(payload, "bpm_update").unwrap()
        assert isinstance(event, SensorStatusEvent)

    @pytest.mark.parametrize(
        "status,expected",
        [("timeout", SensorState.TIMEOUT), ("disconnected", SensorState.DISCONNECTED)],
    )
    def test_sensor_status(self, status: str, expected: SensorState) -> None:
        payload = {"room": {"id": 7}, "status": status, "macAddress": "AA:BB:CC:DD:EE:FF"}

        event = parse_feed_event(payload, "sensor_status").unwrap()

        assert event.state == expected
        assert event.mac_address == "AA:BB:CC:DD:EE:FF"

    def test_scalar_room_id_accepted(self) -> None:
        event = parse_feed_event({"room": "UTI-3", "status": "timeout"}, "sensor_status")
        assert event.unwrap().room_id == "UTI-3"

    def test_numeric_string_ids_become_ints(self) -> None:
        payload = {"room": {"id": "101"}, "patient": {"id": "1"}, "bpm": 130}

        sample = parse_feed_event(payload, "bpm_update").unwrap()

        assert sample.room_id == 101
        assert sample.patient_id == 1

    @pytest.mark.parametrize(
        "payload,event_name,message",
        [
            ("not a mapping", "bpm_update", "must be a mapping"),
            ({"patient": {"id": 1}, "bpm": 80}, "bpm_update", "missing a room id"),
            ({"room": {"id": ""}, "status": "timeout"}, "sensor_status", "missing a room id"),
            ({"room": {"id": 1}, "bpm": 80}, "bpm_update", "missing a patient id"),
            ({"room": {"id": 1}, "patient": {"id": 1}, "bpm": "80"}, "bpm_update", "numeric"),
            ({"room": {"id": 1}, "patient": {"id": 1}, "bpm": True}, "bpm_update", "numeric"),
            ({"room": {"id": 1}}, "heartbeat", "Unsupported feed event"),
            (
                {"room": {"id": 1}, "patient": {"id": 1}, "bpm": 80, "serverTimestamp": "soon"},
                "bpm_update",
                "Invalid bpm_update payload",
            ),
        ],
    )
    def test_malformed_payloads_are_errors(
        self, payload: object, event_name: str, message: str
    ) -> None:
        result = parse_feed_event(payload, event_name)

        assert result.is_err()
        error = result.unwrap_err()
        assert isinstance(error, InvalidEventError)
        assert message in str(error)


class TestVitalsFeedClient:
    async def test_connect_publishes_status(
        self, feed_config: FeedConfig, bus: EventBus
    ) -> None:
        subscription = bus.open_subscription()
        fake = FakeSocketClient()
        client = VitalsFeedClient(feed_config, bus, client=fake)

        await client.connect()

        assert client.status is ConnectionStatus.CONNECTED
        messages = await collect(bus, subscription)
        statuses = [m.status for m in messages if isinstance(m, FeedStatusChange)]
        assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]

        url, kwargs = fake.connect_calls[0]
        assert url == "http://feed.test:3001"
        assert kwargs["socketio_path"] == "websocket"
        assert kwargs["transports"] == ["websocket"]

    async def test_connect_retries_then_succeeds(
        self, feed_config: FeedConfig, bus: EventBus
    ) -> None:
        fake = FakeSocketClient(failures=2)
        client = VitalsFeedClient(feed_config, bus, client=fake)

        await client.connect()

        assert len(fake.connect_calls) == 3
        assert client.status is ConnectionStatus.CONNECTED

    async def test_connect_gives_up_after_max_attempts(
        self, feed_config: FeedConfig, bus: EventBus
    ) -> None:
        subscription = bus.open_subscription()
        fake = FakeSocketClient(failures=10)
        client = VitalsFeedClient(feed_config, bus, client=fake)

        with pytest.raises(FeedDisconnected, match="after 3 attempts") as exc_info:
            await client.connect()

        assert isinstance(exc_info.value.__cause__, SocketIOConnectionError)
        assert len(fake.connect_calls) == 3
        assert client.status is ConnectionStatus.DISCONNECTED
        last = (await collect(bus, subscription))[-1]
        assert last.status is ConnectionStatus.DISCONNECTED
        assert last.detail == "connection refused"

    async def test_inbound_events_are_published(
        self, feed_config: FeedConfig, bus: EventBus
    ) -> None:
        subscription = bus.open_subscription()
        fake = FakeSocketClient()
        client = VitalsFeedClient(feed_config, bus, client=fake)

        await fake.emit_event(
            "bpm_update", {"room": {"id": 101}, "patient": {"id": 1}, "bpm": 72}
        )
        await fake.emit_event("sensor_status", {"room": {"id": 101}, "status": "timeout"})
        await fake.emit_event("bpm_update", {"room": {"id": 101}, "bpm": 72})

        messages = await collect(bus, subscription)
        assert [type(m) for m in messages] == [VitalSample, SensorStatusEvent]
        assert client.dropped_events == 1

    async def test_session_disconnects_on_error(
        self, feed_config: FeedConfig, bus: EventBus
    ) -> None:
        fake = FakeSocketClient()
        client = VitalsFeedClient(feed_config, bus, client=fake)

        with pytest.raises(RuntimeError):
            async with client.session():
                assert client.status is ConnectionStatus.CONNECTED
                raise RuntimeError("dashboard crashed")

        assert fake.disconnect_calls == 1
        assert client.status is ConnectionStatus.DISCONNECTED

    async def test_nothing_published_after_bus_closes(
        self, feed_config: FeedConfig, bus: EventBus
    ) -> None:
        fake = FakeSocketClient()
        client = VitalsFeedClient(feed_config, bus, client=fake)
        bus.close()

        event = client.handle_payload(
            {"room": {"id": 101}, "patient": {"id": 1}, "bpm": 72}, "bpm_update"
        )
        await client.connect()

        assert isinstance(event, VitalSample)
        assert client.status is ConnectionStatus.CONNECTED

    def test_handlers_registered_on_socketio_client(
        self, feed_config: FeedConfig, bus: EventBus
    ) -> None:
        client = VitalsFeedClient(feed_config, bus)

        assert isinstance(client.client, socketio.AsyncClient)
        assert {"connect", "disconnect", "bpm_update", "sensor_status"} <= set(
            client.client.handlers["/"]
        )
