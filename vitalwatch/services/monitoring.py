"""
Ward monitoring service: the end-to-end vitals pipeline.

1. Consume feed messages from the event bus in arrival order
2. Resolve the room's occupant and bounds through the registry
3. Classify the event and commit the record (last-write-wins per room)
4. Drive the alarm controller from the tier transition
5. Record alerts and publish the room view to subscribers

Architecture pattern: event-driven pipeline with error boundaries around
every collaborator, so a bad event or a failing subscriber never stops it.
"""

import asyncio
import inspect
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Protocol

import structlog

from vitalwatch.config import AppConfig, get_config
from vitalwatch.domain.models import (
    AlertEvent,
    ClassificationRecord,
    ConnectionStatus,
    DashboardSummary,
    FeedEvent,
    FeedMessage,
    FeedStatusChange,
    Identifier,
    Patient,
    Room,
    RoomView,
    Tier,
    VitalSample,
)
from vitalwatch.errors import InvalidEventError
from vitalwatch.services.alarm_controller import AlarmController, AlarmSink
from vitalwatch.services.classification import REASON_EMPTY, ClassificationEngine
from vitalwatch.services.event_bus import EventBus
from vitalwatch.services.presentation import present, summarize
from vitalwatch.services.registry import RoomRegistry

logger = structlog.get_logger()

REASON_FEED_LOST = "Perda de Conexão com o servidor"

ALERTING_TIERS = frozenset({Tier.WARNING, Tier.URGENT, Tier.NO_SIGNAL})

ViewHandler = Callable[[RoomView], Awaitable[None] | None]
AlertHandler = Callable[[AlertEvent], Awaitable[None] | None]


class ManagedRegistry(RoomRegistry, Protocol):
    """Registry that also accepts the assignment changes driven from the ward screens."""

    def rooms(self) -> list[Room]: ...

    def assign_patient(self, patient_id: Identifier, room_id: Identifier) -> list[Identifier]: ...

    def unassign_room(self, room_id: Identifier) -> Identifier | None: ...

    def set_room_active(self, room_id: Identifier, active: bool) -> Identifier | None: ...

    def update_thresholds(
        self, patient_id: Identifier, min_heart_rate: float, max_heart_rate: float
    ) -> Patient: ...


class AlertManager:
    """Keeps a bounded history of tier escalations."""

    def __init__(self, history_size: int = 1000) -> None:
        self.alert_history: deque[AlertEvent] = deque(maxlen=history_size)
        self.logger = logger.bind(component="alert_manager")

    def process_transition(
        self, prev_tier: Tier | None, record: ClassificationRecord
    ) -> AlertEvent | None:
        """Raise an alert when a room enters an alerting tier."""
        if record.tier not in ALERTING_TIERS or record.tier == prev_tier:
            return None

        message = f"Quarto {record.room_id}: {record.reason}"
        if record.numeric_value:
            message += f" ({record.numeric_value:g} bpm)"

        alert = AlertEvent(
            room_id=record.room_id,
            patient_id=record.patient_id,
            tier=record.tier,
            message=message,
            heart_rate=record.numeric_value,
        )
        self.alert_history.append(alert)
        self.logger.info(
            "alert_generated",
            room_id=record.room_id,
            tier=record.tier.value,
            heart_rate=record.numeric_value,
        )
        return alert

    def mark_viewed(self, alert_id: str) -> bool:
        for alert in self.alert_history:
            if alert.id == alert_id:
                alert.viewed = True
                return True
        return False

    def unviewed(self) -> list[AlertEvent]:
        return [alert for alert in self.alert_history if not alert.viewed]

    def for_room(self, room_id: Identifier) -> list[AlertEvent]:
        return [alert for alert in self.alert_history if alert.room_id == room_id]


class WardMonitoringService:
    """
    Main service that orchestrates the vitals pipeline.

    Holds the only live state of the core: the latest classification record
    per occupied room. Alarm state lives in the AlarmController.
    """

    def __init__(
        self,
        registry: ManagedRegistry,
        alarm_sink: AlarmSink,
        config: AppConfig | None = None,
        bus: EventBus[FeedMessage] | None = None,
    ) -> None:
        self.config = config or get_config()
        self.registry = registry
        self.logger = logger.bind(component="ward_monitoring")

        self.engine = ClassificationEngine(self.config.classification)
        self.alarms = AlarmController(alarm_sink)
        self.alert_manager = AlertManager(self.config.alarms.alert_history_size)

        # Subscribe before anything can publish so no message is missed
        self.bus: EventBus[FeedMessage] = bus or EventBus()
        self._subscription = self.bus.open_subscription()

        self.records: dict[Identifier, ClassificationRecord] = {}
        self.feed_status = ConnectionStatus.CONNECTING
        self._view_handlers: list[ViewHandler] = []
        self._alert_handlers: list[AlertHandler] = []
        self._is_running = False
        self._consumer: asyncio.Task | None = None

    # Subscribers

    def add_view_handler(self, handler: ViewHandler) -> None:
        self._view_handlers.append(handler)

    def add_alert_handler(self, handler: AlertHandler) -> None:
        self._alert_handlers.append(handler)

    # Queries

    @property
    def is_running(self) -> bool:
        return self._is_running

    def latest(self, room_id: Identifier) -> ClassificationRecord | None:
        return self.records.get(room_id)

    def tier_of(self, room_id: Identifier) -> Tier:
        record = self.records.get(room_id)
        return record.tier if record else Tier.EMPTY

    def view(self, room_id: Identifier) -> RoomView:
        record = self.records.get(room_id) or ClassificationRecord(
            room_id=room_id, tier=Tier.EMPTY, reason=REASON_EMPTY
        )
        return present(record, self.alarms.is_sounding(room_id))

    def views(self) -> list[RoomView]:
        return [self.view(room.id) for room in self.registry.rooms()]

    def summary(self) -> DashboardSummary:
        return summarize(
            self.registry.rooms(),
            self.records,
            sounding_alarms=len(self.alarms.sounding_rooms),
            feed_status=self.feed_status,
        )

    def unviewed_alerts(self) -> list[AlertEvent]:
        return self.alert_manager.unviewed()

    def mark_alert_viewed(self, alert_id: str) -> bool:
        return self.alert_manager.mark_viewed(alert_id)

    # Pipeline

    async def handle_message(self, message: FeedMessage) -> ClassificationRecord | None:
        if isinstance(message, FeedStatusChange):
            await self.handle_feed_status(message)
            return None
        return await self.handle_event(message)

    async def handle_event(self, event: FeedEvent) -> ClassificationRecord | None:
        """
        Classify one event and apply it.

        Malformed events are logged and dropped without any state change.
        """
        try:
            room_id = getattr(event, "room_id", None)
            room = self.registry.get_room(room_id) if room_id is not None else None
            if room is None and room_id is not None:
                self.logger.warning(
                    "room_not_registered", room_id=room_id, room_id_type=type(room_id).__name__
                )
            patient = self._occupant(room)

            if (
                isinstance(event, VitalSample)
                and patient is not None
                and event.patient_id is not None
                and event.patient_id != patient.id
            ):
                self.logger.warning(
                    "sample_patient_mismatch",
                    room_id=room_id,
                    sample_patient_id=event.patient_id,
                    occupant_patient_id=patient.id,
                )

            record = self.engine.classify(event, patient)
        except InvalidEventError as e:
            self.logger.warning("invalid_event_dropped", error=str(e))
            return None

        return await self._commit(record)

    async def handle_feed_status(self, change: FeedStatusChange) -> None:
        """
        Track feed connectivity.

        Losing the feed makes every live record stale: each classified room is
        moved to `disconnected` and every alarm is forcibly stopped. A
        reconnect restores nothing; the next event re-derives the tier.
        """
        previous = self.feed_status
        self.feed_status = change.status
        self.logger.info(
            "feed_status_changed", previous=previous.value, status=change.status.value
        )

        if change.status is not ConnectionStatus.DISCONNECTED:
            return

        for room_id, record in list(self.records.items()):
            stale = ClassificationRecord(
                room_id=room_id,
                patient_id=record.patient_id,
                tier=Tier.DISCONNECTED,
                reason=REASON_FEED_LOST,
            )
            await self._commit(stale)
        await self.alarms.release_all()

    async def run(self) -> None:
        """Consume the bus until it is closed. Messages are handled one at a time."""
        self.logger.info("ward_monitoring_started")
        self._is_running = True
        self._consumer = asyncio.current_task()

        try:
            async for message in self._subscription:
                try:
                    await self.handle_message(message)
                except Exception as e:
                    self.logger.exception("message_processing_failed", error=str(e))
        except asyncio.CancelledError:
            self.logger.info("ward_monitoring_cancelled")
            raise
        finally:
            self._is_running = False
            self._consumer = None
            self.logger.info("ward_monitoring_stopped")

    async def stop(self) -> None:
        """Close the bus; `run` returns once queued messages are handled."""
        self.logger.info("stopping_ward_monitoring")
        self.bus.close()

    @asynccontextmanager
    async def session(self) -> AsyncIterator["WardMonitoringService"]:
        """
        Every alarm is released when the block exits, on any path.

        On exit the bus is closed and a running consumer is awaited so
        messages queued before the close are applied before the release.
        Anything processed after that cannot start an alarm.
        """
        async with self.alarms.session():
            try:
                yield self
            finally:
                await self.stop()
                consumer = self._consumer
                if consumer is not None and consumer is not asyncio.current_task():
                    await asyncio.wait({consumer})

    # Registry changes with teardown

    async def assign_patient(self, patient_id: Identifier, room_id: Identifier) -> None:
        for changed_room in self.registry.assign_patient(patient_id, room_id):
            await self._teardown_room(changed_room)

    async def unassign_room(self, room_id: Identifier) -> None:
        if self.registry.unassign_room(room_id) is not None:
            await self._teardown_room(room_id)

    async def set_room_active(self, room_id: Identifier, active: bool) -> None:
        if self.registry.set_room_active(room_id, active) is not None:
            await self._teardown_room(room_id)

    def update_thresholds(
        self, patient_id: Identifier, min_heart_rate: float, max_heart_rate: float
    ) -> Patient:
        """New bounds apply from the next sample for the patient's room."""
        return self.registry.update_thresholds(patient_id, min_heart_rate, max_heart_rate)

    # Internals

    def _occupant(self, room: Room | None) -> Patient | None:
        if room is None or room.patient_id is None:
            return None
        patient = self.registry.get_patient(room.patient_id)
        thresholds = self.registry.get_patient_thresholds(room.patient_id)
        if patient is None:
            return Patient(id=room.patient_id, name=str(room.patient_id), thresholds=thresholds)
        return patient.model_copy(update={"thresholds": thresholds})

    async def _commit(self, record: ClassificationRecord) -> ClassificationRecord:
        room_id = record.room_id
        prev = self.records.get(room_id)
        prev_tier = prev.tier if prev else None

        if record.tier is Tier.EMPTY:
            self.records.pop(room_id, None)
        else:
            self.records[room_id] = record

        action = self.alarms.on_classification(prev_tier, record.tier, room_id)
        alert = self.alert_manager.process_transition(prev_tier, record)

        self.logger.debug(
            "room_classified",
            room_id=room_id,
            tier=record.tier.value,
            heart_rate=record.numeric_value,
            alarm_action=action.value,
        )

        view = present(record, self.alarms.is_sounding(room_id))
        await self._dispatch(self._view_handlers, view)
        if alert is not None:
            await self._dispatch(self._alert_handlers, alert)
        return record

    async def _teardown_room(self, room_id: Identifier) -> None:
        """Reset a room to empty and stop its alarm unconditionally."""
        self.records.pop(room_id, None)
        await self.alarms.release(room_id)
        self.logger.info("room_torn_down", room_id=room_id)
        await self._dispatch(self._view_handlers, self.view(room_id))

    async def _dispatch(self, handlers: list, item: object) -> None:
        for handler in handlers:
            try:
                result = handler(item)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error(
                    "handler_dispatch_failed",
                    error=str(e),
                    handler=getattr(handler, "__name__", repr(handler)),
                )
