"""Shared test doubles and fixtures for the vitals pipeline tests."""

import asyncio
from collections.abc import Callable

import pytest

from vitalwatch.config import AppConfig
from vitalwatch.domain.models import HeartRateThresholds, Identifier, Patient, Room
from vitalwatch.services.registry import InMemoryRegistry


class RecordingAlarmSink:
    """Test double that implements the AlarmSink protocol and records calls."""

    def __init__(
        self,
        fail_start: bool = False,
        fail_stop: bool = False,
        delay_seconds: float = 0.0,
    ) -> None:
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.delay_seconds = delay_seconds
        self.calls: list[tuple[str, Identifier]] = []
        self.active: set[Identifier] = set()
        self.double_acquisitions = 0

    async def start_alarm(self, room_id: Identifier) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        if self.fail_start:
            raise OSError("audio device unavailable")
        if room_id in self.active:
            self.double_acquisitions += 1
        self.active.add(room_id)
        self.calls.append(("start", room_id))

    async def stop_alarm(self, room_id: Identifier) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        self.active.discard(room_id)
        self.calls.append(("stop", room_id))
        if self.fail_stop:
            raise OSError("audio device vanished")

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)


@pytest.fixture
def make_sink() -> Callable[..., RecordingAlarmSink]:
    return RecordingAlarmSink


@pytest.fixture
def sink() -> RecordingAlarmSink:
    return RecordingAlarmSink()


@pytest.fixture
def app_config() -> AppConfig:
    """Explicit defaults so tests never depend on the environment."""
    return AppConfig()


@pytest.fixture
def standard_thresholds() -> HeartRateThresholds:
    return HeartRateThresholds(min_heart_rate=55, max_heart_rate=120)


@pytest.fixture
def registry(standard_thresholds: HeartRateThresholds) -> InMemoryRegistry:
    """Ward with three occupied rooms and one empty room."""
    return InMemoryRegistry(
        rooms=[
            Room(id=101, patient_id=1, sector="UTI", floor=1),
            Room(id=102, patient_id=2, sector="UTI", floor=1),
            Room(id=103, patient_id=3, sector="UTI", floor=1),
            Room(id=104, sector="UTI", floor=1),
        ],
        patients=[
            Patient(id=1, name="Ana Souza", thresholds=standard_thresholds),
            Patient(
                id=2,
                name="Carlos Lima",
                thresholds=HeartRateThresholds(min_heart_rate=65, max_heart_rate=100),
            ),
            # No bounds configured yet
            Patient(id=3, name="Beatriz Rocha"),
            Patient(id=4, name="Davi Alves", thresholds=standard_thresholds),
        ],
    )
