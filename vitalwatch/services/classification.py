"""
Heart-rate classification engine.

Turns one feed event plus the room occupant's bounds into a severity tier.
Pure and synchronous: no I/O, no suspension points, no state. Rules are
evaluated in strict priority order and the first match wins:

1. No occupant                      -> empty
2. Sensor status event              -> disconnected
3. Sample with no heart rate or 0   -> no_signal
4. Numeric comparison with a proportional guard band inside the bounds
"""

from decimal import Decimal

import structlog

from vitalwatch.config import ClassificationConfig
from vitalwatch.domain.models import (
    ClassificationRecord,
    FeedEvent,
    HeartRateThresholds,
    Identifier,
    Patient,
    SensorState,
    SensorStatusEvent,
    Tier,
    VitalSample,
)
from vitalwatch.errors import InvalidEventError, ThresholdMissingWarning

logger = structlog.get_logger(__name__)

REASON_EMPTY = "Quarto vazio"
REASON_CONNECTION_LOST = "Perda de Conexão"
REASON_SENSOR_DISCONNECTED = "Sensor desconectado"
REASON_NO_SIGNAL = "PACIENTE SEM SINAL"
REASON_ABOVE_MAX = "Acima do limite máximo"
REASON_BELOW_MIN = "Abaixo do limite mínimo"
REASON_NEAR_MAX = "Próximo do limite máximo"
REASON_NEAR_MIN = "Próximo do limite mínimo"
REASON_NORMAL = "Dentro dos limites"


def _proportion(ratio: float, bound: float) -> float:
    # Decimal keeps 10% of 120 at exactly 12 so the band edge is not off by an ulp
    return float(Decimal(str(ratio)) * Decimal(str(bound)))


class ClassificationEngine:
    """Classifies feed events against per-patient heart-rate bounds."""

    def __init__(self, config: ClassificationConfig | None = None) -> None:
        self.config = config or ClassificationConfig()
        self.default_thresholds = HeartRateThresholds(
            min_heart_rate=self.config.default_min_heart_rate,
            max_heart_rate=self.config.default_max_heart_rate,
        )
        self.logger = logger.bind(component="classification_engine")

    def classify(self, event: FeedEvent, patient: Patient | None) -> ClassificationRecord:
        """
        Classify a single event for the room it addresses.

        Args:
            event: A VitalSample or SensorStatusEvent scoped to one room.
            patient: The room's current occupant, or None for an empty room.

        Raises:
            InvalidEventError: If the event is not a feed event or has no room id.
        """
        room_id = self._room_id_of(event)

        if patient is None:
            return ClassificationRecord(room_id=room_id, tier=Tier.EMPTY, reason=REASON_EMPTY)

        if isinstance(event, SensorStatusEvent):
            reason = (
                REASON_CONNECTION_LOST
                if event.state == SensorState.TIMEOUT
                else REASON_SENSOR_DISCONNECTED
            )
            return ClassificationRecord(
                room_id=room_id,
                patient_id=patient.id,
                tier=Tier.DISCONNECTED,
                reason=reason,
                classified_at=event.timestamp,
            )

        heart_rate = event.heart_rate
        if not heart_rate:
            return ClassificationRecord(
                room_id=room_id,
                patient_id=patient.id,
                tier=Tier.NO_SIGNAL,
                numeric_value=heart_rate,
                reason=REASON_NO_SIGNAL,
                classified_at=event.timestamp,
            )

        thresholds = self.resolve_thresholds(patient, room_id)
        tier, reason = self.classify_heart_rate(heart_rate, thresholds)
        return ClassificationRecord(
            room_id=room_id,
            patient_id=patient.id,
            tier=tier,
            numeric_value=heart_rate,
            reason=reason,
            classified_at=event.timestamp,
        )

    def classify_heart_rate(
        self, heart_rate: float, thresholds: HeartRateThresholds
    ) -> tuple[Tier, str]:
        """
        Numeric tier for a non-zero reading.

        Crossing a bound is strict, and a reading exactly on a bound is
        normal; the guard band only covers the open interval inside it.
        """
        upper = thresholds.max_heart_rate
        lower = thresholds.min_heart_rate
        band = _proportion(self.config.guard_band_ratio, upper)
        lower_band = _proportion(self.config.guard_band_ratio, lower)

        if heart_rate > upper:
            return Tier.URGENT, REASON_ABOVE_MAX
        if heart_rate < lower:
            return Tier.URGENT, REASON_BELOW_MIN
        if heart_rate == upper or heart_rate == lower:
            return Tier.NORMAL, REASON_NORMAL
        if heart_rate > upper - band:
            return Tier.WARNING, REASON_NEAR_MAX
        if heart_rate < lower + lower_band:
            return Tier.WARNING, REASON_NEAR_MIN
        return Tier.NORMAL, REASON_NORMAL

    def resolve_thresholds(self, patient: Patient, room_id: Identifier) -> HeartRateThresholds:
        """Patient bounds, or the configured defaults when none are set."""
        if patient.thresholds is not None:
            return patient.thresholds

        self.logger.warning(
            "threshold_missing",
            category=ThresholdMissingWarning.__name__,
            patient_id=patient.id,
            room_id=room_id,
            default_min=self.default_thresholds.min_heart_rate,
            default_max=self.default_thresholds.max_heart_rate,
        )
        return self.default_thresholds

    @staticmethod
    def _room_id_of(event: object) -> Identifier:
        if not isinstance(event, (VitalSample, SensorStatusEvent)):
            raise InvalidEventError(f"Unsupported event type: {type(event).__name__}")
        if event.room_id is None or event.room_id == "":
            raise InvalidEventError("Event is missing a room id")
        return event.room_id
