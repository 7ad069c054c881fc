"""
Patient and room registry lookups.

The classification core only reads from the registry. `RoomRegistry` is the
narrow lookup contract; `InMemoryRegistry` implements it and also carries the
assignment operations the ward screens drive.
"""

from typing import Protocol

import structlog

from vitalwatch.domain.models import HeartRateThresholds, Identifier, Patient, Room

logger = structlog.get_logger(__name__)


class RoomRegistry(Protocol):
    """Read-only view of rooms, occupants and their bounds."""

    def get_room(self, room_id: Identifier) -> Room | None: ...

    def get_patient(self, patient_id: Identifier) -> Patient | None: ...

    def get_patient_thresholds(self, patient_id: Identifier) -> HeartRateThresholds | None: ...


class InMemoryRegistry:
    """Dictionary-backed registry holding immutable Room/Patient snapshots."""

    def __init__(
        self, rooms: list[Room] | None = None, patients: list[Patient] | None = None
    ) -> None:
        self._rooms: dict[Identifier, Room] = {room.id: room for room in rooms or []}
        self._patients: dict[Identifier, Patient] = {p.id: p for p in patients or []}
        self.logger = logger.bind(component="registry")

    # Lookups

    def get_room(self, room_id: Identifier) -> Room | None:
        return self._rooms.get(room_id)

    def get_patient(self, patient_id: Identifier) -> Patient | None:
        return self._patients.get(patient_id)

    def get_patient_thresholds(self, patient_id: Identifier) -> HeartRateThresholds | None:
        patient = self._patients.get(patient_id)
        return patient.thresholds if patient else None

    def rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def patients(self) -> list[Patient]:
        return list(self._patients.values())

    def room_of(self, patient_id: Identifier) -> Room | None:
        """Room currently occupied by a patient, if any."""
        return next((r for r in self._rooms.values() if r.patient_id == patient_id), None)

    # Mutations

    def add_room(self, room: Room) -> None:
        if room.id in self._rooms:
            raise ValueError(f"Room {room.id} already registered")
        self._rooms[room.id] = room
        self.logger.info("room_added", room_id=room.id)

    def add_patient(self, patient: Patient) -> None:
        if patient.id in self._patients:
            raise ValueError(f"Patient {patient.id} already registered")
        self._patients[patient.id] = patient
        self.logger.info("patient_added", patient_id=patient.id)

    def update_thresholds(
        self, patient_id: Identifier, min_heart_rate: float, max_heart_rate: float
    ) -> Patient:
        patient = self._require_patient(patient_id)
        thresholds = HeartRateThresholds(
            min_heart_rate=min_heart_rate, max_heart_rate=max_heart_rate
        )
        updated = patient.model_copy(update={"thresholds": thresholds})
        self._patients[patient_id] = updated
        self.logger.info(
            "thresholds_updated",
            patient_id=patient_id,
            min_heart_rate=min_heart_rate,
            max_heart_rate=max_heart_rate,
        )
        return updated

    def assign_patient(self, patient_id: Identifier, room_id: Identifier) -> list[Identifier]:
        """
        Place a patient in a room.

        A patient occupies at most one room and a room holds at most one
        patient, so the patient's previous room is vacated.

        Returns:
            Ids of rooms whose occupant changed (the target room and any room
            the patient was moved out of).
        """
        self._require_patient(patient_id)
        room = self._require_room(room_id)
        if not room.active:
            raise ValueError(f"Room {room_id} is inactive")

        changed: list[Identifier] = []
        previous = self.room_of(patient_id)
        if previous is not None and previous.id != room_id:
            self._rooms[previous.id] = previous.model_copy(update={"patient_id": None})
            changed.append(previous.id)

        if room.patient_id != patient_id:
            self._rooms[room_id] = room.model_copy(update={"patient_id": patient_id})
            changed.append(room_id)

        self.logger.info(
            "patient_assigned",
            patient_id=patient_id,
            room_id=room_id,
            displaced_patient_id=room.patient_id if room.patient_id != patient_id else None,
        )
        return changed

    def unassign_room(self, room_id: Identifier) -> Identifier | None:
        """Vacate a room. Returns the id of the patient that was removed."""
        room = self._require_room(room_id)
        if room.patient_id is None:
            return None
        self._rooms[room_id] = room.model_copy(update={"patient_id": None})
        self.logger.info("patient_unassigned", room_id=room_id, patient_id=room.patient_id)
        return room.patient_id

    def set_room_active(self, room_id: Identifier, active: bool) -> Identifier | None:
        """
        Activate or deactivate a room. Deactivating an occupied room unassigns
        its patient; the removed patient id is returned.
        """
        room = self._require_room(room_id)
        removed = room.patient_id if not active else None
        update: dict[str, object] = {"active": active}
        if removed is not None:
            update["patient_id"] = None
        self._rooms[room_id] = room.model_copy(update=update)
        self.logger.info("room_active_changed", room_id=room_id, active=active)
        return removed

    def _require_room(self, room_id: Identifier) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise KeyError(f"Unknown room {room_id}")
        return room

    def _require_patient(self, patient_id: Identifier) -> Patient:
        patient = self._patients.get(patient_id)
        if patient is None:
            raise KeyError(f"Unknown patient {patient_id}")
        return patient
