"""Maps classification records to dashboard affordances."""

from collections.abc import Iterable

from vitalwatch.domain.models import (
    ATTENTION_TIERS,
    ClassificationRecord,
    ConnectionStatus,
    DashboardSummary,
    Room,
    RoomView,
    Tier,
)

TIER_LABELS: dict[Tier, str] = {
    Tier.EMPTY: "Vazio",
    Tier.NORMAL: "Normal",
    Tier.WARNING: "Atenção",
    Tier.URGENT: "Urgente",
    Tier.DISCONNECTED: "Desconectado",
    Tier.NO_SIGNAL: "Sem sinal",
}

TIER_COLORS: dict[Tier, str] = {
    Tier.EMPTY: "gray",
    Tier.NORMAL: "green",
    Tier.WARNING: "yellow",
    Tier.URGENT: "red",
    Tier.DISCONNECTED: "orange",
    Tier.NO_SIGNAL: "red",
}

TIER_ICONS: dict[Tier, str] = {
    Tier.EMPTY: "bed",
    Tier.NORMAL: "heart",
    Tier.WARNING: "heart-pulse",
    Tier.URGENT: "siren",
    Tier.DISCONNECTED: "wifi-off",
    Tier.NO_SIGNAL: "heart-off",
}


def present(record: ClassificationRecord, alarm_active: bool) -> RoomView:
    """Render one room. BPM is only shown for numeric tiers."""
    show_bpm = record.tier in (Tier.NORMAL, Tier.WARNING, Tier.URGENT)
    return RoomView(
        room_id=record.room_id,
        tier=record.tier,
        display_bpm=record.numeric_value if show_bpm else None,
        label=TIER_LABELS[record.tier],
        color=TIER_COLORS[record.tier],
        icon=TIER_ICONS[record.tier],
        alarm_active=alarm_active,
        reason=record.reason,
    )


def summarize(
    rooms: Iterable[Room],
    records: dict[object, ClassificationRecord],
    sounding_alarms: int,
    feed_status: ConnectionStatus,
) -> DashboardSummary:
    """Ward-level counters: occupied rooms and rooms needing attention."""
    rooms = list(rooms)
    occupied = [room for room in rooms if room.is_occupied]
    attention = [
        room
        for room in occupied
        if room.id in records and records[room.id].tier in ATTENTION_TIERS
    ]
    return DashboardSummary(
        total_rooms=len(rooms),
        occupied_rooms=len(occupied),
        attention_rooms=len(attention),
        sounding_alarms=sounding_alarms,
        feed_status=feed_status,
    )
