"""Tests for room view rendering and the ward summary."""

import pytest

from vitalwatch.domain.models import ClassificationRecord, ConnectionStatus, Room, Tier
from vitalwatch.services.presentation import TIER_COLORS, TIER_LABELS, present, summarize


@pytest.mark.parametrize("tier", list(Tier))
def test_every_tier_has_affordances(tier: Tier) -> None:
    record = ClassificationRecord(room_id=1, tier=tier, numeric_value=90, reason="r")

    view = present(record, alarm_active=False)

    assert view.label == TIER_LABELS[tier]
    assert view.color == TIER_COLORS[tier]
    assert view.icon


@pytest.mark.parametrize(
    "tier,shows_bpm",
    [
        (Tier.NORMAL, True),
        (Tier.WARNING, True),
        (Tier.URGENT, True),
        (Tier.NO_SIGNAL, False),
        (Tier.DISCONNECTED, False),
        (Tier.EMPTY, False),
    ],
)
def test_bpm_only_for_numeric_tiers(tier: Tier, shows_bpm: bool) -> None:
    record = ClassificationRecord(room_id=1, tier=tier, numeric_value=130, reason="r")
    view = present(record, alarm_active=True)
    assert (view.display_bpm == 130) is shows_bpm


def test_view_carries_reason_and_alarm_flag() -> None:
    record = ClassificationRecord(room_id=7, tier=Tier.URGENT, numeric_value=140, reason="alto")

    view = present(record, alarm_active=True)

    assert view.room_id == 7
    assert view.reason == "alto"
    assert view.alarm_active
    assert view.label == "Urgente"


def test_summarize_counts_attention_among_occupied_rooms() -> None:
    rooms = [
        Room(id=1, patient_id=1),
        Room(id=2, patient_id=2),
        Room(id=3),
        Room(id=4, patient_id=4),
    ]
    records = {
        1: ClassificationRecord(room_id=1, tier=Tier.DISCONNECTED, reason="r"),
        2: ClassificationRecord(room_id=2, tier=Tier.NORMAL, reason="r"),
        # Stale record for a room that was vacated
        3: ClassificationRecord(room_id=3, tier=Tier.URGENT, reason="r"),
    }

    summary = summarize(rooms, records, sounding_alarms=0, feed_status=ConnectionStatus.CONNECTED)

    assert summary.total_rooms == 4
    assert summary.occupied_rooms == 3
    assert summary.attention_rooms == 1
    assert summary.feed_status is ConnectionStatus.CONNECTED
