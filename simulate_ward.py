"""
Ward simulation demonstrating the full vitals pipeline.

This script runs:
1. Configuration loading and validation
2. A scripted feed (normal, guard band, out of range, no signal, sensor loss)
3. Alarm start/stop transitions
4. Room unassignment teardown and feed loss
5. A final dashboard table

Run with: uv run python simulate_ward.py
Pass --live to consume the configured Socket.IO feed instead of the script.
"""

import argparse
import asyncio
from datetime import UTC, datetime
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vitalwatch.config import get_config, print_config_summary, validate_config
from vitalwatch.domain.models import (
    ConnectionStatus,
    FeedStatusChange,
    HeartRateThresholds,
    Patient,
    Room,
    RoomView,
    Tier,
)
from vitalwatch.log import configure_logging
from vitalwatch.services.alarm_controller import ConsoleAlarmSink
from vitalwatch.services.feed_client import VitalsFeedClient
from vitalwatch.services.monitoring import WardMonitoringService
from vitalwatch.services.registry import InMemoryRegistry

console = Console()

TIER_STYLES = {
    Tier.EMPTY: "dim",
    Tier.NORMAL: "green",
    Tier.WARNING: "yellow",
    Tier.URGENT: "bold red",
    Tier.DISCONNECTED: "magenta",
    Tier.NO_SIGNAL: "bold red",
}


def build_registry() -> InMemoryRegistry:
    """A small ward: three occupied rooms and one empty."""
    patients = [
        Patient(
            id=1,
            name="Ana Souza",
            thresholds=HeartRateThresholds(min_heart_rate=60, max_heart_rate=90),
        ),
        Patient(
            id=2,
            name="Carlos Lima",
            thresholds=HeartRateThresholds(min_heart_rate=65, max_heart_rate=100),
        ),
        # Freshly admitted, bounds not configured yet
        Patient(id=3, name="Beatriz Rocha"),
    ]
    rooms = [
        Room(id=101, patient_id=1, sector="UTI", floor=1, number="101"),
        Room(id=102, patient_id=2, sector="UTI", floor=1, number="102"),
        Room(id=103, patient_id=3, sector="UTI", floor=1, number="103"),
        Room(id=104, sector="UTI", floor=1, number="104"),
    ]
    return InMemoryRegistry(rooms=rooms, patients=patients)


def bpm_update(room_id: int, patient_id: int, bpm: float | None) -> dict[str, Any]:
    return {
        "event": "bpm_update",
        "room": {"id": room_id},
        "patient": {"id": patient_id},
        "bpm": bpm,
        "serverTimestamp": datetime.now(UTC).isoformat(),
    }


def sensor_status(room_id: int, status: str) -> dict[str, Any]:
    return {
        "event": "sensor_status",
        "room": {"id": room_id},
        "macAddress": f"AA:BB:CC:DD:EE:{room_id % 100:02d}",
        "status": status,
        "timestamp": datetime.now(UTC).isoformat(),
    }


SCRIPT: list[tuple[str, dict[str, Any]]] = [
    ("Room 101 steady", bpm_update(101, 1, 72)),
    ("Room 102 near its upper bound", bpm_update(102, 2, 95)),
    ("Room 103 tachycardic on default bounds", bpm_update(103, 3, 130)),
    ("Room 101 bradycardic", bpm_update(101, 1, 50)),
    ("Room 101 still low", bpm_update(101, 1, 48)),
    ("Room 102 sensor lost", sensor_status(102, "timeout")),
    ("Room 103 signal flatlines", bpm_update(103, 3, 0)),
    ("Room 101 recovers", bpm_update(101, 1, 75)),
    ("Malformed payload", {"event": "bpm_update", "bpm": 80}),
    ("Empty room 104 gets a reading", bpm_update(104, 9, 140)),
]


def render_dashboard(service: WardMonitoringService) -> None:
    table = Table(title="Ward Dashboard")
    table.add_column("Room", style="cyan")
    table.add_column("Status", style="white")
    table.add_column("BPM", style="white")
    table.add_column("Alarm", style="white")
    table.add_column("Reason", style="white")

    for view in service.views():
        style = TIER_STYLES[view.tier]
        table.add_row(
            str(view.room_id),
            f"[{style}]{view.label}[/]",
            f"{view.display_bpm:g}" if view.display_bpm is not None else "--",
            "[bold red]ON[/]" if view.alarm_active else "off",
            view.reason,
        )

    console.print(table)

    summary = service.summary()
    console.print(
        f"Occupied {summary.occupied_rooms}/{summary.total_rooms}"
        f" | needing attention {summary.attention_rooms}"
        f" | alarms sounding {summary.sounding_alarms}"
        f" | feed {summary.feed_status.value}"
    )


def print_view(view: RoomView) -> None:
    style = TIER_STYLES[view.tier]
    console.print(f"  room {view.room_id} -> [{style}]{view.label}[/] ({view.reason})")


async def run_scripted(service: WardMonitoringService, feed: VitalsFeedClient) -> None:
    """Push the script through the feed client's payload handler (no network)."""

    runner = asyncio.create_task(service.run())

    for title, payload in SCRIPT:
        console.print(f"\n[blue]>[/] {title}")
        feed.handle_payload(payload)
        await asyncio.sleep(0.05)

    console.print(Panel("Unassigning room 103", style="blue"))
    await service.unassign_room(103)

    console.print(Panel("Feed connection lost", style="blue"))
    service.bus.publish(
        FeedStatusChange(status=ConnectionStatus.DISCONNECTED, detail="transport close")
    )
    await asyncio.sleep(0.05)

    await service.stop()
    await runner
    await service.alarms.drain()


async def run_live(service: WardMonitoringService, feed: VitalsFeedClient) -> None:
    runner = asyncio.create_task(service.run())
    try:
        async with feed.session():
            console.print(f"Connected to {feed.config.url}. Ctrl+C to stop.", style="green")
            while True:
                await asyncio.sleep(10)
                render_dashboard(service)
    finally:
        await service.stop()
        await runner


async def main(live: bool) -> None:
    config = get_config()
    configure_logging(config.logging)

    console.print(Panel("vitalwatch - Ward Simulation", style="bold blue"))
    validate_config()
    print_config_summary()

    registry = build_registry()
    service = WardMonitoringService(
        registry, ConsoleAlarmSink(console, config.alarms.sound_file), config
    )
    service.add_view_handler(print_view)
    feed = VitalsFeedClient(config.feed, service.bus)

    async with service.session():
        if live:
            await run_live(service, feed)
        else:
            await run_scripted(service, feed)
        render_dashboard(service)

    alerts = service.unviewed_alerts()
    console.print(Panel(f"{len(alerts)} unviewed alerts", style="bold"))
    for alert in alerts:
        console.print(f"  {alert.tier.value}: {alert.message}")

    if service.feed_status is ConnectionStatus.DISCONNECTED:
        console.print("Feed disconnected; all alarms released.", style="yellow")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the ward vitals simulation")
    parser.add_argument("--live", action="store_true", help="Consume the configured feed")
    args = parser.parse_args()

    try:
        asyncio.run(main(args.live))
    except KeyboardInterrupt:
        console.print("\nSimulation stopped by user", style="yellow")
