"""
Core services for the vitals pipeline.

This package contains the feed client, the classification engine, the alarm
controller and the monitoring service that wires them together.
"""

from .alarm_controller import AlarmController, AlarmSink, ConsoleAlarmSink
from .classification import ClassificationEngine
from .event_bus import EventBus, Subscription
from .feed_client import VitalsFeedClient, parse_feed_event
from .monitoring import AlertManager, ManagedRegistry, WardMonitoringService
from .presentation import present, summarize
from .registry import InMemoryRegistry, RoomRegistry

__all__ = [
    "AlarmController",
    "AlarmSink",
    "AlertManager",
    "ClassificationEngine",
    "ConsoleAlarmSink",
    "EventBus",
    "InMemoryRegistry",
    "ManagedRegistry",
    "RoomRegistry",
    "Subscription",
    "VitalsFeedClient",
    "WardMonitoringService",
    "parse_feed_event",
    "present",
    "summarize",
]
