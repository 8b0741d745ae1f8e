"""Supervised macOS telemetry collectors (unified log, power metrics, disk I/O)."""

from mac_observer.channel import EventReceiver, EventSender, event_channel
from mac_observer.errors import ChannelClosed, CollectorError, CollectorIOError, JoinError, ParseError, SpawnError
from mac_observer.models import DiskEvent, LogEvent, MemoryPressure, MessageType, MetricsEvent, Source

__all__ = [
    "ChannelClosed",
    "CollectorError",
    "CollectorIOError",
    "DiskEvent",
    "EventReceiver",
    "EventSender",
    "JoinError",
    "LogEvent",
    "MemoryPressure",
    "MessageType",
    "MetricsEvent",
    "ParseError",
    "SpawnError",
    "Source",
    "event_channel",
]
