"""
Worker process relay.

Design intent:
- Turn a worker's stdout/stderr lines into ordered, correlated bus events.
- Keep AI operations thin: each builds a payload and hands it to the relay.
"""

from .bus import BusMessage, EventBus, Subscription
from .subprocess_relay import (
    CancellationToken,
    RelayHandle,
    RelayOutcome,
    SubprocessEventRelay,
    WorkerInvocation,
)
from .workers import AIWorkerService

__all__ = [
    "AIWorkerService",
    "BusMessage",
    "CancellationToken",
    "EventBus",
    "RelayHandle",
    "RelayOutcome",
    "SubprocessEventRelay",
    "Subscription",
    "WorkerInvocation",
]
