"""
Purpose: Fire-and-forget event emission to drivers, requesters and group members.
What it does:
Wraps an external event sink (socket gateway, push service, ...) so that the
matching/lifecycle critical path never waits on it and never fails because of it.
Delivery is at-most-once; failures are logged and dropped.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

# Topics
DRIVER_ASSIGNED = "service:driver_assigned"
GROUP_UPDATE = "shared_ride:group_update"
GROUP_DRIVER_ASSIGNED = "shared_ride:driver_assigned"
DRIVER_STATUS_UPDATED = "driver:status_updated"
DRIVER_LOCATION_UPDATE = "service:location_update"


def status_topic(status: str) -> str:
    return f"service:{status.lower()}"


class EventSink(Protocol):
    def emit(self, topic: str, payload: Dict[str, Any]) -> None:
        ...


class EventPublisher:
    """
    Emits events without letting sink failures reach the caller.

    With an executor the sink call is submitted and never awaited;
    without one it runs inline but is still fully guarded.
    """
    def __init__(self, sink: Optional[EventSink] = None, executor: Optional[Executor] = None):
        self.sink = sink
        self.executor = executor

    def emit(self, topic: str, payload: Dict[str, Any]) -> None:
        if self.sink is None:
            return
        if self.executor is not None:
            try:
                self.executor.submit(self._deliver, topic, dict(payload))
            except RuntimeError:
                # executor already shut down
                logger.exception("Dropping event %s", topic)
            return
        self._deliver(topic, payload)

    def _deliver(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            self.sink.emit(topic, payload)
        except Exception:
            logger.exception("Event emission failed for %s", topic)


@dataclass
class InMemoryEventSink:
    """
    Records events in order. Used by tests and the simulation script.
    """
    events: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def emit(self, topic: str, payload: Dict[str, Any]) -> None:
        self.events.append((topic, dict(payload)))

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.events]

    def of(self, topic: str) -> List[Dict[str, Any]]:
        return [payload for event_topic, payload in self.events if event_topic == topic]
