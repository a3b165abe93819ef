"""
Agent Coordination Events

Every successful mutating call emits exactly one event. Events are published
synchronously on an EventBus and appended to an EventLog stream keyed by the
intent hash, so downstream consumers (the modules that actually carry out a
coordinated action) can either subscribe or read the history of an intent.

    Proposed  -> CoordinationProposed
    Accepted  -> CoordinationAccepted
    Executed  -> CoordinationExecuted
    Cancelled -> CoordinationCancelled

Byte fields are carried as lowercase hex and principals as addresses.

Usage
─────

    bus = EventBus()

    @bus.subscribe(CoordinationExecuted)
    def on_executed(event: CoordinationExecuted):
        settle(event.intent_hash)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

from agentcoord.observability import Component, get_logger

logger = get_logger("events", Component.EVENTS)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all coordination events.

    Events are immutable facts representing something that happened.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)


@dataclass
class CoordinationProposed(Event):
    """Emitted when an agent proposes a new intent."""
    intent_hash: str = ""
    proposer: str = ""
    coordination_type: str = ""
    participant_count: int = 0
    coordination_value: int = 0


@dataclass
class CoordinationAccepted(Event):
    """Emitted when a participant's acceptance is recorded."""
    intent_hash: str = ""
    participant: str = ""
    acceptance_hash: str = ""
    accepted_count: int = 0
    required_count: int = 0


@dataclass
class CoordinationExecuted(Event):
    """Emitted when a fully accepted intent is executed."""
    intent_hash: str = ""
    executor: str = ""
    success: bool = False
    result: str = ""


@dataclass
class CoordinationCancelled(Event):
    """Emitted when an intent is cancelled."""
    intent_hash: str = ""
    canceller: str = ""
    reason: str = ""
    final_status: str = ""


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        super().__init__(f"Handler {getattr(handler, '__name__', handler)} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory synchronous event bus.

    Handlers run in priority order (higher first). A failing handler never
    affects the publisher or other handlers; its error goes to `on_error`.
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """Decorator to subscribe a handler to event types."""
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.error(str(error), error_code="handler_failed", event_type=event.event_type)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


# ════════════════════════════════════════════════════════════════════════════
# EVENT LOG
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EventRecord:
    """A persisted event record."""
    sequence_number: int
    event: Event
    stream_id: str
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_number": self.sequence_number,
            "event": self.event.to_dict(),
            "stream_id": self.stream_id,
            "version": self.version,
        }


class EventLog:
    """
    Append-only event log, one stream per intent hash.

    Example:
        log.append(intent_hash_hex, event)
        history = log.read_stream(intent_hash_hex)
        executed = log.read_all(event_type=CoordinationExecuted)
    """

    def __init__(self):
        self._events: List[EventRecord] = []
        self._streams: Dict[str, List[EventRecord]] = {}
        self._sequence_number = 0
        self._lock = threading.RLock()

    def append(self, stream_id: str, event: Event) -> EventRecord:
        with self._lock:
            stream = self._streams.setdefault(stream_id, [])
            self._sequence_number += 1
            record = EventRecord(
                sequence_number=self._sequence_number,
                event=event,
                stream_id=stream_id,
                version=len(stream) + 1,
            )
            self._events.append(record)
            stream.append(record)
            return record

    def read_stream(self, stream_id: str) -> List[Event]:
        with self._lock:
            return [r.event for r in self._streams.get(stream_id, [])]

    def read_all(
        self,
        from_position: int = 0,
        event_type: Optional[Type[Event]] = None,
    ) -> List[EventRecord]:
        with self._lock:
            records = self._events[from_position:]
        if event_type is not None:
            records = [r for r in records if isinstance(r.event, event_type)]
        return records

    @property
    def total_events(self) -> int:
        with self._lock:
            return len(self._events)


__all__ = [
    "Event",
    "CoordinationProposed",
    "CoordinationAccepted",
    "CoordinationExecuted",
    "CoordinationCancelled",
    "EventHandler",
    "EventHandlerRegistration",
    "EventHandlerError",
    "EventBus",
    "EventRecord",
    "EventLog",
]
