"""
Agent Coordination Record Store

Three keyed tables back the coordination state machine:

    intents      intent_hash              -> IntentRecord
    nonces       agent principal          -> last used nonce (absent = 0)
    acceptances  (intent_hash, principal) -> AcceptanceRecord

Records are immutable values; a mutation replaces the stored value through
an atomic read-modify-write on the table. Serialization of whole operations is
provided by per-key single-writer locks: one per intent hash and one per agent
nonce counter. Callers that need both take the agent lock first.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Hashable,
    Iterator,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from agentcoord.principal import Principal

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


# =============================================================================
# RECORDS
# =============================================================================

class IntentStatus(Enum):
    """Lifecycle status. EXPIRED is only ever derived, never stored."""
    PROPOSED = "proposed"
    READY = "ready"
    EXECUTED = "executed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (IntentStatus.EXECUTED, IntentStatus.CANCELLED, IntentStatus.EXPIRED)


OPEN_STATUSES = frozenset({IntentStatus.PROPOSED, IntentStatus.READY})


@dataclass(frozen=True)
class IntentRecord:
    """One coordination proposal and its lifecycle state."""
    intent_hash: bytes
    agent: Principal
    payload_hash: bytes
    expiry: int
    nonce: int
    coordination_type: bytes
    coordination_value: int
    participants: Tuple[Principal, ...]
    status: IntentStatus = IntentStatus.PROPOSED
    accept_count: int = 0

    @property
    def required_acceptances(self) -> int:
        return len(self.participants)

    def effective_status(self, now: int) -> IntentStatus:
        """Stored status with time-based expiry folded in."""
        if self.status in OPEN_STATUSES and now > self.expiry:
            return IntentStatus.EXPIRED
        return self.status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent_hash": self.intent_hash.hex(),
            "agent": self.agent.address,
            "payload_hash": self.payload_hash.hex(),
            "expiry": self.expiry,
            "nonce": self.nonce,
            "coordination_type": self.coordination_type.hex(),
            "coordination_value": self.coordination_value,
            "participants": [p.address for p in self.participants],
            "status": self.status.value,
            "accept_count": self.accept_count,
        }


@dataclass(frozen=True)
class AcceptanceRecord:
    """A participant's verified acceptance. Written once, never changed."""
    intent_hash: bytes
    participant: Principal
    accept_expiry: int
    conditions: bytes
    acceptance_hash: bytes

    def is_stale(self, now: int) -> bool:
        return self.accept_expiry < now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent_hash": self.intent_hash.hex(),
            "participant": self.participant.address,
            "accept_expiry": self.accept_expiry,
            "conditions": self.conditions.hex(),
            "acceptance_hash": self.acceptance_hash.hex(),
        }


# =============================================================================
# KEY-VALUE TABLES
# =============================================================================

class KeyValueTable(ABC, Generic[K, V]):
    """Keyed table with atomic per-call semantics."""

    @abstractmethod
    def get(self, key: K) -> Optional[V]:
        ...

    @abstractmethod
    def insert(self, key: K, value: V) -> bool:
        """Store value only if key is absent. Returns False if it existed."""
        ...

    @abstractmethod
    def put(self, key: K, value: V) -> None:
        ...

    @abstractmethod
    def update(self, key: K, fn: Callable[[Optional[V]], V]) -> V:
        """Atomically replace the value at key with fn(current)."""
        ...

    @abstractmethod
    def contains(self, key: K) -> bool:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    @abstractmethod
    def keys(self) -> List[K]:
        ...


class InMemoryTable(KeyValueTable[K, V]):
    """Thread-safe dictionary-backed table."""

    def __init__(self):
        self._data: Dict[K, V] = {}
        self._lock = threading.RLock()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            return self._data.get(key)

    def insert(self, key: K, value: V) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def update(self, key: K, fn: Callable[[Optional[V]], V]) -> V:
        with self._lock:
            new_value = fn(self._data.get(key))
            self._data[key] = new_value
            return new_value

    def contains(self, key: K) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._data.keys())


class KeyedLocks(Generic[K]):
    """
    Re-entrant lock per key, alive only while some caller holds or waits on it.

    Entries are reference counted, so keys that are only looked up (such as
    an unknown intent hash) do not accumulate.
    """

    def __init__(self):
        self._locks: Dict[K, List[Any]] = {}
        self._mutex = threading.Lock()

    def _acquire_entry(self, key: K) -> threading.RLock:
        with self._mutex:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: K) -> None:
        with self._mutex:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: K) -> Iterator[None]:
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)

    def __len__(self) -> int:
        with self._mutex:
            return len(self._locks)


# =============================================================================
# RECORD STORE
# =============================================================================

AcceptanceKey = Tuple[bytes, Principal]


class RecordStore:
    """The intents, nonces and acceptances tables plus their writer locks."""

    def __init__(
        self,
        intents: Optional[KeyValueTable[bytes, IntentRecord]] = None,
        nonces: Optional[KeyValueTable[Principal, int]] = None,
        acceptances: Optional[KeyValueTable[AcceptanceKey, AcceptanceRecord]] = None,
    ):
        self.intents: KeyValueTable[bytes, IntentRecord] = intents if intents is not None else InMemoryTable()
        self.nonces: KeyValueTable[Principal, int] = nonces if nonces is not None else InMemoryTable()
        self.acceptances: KeyValueTable[AcceptanceKey, AcceptanceRecord] = (
            acceptances if acceptances is not None else InMemoryTable()
        )
        self._intent_locks: KeyedLocks[bytes] = KeyedLocks()
        self._agent_locks: KeyedLocks[Principal] = KeyedLocks()

    def intent_writer(self, intent_hash: bytes):
        """Single-writer section for one intent."""
        return self._intent_locks.hold(intent_hash)

    def nonce_writer(self, agent: Principal):
        """Single-writer section for one agent's nonce counter."""
        return self._agent_locks.hold(agent)

    def agent_nonce(self, agent: Principal) -> int:
        value = self.nonces.get(agent)
        return 0 if value is None else value

    def acceptance(self, intent_hash: bytes, participant: Principal) -> Optional[AcceptanceRecord]:
        return self.acceptances.get((intent_hash, participant))

    def has_accepted(self, intent_hash: bytes, participant: Principal) -> bool:
        return self.acceptances.contains((intent_hash, participant))
