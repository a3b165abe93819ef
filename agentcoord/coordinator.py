"""
Agent Coordination State Machine

An agent proposes an intent naming a fixed, canonical set of participants;
every participant independently signs a time-bounded acceptance; once all
have accepted, and while every acceptance is still fresh, anyone may execute
the intent by revealing the payload matching its committed hash.

State Machine:

    (absent) ──propose──► PROPOSED ──accept (last)──► READY ──execute──► EXECUTED
                             │                          │
                             └────────cancel────────────┴──────────────► CANCELLED

    PROPOSED | READY with now > expiry are reported as EXPIRED by queries.
    EXPIRED is derived on read and never stored. EXECUTED and CANCELLED are
    absorbing.

Each mutating call is one serialized unit: all checks run before any write,
under the intent's single-writer lock (and, for propose, the agent's nonce
lock), so a rejected call never leaves partial state behind. Expiry is a
comparison against the clock at the moment a call runs; there is no timer.
Events are appended to the event log inside that unit and published to bus
subscribers after the locks are released, so handlers may call back into
the coordinator.

The core only proves agreement. Payload and execution data are opaque: the
payload is checked against its hash and both are handed to downstream
consumers through the CoordinationExecuted event.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from agentcoord.canonical import MAX_PARTICIPANTS, contains, is_canonical
from agentcoord.digest import DigestEngine, DomainConstants
from agentcoord.errors import (
    AlreadyAccepted,
    CoordinationError,
    ExpiredAcceptance,
    ExpiredIntent,
    IntentAlreadyExists,
    InvalidParticipants,
    InvalidSignature,
    InvalidState,
    NonceTooLow,
    NotFound,
    NotParticipant,
    PayloadMismatch,
    Unauthorized,
)
from agentcoord.events import (
    CoordinationAccepted,
    CoordinationCancelled,
    CoordinationExecuted,
    CoordinationProposed,
    Event,
    EventBus,
    EventLog,
)
from agentcoord.hardening import (
    CryptoUtils,
    InvariantChecker,
    InvariantViolation,
    ValidationError,
    ValidationErrors,
    Validators,
)
from agentcoord.observability import Component, get_correlation_id, get_logger, timed_operation
from agentcoord.principal import Principal, as_principal
from agentcoord.signatures import SignatureVerifier, verifier_from_config
from agentcoord.store import (
    AcceptanceRecord,
    IntentRecord,
    IntentStatus,
    RecordStore,
)

logger = get_logger("coordinator", Component.COORDINATOR)

MAX_PAYLOAD_BYTES = 1024
MAX_EXECUTION_DATA_BYTES = 1024
MAX_RESULT_BYTES = 1024
MAX_REASON_LENGTH = 34
MAX_SIGNATURE_BYTES = 65

VALID_TRANSITIONS = {
    IntentStatus.PROPOSED: {IntentStatus.READY, IntentStatus.CANCELLED},
    IntentStatus.READY: {IntentStatus.EXECUTED, IntentStatus.CANCELLED},
}

PrincipalLike = Union[Principal, str]


@dataclass(frozen=True)
class CoordinationStatus:
    """Read-only view of an intent returned by status queries."""
    status: IntentStatus
    agent: Principal
    participants: Tuple[Principal, ...]
    accepted_by: Tuple[Principal, ...]
    expiry: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "agent": self.agent.address,
            "participants": [p.address for p in self.participants],
            "accepted_by": [p.address for p in self.accepted_by],
            "expiry": self.expiry,
        }


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    result: bytes = b""


def system_clock() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


def _validated(*results) -> List[Any]:
    merged = Validators.collect(*results)
    merged.raise_if_invalid()
    return merged.sanitized_value


def _principals(values: Iterable[PrincipalLike], field_name: str) -> Tuple[Principal, ...]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise ValidationErrors([ValidationError(field_name, "Expected a sequence of principals", values)])
    return tuple(as_principal(v) for v in values)


class AgentCoordinator:
    """
    Propose / accept / execute / cancel lifecycle over a RecordStore.

    Collaborators are injected: the DigestEngine fixes the signing domain, the
    SignatureVerifier fixes the acceptance signature scheme, and `clock`
    returns the current Unix time in seconds.
    """

    def __init__(
        self,
        digests: DigestEngine,
        verifier: SignatureVerifier,
        store: Optional[RecordStore] = None,
        event_bus: Optional[EventBus] = None,
        event_log: Optional[EventLog] = None,
        clock: Callable[[], int] = system_clock,
    ):
        self.digests = digests
        self.verifier = verifier
        self.store = store if store is not None else RecordStore()
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.event_log = event_log if event_log is not None else EventLog()
        self._clock = clock

    @classmethod
    def from_config(cls, config=None, **kwargs: Any) -> "AgentCoordinator":
        return cls(
            digests=DigestEngine.from_config(config),
            verifier=verifier_from_config(config),
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    def _reject(self, operation: str, error: CoordinationError) -> CoordinationError:
        logger.warning(
            f"{operation} rejected: {error}",
            error_code=error.kind,
            operation=operation,
            code=error.code,
            **{k: (v.hex() if isinstance(v, bytes) else str(v)) for k, v in error.details.items()},
        )
        return error

    def _record(self, intent_hash: bytes, event: Event) -> Event:
        """Append to the intent's stream; callers publish once the writer lock is released."""
        event.correlation_id = get_correlation_id()
        self.event_log.append(intent_hash.hex(), event)
        return event

    def _load(self, operation: str, intent_hash: bytes) -> IntentRecord:
        record = self.store.intents.get(intent_hash)
        if record is None:
            raise self._reject(operation, NotFound("intent not found", intent_hash=intent_hash))
        return record

    def _transition(self, record: IntentRecord, target: IntentStatus, **changes: Any) -> IntentRecord:
        InvariantChecker.check_state_transition(record.status, target, VALID_TRANSITIONS)
        updated = replace(record, status=target, **changes)
        self.store.intents.put(record.intent_hash, updated)
        return updated

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    @timed_operation(logger, "propose")
    def propose(
        self,
        caller: PrincipalLike,
        payload_hash: bytes,
        expiry: int,
        nonce: int,
        coordination_type: bytes,
        coordination_value: int,
        participants: Sequence[PrincipalLike],
    ) -> bytes:
        """Record a new intent proposed by `caller`; returns its intent hash."""
        agent = as_principal(caller)
        payload_hash, expiry, nonce, coordination_type, coordination_value = _validated(
            Validators.validate_bytes32(payload_hash, "payload_hash"),
            Validators.validate_uint(expiry, "expiry"),
            Validators.validate_uint(nonce, "nonce"),
            Validators.validate_bytes32(coordination_type, "coordination_type"),
            Validators.validate_uint(coordination_value, "coordination_value", max_value=Validators.UINT128_MAX),
        )
        members = _principals(participants, "participants")
        now = self._now()

        with self.store.nonce_writer(agent):
            if expiry <= now:
                raise self._reject("propose", ExpiredIntent("intent expiry is not in the future", expiry=expiry, now=now))

            last_nonce = self.store.agent_nonce(agent)
            if nonce <= last_nonce:
                raise self._reject("propose", NonceTooLow(
                    "nonce must exceed the agent's last nonce", nonce=nonce, last_nonce=last_nonce,
                ))

            if len(members) > MAX_PARTICIPANTS:
                raise self._reject("propose", InvalidParticipants(
                    f"at most {MAX_PARTICIPANTS} participants allowed", count=len(members),
                ))
            if not is_canonical(members):
                raise self._reject("propose", InvalidParticipants(
                    "participants must be strictly ascending and unique",
                ))
            if not contains(members, agent):
                raise self._reject("propose", InvalidParticipants(
                    "agent must be a participant", agent=agent,
                ))

            intent_hash = self.digests.intent_hash(
                payload_hash, expiry, nonce, agent, coordination_type, coordination_value, members,
            )

            with self.store.intent_writer(intent_hash):
                record = IntentRecord(
                    intent_hash=intent_hash,
                    agent=agent,
                    payload_hash=payload_hash,
                    expiry=expiry,
                    nonce=nonce,
                    coordination_type=coordination_type,
                    coordination_value=coordination_value,
                    participants=members,
                )
                if not self.store.intents.insert(intent_hash, record):
                    raise self._reject("propose", IntentAlreadyExists(
                        "an intent with identical fields already exists", intent_hash=intent_hash,
                    ))

                InvariantChecker.check_monotonic_increase("agent nonce", last_nonce, nonce)
                self.store.nonces.put(agent, nonce)

                event = self._record(intent_hash, CoordinationProposed(
                    intent_hash=intent_hash.hex(),
                    proposer=agent.address,
                    coordination_type=coordination_type.hex(),
                    participant_count=len(members),
                    coordination_value=coordination_value,
                ))

        self.event_bus.publish(event)
        logger.info("intent proposed", intent_hash=intent_hash.hex(), agent=agent.address, nonce=nonce)
        return intent_hash

    @timed_operation(logger, "accept")
    def accept(
        self,
        caller: PrincipalLike,
        intent_hash: bytes,
        accept_expiry: int,
        conditions: bytes,
        signature: bytes,
    ) -> bool:
        """Record `caller`'s signed acceptance; True once every participant accepted."""
        participant = as_principal(caller)
        intent_hash, accept_expiry, conditions, signature = _validated(
            Validators.validate_bytes32(intent_hash, "intent_hash"),
            Validators.validate_uint(accept_expiry, "accept_expiry"),
            Validators.validate_bytes32(conditions, "conditions"),
            Validators.validate_bytes(signature, "signature", max_length=MAX_SIGNATURE_BYTES),
        )
        now = self._now()

        with self.store.intent_writer(intent_hash):
            record = self._load("accept", intent_hash)

            if now >= record.expiry:
                raise self._reject("accept", ExpiredIntent("intent has expired", expiry=record.expiry, now=now))
            if record.status != IntentStatus.PROPOSED:
                raise self._reject("accept", InvalidState(
                    f"cannot accept an intent in state {record.status.value}", status=record.status.value,
                ))
            if not contains(record.participants, participant):
                raise self._reject("accept", NotParticipant("caller is not a participant", caller=participant))
            if self.store.has_accepted(intent_hash, participant):
                raise self._reject("accept", AlreadyAccepted("caller already accepted", caller=participant))
            if accept_expiry <= now:
                raise self._reject("accept", ExpiredAcceptance(
                    "acceptance expiry is not in the future", accept_expiry=accept_expiry, now=now,
                ))

            digest = self.digests.accept_digest(intent_hash, participant, accept_expiry, conditions)
            signer = self.verifier.recover_signer(digest, signature)
            if signer is None or signer != participant:
                raise self._reject("accept", InvalidSignature(
                    "signature does not recover to caller", caller=participant, signer=signer,
                ))

            self.store.acceptances.insert(
                (intent_hash, participant),
                AcceptanceRecord(
                    intent_hash=intent_hash,
                    participant=participant,
                    accept_expiry=accept_expiry,
                    conditions=conditions,
                    acceptance_hash=digest,
                ),
            )

            accepted = record.accept_count + 1
            required = record.required_acceptances
            InvariantChecker.check_bounded("accept_count", accepted, required)
            if accepted == required:
                record = self._transition(record, IntentStatus.READY, accept_count=accepted)
            else:
                record = replace(record, accept_count=accepted)
                self.store.intents.put(intent_hash, record)

            event = self._record(intent_hash, CoordinationAccepted(
                intent_hash=intent_hash.hex(),
                participant=participant.address,
                acceptance_hash=digest.hex(),
                accepted_count=accepted,
                required_count=required,
            ))

        self.event_bus.publish(event)
        logger.info(
            "acceptance recorded",
            intent_hash=intent_hash.hex(),
            participant=participant.address,
            accepted=accepted,
            required=required,
        )
        return record.status == IntentStatus.READY

    @timed_operation(logger, "execute")
    def execute(
        self,
        caller: PrincipalLike,
        intent_hash: bytes,
        payload: bytes,
        execution_data: bytes = b"",
    ) -> ExecutionResult:
        """Execute a fully accepted intent whose payload matches its commitment."""
        executor = as_principal(caller)
        intent_hash, payload, execution_data = _validated(
            Validators.validate_bytes32(intent_hash, "intent_hash"),
            Validators.validate_bytes(payload, "payload", max_length=MAX_PAYLOAD_BYTES),
            Validators.validate_bytes(execution_data, "execution_data", max_length=MAX_EXECUTION_DATA_BYTES),
        )
        now = self._now()

        with self.store.intent_writer(intent_hash):
            record = self._load("execute", intent_hash)

            if record.status != IntentStatus.READY:
                raise self._reject("execute", InvalidState(
                    f"cannot execute an intent in state {record.status.value}", status=record.status.value,
                ))
            if now > record.expiry:
                raise self._reject("execute", ExpiredIntent("intent has expired", expiry=record.expiry, now=now))

            for participant in record.participants:
                acceptance = self.store.acceptance(intent_hash, participant)
                if acceptance is None:
                    raise InvariantViolation(f"READY intent missing acceptance from {participant.address}")
                if acceptance.is_stale(now):
                    raise self._reject("execute", ExpiredAcceptance(
                        "an acceptance has gone stale",
                        participant=participant,
                        accept_expiry=acceptance.accept_expiry,
                        now=now,
                    ))

            if not CryptoUtils.secure_compare(CryptoUtils.sha256(payload), record.payload_hash):
                raise self._reject("execute", PayloadMismatch(
                    "payload does not match the committed hash", payload_hash=record.payload_hash,
                ))

            self._transition(record, IntentStatus.EXECUTED)
            result = ExecutionResult(success=True, result=b"")

            event = CoordinationExecuted(
                intent_hash=intent_hash.hex(),
                executor=executor.address,
                success=result.success,
                result=result.result.hex(),
            )
            event.metadata["payload"] = payload.hex()
            event.metadata["execution_data"] = execution_data.hex()
            self._record(intent_hash, event)

        self.event_bus.publish(event)
        logger.info("intent executed", intent_hash=intent_hash.hex(), executor=executor.address)
        return result

    @timed_operation(logger, "cancel")
    def cancel(self, caller: PrincipalLike, intent_hash: bytes, reason: str = "") -> bool:
        """Cancel an open intent. Only the agent may cancel before expiry."""
        canceller = as_principal(caller)
        intent_hash, reason = _validated(
            Validators.validate_bytes32(intent_hash, "intent_hash"),
            Validators.validate_ascii(reason, "reason", max_length=MAX_REASON_LENGTH),
        )
        now = self._now()

        with self.store.intent_writer(intent_hash):
            record = self._load("cancel", intent_hash)

            if record.status in (IntentStatus.EXECUTED, IntentStatus.CANCELLED):
                raise self._reject("cancel", InvalidState(
                    f"cannot cancel an intent in state {record.status.value}", status=record.status.value,
                ))
            if canceller != record.agent and not now > record.expiry:
                raise self._reject("cancel", Unauthorized(
                    "only the agent may cancel before expiry", caller=canceller,
                ))

            record = self._transition(record, IntentStatus.CANCELLED)
            event = self._record(intent_hash, CoordinationCancelled(
                intent_hash=intent_hash.hex(),
                canceller=canceller.address,
                reason=reason,
                final_status=record.status.value,
            ))

        self.event_bus.publish(event)
        logger.info("intent cancelled", intent_hash=intent_hash.hex(), canceller=canceller.address, reason=reason)
        return True

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _get(self, intent_hash: bytes) -> IntentRecord:
        intent_hash = _validated(Validators.validate_bytes32(intent_hash, "intent_hash"))[0]
        record = self.store.intents.get(intent_hash)
        if record is None:
            raise NotFound("intent not found", intent_hash=intent_hash)
        return record

    def get_status(self, intent_hash: bytes) -> CoordinationStatus:
        record = self._get(intent_hash)
        accepted_by = tuple(
            p for p in record.participants if self.store.has_accepted(record.intent_hash, p)
        )
        return CoordinationStatus(
            status=record.effective_status(self._now()),
            agent=record.agent,
            participants=record.participants,
            accepted_by=accepted_by,
            expiry=record.expiry,
        )

    def get_intent(self, intent_hash: bytes) -> IntentRecord:
        return self._get(intent_hash)

    def get_required_acceptances(self, intent_hash: bytes) -> int:
        return self._get(intent_hash).required_acceptances

    def get_acceptance(self, intent_hash: bytes, participant: PrincipalLike) -> Optional[AcceptanceRecord]:
        intent_hash = _validated(Validators.validate_bytes32(intent_hash, "intent_hash"))[0]
        return self.store.acceptance(intent_hash, as_principal(participant))

    def get_agent_nonce(self, agent: PrincipalLike) -> int:
        return self.store.agent_nonce(as_principal(agent))

    def get_domain_constants(self) -> DomainConstants:
        return self.digests.constants
