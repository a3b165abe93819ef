"""
End-to-end coordination flows.

Participants sign off-platform with the signing helpers; the coordinator
verifies, tracks and executes. The concurrency tests drive the store's
writer locks from many threads at once.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from agentcoord.errors import AlreadyAccepted, CoordinationError, NonceTooLow
from agentcoord.events import (
    CoordinationAccepted,
    CoordinationCancelled,
    CoordinationExecuted,
    CoordinationProposed,
)
from agentcoord.signing import (
    DURATIONS,
    IntentRequest,
    coordination_type,
    conditions_hash,
    expiry_from_duration,
    payload_hash,
    sign_acceptance,
)
from agentcoord.store import IntentStatus


def _intent_document(agent, participants, now, nonce=1):
    return {
        "payload": "transfer 100 STX to treasury",
        "expiry": expiry_from_duration(DURATIONS["one_day"], now=now),
        "nonce": nonce,
        "agent": agent.address,
        "coordination_type_text": "multi-sig-transfer",
        "coordination_value": 100,
        "participants": [p.address for p in participants],
    }


def _submit(coordinator, request):
    return coordinator.propose(
        request.agent,
        request.payload_hash,
        request.expiry,
        request.nonce,
        request.coordination_type,
        request.coordination_value,
        request.participants,
    )


class TestMultiPartyFlow:
    """Propose, collect signed acceptances, execute."""

    def test_three_party_transfer(self, coordinator, parties, clock):
        agent = parties[0]
        members = parties[:3]
        seen = []
        coordinator.event_bus.subscribe()(lambda event: seen.append(event.event_type))

        request = IntentRequest.from_dict(_intent_document(agent, reversed(members), clock.now))
        assert request.intent_hash() == _submit(coordinator, request)
        intent_hash = request.intent_hash()

        terms = conditions_hash({"max_fee": 10, "asset": "STX"})
        ready = []
        for party in members:
            clock.advance(60)
            signed = sign_acceptance(
                party.key, intent_hash, expiry_from_duration(DURATIONS["one_hour"], now=clock.now), terms,
            )
            ready.append(coordinator.accept(
                signed.participant, intent_hash, signed.accept_expiry, signed.conditions, signed.signature,
            ))
        assert ready == [False, False, True]

        status = coordinator.get_status(intent_hash)
        assert status.status == IntentStatus.READY
        assert status.accepted_by == tuple(p.principal for p in members)

        result = coordinator.execute(parties[4].principal, intent_hash, b"transfer 100 STX to treasury")
        assert result.success
        assert coordinator.get_status(intent_hash).status == IntentStatus.EXECUTED

        assert seen == [
            "CoordinationProposed",
            "CoordinationAccepted",
            "CoordinationAccepted",
            "CoordinationAccepted",
            "CoordinationExecuted",
        ]
        stream = coordinator.event_log.read_stream(intent_hash.hex())
        assert isinstance(stream[0], CoordinationProposed)
        assert isinstance(stream[-1], CoordinationExecuted)
        assert {e.correlation_id for e in stream} != {""}

    def test_abandoned_intent_is_cancelled_by_anyone_after_expiry(self, coordinator, parties, clock):
        agent, other = parties[0], parties[1]
        request = IntentRequest.from_dict(_intent_document(agent, [agent, other], clock.now))
        intent_hash = _submit(coordinator, request)

        signed = sign_acceptance(agent.key, intent_hash, clock.now + 600)
        coordinator.accept(signed.participant, intent_hash, signed.accept_expiry, signed.conditions, signed.signature)

        clock.advance(DURATIONS["one_day"] + 1)
        assert coordinator.get_status(intent_hash).status == IntentStatus.EXPIRED

        assert coordinator.cancel(other.principal, intent_hash, "expired")
        stream = coordinator.event_log.read_stream(intent_hash.hex())
        assert isinstance(stream[-1], CoordinationCancelled)
        assert stream[-1].final_status == "cancelled"
        assert coordinator.get_status(intent_hash).status == IntentStatus.CANCELLED

    def test_agents_run_independent_nonce_sequences(self, coordinator, parties, clock):
        first, second = parties[0], parties[1]
        for nonce in (1, 2, 3):
            _submit(coordinator, IntentRequest.from_dict(
                _intent_document(first, [first], clock.now, nonce=nonce),
            ))
        _submit(coordinator, IntentRequest.from_dict(_intent_document(second, [second], clock.now, nonce=1)))

        assert coordinator.get_agent_nonce(first.principal) == 3
        assert coordinator.get_agent_nonce(second.principal) == 1


class TestConcurrency:
    """Writer locks serialize mutations on the same key."""

    def test_parallel_acceptances(self, coordinator, party_factory, clock):
        members = party_factory(12, start=20)
        agent = members[0]
        intent_hash = coordinator.propose(
            agent.principal,
            payload_hash(b"batch"),
            clock.now + 3600,
            1,
            coordination_type("batch"),
            0,
            [p.principal for p in members],
        )
        signed = [sign_acceptance(p.key, intent_hash, clock.now + 600) for p in members]
        barrier = threading.Barrier(len(signed))

        def accept(item):
            barrier.wait()
            return coordinator.accept(item.participant, intent_hash, item.accept_expiry, item.conditions, item.signature)

        with ThreadPoolExecutor(max_workers=len(signed)) as pool:
            results = list(pool.map(accept, signed))

        assert results.count(True) == 1
        assert coordinator.get_intent(intent_hash).accept_count == len(members)
        assert coordinator.get_status(intent_hash).status == IntentStatus.READY

        accepted = coordinator.event_log.read_all(event_type=CoordinationAccepted)
        assert sorted(e.event.accepted_count for e in accepted) == list(range(1, len(members) + 1))

    def test_duplicate_acceptance_race(self, coordinator, propose, parties, clock):
        agent, other = parties[0], parties[1]
        intent_hash = propose(agent, participants=[agent, other])
        signed = sign_acceptance(agent.key, intent_hash, clock.now + 600)
        workers = 8
        barrier = threading.Barrier(workers)

        def accept(_):
            barrier.wait()
            try:
                coordinator.accept(signed.participant, intent_hash, signed.accept_expiry, signed.conditions, signed.signature)
                return "ok"
            except AlreadyAccepted:
                return "duplicate"

        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(accept, range(workers)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == workers - 1
        assert coordinator.get_intent(intent_hash).accept_count == 1

    def test_nonce_race(self, coordinator, agent, clock):
        nonces = list(range(1, 17))
        barrier = threading.Barrier(len(nonces))

        def propose(nonce):
            barrier.wait()
            try:
                coordinator.propose(
                    agent.principal, payload_hash(b"race"), clock.now + 3600, nonce,
                    coordination_type("race"), 0, [agent.principal],
                )
                return nonce
            except NonceTooLow:
                return None

        with ThreadPoolExecutor(max_workers=len(nonces)) as pool:
            accepted = [n for n in pool.map(propose, reversed(nonces)) if n is not None]

        assert accepted
        assert coordinator.get_agent_nonce(agent.principal) == 16
        proposed = [e.event for e in coordinator.event_log.read_all(event_type=CoordinationProposed)]
        assert len(proposed) == len(accepted)

    @pytest.mark.slow
    def test_many_intents_under_load(self, coordinator, party_factory, clock):
        members = party_factory(5, start=40)
        rounds = 200

        def lifecycle(nonce):
            agent = members[nonce % len(members)]
            intent_hash = coordinator.propose(
                agent.principal, payload_hash(b"load-%d" % nonce), clock.now + 3600, nonce,
                coordination_type("load"), nonce, [p.principal for p in members],
            )
            for party in members:
                signed = sign_acceptance(party.key, intent_hash, clock.now + 600)
                coordinator.accept(signed.participant, intent_hash, signed.accept_expiry, signed.conditions, signed.signature)
            return coordinator.execute(agent.principal, intent_hash, b"load-%d" % nonce).success

        # One agent per worker keeps each agent's nonces increasing.
        def worker(offset):
            outcomes = []
            for nonce in range(offset + 1, rounds + 1, len(members)):
                try:
                    outcomes.append(lifecycle(nonce))
                except CoordinationError as exc:
                    outcomes.append(exc.kind)
            return outcomes

        with ThreadPoolExecutor(max_workers=len(members)) as pool:
            results = [r for batch in pool.map(worker, range(len(members))) for r in batch]

        assert results == [True] * rounds
        assert len(coordinator.event_log.read_all(event_type=CoordinationExecuted)) == rounds
