"""Off-platform helpers for building and signing coordination messages.

Agents and participants compute intent hashes and acceptance digests before
anything is submitted. The helpers here produce exactly the bytes the
coordinator computes and verifies for a given domain:

    participants = sort_participants([agent, other])
    intent_hash = compute_intent_hash(
        payload_hash(b"execute-action"), expiry_from_duration(DURATIONS["one_day"]),
        1, agent, coordination_type("multi-sig-transfer"), 2, participants,
    )
    signed = sign_acceptance(key, intent_hash, expiry_from_duration(DURATIONS["one_hour"]))
    coordinator.accept(signed.participant, intent_hash, signed.accept_expiry,
                       signed.conditions, signed.signature)

JSON request documents (used by the CLI) are validated against the schemas
below before use.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from jsonschema import Draft202012Validator

from agentcoord.canonical import MAX_PARTICIPANTS
from agentcoord.canonical import sort_participants as _canonical_sort
from agentcoord.config import TESTNET_CHAIN_ID
from agentcoord.digest import DigestEngine
from agentcoord.hardening import CryptoUtils, ValidationError, ValidationErrors, Validators
from agentcoord.principal import MAINNET_CHAIN_ID, Principal, address_version_for_chain, as_principal
from agentcoord.signatures import secp256k1_principal, sign_digest_secp256k1

CHAIN_IDS = {
    "mainnet": MAINNET_CHAIN_ID,
    "testnet": TESTNET_CHAIN_ID,
}

DURATIONS = {
    "one_hour": 3600,
    "one_day": 86400,
    "one_week": 604800,
    "one_month": 2592000,
}

ZERO_CONDITIONS = b"\x00" * 32

PrincipalLike = Union[Principal, str]


def coordination_type(text: str) -> bytes:
    """32-byte type identifier: UTF-8 text, truncated or zero-right-padded."""
    return text.encode("utf-8")[:32].ljust(32, b"\x00")


def conditions_hash(conditions: Any) -> bytes:
    """
    SHA-256 of the compact JSON encoding of `conditions`.

    Keys keep their insertion order, matching what JavaScript signers get
    from JSON.stringify, so the same object hashes identically on both sides.
    """
    encoded = json.dumps(conditions, separators=(",", ":"), ensure_ascii=False)
    return CryptoUtils.sha256(encoded.encode("utf-8"))


def payload_hash(payload: bytes) -> bytes:
    return CryptoUtils.sha256(payload)


def current_timestamp() -> int:
    return int(time.time())


def expiry_from_duration(seconds: int, now: Optional[int] = None) -> int:
    return (current_timestamp() if now is None else now) + seconds


def sort_participants(participants: Sequence[PrincipalLike]) -> List[Principal]:
    """Canonical order. Duplicates are kept; propose rejects them."""
    return _canonical_sort([as_principal(p) for p in participants])


def engine_for(chain_id: Optional[int] = None, config=None) -> DigestEngine:
    """Digest engine for the configured domain, optionally on another chain."""
    engine = DigestEngine.from_config(config)
    if chain_id is None or chain_id == engine.chain_id:
        return engine
    constants = engine.constants
    return DigestEngine(
        chain_id=chain_id,
        verifying_context=constants.verifying_context,
        name=constants.name,
        version=constants.version,
    )


def compute_intent_hash(
    payload_hash: bytes,
    expiry: int,
    nonce: int,
    agent: PrincipalLike,
    coordination_type: bytes,
    coordination_value: int,
    participants: Sequence[PrincipalLike],
    engine: Optional[DigestEngine] = None,
) -> bytes:
    engine = engine or engine_for()
    return engine.intent_hash(
        payload_hash,
        expiry,
        nonce,
        as_principal(agent),
        coordination_type,
        coordination_value,
        [as_principal(p) for p in participants],
    )


def compute_acceptance_digest(
    intent_hash: bytes,
    participant: PrincipalLike,
    accept_expiry: int,
    conditions: bytes = ZERO_CONDITIONS,
    engine: Optional[DigestEngine] = None,
) -> bytes:
    engine = engine or engine_for()
    return engine.accept_digest(intent_hash, as_principal(participant), accept_expiry, conditions)


@dataclass(frozen=True)
class SignedAcceptance:
    """Everything a participant submits to accept an intent."""
    participant: Principal
    intent_hash: bytes
    accept_expiry: int
    conditions: bytes
    digest: bytes
    signature: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "participant": self.participant.address,
            "intent_hash": self.intent_hash.hex(),
            "accept_expiry": self.accept_expiry,
            "conditions": self.conditions.hex(),
            "digest": self.digest.hex(),
            "signature": self.signature.hex(),
        }


def sign_acceptance(
    private_key,
    intent_hash: bytes,
    accept_expiry: int,
    conditions: bytes = ZERO_CONDITIONS,
    engine: Optional[DigestEngine] = None,
) -> SignedAcceptance:
    """Sign an acceptance with a secp256k1 key on the engine's network."""
    engine = engine or engine_for()
    participant = secp256k1_principal(private_key, address_version_for_chain(engine.chain_id))
    digest = engine.accept_digest(intent_hash, participant, accept_expiry, conditions)
    return SignedAcceptance(
        participant=participant,
        intent_hash=intent_hash,
        accept_expiry=accept_expiry,
        conditions=conditions,
        digest=digest,
        signature=sign_digest_secp256k1(private_key, digest),
    )


# ---------------------------------------------------------------------------
# Request documents
# ---------------------------------------------------------------------------

_HEX32 = {"type": "string", "pattern": "^(0x)?[0-9a-fA-F]{64}$"}
_ADDRESS = {"type": "string", "pattern": "^[Ss][0-9A-Za-z]{2,}$"}
_UINT64 = {"type": "integer", "minimum": 0, "maximum": Validators.UINT64_MAX}
_CHAIN_ID = {"type": "integer", "minimum": 1, "maximum": 2 ** 32 - 1}

INTENT_REQUEST_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "IntentRequest",
    "type": "object",
    "properties": {
        "chain_id": _CHAIN_ID,
        "payload_hash": _HEX32,
        "payload": {"type": "string", "maxLength": 1024},
        "expiry": _UINT64,
        "nonce": _UINT64,
        "agent": _ADDRESS,
        "coordination_type": _HEX32,
        "coordination_type_text": {"type": "string", "minLength": 1},
        "coordination_value": {"type": "integer", "minimum": 0, "maximum": Validators.UINT128_MAX},
        "participants": {
            "type": "array",
            "items": _ADDRESS,
            "minItems": 1,
            "maxItems": MAX_PARTICIPANTS,
        },
    },
    "required": ["expiry", "nonce", "agent", "coordination_value", "participants"],
    "allOf": [
        {"oneOf": [{"required": ["payload_hash"]}, {"required": ["payload"]}]},
        {"oneOf": [{"required": ["coordination_type"]}, {"required": ["coordination_type_text"]}]},
    ],
    "additionalProperties": False,
}

ACCEPTANCE_REQUEST_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "AcceptanceRequest",
    "type": "object",
    "properties": {
        "chain_id": _CHAIN_ID,
        "intent_hash": _HEX32,
        "participant": _ADDRESS,
        "accept_expiry": _UINT64,
        "conditions": _HEX32,
        "conditions_json": {},
    },
    "required": ["intent_hash", "participant", "accept_expiry"],
    "not": {"required": ["conditions", "conditions_json"]},
    "additionalProperties": False,
}


def validate_document(document: Any, schema: Dict[str, Any]) -> List[str]:
    """Schema errors for a request document (empty if valid)."""
    validator = Draft202012Validator(schema)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(document), key=lambda e: e.json_path)
    ]


def _check(document: Any, schema: Dict[str, Any]) -> None:
    errors = list(Draft202012Validator(schema).iter_errors(document))
    if errors:
        raise ValidationErrors([ValidationError(e.json_path, e.message, e.instance) for e in errors])


def _hex(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


@dataclass(frozen=True)
class IntentRequest:
    """Fields of an intent as supplied by an agent, participants in canonical order."""
    payload_hash: bytes
    expiry: int
    nonce: int
    agent: Principal
    coordination_type: bytes
    coordination_value: int
    participants: List[Principal]
    chain_id: Optional[int] = None

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> "IntentRequest":
        _check(document, INTENT_REQUEST_SCHEMA)
        if "payload_hash" in document:
            digest = _hex(document["payload_hash"])
        else:
            digest = payload_hash(document["payload"].encode("utf-8"))
        if "coordination_type" in document:
            ctype = _hex(document["coordination_type"])
        else:
            ctype = coordination_type(document["coordination_type_text"])
        return cls(
            payload_hash=digest,
            expiry=document["expiry"],
            nonce=document["nonce"],
            agent=as_principal(document["agent"]),
            coordination_type=ctype,
            coordination_value=document["coordination_value"],
            participants=sort_participants(document["participants"]),
            chain_id=document.get("chain_id"),
        )

    def intent_hash(self, engine: Optional[DigestEngine] = None) -> bytes:
        return compute_intent_hash(
            self.payload_hash,
            self.expiry,
            self.nonce,
            self.agent,
            self.coordination_type,
            self.coordination_value,
            self.participants,
            engine=engine or engine_for(self.chain_id),
        )


@dataclass(frozen=True)
class AcceptanceRequest:
    """Fields a participant signs over to accept an intent."""
    intent_hash: bytes
    participant: Principal
    accept_expiry: int
    conditions: bytes = ZERO_CONDITIONS
    chain_id: Optional[int] = None

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> "AcceptanceRequest":
        _check(document, ACCEPTANCE_REQUEST_SCHEMA)
        if "conditions" in document:
            conditions = _hex(document["conditions"])
        elif "conditions_json" in document:
            conditions = conditions_hash(document["conditions_json"])
        else:
            conditions = ZERO_CONDITIONS
        return cls(
            intent_hash=_hex(document["intent_hash"]),
            participant=as_principal(document["participant"]),
            accept_expiry=document["accept_expiry"],
            conditions=conditions,
            chain_id=document.get("chain_id"),
        )

    def digest(self, engine: Optional[DigestEngine] = None) -> bytes:
        return compute_acceptance_digest(
            self.intent_hash,
            self.participant,
            self.accept_expiry,
            self.conditions,
            engine=engine or engine_for(self.chain_id),
        )
