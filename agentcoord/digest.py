"""Domain-separated digests for coordination intents and acceptances.

Hashing:
- SHA-256 throughout
- uint  -> 32-byte big-endian block, zero-left-padded
- principal -> 32-byte block: its 20-byte hash160, zero-right-padded
- participants_hash = H(hash160(p0) || hash160(p1) || ...)   (list order)
- domain_separator  = H(H(name) || H(version) || uint(chain_id) || H(verifying_context))
- intent_hash       = H(INTENT_TYPE_TAG || payload_hash || uint(expiry) || uint(nonce)
                        || principal(agent) || coordination_type || uint(coordination_value)
                        || participants_hash)
- acceptance_struct = H(ACCEPTANCE_TYPE_TAG || intent_hash || principal(participant)
                        || uint(0) || uint(accept_expiry) || conditions)
- accept_digest     = H(SIGNING_PREFIX || domain_separator || acceptance_struct)

The intent hash is the struct hash itself, with no domain wrapping, so it can be
computed before anything is submitted. Only the acceptance digest (what a
participant signs) is bound to the domain.

Every byte here has to match independently written signers, so the constants
are exported through DomainConstants.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from agentcoord.hardening import Validators
from agentcoord.principal import Principal

DOMAIN_NAME = "ERC-8001-Agent-Coordination"
DOMAIN_VERSION = "1"
SIGNING_PREFIX = b"SIP018"
DEFAULT_VERIFYING_CONTEXT = "agent-coordination"

INTENT_TYPE = (
    "AgentIntent(bytes32 payloadHash,uint64 expiry,uint64 nonce,address agentId,"
    "bytes32 coordinationType,uint256 coordinationValue,address[] participants)"
)
ACCEPTANCE_TYPE = (
    "AcceptanceAttestation(bytes32 intentHash,address participant,uint64 nonce,"
    "uint64 expiry,bytes32 conditionsHash)"
)

# Acceptances carry a fixed nonce; replay protection comes from the intent hash.
ACCEPTANCE_NONCE = 0


def _sha256(b: bytes) -> bytes:
    return hashlib.sha256(b).digest()


INTENT_TYPE_TAG = _sha256(INTENT_TYPE.encode("ascii"))
ACCEPTANCE_TYPE_TAG = _sha256(ACCEPTANCE_TYPE.encode("ascii"))


def encode_uint(value: int, field_name: str = "value", max_value: int = Validators.UINT64_MAX) -> bytes:
    Validators.validate_uint(value, field_name, max_value=max_value).raise_if_invalid()
    return value.to_bytes(32, "big")


def encode_principal(principal: Principal) -> bytes:
    return principal.hash160 + b"\x00" * 12


def _bytes32(value: Any, field_name: str) -> bytes:
    result = Validators.validate_bytes32(value, field_name)
    result.raise_if_invalid()
    return result.sanitized_value


def participants_hash(participants: Sequence[Principal]) -> bytes:
    return _sha256(b"".join(p.hash160 for p in participants))


@dataclass(frozen=True)
class DomainConstants:
    """Exact inputs to the digest construction, for off-platform signers."""
    name: str
    version: str
    chain_id: int
    verifying_context: str
    name_hash: bytes
    version_hash: bytes
    verifying_context_hash: bytes
    domain_separator: bytes
    intent_type: str
    acceptance_type: str
    intent_type_tag: bytes
    acceptance_type_tag: bytes
    signing_prefix: bytes
    acceptance_nonce: int = ACCEPTANCE_NONCE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chain_id": self.chain_id,
            "verifying_context": self.verifying_context,
            "name_hash": self.name_hash.hex(),
            "version_hash": self.version_hash.hex(),
            "verifying_context_hash": self.verifying_context_hash.hex(),
            "domain_separator": self.domain_separator.hex(),
            "type_tags": {
                "intent": {"type": self.intent_type, "hash": self.intent_type_tag.hex()},
                "acceptance": {"type": self.acceptance_type, "hash": self.acceptance_type_tag.hex()},
            },
            "signing_prefix": self.signing_prefix.hex(),
            "acceptance_nonce": self.acceptance_nonce,
        }


class DigestEngine:
    """Builds intent hashes and acceptance digests for one domain."""

    def __init__(
        self,
        chain_id: int,
        verifying_context: str = DEFAULT_VERIFYING_CONTEXT,
        name: str = DOMAIN_NAME,
        version: str = DOMAIN_VERSION,
    ):
        name_hash = _sha256(name.encode("utf-8"))
        version_hash = _sha256(version.encode("utf-8"))
        context_hash = _sha256(verifying_context.encode("utf-8"))
        separator = _sha256(
            name_hash + version_hash + encode_uint(chain_id, "chain_id") + context_hash
        )
        self._constants = DomainConstants(
            name=name,
            version=version,
            chain_id=chain_id,
            verifying_context=verifying_context,
            name_hash=name_hash,
            version_hash=version_hash,
            verifying_context_hash=context_hash,
            domain_separator=separator,
            intent_type=INTENT_TYPE,
            acceptance_type=ACCEPTANCE_TYPE,
            intent_type_tag=INTENT_TYPE_TAG,
            acceptance_type_tag=ACCEPTANCE_TYPE_TAG,
            signing_prefix=SIGNING_PREFIX,
        )

    @classmethod
    def from_config(cls, config: Optional[Any] = None) -> "DigestEngine":
        from agentcoord.config import get_config

        cfg = config or get_config()
        return cls(
            chain_id=cfg.domain.chain_id.get(),
            verifying_context=cfg.domain.verifying_context.get(),
            name=cfg.domain.name.get(),
            version=cfg.domain.version.get(),
        )

    @property
    def constants(self) -> DomainConstants:
        return self._constants

    @property
    def domain_separator(self) -> bytes:
        return self._constants.domain_separator

    @property
    def chain_id(self) -> int:
        return self._constants.chain_id

    def intent_hash(
        self,
        payload_hash: bytes,
        expiry: int,
        nonce: int,
        agent: Principal,
        coordination_type: bytes,
        coordination_value: int,
        participants: Sequence[Principal],
    ) -> bytes:
        """Struct hash of an intent; also its primary key."""
        return _sha256(
            INTENT_TYPE_TAG
            + _bytes32(payload_hash, "payload_hash")
            + encode_uint(expiry, "expiry")
            + encode_uint(nonce, "nonce")
            + encode_principal(agent)
            + _bytes32(coordination_type, "coordination_type")
            + encode_uint(coordination_value, "coordination_value", max_value=Validators.UINT128_MAX)
            + participants_hash(participants)
        )

    def acceptance_struct_hash(
        self,
        intent_hash: bytes,
        participant: Principal,
        accept_expiry: int,
        conditions: bytes,
    ) -> bytes:
        return _sha256(
            ACCEPTANCE_TYPE_TAG
            + _bytes32(intent_hash, "intent_hash")
            + encode_principal(participant)
            + encode_uint(ACCEPTANCE_NONCE, "acceptance_nonce")
            + encode_uint(accept_expiry, "accept_expiry")
            + _bytes32(conditions, "conditions")
        )

    def accept_digest(
        self,
        intent_hash: bytes,
        participant: Principal,
        accept_expiry: int,
        conditions: bytes,
    ) -> bytes:
        """The 32-byte digest a participant signs to accept an intent."""
        struct_hash = self.acceptance_struct_hash(intent_hash, participant, accept_expiry, conditions)
        return self.signing_digest(struct_hash)

    def signing_digest(self, struct_hash: bytes) -> bytes:
        """Bind a struct hash to this domain."""
        return _sha256(SIGNING_PREFIX + self.domain_separator + _bytes32(struct_hash, "struct_hash"))
