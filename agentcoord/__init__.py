"""
Agent Coordination Core

Multi-party agreement among autonomous agents. One agent proposes an intent
naming a fixed set of participants; each participant independently signs a
time-bounded acceptance; once everyone has accepted, anyone may execute the
intent by revealing the payload matching its committed hash.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                        AGENT COORDINATION CORE                           │
    │                                                                          │
    │  STATE MACHINE                                                           │
    │    coordinator.py  propose / accept / execute / cancel, status queries   │
    │    events.py       EventBus and per-intent EventLog                      │
    │                                                                          │
    │  CRYPTOGRAPHY                                                            │
    │    digest.py       Domain separator, intent hash, acceptance digest      │
    │    signatures.py   secp256k1 recovery, Ed25519 keyring verification      │
    │    signing.py      Off-platform hashing and signing helpers              │
    │                                                                          │
    │  STORAGE AND IDENTITY                                                    │
    │    store.py        Intent, nonce and acceptance tables; writer locks     │
    │    principal.py    c32check principals                                   │
    │    canonical.py    Participant list canonicalization                     │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    config.py       YAML + environment configuration                      │
    │    observability.py Structured logging, correlation ids                  │
    │    hardening.py    Boundary validation and invariants                    │
    │    errors.py       Typed rejections, codes 100..110                      │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Design Principles
─────────────────

    Replay Safety: Intents are bound to a per-agent strictly increasing nonce;
    acceptances are bound to an intent hash and a signing domain.

    Fail Closed: Every check runs before any write. A rejected call leaves no
    trace in the store.

    Time Is Read, Never Scheduled: Expiry is a comparison against the clock
    when a call runs. EXPIRED is a derived status.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "0.2.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import coordination modules on first access."""

    # State machine exports
    if name in ("AgentCoordinator", "CoordinationStatus", "ExecutionResult"):
        from agentcoord import coordinator
        return getattr(coordinator, name)

    # Identity exports
    if name in ("Principal", "AddressVersion", "InvalidAddress"):
        from agentcoord import principal
        return getattr(principal, name)

    # Digest exports
    if name in ("DigestEngine", "DomainConstants"):
        from agentcoord import digest
        return getattr(digest, name)

    # Signature exports
    if name in ("SignatureScheme", "SignatureVerifier", "Secp256k1Verifier", "Ed25519KeyringVerifier"):
        from agentcoord import signatures
        return getattr(signatures, name)

    # Store exports
    if name in ("IntentStatus", "IntentRecord", "AcceptanceRecord", "RecordStore"):
        from agentcoord import store
        return getattr(store, name)

    # Error exports
    if name in ("CoordinationError", "ERRORS_BY_CODE"):
        from agentcoord import errors
        return getattr(errors, name)

    # Event exports
    if name in ("EventBus", "EventLog"):
        from agentcoord import events
        return getattr(events, name)

    raise AttributeError(f"module 'agentcoord' has no attribute '{name}'")


__all__ = [
    # Version info
    "__version__",
    # State machine
    "AgentCoordinator",
    "CoordinationStatus",
    "ExecutionResult",
    # Identity
    "Principal",
    "AddressVersion",
    "InvalidAddress",
    # Digest
    "DigestEngine",
    "DomainConstants",
    # Signatures
    "SignatureScheme",
    "SignatureVerifier",
    "Secp256k1Verifier",
    "Ed25519KeyringVerifier",
    # Store
    "IntentStatus",
    "IntentRecord",
    "AcceptanceRecord",
    "RecordStore",
    # Errors
    "CoordinationError",
    "ERRORS_BY_CODE",
    # Events
    "EventBus",
    "EventLog",
]
