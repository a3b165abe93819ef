"""
Agent Coordination Signature Verification

Acceptance signatures are checked through the SignatureVerifier interface:
given the 32-byte acceptance digest and a signature, return the signing
principal or None. Verification is pure and has no side effects, so schemes
can be swapped without touching the state machine.

Schemes:
    secp256k1   65-byte recoverable ECDSA, r || s || recovery_id, over the raw
                digest (no re-hashing). Signer = hash160(compressed pubkey).
    ed25519     64-byte signature. Keys cannot be recovered from Ed25519
                signatures, so the verifier checks a keyring of registered
                public keys and returns the matching principal.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional, Union

import coincurve
from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from agentcoord.observability import Component, get_logger
from agentcoord.principal import AddressVersion, Principal, address_version_for_chain

logger = get_logger("signatures", Component.SIGNATURE)

DIGEST_LENGTH = 32


class SignatureScheme(Enum):
    """Supported signature schemes."""
    SECP256K1 = "secp256k1"
    ED25519 = "ed25519"


class SignatureVerifier(ABC):
    """Recovers the principal that signed a digest."""

    scheme: SignatureScheme
    signature_length: int

    def __init__(self, address_version: int = AddressVersion.TESTNET_SINGLE_SIG):
        self.address_version = address_version

    @abstractmethod
    def recover_signer(self, digest: bytes, signature: bytes) -> Optional[Principal]:
        """Signer of `digest`, or None if the signature does not verify."""
        ...

    def verify(self, digest: bytes, signature: bytes, expected: Principal) -> bool:
        return self.recover_signer(digest, signature) == expected


class Secp256k1Verifier(SignatureVerifier):
    scheme = SignatureScheme.SECP256K1
    signature_length = 65

    def recover_signer(self, digest: bytes, signature: bytes) -> Optional[Principal]:
        if len(digest) != DIGEST_LENGTH or len(signature) != self.signature_length:
            logger.debug("rejecting malformed secp256k1 input", signature_length=len(signature))
            return None
        if signature[64] > 3:
            logger.debug("rejecting secp256k1 signature with bad recovery id", recovery_id=signature[64])
            return None
        try:
            public_key = coincurve.PublicKey.from_signature_and_message(signature, digest, hasher=None)
        except Exception as e:
            # coincurve raises a bare Exception when no key can be recovered
            logger.debug("secp256k1 recovery failed", reason=str(e))
            return None
        return Principal.from_public_key(public_key.format(compressed=True), self.address_version)


class Ed25519KeyringVerifier(SignatureVerifier):
    scheme = SignatureScheme.ED25519
    signature_length = 64

    def __init__(self, address_version: int = AddressVersion.TESTNET_SINGLE_SIG):
        super().__init__(address_version)
        self._keys: Dict[Principal, Ed25519PublicKey] = {}
        self._lock = threading.Lock()

    def register_key(self, public_key: Union[bytes, Ed25519PublicKey]) -> Principal:
        """Register a public key; returns the principal it signs as."""
        if isinstance(public_key, bytes):
            public_key = Ed25519PublicKey.from_public_bytes(public_key)
        principal = Principal.from_public_key(_ed25519_raw(public_key), self.address_version)
        with self._lock:
            self._keys[principal] = public_key
        return principal

    def recover_signer(self, digest: bytes, signature: bytes) -> Optional[Principal]:
        if len(digest) != DIGEST_LENGTH or len(signature) != self.signature_length:
            return None
        with self._lock:
            candidates = list(self._keys.items())
        for principal, key in candidates:
            try:
                key.verify(signature, digest)
            except _CryptoInvalidSignature:
                continue
            return principal
        logger.debug("no registered ed25519 key matches signature", keyring_size=len(candidates))
        return None


def _ed25519_raw(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def verifier_for_scheme(scheme: Union[str, SignatureScheme], address_version: int) -> SignatureVerifier:
    scheme = SignatureScheme(scheme)
    if scheme == SignatureScheme.SECP256K1:
        return Secp256k1Verifier(address_version)
    return Ed25519KeyringVerifier(address_version)


def verifier_from_config(config=None) -> SignatureVerifier:
    from agentcoord.config import get_config

    cfg = config or get_config()
    version = address_version_for_chain(cfg.domain.chain_id.get())
    return verifier_for_scheme(cfg.signatures.scheme.get(), version)


# ---------------------------------------------------------------------------
# Signing (off-platform tooling and tests)
# ---------------------------------------------------------------------------


def load_secp256k1_key(private_key: Union[bytes, str, coincurve.PrivateKey]) -> coincurve.PrivateKey:
    """Accept raw/hex keys, including the 33-byte `...01` compressed-key form."""
    if isinstance(private_key, coincurve.PrivateKey):
        return private_key
    if isinstance(private_key, str):
        text = private_key[2:] if private_key.startswith("0x") else private_key
        private_key = bytes.fromhex(text)
    if len(private_key) == 33 and private_key[-1] == 0x01:
        private_key = private_key[:32]
    if len(private_key) != 32:
        raise ValueError(f"secp256k1 private key must be 32 bytes, got {len(private_key)}")
    return coincurve.PrivateKey(private_key)


def secp256k1_principal(
    private_key: Union[bytes, str, coincurve.PrivateKey],
    address_version: int = AddressVersion.TESTNET_SINGLE_SIG,
) -> Principal:
    key = load_secp256k1_key(private_key)
    return Principal.from_public_key(key.public_key.format(compressed=True), address_version)


def sign_digest_secp256k1(private_key: Union[bytes, str, coincurve.PrivateKey], digest: bytes) -> bytes:
    """65-byte r || s || recovery_id signature over a raw 32-byte digest."""
    if len(digest) != DIGEST_LENGTH:
        raise ValueError("digest must be 32 bytes")
    return load_secp256k1_key(private_key).sign_recoverable(digest, hasher=None)


def ed25519_principal(
    private_key: Ed25519PrivateKey,
    address_version: int = AddressVersion.TESTNET_SINGLE_SIG,
) -> Principal:
    return Principal.from_public_key(_ed25519_raw(private_key.public_key()), address_version)


def sign_digest_ed25519(private_key: Ed25519PrivateKey, digest: bytes) -> bytes:
    if len(digest) != DIGEST_LENGTH:
        raise ValueError("digest must be 32 bytes")
    return private_key.sign(digest)
