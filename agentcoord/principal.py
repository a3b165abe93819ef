"""agentcoord.principal

Participant identities for the coordination core.

Profile / invariants:
- standard principals only: one version byte + a 20-byte `hash160`
  (RIPEMD160(SHA256(public_key)))
- the canonical byte form is the 21-byte `version || hash160`; participant
  ordering and uniqueness are defined over exactly these bytes
- the text form is a c32check address (`S` + version char + c32(hash160 ||
  checksum)), checksum = first 4 bytes of SHA256(SHA256(version || hash160))

A Principal that violates these invariants cannot be constructed; the error is
an InvariantViolation because well-formed identities are guaranteed by the
calling boundary.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from Crypto.Hash import RIPEMD160

from agentcoord.hardening import InvariantViolation


# c32 implementation (no external deps)
C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
C32_MAP = {c: i for i, c in enumerate(C32_ALPHABET)}

HASH160_LENGTH = 20
CANONICAL_LENGTH = 1 + HASH160_LENGTH


class AddressVersion:
    MAINNET_SINGLE_SIG = 22
    MAINNET_MULTI_SIG = 20
    TESTNET_SINGLE_SIG = 26
    TESTNET_MULTI_SIG = 21


MAINNET_CHAIN_ID = 1


class InvalidAddress(ValueError):
    """Raised when address text cannot be decoded into a Principal."""
    pass


def c32_normalize(s: str) -> str:
    return s.upper().replace("O", "0").replace("L", "1").replace("I", "1")


def c32encode(b: bytes) -> str:
    # Count leading zeros
    n_pad = 0
    for c in b:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(b, "big")
    out = []
    while num > 0:
        num, rem = divmod(num, 32)
        out.append(C32_ALPHABET[rem])
    out.extend(C32_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return "".join(out)


def c32decode(s: str) -> bytes:
    s = c32_normalize(s)
    num = 0
    for c in s:
        if c not in C32_MAP:
            raise InvalidAddress(f"Invalid c32 character: {c!r}")
        num = num * 32 + C32_MAP[c]
    n_pad = 0
    for c in s:
        if c == C32_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def _checksum(version: int, data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(bytes([version]) + data).digest()).digest()[:4]


def c32check_encode(version: int, data: bytes) -> str:
    if not 0 <= version < 32:
        raise InvariantViolation(f"c32 version must be in [0, 32), got {version}")
    return C32_ALPHABET[version] + c32encode(data + _checksum(version, data))


def c32check_decode(s: str) -> tuple:
    s = c32_normalize(s)
    if len(s) < 2:
        raise InvalidAddress("c32check string too short")
    if s[0] not in C32_MAP:
        raise InvalidAddress(f"Invalid version character: {s[0]!r}")
    version = C32_MAP[s[0]]
    decoded = c32decode(s[1:])
    if len(decoded) < 4:
        raise InvalidAddress("c32check payload too short")
    data, checksum = decoded[:-4], decoded[-4:]
    if checksum != _checksum(version, data):
        raise InvalidAddress("c32check checksum mismatch")
    return version, data


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))."""
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


def address_version_for_chain(chain_id: int, multi_sig: bool = False) -> int:
    """Single-sig (or multi-sig) address version used on the given chain."""
    if chain_id == MAINNET_CHAIN_ID:
        return AddressVersion.MAINNET_MULTI_SIG if multi_sig else AddressVersion.MAINNET_SINGLE_SIG
    return AddressVersion.TESTNET_MULTI_SIG if multi_sig else AddressVersion.TESTNET_SINGLE_SIG


@dataclass(frozen=True)
class Principal:
    """A standard principal: address version + 20-byte key hash."""
    version: int
    hash160: bytes

    def __post_init__(self):
        if not isinstance(self.version, int) or not 0 <= self.version < 32:
            raise InvariantViolation(f"Principal version must be in [0, 32), got {self.version!r}")
        if not isinstance(self.hash160, bytes) or len(self.hash160) != HASH160_LENGTH:
            raise InvariantViolation("Principal hash160 must be exactly 20 bytes")

    @property
    def canonical_bytes(self) -> bytes:
        """The 21-byte `version || hash160` form used for ordering."""
        return bytes([self.version]) + self.hash160

    @property
    def address(self) -> str:
        return "S" + c32check_encode(self.version, self.hash160)

    @classmethod
    def from_address(cls, address: str) -> "Principal":
        if not isinstance(address, str) or len(address) < 5:
            raise InvalidAddress(f"Not an address: {address!r}")
        # Contract principals ("ADDR.name") are not participants
        if "." in address:
            raise InvalidAddress("Contract principals are not supported")
        if c32_normalize(address[0]) != "S":
            raise InvalidAddress("Address must start with 'S'")
        version, data = c32check_decode(address[1:])
        if len(data) != HASH160_LENGTH:
            raise InvalidAddress(f"Address payload must be 20 bytes, got {len(data)}")
        return cls(version=version, hash160=data)

    @classmethod
    def from_canonical_bytes(cls, raw: bytes) -> "Principal":
        if len(raw) != CANONICAL_LENGTH:
            raise InvariantViolation(f"Canonical principal must be {CANONICAL_LENGTH} bytes, got {len(raw)}")
        return cls(version=raw[0], hash160=bytes(raw[1:]))

    @classmethod
    def from_public_key(cls, public_key: bytes, version: int = AddressVersion.TESTNET_SINGLE_SIG) -> "Principal":
        return cls(version=version, hash160=hash160(public_key))

    def __str__(self) -> str:
        return self.address

    def __repr__(self) -> str:
        return f"Principal({self.address})"


def as_principal(value) -> Principal:
    """Accept a Principal or an address string."""
    if isinstance(value, Principal):
        return value
    if isinstance(value, str):
        return Principal.from_address(value)
    raise InvariantViolation(f"Cannot interpret {type(value).__name__} as a principal")
