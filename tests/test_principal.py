"""
Tests for c32check principals.
"""

import pytest

from agentcoord.hardening import InvariantViolation
from agentcoord.principal import (
    AddressVersion,
    CANONICAL_LENGTH,
    InvalidAddress,
    MAINNET_CHAIN_ID,
    Principal,
    address_version_for_chain,
    as_principal,
    c32check_decode,
    c32check_encode,
    hash160,
)


class TestAddressEncoding:
    """c32check address text form."""

    def test_known_zero_addresses(self):
        assert Principal(22, b"\x00" * 20).address == "SP000000000000000000002Q6VF78"
        assert Principal(26, b"\x00" * 20).address == "ST000000000000000000002AMW42H"

    def test_address_round_trip(self):
        principal = Principal(AddressVersion.TESTNET_SINGLE_SIG, bytes(range(20)))
        assert Principal.from_address(principal.address) == principal

    @pytest.mark.parametrize("version", [
        AddressVersion.MAINNET_SINGLE_SIG,
        AddressVersion.MAINNET_MULTI_SIG,
        AddressVersion.TESTNET_SINGLE_SIG,
        AddressVersion.TESTNET_MULTI_SIG,
    ])
    def test_version_prefix_survives(self, version):
        principal = Principal(version, b"\xab" * 20)
        assert Principal.from_address(principal.address).version == version

    def test_decoding_normalizes_case(self):
        principal = Principal(26, b"\x5a" * 20)
        assert Principal.from_address(principal.address.lower()) == principal

    def test_bad_checksum(self):
        address = Principal(26, b"\x01" * 20).address
        tampered = address[:-1] + ("0" if address[-1] != "0" else "1")
        with pytest.raises(InvalidAddress):
            Principal.from_address(tampered)

    def test_contract_principal_rejected(self):
        with pytest.raises(InvalidAddress):
            Principal.from_address("ST000000000000000000002AMW42H.agent-coordination")

    def test_wrong_prefix(self):
        with pytest.raises(InvalidAddress):
            Principal.from_address("XT000000000000000000002AMW42H")

    def test_not_an_address(self):
        with pytest.raises(InvalidAddress):
            Principal.from_address("S1")

    def test_c32check_round_trip(self):
        encoded = c32check_encode(22, b"\x10" * 20)
        assert c32check_decode(encoded) == (22, b"\x10" * 20)


class TestPrincipal:
    """Principal invariants and derived forms."""

    def test_canonical_bytes(self):
        principal = Principal(26, b"\x07" * 20)
        assert len(principal.canonical_bytes) == CANONICAL_LENGTH
        assert principal.canonical_bytes == b"\x1a" + b"\x07" * 20
        assert Principal.from_canonical_bytes(principal.canonical_bytes) == principal

    def test_malformed_principals_are_invariant_violations(self):
        with pytest.raises(InvariantViolation):
            Principal(32, b"\x00" * 20)
        with pytest.raises(InvariantViolation):
            Principal(26, b"\x00" * 19)
        with pytest.raises(InvariantViolation):
            Principal.from_canonical_bytes(b"\x1a" + b"\x00" * 19)

    def test_hash160_vector(self):
        assert hash160(b"").hex() == "b472a266d0bd89c13706a4132ccfb16f7c3b9fcb"

    def test_from_public_key(self):
        public_key = b"\x02" + b"\x11" * 32
        principal = Principal.from_public_key(public_key)
        assert principal.version == AddressVersion.TESTNET_SINGLE_SIG
        assert principal.hash160 == hash160(public_key)

    def test_str_is_address(self):
        principal = Principal(22, b"\x00" * 20)
        assert str(principal) == principal.address

    def test_principals_are_hashable(self):
        a = Principal(26, b"\x01" * 20)
        b = Principal.from_address(a.address)
        assert {a: 1}[b] == 1

    def test_as_principal(self):
        principal = Principal(26, b"\x03" * 20)
        assert as_principal(principal) is principal
        assert as_principal(principal.address) == principal
        with pytest.raises(InvariantViolation):
            as_principal(42)

    def test_address_version_for_chain(self):
        assert address_version_for_chain(MAINNET_CHAIN_ID) == 22
        assert address_version_for_chain(MAINNET_CHAIN_ID, multi_sig=True) == 20
        assert address_version_for_chain(0x80000000) == 26
        assert address_version_for_chain(0x80000000, multi_sig=True) == 21
