import hashlib
import os
import pathlib
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import agentcoord`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from agentcoord.config import TESTNET_CHAIN_ID, get_config_manager  # noqa: E402
from agentcoord.coordinator import AgentCoordinator  # noqa: E402
from agentcoord.digest import DigestEngine  # noqa: E402
from agentcoord.principal import Principal  # noqa: E402
from agentcoord.signatures import (  # noqa: E402
    Secp256k1Verifier,
    secp256k1_principal,
    sign_digest_secp256k1,
)


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless AGENTCOORD_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('AGENTCOORD_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set AGENTCOORD_RUN_SLOW=1 to enable'))


# =============================================================================
# SHARED FIXTURES
# =============================================================================

START_TIME = 1_700_000_000
ZERO32 = b"\x00" * 32


class ManualClock:
    """Clock under test control; returns whole Unix seconds."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@dataclass
class Party:
    """A secp256k1 key and the testnet principal it signs as."""
    key: bytes
    principal: Principal

    @property
    def address(self) -> str:
        return self.principal.address

    def sign_acceptance(
        self,
        engine: DigestEngine,
        intent_hash: bytes,
        accept_expiry: int,
        conditions: bytes = ZERO32,
    ) -> bytes:
        digest = engine.accept_digest(intent_hash, self.principal, accept_expiry, conditions)
        return sign_digest_secp256k1(self.key, digest)


def make_party(seed: int) -> Party:
    key = bytes([seed]) * 32
    return Party(key=key, principal=secp256k1_principal(key))


@pytest.fixture(autouse=True)
def _reset_config():
    """Configuration is a process-wide singleton; isolate each test."""
    get_config_manager().reset()
    yield
    get_config_manager().reset()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def engine() -> DigestEngine:
    return DigestEngine(chain_id=TESTNET_CHAIN_ID)


@pytest.fixture
def parties() -> List[Party]:
    """Five parties in canonical (ascending principal) order."""
    found = [make_party(seed) for seed in range(1, 6)]
    return sorted(found, key=lambda p: p.principal.canonical_bytes)


@pytest.fixture
def agent(parties) -> Party:
    return parties[0]


@pytest.fixture
def coordinator(engine, clock) -> AgentCoordinator:
    return AgentCoordinator(digests=engine, verifier=Secp256k1Verifier(), clock=clock)


@pytest.fixture
def propose(coordinator, clock) -> Callable[..., bytes]:
    """Propose with sensible defaults; override any field by keyword."""
    counter = {"nonce": 0}

    def _propose(
        proposer: Party,
        participants: Optional[List[Party]] = None,
        payload: bytes = b"execute-action",
        expiry: Optional[int] = None,
        nonce: Optional[int] = None,
        coordination_type: bytes = ZERO32,
        coordination_value: int = 100,
    ) -> bytes:
        if nonce is None:
            counter["nonce"] += 1
            nonce = counter["nonce"]
        members = participants if participants is not None else [proposer]
        return coordinator.propose(
            proposer.principal,
            payload_hash=hashlib.sha256(payload).digest(),
            expiry=expiry if expiry is not None else clock.now + 3600,
            nonce=nonce,
            coordination_type=coordination_type,
            coordination_value=coordination_value,
            participants=[p.principal for p in members],
        )

    return _propose


@pytest.fixture
def party_factory() -> Callable[..., List[Party]]:
    """`party_factory(n, start=1)` -> n parties in canonical order."""
    def _factory(n: int, start: int = 1) -> List[Party]:
        found = [make_party(seed) for seed in range(start, start + n)]
        return sorted(found, key=lambda p: p.principal.canonical_bytes)
    return _factory
