"""Participant list canonicalization.

A participant list is canonical when it holds at most MAX_PARTICIPANTS
principals in strictly ascending order of their 21-byte canonical encoding.
Strict ordering rules out duplicates, so no separate uniqueness pass exists.
All checks are bounded loops over at most MAX_PARTICIPANTS entries.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from agentcoord.principal import Principal

MAX_PARTICIPANTS = 20


def _strictly_less(a: bytes, b: bytes) -> bool:
    # Byte-wise lexicographic compare; first differing byte decides.
    for x, y in zip(a, b):
        if x != y:
            return x < y
    return len(a) < len(b)


def is_canonical(participants: Sequence[Principal]) -> bool:
    """True iff len <= MAX_PARTICIPANTS and adjacent pairs strictly ascend."""
    n = len(participants)
    if n > MAX_PARTICIPANTS:
        return False
    if n <= 1:
        return True
    for i in range(n - 1):
        if not _strictly_less(participants[i].canonical_bytes, participants[i + 1].canonical_bytes):
            return False
    return True


def contains(participants: Sequence[Principal], who: Principal) -> bool:
    for p in participants:
        if p == who:
            return True
    return False


def index_of(participants: Sequence[Principal], who: Principal) -> int:
    """Position of `who` in the list, or -1."""
    for i, p in enumerate(participants):
        if p == who:
            return i
    return -1


def sort_participants(participants: Iterable[Principal]) -> List[Principal]:
    """Canonical order for an arbitrary collection. Duplicates are kept."""
    return sorted(participants, key=lambda p: p.canonical_bytes)
