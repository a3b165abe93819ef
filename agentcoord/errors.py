"""Typed coordination failures.

Each kind carries a stable numeric code (100..110, in taxonomy order) so results
can be compared against other implementations of the protocol.
"""

from __future__ import annotations

from typing import Any, Dict, Type


class CoordinationError(Exception):
    """Base class for every typed rejection of a coordination operation."""

    code: int = 0
    kind: str = "CoordinationError"

    def __init__(self, message: str = "", **details: Any):
        self.details = details
        super().__init__(message or self.kind)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "kind": self.kind, "message": str(self), "details": self.details}


class Unauthorized(CoordinationError):
    code = 100
    kind = "Unauthorized"


class NotFound(CoordinationError):
    code = 101
    kind = "NotFound"


class InvalidState(CoordinationError):
    code = 102
    kind = "InvalidState"


class InvalidSignature(CoordinationError):
    code = 103
    kind = "InvalidSignature"


class NotParticipant(CoordinationError):
    code = 104
    kind = "NotParticipant"


class AlreadyAccepted(CoordinationError):
    code = 105
    kind = "AlreadyAccepted"


class ExpiredIntent(CoordinationError):
    code = 106
    kind = "ExpiredIntent"


class NonceTooLow(CoordinationError):
    code = 107
    kind = "NonceTooLow"


class InvalidParticipants(CoordinationError):
    code = 108
    kind = "InvalidParticipants"


class IntentAlreadyExists(InvalidParticipants):
    """An intent with identical fields is already recorded.

    Shares code 108 with InvalidParticipants for wire compatibility.
    """
    kind = "IntentAlreadyExists"


class ExpiredAcceptance(CoordinationError):
    code = 109
    kind = "ExpiredAcceptance"


class PayloadMismatch(CoordinationError):
    code = 110
    kind = "PayloadMismatch"


ERRORS_BY_CODE: Dict[int, Type[CoordinationError]] = {
    cls.code: cls
    for cls in (
        Unauthorized,
        NotFound,
        InvalidState,
        InvalidSignature,
        NotParticipant,
        AlreadyAccepted,
        ExpiredIntent,
        NonceTooLow,
        InvalidParticipants,
        ExpiredAcceptance,
        PayloadMismatch,
    )
}
