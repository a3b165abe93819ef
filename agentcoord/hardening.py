"""
Agent Coordination Validation and Hardening Module

Boundary validation and invariant enforcement shared by every layer of the
coordination core. It addresses:

1. Fixed-width byte and unsigned-integer validation at the call boundary
2. Bounded text validation (ASCII reasons)
3. Constant-time digest comparison
4. State machine invariant enforcement

Security Model:
    - All inputs are untrusted until validated
    - Malformed low-level encodings are rejected before any state is read
    - Invariant violations indicate implementation bugs and abort the call

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Set


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(ValueError):
    """A single boundary validation failure."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class ValidationErrors(ValueError):
    """Collection of validation errors."""

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        messages = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Validation failed: {messages}")


class InvariantViolation(Exception):
    """State machine or encoding invariant violated."""
    pass


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise ValidationErrors if validation failed."""
        if not self.is_valid:
            raise ValidationErrors(self.errors)

    @classmethod
    def success(cls, sanitized_value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    UINT64_MAX = (1 << 64) - 1
    UINT128_MAX = (1 << 128) - 1

    @classmethod
    def validate_bytes(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 0,
        max_length: int = 65536,
    ) -> ValidationResult:
        """Validate a byte string, accepting hex text as input."""
        errors = []

        if isinstance(value, str):
            text = value[2:] if value.startswith("0x") else value
            try:
                value = bytes.fromhex(text)
            except ValueError:
                errors.append(ValidationError(field_name, "Invalid hex string", value))
                return ValidationResult.failure(errors)

        if isinstance(value, (bytearray, memoryview)):
            value = bytes(value)

        if not isinstance(value, bytes):
            errors.append(ValidationError(field_name, f"Expected bytes, got {type(value).__name__}", value))
            return ValidationResult.failure(errors)

        if len(value) < min_length:
            errors.append(ValidationError(field_name, f"Too short (min {min_length} bytes)", value))

        if len(value) > max_length:
            errors.append(ValidationError(field_name, f"Too long (max {max_length} bytes)", value))

        if errors:
            return ValidationResult.failure(errors)

        return ValidationResult.success(value)

    @classmethod
    def validate_bytes32(cls, value: Any, field_name: str) -> ValidationResult:
        """Validate an exactly 32-byte value (digest, tag or commitment)."""
        return cls.validate_bytes(value, field_name, min_length=32, max_length=32)

    @classmethod
    def validate_uint(
        cls,
        value: Any,
        field_name: str,
        max_value: int = UINT64_MAX,
    ) -> ValidationResult:
        """Validate an unsigned integer within [0, max_value]."""
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected int, got {type(value).__name__}", value)
            ])
        if value < 0:
            return ValidationResult.failure([ValidationError(field_name, "Must be non-negative", value)])
        if value > max_value:
            return ValidationResult.failure([ValidationError(field_name, f"Exceeds maximum ({max_value})", value)])
        return ValidationResult.success(value)

    @classmethod
    def validate_ascii(cls, value: Any, field_name: str, max_length: int) -> ValidationResult:
        """Validate a bounded printable-ASCII string."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])
        errors = []
        if len(value) > max_length:
            errors.append(ValidationError(field_name, f"Too long (max {max_length} chars)", value))
        if any(not (0x20 <= ord(c) < 0x7F) for c in value):
            errors.append(ValidationError(field_name, "Must be printable ASCII", value))
        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(value)

    @classmethod
    def collect(cls, *results: ValidationResult) -> ValidationResult:
        """Merge several results; sanitized values are returned as a list."""
        errors: List[ValidationError] = []
        values: List[Any] = []
        for r in results:
            errors.extend(r.errors)
            values.append(r.sanitized_value)
        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(values)


# =============================================================================
# CRYPTOGRAPHIC UTILITIES
# =============================================================================

class CryptoUtils:
    """Cryptographic utility functions with security hardening."""

    @staticmethod
    def secure_compare(a: bytes, b: bytes) -> bool:
        """Constant-time comparison to prevent timing attacks."""
        return hmac.compare_digest(a, b)

    @staticmethod
    def sha256(data: bytes) -> bytes:
        """Raw 32-byte SHA-256 digest."""
        return hashlib.sha256(data).digest()


# =============================================================================
# STATE MACHINE INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces state machine invariants."""

    @staticmethod
    def check_state_transition(
        current_state: Enum,
        target_state: Enum,
        valid_transitions: Dict[Enum, Set[Enum]],
    ) -> None:
        """Verify state transition is valid."""
        valid_targets = valid_transitions.get(current_state, set())
        if target_state not in valid_targets:
            raise InvariantViolation(
                f"Invalid state transition: {current_state.value} -> {target_state.value}. "
                f"Valid targets: {sorted(s.value for s in valid_targets)}"
            )

    @staticmethod
    def check_monotonic_increase(field_name: str, old_value: int, new_value: int) -> None:
        """Verify a counter strictly increased."""
        if new_value <= old_value:
            raise InvariantViolation(
                f"{field_name} must strictly increase: {old_value} -> {new_value}"
            )

    @staticmethod
    def check_bounded(field_name: str, value: int, upper: int) -> None:
        """Verify 0 <= value <= upper."""
        if value < 0 or value > upper:
            raise InvariantViolation(f"{field_name} out of bounds: {value} not in [0, {upper}]")
