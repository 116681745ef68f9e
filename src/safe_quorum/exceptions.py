"""Exception hierarchy for safe-quorum.

All errors raised by the proposal, signing and submission flows inherit from
SafeQuorumError so the CLI can map them to a single non-zero exit path.

Every exception carries:
- error_code: Machine-readable code (e.g., "HASH_MISMATCH")
- message: Human-readable message
- details: Data needed to act on the error (hashes, counts, signer)
- to_dict(): Serializable representation
"""
from __future__ import annotations

from typing import Any, Iterable, Optional


class SafeQuorumError(Exception):
    """Base exception for all safe-quorum errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "SAFE_QUORUM_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable dictionary."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Input Errors
# =============================================================================

class InvalidInputError(SafeQuorumError):
    """Malformed hex, bad address or otherwise invalid input."""

    error_code = "INVALID_INPUT"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class EmptyBatchError(InvalidInputError):
    """No actions were supplied for a proposal."""

    error_code = "EMPTY_BATCH"

    def __init__(self, message: str = "No transactions provided") -> None:
        super().__init__(message, field="transactions")


class ConfigurationError(SafeQuorumError):
    """Required configuration (RPC URL, signing key) is missing or invalid."""

    error_code = "CONFIGURATION_ERROR"


class ProposalNotFoundError(SafeQuorumError):
    """No proposal stored under the requested Safe transaction hash."""

    error_code = "NOT_FOUND"

    def __init__(self, safe_tx_hash: str) -> None:
        super().__init__(
            f"Proposal '{safe_tx_hash}' not found",
            details={"safe_tx_hash": safe_tx_hash},
        )


# =============================================================================
# Integrity Errors
# =============================================================================

class HashMismatchError(SafeQuorumError):
    """Locally computed and authoritative Safe transaction hashes disagree."""

    error_code = "HASH_MISMATCH"

    def __init__(
        self,
        local_hash: str,
        authoritative_hash: str,
        message: Optional[str] = None,
    ) -> None:
        super().__init__(
            message
            or (
                f"Unexpected hash {local_hash}, expected {authoritative_hash} "
                "(for pre-1.3.0 Safes use the on-chain hash)"
            ),
            details={"local": local_hash, "on_chain": authoritative_hash},
        )


class NonceMismatchError(SafeQuorumError):
    """Proposal nonce no longer equals the Safe's live nonce."""

    error_code = "NONCE_MISMATCH"

    def __init__(self, proposal_nonce: int, current_nonce: int) -> None:
        super().__init__(
            f"Proposal does not have correct nonce! "
            f"(proposal: {proposal_nonce}, Safe: {current_nonce})",
            details={
                "proposal_nonce": proposal_nonce,
                "current_nonce": current_nonce,
            },
        )


# =============================================================================
# Signature Errors
# =============================================================================

class SignatureError(SafeQuorumError):
    """Base class for signature parsing and recovery errors."""

    error_code = "SIGNATURE_ERROR"


class MalformedSignatureError(SignatureError, InvalidInputError):
    """Signature is not exactly 65 bytes."""

    error_code = "MALFORMED_SIGNATURE"

    def __init__(self, signature: str, length: int) -> None:
        SafeQuorumError.__init__(
            self,
            f"Unsupported signature: {signature} ({length} bytes, expected 65)",
            details={"signature": signature, "length": length},
        )


class UnsupportedSignatureKindError(SignatureError):
    """Trailing signature byte does not map to a known signature kind."""

    error_code = "UNSUPPORTED_SIGNATURE_KIND"

    def __init__(self, v: int, signature: str) -> None:
        super().__init__(
            f"Unsupported type {v} in {signature}",
            details={"v": v, "signature": signature},
        )


class SignatureRecoveryError(SignatureError):
    """ECDSA recovery failed for a cryptographic signature kind."""

    error_code = "SIGNATURE_RECOVERY_FAILED"


# =============================================================================
# Authorization Errors
# =============================================================================

class NotOwnerError(SafeQuorumError):
    """Signer or submitter is not an owner of the Safe."""

    error_code = "NOT_OWNER"

    def __init__(self, signer: str, owners: Iterable[str]) -> None:
        owners = list(owners)
        super().__init__(
            f"Signer {signer} not found in owners {owners}",
            details={"signer": signer, "owners": owners},
        )


class InsufficientSignaturesError(SafeQuorumError):
    """Collected signatures do not reach the Safe threshold yet."""

    error_code = "INSUFFICIENT_SIGNATURES"

    def __init__(self, have: int, need: int, threshold: Optional[int] = None) -> None:
        details: dict[str, Any] = {"have": have, "need": need}
        if threshold is not None:
            details["threshold"] = threshold
        super().__init__(
            f"Not enough signatures ({have} of {need} required)",
            details=details,
        )
        self.have = have
        self.need = need
