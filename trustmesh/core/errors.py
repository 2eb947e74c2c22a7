"""
Error Hierarchy for the Session Trust Mesh

Taxonomy:
- IntegrityFailure:          hardware fingerprint check failed
- StoreUnavailable:          document store unreachable or transient failure
- PermissionDenied:          document store rejected the request
- ProtocolGenerationFailure: suggestion endpoint error or malformed response
- Unclassified:              anything else, surfaced with its raw message

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging and notifications
- Optional cause chain for root cause analysis
- Timestamp for correlation with log records

Usage:
    result = await store.update_session(record)
    match result:
        case Ok(measured):
            ...
        case Err(IntegrityFailure() as error):
            reporter.report(error)
            raise error
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from trustmesh.core.types import Timestamp

# Substring the hosted document store puts in permission rejections.
PERMISSION_DENIED_MARKER = "Missing or insufficient permissions"


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Trust chain (fingerprint / hash) errors
    - 2xxx: Document store errors
    - 3xxx: Access control errors
    - 4xxx: Protocol generation errors
    - 6xxx: Reliability errors
    - 9xxx: Unclassified errors
    """

    # Trust chain errors (1xxx)
    INTEGRITY_FINGERPRINT_MISMATCH = 1001

    # Store errors (2xxx)
    STORE_UNAVAILABLE = 2001
    STORE_TIMEOUT = 2002
    STORE_WRITE_FAILED = 2003
    STORE_NOT_CONNECTED = 2004

    # Access control errors (3xxx)
    PERMISSION_DENIED = 3001

    # Protocol generation errors (4xxx)
    PROTOCOL_ENDPOINT_FAILED = 4001
    PROTOCOL_MALFORMED_RESPONSE = 4002
    PROTOCOL_CLIENT_UNAVAILABLE = 4003

    # Reliability errors (6xxx)
    RELIABILITY_RETRY_EXHAUSTED = 6002

    # Unclassified errors (9xxx)
    UNCLASSIFIED = 9001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass(eq=False)
class TrustMeshError(Exception):
    """
    Base class for all trust mesh errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for logging.

        Excludes the cause stack trace; the cause is rendered as text only.
        """
        data = {
            "error_id": self.error_id,
            "error_type": type(self).__name__,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# TRUST CHAIN ERRORS
# =============================================================================
@dataclass(eq=False)
class IntegrityFailure(TrustMeshError):
    """
    Fingerprint (PUF) verification failed.

    Blocks the gated mutation; the store is left untouched.
    """

    @classmethod
    def fingerprint_mismatch(
        cls,
        action: str,
        expected: float,
        measured: float,
    ) -> IntegrityFailure:
        """Measured asymmetry drifted outside tolerance."""
        return cls(
            code=ErrorCode.INTEGRITY_FINGERPRINT_MISMATCH,
            message=f"PUF Verification failed during {action}. Hardware may be compromised.",
            context={"action": action, "expected": expected, "measured": measured},
        )


# =============================================================================
# STORE ERRORS
# =============================================================================
@dataclass(eq=False)
class StoreUnavailable(TrustMeshError):
    """
    Document store unreachable or transient failure.

    Retried by the readiness loader, surfaced after exhaustion.
    """

    @classmethod
    def unreachable(
        cls,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> StoreUnavailable:
        """Store could not be reached."""
        reason = f": {cause}" if cause is not None else ""
        return cls(
            code=ErrorCode.STORE_UNAVAILABLE,
            message=f"Document store unavailable during '{operation}'{reason}",
            cause=cause,
            context={"operation": operation},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        duration_ms: int,
        cause: Optional[BaseException] = None,
    ) -> StoreUnavailable:
        """Operation timed out."""
        return cls(
            code=ErrorCode.STORE_TIMEOUT,
            message=f"Operation '{operation}' timed out after {duration_ms}ms",
            cause=cause,
            context={"operation": operation, "duration_ms": duration_ms},
        )

    @classmethod
    def not_connected(cls, backend: str) -> StoreUnavailable:
        return cls(
            code=ErrorCode.STORE_NOT_CONNECTED,
            message=f"{backend} store is not connected",
            context={"backend": backend},
        )

    @classmethod
    def write_failed(
        cls,
        doc_id: str,
        written: int,
        cause: Optional[BaseException] = None,
    ) -> StoreUnavailable:
        """A multi-write sequence stopped partway; earlier writes stay committed."""
        return cls(
            code=ErrorCode.STORE_WRITE_FAILED,
            message=f"Write of record {doc_id} failed after {written} committed writes",
            cause=cause,
            context={"doc_id": doc_id, "committed": written},
        )

    @classmethod
    def retries_exhausted(
        cls,
        attempts: int,
        cause: Optional[BaseException] = None,
    ) -> StoreUnavailable:
        """Readiness check gave up."""
        return cls(
            code=ErrorCode.STORE_UNAVAILABLE,
            message=f"Document store unreachable after {attempts} attempts",
            cause=cause,
            context={"attempts": attempts},
        )


@dataclass(eq=False)
class PermissionDenied(TrustMeshError):
    """
    Document store rejected the request.

    Surfaced with a pointer to the store-side access configuration.
    """

    @classmethod
    def rejected(
        cls,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> PermissionDenied:
        return cls(
            code=ErrorCode.PERMISSION_DENIED,
            message=f"{PERMISSION_DENIED_MARKER} for '{operation}'",
            cause=cause,
            context={"operation": operation},
        )


# =============================================================================
# PROTOCOL GENERATION ERRORS
# =============================================================================
@dataclass(eq=False)
class ProtocolGenerationFailure(TrustMeshError):
    """Suggestion endpoint error or malformed response."""

    @classmethod
    def endpoint_failed(
        cls,
        model: str,
        cause: Optional[BaseException] = None,
    ) -> ProtocolGenerationFailure:
        return cls(
            code=ErrorCode.PROTOCOL_ENDPOINT_FAILED,
            message=f"Protocol generation with model '{model}' failed: {cause}",
            cause=cause,
            context={"model": model},
        )

    @classmethod
    def malformed_response(
        cls,
        reason: str,
        raw: str = "",
    ) -> ProtocolGenerationFailure:
        return cls(
            code=ErrorCode.PROTOCOL_MALFORMED_RESPONSE,
            message=f"Malformed protocol response: {reason}",
            context={"reason": reason, "raw": raw[:200]},
        )

    @classmethod
    def client_unavailable(cls, reason: str) -> ProtocolGenerationFailure:
        return cls(
            code=ErrorCode.PROTOCOL_CLIENT_UNAVAILABLE,
            message=f"Protocol generation client unavailable: {reason}",
            context={"reason": reason},
        )


# =============================================================================
# UNCLASSIFIED
# =============================================================================
@dataclass(eq=False)
class Unclassified(TrustMeshError):
    """Anything else; keeps the raw message."""

    @classmethod
    def wrap(cls, cause: BaseException) -> Unclassified:
        return cls(
            code=ErrorCode.UNCLASSIFIED,
            message=str(cause) or type(cause).__name__,
            cause=cause,
        )


# =============================================================================
# RELIABILITY ERRORS
# =============================================================================
@dataclass(eq=False)
class ReliabilityError(TrustMeshError):
    """Errors from the retry helper."""

    @classmethod
    def retry_exhausted(
        cls,
        attempts: int,
        last_error: str,
        cause: Optional[BaseException] = None,
    ) -> ReliabilityError:
        """All retry attempts exhausted."""
        return cls(
            code=ErrorCode.RELIABILITY_RETRY_EXHAUSTED,
            message=f"Retry exhausted after {attempts} attempts: {last_error}",
            cause=cause,
            context={"attempts": attempts, "last_error": last_error},
        )


# =============================================================================
# CLASSIFICATION
# =============================================================================
def classify(error: BaseException, operation: str = "request") -> TrustMeshError:
    """
    Map any exception onto the taxonomy.

    Already-classified errors pass through unchanged.
    """
    if isinstance(error, TrustMeshError):
        return error
    if PERMISSION_DENIED_MARKER in str(error) or isinstance(error, PermissionError):
        return PermissionDenied.rejected(operation, cause=error)
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return StoreUnavailable.timeout(operation, duration_ms=0, cause=error)
    if isinstance(error, (ConnectionError, OSError)):
        return StoreUnavailable.unreachable(operation, cause=error)
    return Unclassified.wrap(error)
