"""
Session / Operation Data Model

A record is either a top-level Session (has a security level) or an
Operation belonging to one session (has parent id and order). Both live in
the same collection; record_from_document() tells them apart by which keys
are present.

Persisted keys:
    id, sessionName, securityLevel, authenticated, owner, createdTime,
    order, parentId, authenticationType, lambdaAlpha, lambdaBeta,
    asymmetryMeasurement, authHash
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from trustmesh.core.types import Timestamp
from trustmesh.storage.query import Document


class SecurityLevel(str, Enum):
    """Security levels, totally ordered: none < low < medium < high < quantum."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    QUANTUM = "quantum"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SecurityLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, SecurityLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, SecurityLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, SecurityLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_RANK = {level: i for i, level in enumerate(SecurityLevel)}


class AuthenticationType(str, Enum):
    """Verification mechanism that last touched a record."""
    PUF = "PUF"              # boot security
    GMAK = "GMAK"            # session auth
    BIMOTYPE = "BiMoType"    # quantum interpretation
    QUOREMIND = "QuoreMind"  # hardware verification


# =============================================================================
# DRAFTS (caller-supplied fields only)
# =============================================================================
@dataclass(frozen=True)
class SessionDraft:
    session_name: str
    security_level: SecurityLevel
    authenticated: bool = False
    authentication_type: Optional[AuthenticationType] = None


@dataclass(frozen=True)
class OperationDraft:
    session_name: str
    authenticated: bool = False
    authentication_type: Optional[AuthenticationType] = None


# =============================================================================
# RECORDS
# =============================================================================
@dataclass(frozen=True)
class Session:
    """Top-level session record."""

    id: str
    session_name: str
    security_level: SecurityLevel
    authenticated: bool
    owner: str
    created_time: Timestamp
    authentication_type: Optional[AuthenticationType] = None
    lambda_alpha: Optional[float] = None
    lambda_beta: Optional[float] = None
    asymmetry_measurement: Optional[float] = None
    auth_hash: Optional[str] = None

    @property
    def is_quantum_secure(self) -> bool:
        return self.security_level is SecurityLevel.QUANTUM and self.authenticated

    def status_text(self) -> str:
        return status_text(self)

    def with_authentication(self, authenticated: bool) -> Session:
        return replace(self, authenticated=authenticated)

    def to_document(self) -> Document:
        doc = _common_document(self)
        doc["securityLevel"] = self.security_level.value
        return doc


@dataclass(frozen=True)
class Operation:
    """Sub-step of a session."""

    id: str
    session_name: str
    parent_id: str
    order: int
    authenticated: bool
    owner: str
    created_time: Timestamp
    authentication_type: Optional[AuthenticationType] = None
    lambda_alpha: Optional[float] = None
    lambda_beta: Optional[float] = None
    asymmetry_measurement: Optional[float] = None
    auth_hash: Optional[str] = None

    def status_text(self) -> str:
        return status_text(self)

    def with_authentication(self, authenticated: bool) -> Operation:
        return replace(self, authenticated=authenticated)

    def to_document(self) -> Document:
        doc = _common_document(self)
        doc["parentId"] = self.parent_id
        doc["order"] = self.order
        return doc


Record = Union[Session, Operation]


@dataclass(frozen=True)
class SessionWithOperations:
    """A session together with its operations in `order` order."""

    session: Session
    operations: Tuple[Operation, ...] = field(default_factory=tuple)

    @property
    def operation_count(self) -> int:
        return len(self.operations)

    def with_authentication(self, authenticated: bool) -> SessionWithOperations:
        """Session and every operation set to the same flag."""
        return SessionWithOperations(
            session=self.session.with_authentication(authenticated),
            operations=tuple(op.with_authentication(authenticated) for op in self.operations),
        )


# =============================================================================
# ENCODING
# =============================================================================
_OPTIONAL_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("lambda_alpha", "lambdaAlpha"),
    ("lambda_beta", "lambdaBeta"),
    ("asymmetry_measurement", "asymmetryMeasurement"),
    ("auth_hash", "authHash"),
)


def _common_document(record: Record) -> Document:
    doc: Document = {
        "id": record.id,
        "sessionName": record.session_name,
        "authenticated": record.authenticated,
        "owner": record.owner,
        "createdTime": record.created_time.nanos,
    }
    if record.authentication_type is not None:
        doc["authenticationType"] = record.authentication_type.value
    for attr, key in _OPTIONAL_FIELDS:
        value = getattr(record, attr)
        if value is not None:
            doc[key] = value
    return doc


def record_from_document(doc: Dict[str, Any]) -> Record:
    """
    Decode a stored document.

    Raises:
        ValueError: document is neither a session nor an operation, or a
            field has an invalid value.
    """
    is_operation = "parentId" in doc and "order" in doc
    is_session = "securityLevel" in doc

    if is_operation == is_session:
        raise ValueError(
            f"Document {doc.get('id')!r} is neither a session nor an operation"
        )

    auth_type = doc.get("authenticationType")
    common: Dict[str, Any] = {
        "id": doc["id"],
        "session_name": doc["sessionName"],
        "authenticated": bool(doc.get("authenticated", False)),
        "owner": doc.get("owner", ""),
        "created_time": Timestamp(int(doc.get("createdTime", 0))),
        "authentication_type": AuthenticationType(auth_type) if auth_type else None,
    }
    for attr, key in _OPTIONAL_FIELDS:
        common[attr] = doc.get(key)

    if is_session:
        return Session(security_level=SecurityLevel(doc["securityLevel"]), **common)
    return Operation(parent_id=doc["parentId"], order=int(doc["order"]), **common)


# =============================================================================
# PRESENTATION-INDEPENDENT HELPERS
# =============================================================================
def status_text(record: Optional[Record]) -> str:
    if record is None:
        return "Unknown"
    if record.authenticated:
        kind = record.authentication_type.value if record.authentication_type else "Unknown"
        return f"Authenticated ({kind})"
    return "Pending Authentication"


def security_summary(record: Optional[Record]) -> str:
    """Three-line summary: level, authentication status, mechanism."""
    if record is None:
        return "No session data"
    level = getattr(record, "security_level", None) or SecurityLevel.NONE
    auth = "Authenticated" if record.authenticated else "Not Authenticated"
    kind = record.authentication_type.value if record.authentication_type else "Unknown"
    return f"Security Level: {level.value.upper()}\nStatus: {auth}\nAuth Type: {kind}"


def format_asymmetry(measurement: Optional[float]) -> str:
    return f"{measurement:.6f}" if measurement else "N/A"
