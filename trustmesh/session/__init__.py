"""
Session Manager: record model, persistence, readiness and coordination.

Components:
- models: Session / Operation records and drafts
- SessionStore: Result-returning persistence over a DocumentStore
- ReadinessLoader: counted load with retry, drives the session list
- SessionTrustCoordinator: identity, gating and error reporting
"""

from trustmesh.session.models import (
    AuthenticationType,
    Operation,
    OperationDraft,
    Record,
    SecurityLevel,
    Session,
    SessionDraft,
    SessionWithOperations,
    record_from_document,
)
from trustmesh.session.store import SessionStore
from trustmesh.session.loader import ReadinessLoader, ReadinessState
from trustmesh.session.coordinator import SessionTrustCoordinator

__all__ = [
    "AuthenticationType",
    "Operation",
    "OperationDraft",
    "Record",
    "SecurityLevel",
    "Session",
    "SessionDraft",
    "SessionWithOperations",
    "record_from_document",
    "SessionStore",
    "ReadinessLoader",
    "ReadinessState",
    "SessionTrustCoordinator",
]
