"""
Session Trust Mesh

Simulated hardware-rooted trust chain for collaborative sessions:
- Fingerprint (PUF) gate on every sensitive mutation
- GMAK authentication hash stamped on every record
- Hierarchical Session / Operation records in a document store
- Counted load with retry to detect store readiness

Author: Planetary AI Systems
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Planetary AI Systems"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from trustmesh.core.types import Result, Ok, Err, Timestamp
from trustmesh.core.errors import (
    TrustMeshError,
    IntegrityFailure,
    StoreUnavailable,
    PermissionDenied,
    ProtocolGenerationFailure,
    Unclassified,
)
from trustmesh.core.config import TrustMeshConfig, TrustParameters

from trustmesh.session import (
    SecurityLevel,
    AuthenticationType,
    Session,
    Operation,
    SessionDraft,
    OperationDraft,
    SessionStore,
    ReadinessLoader,
    SessionTrustCoordinator,
)
from trustmesh.storage import InMemoryDocumentStore, RedisDocumentStore
from trustmesh.trust import FingerprintVerifier, AuthHashGenerator, LocalIdentityProvider

__all__ = [
    "__version__",
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "TrustMeshError",
    "IntegrityFailure",
    "StoreUnavailable",
    "PermissionDenied",
    "ProtocolGenerationFailure",
    "Unclassified",
    "TrustMeshConfig",
    "TrustParameters",
    "SecurityLevel",
    "AuthenticationType",
    "Session",
    "Operation",
    "SessionDraft",
    "OperationDraft",
    "SessionStore",
    "ReadinessLoader",
    "SessionTrustCoordinator",
    "InMemoryDocumentStore",
    "RedisDocumentStore",
    "FingerprintVerifier",
    "AuthHashGenerator",
    "LocalIdentityProvider",
]
