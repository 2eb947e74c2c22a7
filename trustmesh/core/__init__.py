"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the trust mesh:
- Result/Either monads for exception-free store calls
- Coded error hierarchy with classification of foreign exceptions
- Configuration management with validation
"""

from trustmesh.core.types import Result, Ok, Err, Timestamp
from trustmesh.core.errors import (
    ErrorCode,
    TrustMeshError,
    IntegrityFailure,
    StoreUnavailable,
    PermissionDenied,
    ProtocolGenerationFailure,
    Unclassified,
    classify,
)
from trustmesh.core.config import TrustMeshConfig, TrustParameters

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "ErrorCode",
    "TrustMeshError",
    "IntegrityFailure",
    "StoreUnavailable",
    "PermissionDenied",
    "ProtocolGenerationFailure",
    "Unclassified",
    "classify",
    "TrustMeshConfig",
    "TrustParameters",
]
