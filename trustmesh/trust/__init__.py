"""
Trust chain: hardware fingerprint gate, authentication hash, identity.
"""

from trustmesh.trust.auth_hash import AuthHashGenerator
from trustmesh.trust.fingerprint import FingerprintReading, FingerprintVerifier
from trustmesh.trust.identity import (
    Identity,
    IdentityProvider,
    IdentityResolver,
    LocalIdentityProvider,
)

__all__ = [
    "AuthHashGenerator",
    "FingerprintReading",
    "FingerprintVerifier",
    "Identity",
    "IdentityProvider",
    "IdentityResolver",
    "LocalIdentityProvider",
]
