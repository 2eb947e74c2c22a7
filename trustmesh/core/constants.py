"""
System-Wide Constants for the Session Trust Mesh

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND_MS: Final[int] = 1000

# =============================================================================
# TRUST PARAMETERS (simulated hardware reference values)
# =============================================================================
LAMBDA_ALPHA: Final[float] = 0.162494  # λ^
LAMBDA_BETA: Final[float] = 0.298753   # λ²
FINGERPRINT_TOLERANCE: Final[float] = 0.001
# Peak-to-peak span of the simulated measurement noise (±0.00025).
FINGERPRINT_NOISE_SPAN: Final[float] = 0.0005

AUTH_HASH_LENGTH: Final[int] = 16
AUTH_HASH_TIME_MODULUS: Final[int] = 1000

PSEUDO_IDENTITY_PREFIX: Final[str] = "quantum-"
PSEUDO_IDENTITY_SUFFIX_LENGTH: Final[int] = 8

# =============================================================================
# DOCUMENT STORE
# =============================================================================
DEFAULT_COLLECTION: Final[str] = "quantum_sessions"
DOCUMENT_ID_LENGTH: Final[int] = 20

# =============================================================================
# READINESS CHECK
# =============================================================================
READINESS_INITIAL_DELAY_MS: Final[int] = 1 * SECOND_MS
READINESS_MAX_DELAY_MS: Final[int] = 3 * SECOND_MS
READINESS_MAX_RETRIES: Final[int] = 15

# =============================================================================
# NOTIFICATIONS
# =============================================================================
NOTIFICATION_ACTION_LABEL: Final[str] = "Secure Close"
NOTIFICATION_DEFAULT_MS: Final[int] = 5 * SECOND_MS
NOTIFICATION_PERMISSION_MS: Final[int] = 10 * SECOND_MS
NOTIFICATION_PROTOCOL_MS: Final[int] = 10 * SECOND_MS
NOTIFICATION_INTEGRITY_MS: Final[int] = 15 * SECOND_MS
# Reported errors kept for inspection; older ones are dropped.
REPORT_HISTORY_LIMIT: Final[int] = 100

# =============================================================================
# PROTOCOL GENERATION
# =============================================================================
PROTOCOL_DEFAULT_MODEL: Final[str] = "gpt-4o-mini"
PROTOCOL_MAX_RETRIES: Final[int] = 2
